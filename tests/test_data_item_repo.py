"""Tests for the data_items repository: filters, partial updates and transactions."""

from datetime import datetime
from unittest.mock import patch

import pytest
from sqlalchemy import DateTime

from ciphervault.server.errors import InvalidInput, ItemAlreadyExists
from ciphervault.server.models import DataItem, ItemEdit, ItemFilter, ItemListFilter, User, utcnow


@pytest.fixture
def rows(session):
    session.add_all(
        [
            DataItem(id="a1", user_id="u1", type="text", data=b"1", created_at=datetime(2024, 1, 1)),
            DataItem(id="a2", user_id="u1", type="bank_card", data=b"2", created_at=datetime(2024, 2, 1)),
            DataItem(id="a3", user_id="u2", type="text", data=b"3", created_at=datetime(2024, 3, 1)),
        ]
    )
    session.commit()


def _ids(items):
    return [item.id for item in items]


def test_get_requires_filter(repo):
    with pytest.raises(InvalidInput):
        repo.get(ItemFilter())


def test_get_by_type_and_owner(repo, rows):
    item, found = repo.get(ItemFilter(owner_id="u1", type="bank_card"))
    assert found is True
    assert item.id == "a2"


def test_get_returns_detached_copy(repo, rows):
    item, _ = repo.get(ItemFilter(id="a1"))
    item.data = b"changed"
    repo.commit()

    again, _ = repo.get(ItemFilter(id="a1"))
    assert again.data == b"1"


def test_list_empty_filter_returns_all_rows_in_creation_order(repo, rows):
    items, count = repo.list(ItemListFilter())
    assert count == 3
    assert _ids(items) == ["a1", "a2", "a3"]


@pytest.mark.parametrize(
    "pars,expected",
    [
        (ItemListFilter(owner_id="u1"), ["a1", "a2"]),
        (ItemListFilter(owner_ids=["u2"]), ["a3"]),
        (ItemListFilter(ids=["a1", "a3"]), ["a1", "a3"]),
        (ItemListFilter(ids=[]), []),
        (ItemListFilter(type="text"), ["a1", "a3"]),
        (ItemListFilter(created_after=datetime(2024, 1, 15)), ["a2", "a3"]),
        (ItemListFilter(created_before=datetime(2024, 2, 1)), ["a1", "a2"]),
        (
            ItemListFilter(owner_id="u1", created_after=datetime(2024, 1, 15)),
            ["a2"],
        ),
    ],
)
def test_list_filters(repo, rows, pars, expected):
    items, count = repo.list(pars)
    assert _ids(items) == expected
    assert count == len(expected)


def test_create_duplicate_id(repo, rows):
    with pytest.raises(ItemAlreadyExists):
        with repo.transaction():
            repo.create(ItemEdit(id="a1", owner_id="u1", type="text", data=b"x"))


def test_update_only_touches_set_fields(repo, rows):
    before, _ = repo.get(ItemFilter(id="a1"))

    with repo.transaction():
        repo.update(ItemFilter(id="a1", owner_id="u1"), ItemEdit(meta="hello"))

    after, _ = repo.get(ItemFilter(id="a1"))
    assert after.meta == "hello"
    assert after.data == b"1"
    assert after.type == "text"
    assert after.updated_at >= before.updated_at


def test_update_without_changes_is_a_noop(repo, rows):
    before, _ = repo.get(ItemFilter(id="a1"))

    with repo.transaction():
        repo.update(ItemFilter(id="a1"), ItemEdit(id="a1"))

    after, _ = repo.get(ItemFilter(id="a1"))
    assert after.updated_at == before.updated_at


def test_update_and_delete_require_filter(repo):
    with pytest.raises(InvalidInput):
        repo.update(ItemFilter(), ItemEdit(meta="x"))
    with pytest.raises(InvalidInput):
        repo.delete(ItemFilter())


def test_delete_respects_owner(repo, rows):
    with repo.transaction():
        repo.delete(ItemFilter(id="a3", owner_id="u1"))
    assert repo.get(ItemFilter(id="a3"))[1] is True

    with repo.transaction():
        repo.delete(ItemFilter(id="a3", owner_id="u2"))
    assert repo.get(ItemFilter(id="a3")) == (None, False)


def test_transaction_rolls_back_on_error(repo):
    with pytest.raises(RuntimeError):
        with repo.transaction():
            repo.create(ItemEdit(id="t1", owner_id="u1", type="text", data=b"x"))
            raise RuntimeError("boom")

    assert repo.get(ItemFilter(id="t1")) == (None, False)


def test_nested_transaction_commits_once(repo):
    with patch.object(repo, "commit", wraps=repo.commit) as commit:
        with repo.transaction():
            with repo.transaction():
                repo.create(ItemEdit(id="t1", owner_id="u1", type="text", data=b"x"))
            commit.assert_not_called()
        commit.assert_called_once()

    assert repo.get(ItemFilter(id="t1"))[1] is True


def test_explicit_begin_and_rollback(repo):
    repo.begin()
    repo.create(ItemEdit(id="t1", owner_id="u1", type="text", data=b"x"))
    repo.rollback()

    assert repo.get(ItemFilter(id="t1")) == (None, False)


@pytest.mark.parametrize("table", [DataItem, User])
def test_timestamps_are_naive_utc_columns(table):
    for name in ("created_at", "updated_at"):
        column_type = table.__table__.c[name].type
        assert type(column_type) is DateTime
        assert column_type.timezone is False


def test_naive_timestamps_survive_round_trip(repo):
    with repo.transaction():
        repo.create(ItemEdit(id="t1", owner_id="u1", type="text", data=b"x"))

    item, _ = repo.get(ItemFilter(id="t1"))
    assert item.created_at.tzinfo is None
    assert item.created_at <= utcnow()
