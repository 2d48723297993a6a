"""Tests for registration, login and token handling."""

from datetime import timedelta

import pytest
from sqlmodel import Session

from ciphervault.server.errors import (
    InvalidInput,
    InvalidPassword,
    Unauthenticated,
    UsernameAlreadyExists,
    UserNotFound,
)
from ciphervault.server.models import UserEdit, UserFilter, UserListFilter
from ciphervault.server.repositories.users import UserRepo
from ciphervault.server.security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)
from ciphervault.server.services.users import UserService


@pytest.fixture
def user_repo(engine):
    with Session(engine) as session:
        yield UserRepo(session)


@pytest.fixture
def user_service(user_repo, settings):
    return UserService(user_repo, settings)


def test_register_twice_fails(user_service):
    user_service.register("alice", "pw1")

    with pytest.raises(UsernameAlreadyExists):
        user_service.register("alice", "pw2")


def test_register_stores_only_hash(user_service, user_repo):
    user_service.register("alice", "pw1")

    user, found = user_repo.get(UserFilter(username="alice"))
    assert found is True
    assert user.password_hash != "pw1"
    assert verify_password("pw1", user.password_hash)


@pytest.mark.parametrize("username,password", [("", "pw"), ("alice", ""), ("", "")])
def test_register_and_login_require_both_fields(user_service, username, password):
    with pytest.raises(InvalidInput):
        user_service.register(username, password)
    with pytest.raises(InvalidInput):
        user_service.login(username, password)


def test_login_wrong_password(user_service):
    user_service.register("alice", "pw1")

    with pytest.raises(InvalidPassword):
        user_service.login("alice", "wrongpw")


def test_login_unknown_user(user_service):
    with pytest.raises(UserNotFound):
        user_service.login("nobody", "pw1")


def test_login_token_binds_user_id(user_service, user_repo, settings):
    user_service.register("alice", "pw1")
    user, _ = user_repo.get(UserFilter(username="alice"))

    token = user_service.login("alice", "pw1")

    assert decode_access_token(token, settings) == user.id


def test_expired_token_is_rejected(settings):
    token = create_access_token("u1", settings, expires_delta=timedelta(seconds=-10))

    with pytest.raises(Unauthenticated):
        decode_access_token(token, settings)


def test_token_signed_with_other_key_is_rejected(settings):
    other = settings.model_copy(update={"SECRET_KEY": "another-key"})
    token = create_access_token("u1", other)

    with pytest.raises(Unauthenticated):
        decode_access_token(token, settings)


def test_verify_password_handles_garbage_hash():
    assert verify_password("pw", get_password_hash("pw")) is True
    assert verify_password("pw", "not-a-bcrypt-hash") is False


def test_user_repo_update_list_delete(user_repo):
    user_repo.create("alice", "h1")
    user_repo.create("bob", "h2")

    user_repo.update(UserFilter(username="alice"), UserEdit(password_hash="h3"))
    alice, _ = user_repo.get(UserFilter(username="alice"))
    assert alice.password_hash == "h3"

    users, count = user_repo.list(UserListFilter())
    assert count == 2
    assert {u.username for u in users} == {"alice", "bob"}

    user_repo.delete(UserFilter(user_id=alice.id))
    assert user_repo.exists(UserFilter(username="alice")) is False
    assert user_repo.exists(UserFilter(username="bob")) is True


def test_user_repo_requires_filter(user_repo):
    with pytest.raises(InvalidInput):
        user_repo.get(UserFilter())
    with pytest.raises(InvalidInput):
        user_repo.exists(UserFilter())
