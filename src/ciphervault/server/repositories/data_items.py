# data_items 表的读写 (元数据存储)
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import FlushError
from sqlmodel import Session, col, select

from ..errors import InvalidInput, ItemAlreadyExists
from ..models import DataItem, ItemEdit, ItemFilter, ItemListFilter, utcnow

logger = logging.getLogger(__name__)


class DataItemRepo:
    """
    data_items 表的仓储实现。

    读操作返回的对象会从 Session 中分离 (expunge)，
    调用方修改返回值不会被意外写回数据库。
    """

    def __init__(self, session: Session):
        self.session = session
        self._tx_depth = 0

    # --- 查询 ---

    def _where(self, statement, pars: ItemFilter):
        if pars.id:
            statement = statement.where(DataItem.id == pars.id)
        if pars.owner_id:
            statement = statement.where(DataItem.user_id == pars.owner_id)
        if pars.type:
            statement = statement.where(DataItem.type == pars.type)
        if pars.url:
            statement = statement.where(DataItem.url == pars.url)
        return statement

    def get(self, pars: ItemFilter) -> Tuple[Optional[DataItem], bool]:
        if not pars.is_valid():
            raise InvalidInput("filter must set id, owner_id or type")

        statement = self._where(select(DataItem), pars).limit(1)
        item = self.session.exec(statement).first()
        if item is None:
            return None, False

        self.session.expunge(item)
        return item, True

    def list(self, pars: ItemListFilter) -> Tuple[List[DataItem], int]:
        statement = select(DataItem)

        if pars.id:
            statement = statement.where(DataItem.id == pars.id)
        if pars.ids is not None:
            statement = statement.where(col(DataItem.id).in_(pars.ids))
        if pars.owner_id:
            statement = statement.where(DataItem.user_id == pars.owner_id)
        if pars.owner_ids is not None:
            statement = statement.where(col(DataItem.user_id).in_(pars.owner_ids))
        if pars.type:
            statement = statement.where(DataItem.type == pars.type)
        if pars.created_before is not None:
            statement = statement.where(DataItem.created_at <= pars.created_before)
        if pars.created_after is not None:
            statement = statement.where(DataItem.created_at >= pars.created_after)
        if pars.updated_before is not None:
            statement = statement.where(DataItem.updated_at <= pars.updated_before)
        if pars.updated_after is not None:
            statement = statement.where(DataItem.updated_at >= pars.updated_after)

        statement = statement.order_by(col(DataItem.created_at), col(DataItem.id))
        items = list(self.session.exec(statement).all())
        for item in items:
            self.session.expunge(item)
        return items, len(items)

    # --- 修改 ---

    def create(self, obj: ItemEdit) -> None:
        now = utcnow()
        item = DataItem(
            id=obj.id,
            user_id=obj.owner_id,
            type=obj.type,
            data=obj.data or b"",
            meta=obj.meta or "",
            url=obj.url or "",
            created_at=now,
            updated_at=now,
        )
        self.session.add(item)
        try:
            # 立即 flush，让主键冲突在这里暴露出来
            self.session.flush()
        except (IntegrityError, FlushError) as e:
            raise ItemAlreadyExists(f"data item {obj.id} already exists") from e

    def update(self, pars: ItemFilter, obj: ItemEdit) -> None:
        if not pars.is_valid():
            raise InvalidInput("filter must set id, owner_id or type")

        changes = obj.changes()
        if not changes:
            return

        now = utcnow()
        for item in self.session.exec(self._where(select(DataItem), pars)).all():
            for key, value in changes.items():
                setattr(item, key, value)
            item.updated_at = now
            self.session.add(item)
        self.session.flush()

    def delete(self, pars: ItemFilter) -> None:
        if not pars.is_valid():
            raise InvalidInput("filter must set id, owner_id or type")

        for item in self.session.exec(self._where(select(DataItem), pars)).all():
            self.session.delete(item)
        self.session.flush()

    # --- 事务 ---

    def begin(self) -> None:
        # Session 在第一次查询时会自动开启事务
        if not self.session.in_transaction():
            self.session.begin()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        事务完成辅助: 正常结束则提交，出现任何异常则回滚并继续抛出。
        嵌套调用会加入外层事务，只有最外层负责提交/回滚。
        """
        outermost = self._tx_depth == 0
        if outermost:
            self.begin()
        self._tx_depth += 1
        try:
            yield self.session
        except BaseException:
            if outermost:
                logger.debug("rolling back data_items transaction")
                self.rollback()
            raise
        else:
            if outermost:
                try:
                    self.commit()
                except BaseException:
                    self.rollback()
                    raise
        finally:
            self._tx_depth -= 1
