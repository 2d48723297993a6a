"""
数据项业务逻辑: 协调元数据存储 (关系数据库) 和对象存储 (S3)。

binary 类型的数据放在对象存储中，其余类型直接存入 data_items.data。
两个存储之间没有分布式事务，跨存储的一致性靠补偿动作保证:

    create: 插入元数据 -> 上传对象 -> 回写 url；任何一步失败都回滚元数据，
            如果对象已经上传则尽力删除 (删除失败只记日志)。
    delete: 先删对象再删元数据；对象删除失败则不动元数据。
"""
import logging
from typing import ContextManager, List, Optional, Protocol, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ...core.models import DataType
from ..errors import InvalidInput, RecordNotFound, StoreError
from ..models import DataItem, ItemEdit, ItemFilter, ItemListFilter

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    def get(self, pars: ItemFilter) -> Tuple[Optional[DataItem], bool]: ...

    def list(self, pars: ItemListFilter) -> Tuple[List[DataItem], int]: ...

    def create(self, obj: ItemEdit) -> None: ...

    def update(self, pars: ItemFilter, obj: ItemEdit) -> None: ...

    def delete(self, pars: ItemFilter) -> None: ...

    def begin(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def transaction(self) -> ContextManager: ...


class ObjectStore(Protocol):
    def upload_file(self, item_id: str, data: bytes) -> str: ...

    def get_file(self, pars: ItemFilter) -> Tuple[Optional[bytes], bool]: ...

    def delete_file(self, pars: ItemFilter) -> None: ...


def is_binary(item_type: Optional[str]) -> bool:
    return item_type == DataType.BINARY.value


def _validate_new(obj: ItemEdit) -> None:
    if not obj.id:
        raise InvalidInput("id is required")
    if "/" in obj.id or "\\" in obj.id:
        raise InvalidInput("id must not contain path separators")
    if not obj.owner_id:
        raise InvalidInput("owner is required")
    if obj.type not in DataType.values():
        raise InvalidInput(f"unknown data type: {obj.type}")


class DataItemService:
    def __init__(self, repo_db: MetadataStore, repo_s3: ObjectStore):
        self.repo_db = repo_db
        self.repo_s3 = repo_s3

    def list(self, pars: ItemListFilter) -> Tuple[List[DataItem], int]:
        # 列表只返回元数据，binary 数据不从对象存储加载
        try:
            return self.repo_db.list(pars)
        except SQLAlchemyError as e:
            raise StoreError("list data from database") from e

    def create(self, obj: ItemEdit) -> None:
        _validate_new(obj)
        binary = is_binary(obj.type)
        payload = obj.data if obj.data is not None else b""

        # binary 数据不写入元数据行，url 在上传成功后回写
        row = obj.model_copy(update={"data": None if binary else payload, "url": None})

        uploaded = False
        try:
            with self.repo_db.transaction():
                self.repo_db.create(row)

                if binary:
                    url = self.repo_s3.upload_file(obj.id, payload)
                    uploaded = True
                    self.update(
                        ItemFilter(id=obj.id, owner_id=obj.owner_id),
                        ItemEdit(id=obj.id, url=url),
                    )
        except Exception as e:
            if uploaded:
                self._discard_object(obj.id)
            if isinstance(e, SQLAlchemyError):
                raise StoreError("create data in database") from e
            raise

        logger.info("Created data item %s (type=%s, owner=%s)", obj.id, obj.type, obj.owner_id)

    def get(self, pars: ItemFilter) -> Tuple[Optional[DataItem], bool]:
        if not pars.is_valid():
            raise InvalidInput("filter must set id, owner_id or type")

        try:
            obj, found = self.repo_db.get(pars)
        except SQLAlchemyError as e:
            raise StoreError("get data from database") from e
        if not found:
            return None, False

        if is_binary(obj.type):
            data, found = self.repo_s3.get_file(ItemFilter(id=obj.id))
            if not found:
                # 对象丢失的 binary 数据项视为不存在
                logger.warning("Binary data item %s has no stored object", obj.id)
                return None, False
            obj.data = data

        return obj, True

    def update(self, pars: ItemFilter, obj: ItemEdit) -> None:
        if not pars.is_valid():
            raise InvalidInput("filter must set id, owner_id or type")
        if obj.type is not None and obj.type not in DataType.values():
            raise InvalidInput(f"unknown data type: {obj.type}")

        try:
            with self.repo_db.transaction():
                existing, found = self.repo_db.get(pars)
                if not found:
                    # 与 get 不同，这里找不到记录是错误
                    raise RecordNotFound("record not found")
                if obj.type is not None and obj.type != existing.type:
                    raise InvalidInput("data type can not be changed")

                edit = obj
                if is_binary(existing.type) and obj.data is not None:
                    url = self.repo_s3.upload_file(existing.id, obj.data)
                    edit = obj.model_copy(update={"data": None, "url": url})

                # 只修改已解析出的那一行，url 与对象 key 一一对应
                self.repo_db.update(ItemFilter(id=existing.id, owner_id=existing.user_id), edit)
        except SQLAlchemyError as e:
            raise StoreError("update data in database") from e

    def delete(self, pars: ItemFilter) -> None:
        if not pars.is_valid():
            raise InvalidInput("filter must set id, owner_id or type")

        try:
            existing, found = self.repo_db.get(pars)
        except SQLAlchemyError as e:
            raise StoreError("get data from database") from e
        if not found:
            raise RecordNotFound("record not found")

        # 先删对象: 失败时元数据保持不变
        if is_binary(existing.type):
            self.repo_s3.delete_file(ItemFilter(id=existing.id))

        try:
            with self.repo_db.transaction():
                self.repo_db.delete(ItemFilter(id=existing.id, owner_id=existing.user_id))
        except SQLAlchemyError as e:
            if is_binary(existing.type):
                logger.error("Object of data item %s deleted but metadata row remains", existing.id)
            raise StoreError("delete data in database") from e

        logger.info("Deleted data item %s (owner=%s)", existing.id, existing.user_id)

    def _discard_object(self, item_id: str) -> None:
        # 补偿动作，只尝试一次，失败只记日志
        try:
            self.repo_s3.delete_file(ItemFilter(id=item_id))
        except Exception:
            logger.exception("Failed to delete orphaned object for data item %s", item_id)
