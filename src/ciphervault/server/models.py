from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel
from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    # 统一存储不带时区的 UTC 时间，列类型显式声明为普通 DateTime
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return uuid4().hex


# --- 数据表 ---

class User(SQLModel, table=True):
    __tablename__: ClassVar[str] = "users"
    id: str = Field(default_factory=new_id, primary_key=True)
    username: str = Field(index=True, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


class DataItem(SQLModel, table=True):
    __tablename__: ClassVar[str] = "data_items"
    id: str = Field(primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    type: str = Field(index=True)
    # binary 类型的数据存放在对象存储中，这里只保留空字节
    data: bytes = b""
    meta: str = ""
    url: str = ""
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime)


# --- 查询条件 / 修改参数 ---
# 字段为 None 或空字符串表示"不过滤"

class ItemFilter(BaseModel):
    id: Optional[str] = None
    owner_id: Optional[str] = None
    type: Optional[str] = None
    url: Optional[str] = None

    def is_valid(self) -> bool:
        """至少需要 id / owner_id / type 之一，防止误操作整张表"""
        return bool(self.id or self.owner_id or self.type)


class ItemListFilter(BaseModel):
    id: Optional[str] = None
    ids: Optional[List[str]] = None
    owner_id: Optional[str] = None
    owner_ids: Optional[List[str]] = None
    type: Optional[str] = None
    created_before: Optional[datetime] = None
    created_after: Optional[datetime] = None
    updated_before: Optional[datetime] = None
    updated_after: Optional[datetime] = None


class ItemEdit(BaseModel):
    id: str = ""
    owner_id: Optional[str] = None
    type: Optional[str] = None
    data: Optional[bytes] = None
    meta: Optional[str] = None
    url: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        """返回需要写入的列 (列名 -> 值)，未设置的字段不修改"""
        columns = {
            "user_id": self.owner_id,
            "type": self.type,
            "data": self.data,
            "meta": self.meta,
            "url": self.url,
        }
        return {k: v for k, v in columns.items() if v is not None}

    def has_changes(self) -> bool:
        return bool(self.changes())


class UserFilter(BaseModel):
    user_id: Optional[str] = None
    username: Optional[str] = None

    def is_valid(self) -> bool:
        return bool(self.user_id or self.username)


class UserListFilter(BaseModel):
    user_id: Optional[str] = None
    user_ids: Optional[List[str]] = None
    username: Optional[str] = None
    created_before: Optional[datetime] = None
    created_after: Optional[datetime] = None
    updated_before: Optional[datetime] = None
    updated_after: Optional[datetime] = None


class UserEdit(BaseModel):
    username: Optional[str] = None
    password_hash: Optional[str] = None

    def changes(self) -> Dict[str, Any]:
        columns = {"username": self.username, "password_hash": self.password_hash}
        return {k: v for k, v in columns.items() if v is not None}
