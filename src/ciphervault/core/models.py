# 客户端与服务端共用的数据结构 (HTTP 请求体/响应体)
import base64
import binascii
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class DataType(str, Enum):
    CREDENTIALS = "login_password"
    TEXT = "text"
    BINARY = "binary"
    BANK_CARD = "bank_card"

    @classmethod
    def values(cls) -> List[str]:
        return [t.value for t in cls]


def encode_payload(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_payload(data: str) -> bytes:
    """base64 -> bytes，格式错误时抛出 ValueError"""
    try:
        return base64.b64decode(data.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as e:
        raise ValueError("data must be base64 encoded") from e


# --- 结构化负载: 由客户端序列化后放入 data 字段 ---

class Credentials(BaseModel):
    login: str
    password: str
    url: Optional[str] = None

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Credentials":
        return cls.model_validate_json(raw)


class BankCard(BaseModel):
    number: str
    holder: str
    expiry: str
    cvv: str

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> "BankCard":
        return cls.model_validate_json(raw)


# --- 接口 DTO ---

class DataItemPayload(BaseModel):
    id: str = ""
    type: Optional[str] = None
    # base64 编码的原始字节
    data: Optional[str] = None
    meta: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def payload_bytes(self) -> Optional[bytes]:
        if self.data is None:
            return None
        return decode_payload(self.data)


class DataItemRequest(BaseModel):
    item: DataItemPayload


class DataItemsResponse(BaseModel):
    items: List[DataItemPayload] = Field(default_factory=list)


class AccountRequest(BaseModel):
    username: str
    password: str


class MessageResponse(BaseModel):
    message: str


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class ErrorResponse(BaseModel):
    error: str
    detail: str
