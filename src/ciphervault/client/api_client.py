# 服务端 HTTP 接口的客户端封装
import logging
from datetime import datetime
from typing import List, Optional

import requests
from pydantic import BaseModel

from ..core.crypto import CryptoManager
from ..core.models import (
    AccountRequest,
    DataItemPayload,
    DataItemRequest,
    DataItemsResponse,
    DataType,
    encode_payload,
)

logger = logging.getLogger(__name__)


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, detail: str):
        super().__init__(f"{status_code} {code}: {detail}")
        self.status_code = status_code
        self.code = code
        self.detail = detail


class Secret(BaseModel):
    id: str
    type: str
    data: bytes = b""
    meta: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CipherVaultClient:
    """
    登录后自动在请求头中携带 Bearer token。
    如果传入已解锁的 CryptoManager，数据在上传前加密、下载后解密。
    """

    def __init__(
        self,
        server_url: str,
        timeout: float = 10,
        crypto: Optional[CryptoManager] = None,
        session=None,
    ):
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self.crypto = crypto
        self.token: Optional[str] = None
        self.http = session or requests.Session()

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None

    def _request(self, method: str, path: str, **kwargs) -> dict:
        headers = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        resp = self.http.request(
            method,
            f"{self.server_url}{path}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = {}
            if not isinstance(body, dict):
                body = {}
            raise ApiError(
                resp.status_code,
                body.get("error", "http_error"),
                str(body.get("detail", resp.text)),
            )
        return resp.json() if resp.content else {}

    # --- 加解密 ---

    def _seal(self, data: bytes) -> bytes:
        if self.crypto is not None and self.crypto.is_unlocked:
            return self.crypto.encrypt_bytes(data)
        return data

    def _open(self, payload: DataItemPayload) -> Secret:
        data = payload.payload_bytes() or b""
        if data and self.crypto is not None and self.crypto.is_unlocked:
            data = self.crypto.decrypt_bytes(data)
        return Secret(
            id=payload.id,
            type=payload.type or "",
            data=data,
            meta=payload.meta or "",
            created_at=payload.created_at,
            updated_at=payload.updated_at,
        )

    # --- 账户 ---

    def ping(self) -> None:
        self._request("GET", "/ping")

    def is_server_available(self) -> bool:
        try:
            self.ping()
        except (requests.RequestException, ApiError) as e:
            logger.warning("Server %s is not available: %s", self.server_url, e)
            return False
        return True

    def register(self, username: str, password: str) -> str:
        body = AccountRequest(username=username, password=password)
        return self._request("POST", "/auth/register", json=body.model_dump())["message"]

    def login(self, username: str, password: str) -> str:
        body = AccountRequest(username=username, password=password)
        self.token = self._request("POST", "/auth/login", json=body.model_dump())["access_token"]
        return self.token

    def logout(self) -> None:
        self.token = None

    # --- 数据项 ---

    def get_data(self, item_id: str, data_type: Optional[str] = None) -> Optional[Secret]:
        params = {"id": item_id}
        if data_type:
            params["type"] = data_type
        resp = DataItemsResponse.model_validate(self._request("GET", "/api/v1/data", params=params))
        if not resp.items:
            return None
        return self._open(resp.items[0])

    def list_data(self) -> List[Secret]:
        resp = DataItemsResponse.model_validate(self._request("GET", "/api/v1/data/all"))
        return [self._open(item) for item in resp.items]

    def create_data(
        self, item_id: str, data_type: DataType, data: bytes, meta: str = ""
    ) -> str:
        item = DataItemPayload(
            id=item_id,
            type=DataType(data_type).value,
            data=encode_payload(self._seal(data)),
            meta=meta,
        )
        body = DataItemRequest(item=item).model_dump(mode="json")
        return self._request("POST", "/api/v1/data", json=body)["message"]

    def update_data(
        self, item_id: str, data: Optional[bytes] = None, meta: Optional[str] = None
    ) -> str:
        item = DataItemPayload(id=item_id, meta=meta)
        if data is not None:
            item.data = encode_payload(self._seal(data))
        body = DataItemRequest(item=item).model_dump(mode="json")
        return self._request("PUT", "/api/v1/data", json=body)["message"]

    def delete_data(self, item_id: str) -> str:
        return self._request("DELETE", f"/api/v1/data/{item_id}")["message"]
