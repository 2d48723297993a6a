# 对象存储: 保存 binary 类型的大块数据，按数据项 id 寻址
import logging
import os
from pathlib import Path
from typing import Optional, Tuple, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..config import Settings
from ..errors import InvalidInput, ObjectStoreError
from ..models import ItemFilter

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


def _require_id(item_id: Optional[str]) -> str:
    # id 直接参与对象 key 的拼接，不允许出现路径分隔符
    if not item_id or "/" in item_id or "\\" in item_id or item_id in (".", ".."):
        raise InvalidInput("object id is empty or malformed")
    return item_id


class S3ObjectStore:
    """
    S3 兼容的对象存储 (MinIO / AWS S3)。

    对象 key 为 "<prefix>/<id>"，重复上传同一个 id 会直接覆盖。
    找不到对象时 get_file 返回 (None, False)，不会抛出异常。
    """

    def __init__(self, settings: Settings, client=None):
        self.bucket = settings.S3_BUCKET
        self.prefix = settings.S3_PREFIX.strip("/")
        self.endpoint = settings.S3_ENDPOINT.rstrip("/")
        self.region = settings.S3_REGION

        if client is None:
            client = boto3.client(
                "s3",
                endpoint_url=self.endpoint,
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                region_name=self.region,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=settings.S3_CONNECT_TIMEOUT,
                    read_timeout=settings.S3_READ_TIMEOUT,
                    # MinIO 需要 path-style 访问
                    s3={"addressing_style": "path"},
                ),
            )
        self._client = client

    def object_key(self, item_id: str) -> str:
        item_id = _require_id(item_id)
        return f"{self.prefix}/{item_id}" if self.prefix else item_id

    def ensure_bucket(self) -> None:
        """启动时调用一次: 存储桶不存在则创建"""
        try:
            self._client.head_bucket(Bucket=self.bucket)
            logger.info("Bucket %s already exists", self.bucket)
            return
        except ClientError as e:
            if not _is_missing(e):
                raise ObjectStoreError("check bucket", self.bucket) from e
        except BotoCoreError as e:
            raise ObjectStoreError("check bucket", self.bucket) from e

        kwargs = {}
        # us-east-1 以外的区域需要 LocationConstraint
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self._client.create_bucket(Bucket=self.bucket, **kwargs)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError("create bucket", self.bucket) from e
        logger.info("Successfully created bucket %s", self.bucket)

    def upload_file(self, item_id: str, data: bytes) -> str:
        key = self.object_key(item_id)
        try:
            self._client.put_object(Bucket=self.bucket, Key=key, Body=data)
        except (BotoCoreError, ClientError) as e:
            raise ObjectStoreError("upload file", key) from e
        return f"{self.endpoint}/{self.bucket}/{key}"

    def get_file(self, pars: ItemFilter) -> Tuple[Optional[bytes], bool]:
        key = self.object_key(pars.id)
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return None, False
            raise ObjectStoreError("get file", key) from e
        except BotoCoreError as e:
            raise ObjectStoreError("get file", key) from e

        body = response["Body"]
        try:
            return body.read(), True
        except BotoCoreError as e:
            raise ObjectStoreError("read file", key) from e
        finally:
            body.close()

    def delete_file(self, pars: ItemFilter) -> None:
        key = self.object_key(pars.id)
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            # 删除不存在的对象不算失败
            if _is_missing(e):
                logger.debug("Object %s already absent", key)
                return
            raise ObjectStoreError("delete file", key) from e
        except BotoCoreError as e:
            raise ObjectStoreError("delete file", key) from e


class LocalObjectStore:
    """本地目录实现，key 规则与 S3ObjectStore 相同，用于开发和测试"""

    def __init__(self, root: Union[str, Path], prefix: str = "uploads"):
        self.root = Path(root)
        self.prefix = prefix.strip("/")

    def _path(self, item_id: Optional[str]) -> Path:
        item_id = _require_id(item_id)
        return self.root / self.prefix / item_id if self.prefix else self.root / item_id

    def ensure_bucket(self) -> None:
        (self.root / self.prefix).mkdir(parents=True, exist_ok=True)

    def upload_file(self, item_id: str, data: bytes) -> str:
        path = self._path(item_id)
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as e:
            raise ObjectStoreError("upload file", str(path)) from e
        return path.resolve().as_uri()

    def get_file(self, pars: ItemFilter) -> Tuple[Optional[bytes], bool]:
        path = self._path(pars.id)
        try:
            return path.read_bytes(), True
        except FileNotFoundError:
            return None, False
        except OSError as e:
            raise ObjectStoreError("get file", str(path)) from e

    def delete_file(self, pars: ItemFilter) -> None:
        path = self._path(pars.id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise ObjectStoreError("delete file", str(path)) from e


def create_object_store(settings: Settings):
    if settings.OBJECT_STORE_BACKEND == "local":
        return LocalObjectStore(settings.OBJECT_STORE_PATH, prefix=settings.S3_PREFIX)
    return S3ObjectStore(settings)
