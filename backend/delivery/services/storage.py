"""对象存储适配器：原图与缩略图两个命名空间的读写、删除与预签名。"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import BinaryIO, List, Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.core import signing
from django.core.files.base import ContentFile
from django.core.files.storage import FileSystemStorage
from django.urls import reverse

from ..domain.values import Namespace
from ..exceptions import NotFound, StorageBackendNotConfigured, StorageError, ValidationError
from ..utils_uploads import content_type_for_name, extension_for_content_type

logger = logging.getLogger(__name__)

SIGNED_ASSET_SALT = "delivery.signed-asset"


@dataclass
class StoredObject:
    stream: BinaryIO
    content_type: str
    size: int

    def read(self) -> bytes:
        try:
            return self.stream.read()
        finally:
            self.stream.close()


@dataclass(frozen=True)
class PresignedURL:
    url: str
    expires_in: int


def object_key(namespace: Namespace, blob_id: str, content_type: str) -> str:
    return f"{namespace.prefix}{blob_id}{extension_for_content_type(content_type)}"


def clamp_ttl(ttl: Optional[int]) -> int:
    """超过上限的 ttl 截断到上限，非正数视为非法。"""

    if ttl is None:
        return int(getattr(settings, "PRESIGN_DEFAULT_TTL", 3600))
    if isinstance(ttl, bool) or not isinstance(ttl, int) or ttl <= 0:
        raise ValidationError("ttl 必须是正整数（秒）")
    return min(ttl, int(getattr(settings, "PRESIGN_MAX_TTL", 24 * 3600)))


def _matches_blob(key: str, blob_id: str) -> bool:
    return PurePosixPath(key).stem == blob_id


class ObjectStore:
    """对象 id 在原图/缩略图命名空间间共享，键名带上内容类型对应的扩展名。"""

    def put(self, namespace: Namespace, blob_id: str, data: bytes, content_type: str) -> None:
        raise NotImplementedError

    def get(self, namespace: Namespace, blob_id: str) -> StoredObject:
        raise NotImplementedError

    def delete(self, namespace: Namespace, blob_id: str) -> None:
        raise NotImplementedError

    def presign(self, namespace: Namespace, blob_id: str, ttl: Optional[int] = None) -> PresignedURL:
        raise NotImplementedError

    def list_by_prefix(self, namespace: Namespace, prefix: str = "") -> List[str]:
        raise NotImplementedError

    def _find_keys(self, namespace: Namespace, blob_id: str) -> List[str]:
        return [key for key in self.list_by_prefix(namespace, blob_id) if _matches_blob(key, blob_id)]


@dataclass(frozen=True)
class S3Config:
    bucket_name: str
    endpoint_url: Optional[str]
    region_name: Optional[str]
    access_key: Optional[str]
    secret_key: Optional[str]
    signature_version: str


class S3ObjectStore(ObjectStore):
    """封装 S3 / MinIO 上的对象操作。"""

    def __init__(self, config: S3Config) -> None:
        self.config = config
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.config.endpoint_url,
                region_name=self.config.region_name,
                aws_access_key_id=self.config.access_key,
                aws_secret_access_key=self.config.secret_key,
                config=Config(signature_version=self.config.signature_version),
            )
        return self._client

    def ensure_bucket(self) -> None:
        try:
            self.client.head_bucket(Bucket=self.config.bucket_name)
            return
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code not in {"404", "NoSuchBucket", "NotFound"}:
                raise StorageError(f"检查 bucket 失败: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"检查 bucket 失败: {exc}") from exc
        try:
            self.client.create_bucket(Bucket=self.config.bucket_name)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"创建 bucket 失败: {exc}") from exc

    def put(self, namespace: Namespace, blob_id: str, data: bytes, content_type: str) -> None:
        key = object_key(namespace, blob_id, content_type)
        try:
            self.client.put_object(
                Bucket=self.config.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            logger.exception("S3 上传失败", extra={"blob_id": blob_id, "key": key})
            raise StorageError(f"上传 {key} 失败: {exc}") from exc

    def get(self, namespace: Namespace, blob_id: str) -> StoredObject:
        keys = self._find_keys(namespace, blob_id)
        if not keys:
            raise NotFound(f"{namespace.value}/{blob_id} 不存在")
        try:
            response = self.client.get_object(Bucket=self.config.bucket_name, Key=keys[0])
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in {"NoSuchKey", "404"}:
                raise NotFound(f"{namespace.value}/{blob_id} 不存在") from exc
            raise StorageError(f"读取 {keys[0]} 失败: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"读取 {keys[0]} 失败: {exc}") from exc
        return StoredObject(
            stream=response["Body"],
            content_type=response.get("ContentType") or content_type_for_name(keys[0]),
            size=int(response.get("ContentLength", 0)),
        )

    def delete(self, namespace: Namespace, blob_id: str) -> None:
        for key in self._find_keys(namespace, blob_id):
            try:
                self.client.delete_object(Bucket=self.config.bucket_name, Key=key)
            except (BotoCoreError, ClientError) as exc:
                raise StorageError(f"删除 {key} 失败: {exc}") from exc

    def presign(self, namespace: Namespace, blob_id: str, ttl: Optional[int] = None) -> PresignedURL:
        expires = clamp_ttl(ttl)
        keys = self._find_keys(namespace, blob_id)
        if not keys:
            raise NotFound(f"{namespace.value}/{blob_id} 不存在")
        try:
            url = self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": self.config.bucket_name, "Key": keys[0]},
                ExpiresIn=expires,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"生成预签名链接失败: {exc}") from exc
        return PresignedURL(url=url, expires_in=expires)

    def list_by_prefix(self, namespace: Namespace, prefix: str = "") -> List[str]:
        keys: List[str] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.config.bucket_name, Prefix=namespace.prefix + prefix):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"列举对象失败: {exc}") from exc
        return keys


class LocalObjectStore(ObjectStore):
    """基于 Django FileSystemStorage 的本地实现，预签名链接由 signing 生成。"""

    def __init__(self, location: str) -> None:
        self.storage = FileSystemStorage(location=location)

    def put(self, namespace: Namespace, blob_id: str, data: bytes, content_type: str) -> None:
        key = object_key(namespace, blob_id, content_type)
        try:
            # FileSystemStorage.save 遇到同名会改名，先删再写以保证覆盖
            for existing in self._find_keys(namespace, blob_id):
                self.storage.delete(existing)
            self.storage.save(key, ContentFile(data))
        except OSError as exc:
            logger.exception("本地写入失败", extra={"blob_id": blob_id, "key": key})
            raise StorageError(f"写入 {key} 失败: {exc}") from exc

    def get(self, namespace: Namespace, blob_id: str) -> StoredObject:
        keys = self._find_keys(namespace, blob_id)
        if not keys:
            raise NotFound(f"{namespace.value}/{blob_id} 不存在")
        try:
            stream = self.storage.open(keys[0], "rb")
            size = self.storage.size(keys[0])
        except FileNotFoundError as exc:
            raise NotFound(f"{namespace.value}/{blob_id} 不存在") from exc
        except OSError as exc:
            raise StorageError(f"读取 {keys[0]} 失败: {exc}") from exc
        return StoredObject(stream=stream, content_type=content_type_for_name(keys[0]), size=size)

    def delete(self, namespace: Namespace, blob_id: str) -> None:
        for key in self._find_keys(namespace, blob_id):
            try:
                self.storage.delete(key)
            except OSError as exc:
                raise StorageError(f"删除 {key} 失败: {exc}") from exc

    def presign(self, namespace: Namespace, blob_id: str, ttl: Optional[int] = None) -> PresignedURL:
        expires = clamp_ttl(ttl)
        if not self._find_keys(namespace, blob_id):
            raise NotFound(f"{namespace.value}/{blob_id} 不存在")
        token = signing.dumps(
            {"ns": namespace.value, "blob": blob_id, "exp": int(time.time()) + expires},
            salt=SIGNED_ASSET_SALT,
        )
        base = getattr(settings, "PUBLIC_BASE_URL", "").rstrip("/")
        path = reverse("signed-asset", kwargs={"token": token})
        return PresignedURL(url=f"{base}{path}", expires_in=expires)

    def list_by_prefix(self, namespace: Namespace, prefix: str = "") -> List[str]:
        try:
            _, files = self.storage.listdir(namespace.value)
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageError(f"列举对象失败: {exc}") from exc
        return sorted(f"{namespace.prefix}{name}" for name in files if name.startswith(prefix))

    def open_signed(self, token: str) -> StoredObject:
        """校验本地预签名 token，过期或篡改都视为不存在。"""

        try:
            payload = signing.loads(token, salt=SIGNED_ASSET_SALT)
            namespace = Namespace(payload["ns"])
            blob_id = str(payload["blob"])
            expires_at = int(payload["exp"])
        except (signing.BadSignature, KeyError, TypeError, ValueError) as exc:
            raise NotFound("链接无效") from exc
        if expires_at < int(time.time()):
            raise NotFound("链接已过期")
        return self.get(namespace, blob_id)


def _load_s3_config() -> S3Config:
    bucket_name = getattr(settings, "AWS_STORAGE_BUCKET_NAME", None)
    if not bucket_name:
        raise StorageBackendNotConfigured("AWS_STORAGE_BUCKET_NAME 未配置，无法使用 S3 存储")

    return S3Config(
        bucket_name=bucket_name,
        endpoint_url=getattr(settings, "AWS_S3_ENDPOINT_URL", None),
        region_name=getattr(settings, "AWS_S3_REGION_NAME", None),
        access_key=getattr(settings, "AWS_ACCESS_KEY_ID", None),
        secret_key=getattr(settings, "AWS_SECRET_ACCESS_KEY", None),
        signature_version=getattr(settings, "AWS_S3_SIGNATURE_VERSION", "s3v4"),
    )


def get_object_store() -> ObjectStore:
    storage_backend = getattr(settings, "STORAGE_BACKEND", "local")
    if storage_backend == "s3":
        return S3ObjectStore(_load_s3_config())
    if storage_backend == "local":
        location = getattr(settings, "OBJECT_STORE_ROOT", None)
        if not location:
            raise StorageBackendNotConfigured("OBJECT_STORE_ROOT 未配置")
        return LocalObjectStore(location)
    raise StorageBackendNotConfigured(f"未知的存储后端: {storage_backend}")
