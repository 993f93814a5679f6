from __future__ import annotations

import logging
import threading
from typing import Any

import anyio
import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from dropcode.core.errors import NotFound, StorageError, StorageUnconfigured
from dropcode.storage.base import BlobMeta, BlobStore, BlobStream, PresignedUpload

logger = logging.getLogger(__name__)

_MISSING_CODES = {"404", "NoSuchKey", "NotFound"}


def _is_missing(exc: ClientError) -> bool:
    code = str(exc.response.get("Error", {}).get("Code") or "")
    return code in _MISSING_CODES


class S3BlobStream(BlobStream):
    def __init__(self, body: Any, *, chunk_size: int, size: int | None, content_type: str | None):
        self._body = body
        self._chunk_size = chunk_size
        self.size = size
        self.content_type = content_type
        self._closed = False

    async def read_chunk(self) -> bytes:
        if self._closed:
            return b""
        try:
            return await anyio.to_thread.run_sync(self._body.read, self._chunk_size)
        except (BotoCoreError, ClientError, OSError) as exc:
            raise StorageError(f"Failed to read object stream: {exc}") from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await anyio.to_thread.run_sync(self._body.close)
        except Exception as exc:
            logger.debug("s3_stream_close_failed err=%s", exc)


class S3BlobStore(BlobStore):
    """S3 / S3 兼容对象存储（IDrive e2、R2、MinIO 等）"""

    mode = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        endpoint: str = "",
        region: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
        force_path_style: bool = True,
        key_prefix: str = "",
    ):
        super().__init__(key_prefix=key_prefix)
        self.bucket = str(bucket or "").strip()
        self.endpoint = str(endpoint or "").strip()
        self.region = str(region or "").strip()
        self.access_key_id = str(access_key_id or "").strip()
        self.secret_access_key = str(secret_access_key or "").strip()
        self.force_path_style = force_path_style
        self._client = None
        self._client_lock = threading.Lock()

    def is_configured(self) -> bool:
        required = (self.bucket, self.access_key_id, self.secret_access_key)
        return all(bool(v) for v in required)

    def _get_client(self):
        if not self.is_configured():
            raise StorageUnconfigured("S3_* is not configured, object storage unavailable")
        # boto3 client 线程安全，可在工作线程间复用
        with self._client_lock:
            if self._client is None:
                session = boto3.session.Session()
                self._client = session.client(
                    "s3",
                    endpoint_url=self.endpoint or None,
                    region_name=self.region or None,
                    aws_access_key_id=self.access_key_id,
                    aws_secret_access_key=self.secret_access_key,
                    config=Config(
                        signature_version="s3v4",
                        s3={"addressing_style": "path" if self.force_path_style else "auto"},
                    ),
                )
            return self._client

    async def presign_put(
        self,
        object_key: str,
        *,
        content_type: str,
        expires_seconds: int,
    ) -> PresignedUpload:
        ttl = int(expires_seconds)
        if ttl <= 0:
            raise ValueError("expires_seconds must be positive")

        def _sign() -> str:
            client = self._get_client()
            return client.generate_presigned_url(
                ClientMethod="put_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": object_key,
                    "ContentType": content_type,
                },
                ExpiresIn=ttl,
            )

        try:
            url = await anyio.to_thread.run_sync(_sign)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to presign upload: {exc}") from exc
        return PresignedUpload(url=str(url), headers={"Content-Type": content_type}, expires_in=ttl)

    async def head(self, object_key: str) -> BlobMeta | None:
        def _head() -> BlobMeta | None:
            client = self._get_client()
            try:
                result = client.head_object(Bucket=self.bucket, Key=object_key)
            except ClientError as exc:
                if _is_missing(exc):
                    return None
                raise
            metadata = {
                str(key).lower(): str(val)
                for key, val in (result.get("Metadata") or {}).items()
            }
            etag = str(result.get("ETag") or "").strip('"') or None
            return BlobMeta(
                size_bytes=int(result.get("ContentLength") or 0),
                content_type=str(result.get("ContentType") or ""),
                etag=etag,
                metadata=metadata,
            )

        try:
            return await anyio.to_thread.run_sync(_head)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to inspect object: {exc}") from exc

    async def open_stream(self, object_key: str, *, chunk_size: int = 64 * 1024) -> BlobStream:
        def _get() -> dict[str, Any]:
            client = self._get_client()
            return client.get_object(Bucket=self.bucket, Key=object_key)

        try:
            result = await anyio.to_thread.run_sync(_get)
        except ClientError as exc:
            if _is_missing(exc):
                raise NotFound("Stored file is missing") from exc
            raise StorageError(f"Failed to open object: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to open object: {exc}") from exc

        return S3BlobStream(
            result["Body"],
            chunk_size=chunk_size,
            size=int(result.get("ContentLength") or 0) or None,
            content_type=str(result.get("ContentType") or "") or None,
        )

    async def put(self, object_key: str, data: bytes, *, content_type: str) -> None:
        def _put() -> None:
            client = self._get_client()
            client.put_object(
                Bucket=self.bucket,
                Key=object_key,
                Body=data,
                ContentType=content_type,
            )

        try:
            await anyio.to_thread.run_sync(_put)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to store object: {exc}") from exc

    async def delete(self, object_key: str) -> None:
        def _delete() -> None:
            client = self._get_client()
            client.delete_object(Bucket=self.bucket, Key=object_key)

        try:
            await anyio.to_thread.run_sync(_delete)
        except ClientError as exc:
            if _is_missing(exc):
                return
            raise StorageError(f"Failed to delete object: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"Failed to delete object: {exc}") from exc


__all__ = ["S3BlobStore", "S3BlobStream"]
