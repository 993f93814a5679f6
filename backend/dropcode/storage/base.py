from __future__ import annotations

import mimetypes
import re
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import PurePosixPath

_EXT_PATTERN = re.compile(r"^[a-z0-9]{1,10}$")


def normalize_prefix(value: str | None) -> str:
    raw = str(value or "").strip().strip("/")
    return raw.replace("\\", "/")


def normalize_object_key(key: str) -> str:
    return str(key or "").lstrip("/").replace("\\", "/")


def guess_ext(filename: str | None, content_type: str | None) -> str:
    suffix = PurePosixPath(str(filename or "").replace("\\", "/")).suffix.lstrip(".").lower()
    if suffix and _EXT_PATTERN.match(suffix):
        return suffix
    if content_type:
        guessed = mimetypes.guess_extension(content_type, strict=False) or ""
        if guessed:
            return guessed.lstrip(".")
    return "bin"


@dataclass(frozen=True)
class BlobMeta:
    size_bytes: int
    content_type: str
    etag: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PresignedUpload:
    url: str
    headers: dict[str, str]
    expires_in: int


class BlobStream(ABC):
    """
    对象读取流

    以异步迭代方式逐块产出字节；读取到空块即视为结束。
    调用方负责在结束（或中断）后调用 aclose()。
    """

    size: int | None = None
    content_type: str | None = None

    @abstractmethod
    async def read_chunk(self) -> bytes:
        ...

    @abstractmethod
    async def aclose(self) -> None:
        ...

    def __aiter__(self) -> BlobStream:
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read_chunk()
        if not chunk:
            raise StopAsyncIteration
        return chunk


class BlobStore(ABC):
    """
    对象存储抽象（S3 兼容）

    所有操作以不透明的 object key 寻址。后端负责把 SDK 异常
    转换为 StorageError / StorageUnconfigured / NotFound。
    """

    mode: str = "unknown"

    def __init__(self, *, key_prefix: str = ""):
        self.key_prefix = normalize_prefix(key_prefix)

    def build_object_key(self, filename: str | None = None, content_type: str | None = None) -> str:
        ext = guess_ext(filename, content_type)
        uid = uuid.uuid4().hex
        date_part = time.strftime("%Y/%m/%d", time.gmtime())
        name = f"{uid}.{ext}"
        if self.key_prefix:
            return f"{self.key_prefix}/{date_part}/{name}"
        return f"{date_part}/{name}"

    @abstractmethod
    async def presign_put(
        self,
        object_key: str,
        *,
        content_type: str,
        expires_seconds: int,
    ) -> PresignedUpload:
        ...

    @abstractmethod
    async def head(self, object_key: str) -> BlobMeta | None:
        """对象不存在时返回 None"""

    @abstractmethod
    async def open_stream(self, object_key: str, *, chunk_size: int = 64 * 1024) -> BlobStream:
        ...

    @abstractmethod
    async def put(self, object_key: str, data: bytes, *, content_type: str) -> None:
        ...

    @abstractmethod
    async def delete(self, object_key: str) -> None:
        """删除对象；对象不存在不视为错误"""

    async def close(self) -> None:
        return None


__all__ = [
    "BlobMeta",
    "BlobStore",
    "BlobStream",
    "PresignedUpload",
    "guess_ext",
    "normalize_object_key",
    "normalize_prefix",
]
