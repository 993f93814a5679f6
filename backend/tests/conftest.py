"""
测试全局配置

- 使用内存 BlobStore 替身代替真实对象存储
- 可手动拨动的时钟，用于驱动过期逻辑
- bcrypt 轮数降到最低，避免测试变慢
"""
from __future__ import annotations

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# 确保 backend/ 在 sys.path，便于导入 dropcode.*
BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from dropcode.core.config import settings
from dropcode.core.errors import NotFound, StorageError
from dropcode.services import ServiceContainer
from dropcode.storage import BlobMeta, BlobStore, BlobStream, PresignedUpload
from dropcode.utils.security import PasswordHasher

TEST_SECRET_KEY = "test-secret-key"


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class InMemoryBlobStream(BlobStream):
    def __init__(self, data: bytes, *, chunk_size: int, fail_after_chunks: int | None = None):
        self._data = data
        self._offset = 0
        self._chunk_size = chunk_size
        self._chunks = 0
        self._fail_after_chunks = fail_after_chunks
        self.size = len(data)
        self.closed = False

    async def read_chunk(self) -> bytes:
        if self._fail_after_chunks is not None and self._chunks >= self._fail_after_chunks:
            raise StorageError("stream interrupted")
        chunk = self._data[self._offset:self._offset + self._chunk_size]
        self._offset += len(chunk)
        self._chunks += 1
        return chunk

    async def aclose(self) -> None:
        self.closed = True


class InMemoryBlobStore(BlobStore):
    """对象存储替身：client_put 模拟客户端按预签名 URL 直传"""

    mode = "memory"

    def __init__(self):
        super().__init__(key_prefix="uploads")
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []
        self.streams: list[InMemoryBlobStream] = []
        self.fail_head = False
        self.fail_open = False
        self.fail_after_chunks: int | None = None

    def client_put(self, object_key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        self.objects[object_key] = (bytes(data), content_type)

    async def presign_put(self, object_key: str, *, content_type: str, expires_seconds: int) -> PresignedUpload:
        return PresignedUpload(
            url=f"https://blob.test/{object_key}?X-Amz-Signature=fake",
            headers={"Content-Type": content_type},
            expires_in=expires_seconds,
        )

    async def head(self, object_key: str) -> BlobMeta | None:
        if self.fail_head:
            raise StorageError("head failed")
        stored = self.objects.get(object_key)
        if stored is None:
            return None
        data, content_type = stored
        return BlobMeta(size_bytes=len(data), content_type=content_type)

    async def open_stream(self, object_key: str, *, chunk_size: int = 64 * 1024) -> BlobStream:
        if self.fail_open:
            raise StorageError("open failed")
        stored = self.objects.get(object_key)
        if stored is None:
            raise NotFound("Stored file is missing")
        stream = InMemoryBlobStream(stored[0], chunk_size=chunk_size, fail_after_chunks=self.fail_after_chunks)
        self.streams.append(stream)
        return stream

    async def put(self, object_key: str, data: bytes, *, content_type: str) -> None:
        self.objects[object_key] = (bytes(data), content_type)

    async def delete(self, object_key: str) -> None:
        self.objects.pop(object_key, None)
        self.deleted.append(object_key)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def blob_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def test_settings():
    return settings.model_copy(
        update={
            "SECRET_KEY": TEST_SECRET_KEY,
            "PASSWORD_HASH_ROUNDS": 4,
            "STREAM_CHUNK_SIZE": 256,
            "DIRECT_UPLOAD_MAX_BYTES": 4096,
        }
    )


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def container(test_settings, blob_store, hasher, clock) -> ServiceContainer:
    return ServiceContainer(config=test_settings, blob_store=blob_store, hasher=hasher, clock=clock)
