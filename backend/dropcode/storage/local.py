from __future__ import annotations

import mimetypes
from pathlib import Path

import anyio

from dropcode.core.errors import NotFound, StorageError, StorageUnconfigured, ValidationError
from dropcode.storage.base import BlobMeta, BlobStore, BlobStream, PresignedUpload, normalize_object_key


class LocalBlobStream(BlobStream):
    def __init__(self, handle: anyio.AsyncFile, *, chunk_size: int, size: int, content_type: str):
        self._handle = handle
        self._chunk_size = chunk_size
        self.size = size
        self.content_type = content_type
        self._closed = False

    async def read_chunk(self) -> bytes:
        if self._closed:
            return b""
        try:
            return await self._handle.read(self._chunk_size)
        except OSError as exc:
            raise StorageError(f"Failed to read local object: {exc}") from exc

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._handle.aclose()


class LocalBlobStore(BlobStore):
    """
    本地磁盘存储（开发模式）

    不支持预签名直传；只能配合服务端中转上传使用。
    """

    mode = "local"

    def __init__(self, base_dir: str | Path, *, key_prefix: str = ""):
        super().__init__(key_prefix=key_prefix)
        self.base_dir = Path(str(base_dir)).expanduser().resolve()

    def _path_for_key(self, object_key: str) -> Path:
        raw = normalize_object_key(object_key)
        parts = [p for p in raw.split("/") if p]
        if not parts:
            raise ValidationError("empty object key")
        if any(p in {".", ".."} for p in parts):
            raise ValidationError("invalid object key path")

        target = self.base_dir.joinpath(*parts).resolve()
        if not target.is_relative_to(self.base_dir):
            raise ValidationError("invalid object key path")
        return target

    async def presign_put(
        self,
        object_key: str,
        *,
        content_type: str,
        expires_seconds: int,
    ) -> PresignedUpload:
        raise StorageUnconfigured("Direct uploads are unavailable with STORAGE_MODE=local")

    async def head(self, object_key: str) -> BlobMeta | None:
        path = self._path_for_key(object_key)

        def _stat() -> BlobMeta | None:
            if not path.is_file():
                return None
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            return BlobMeta(size_bytes=path.stat().st_size, content_type=content_type)

        try:
            return await anyio.to_thread.run_sync(_stat)
        except OSError as exc:
            raise StorageError(f"Failed to inspect local object: {exc}") from exc

    async def open_stream(self, object_key: str, *, chunk_size: int = 64 * 1024) -> BlobStream:
        path = self._path_for_key(object_key)
        try:
            handle = await anyio.open_file(path, "rb")
        except FileNotFoundError as exc:
            raise NotFound("Stored file is missing") from exc
        except OSError as exc:
            raise StorageError(f"Failed to open local object: {exc}") from exc

        size = (await anyio.Path(path).stat()).st_size
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return LocalBlobStream(handle, chunk_size=chunk_size, size=size, content_type=content_type)

    async def put(self, object_key: str, data: bytes, *, content_type: str) -> None:
        path = self._path_for_key(object_key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await anyio.to_thread.run_sync(_write)
        except OSError as exc:
            raise StorageError(f"Failed to store local object: {exc}") from exc

    async def delete(self, object_key: str) -> None:
        path = self._path_for_key(object_key)
        try:
            await anyio.to_thread.run_sync(lambda: path.unlink(missing_ok=True))
        except OSError as exc:
            raise StorageError(f"Failed to delete local object: {exc}") from exc


__all__ = ["LocalBlobStore", "LocalBlobStream"]
