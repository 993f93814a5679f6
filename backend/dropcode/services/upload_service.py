from __future__ import annotations

import re
import unicodedata
from datetime import timedelta
from pathlib import PurePosixPath

from dropcode.core.config import Settings, settings as default_settings
from dropcode.core.errors import (
    FileShareError,
    StorageError,
    ValidationError,
    VerificationFailed,
)
from dropcode.core.logging import logger
from dropcode.models import FileRecord, NewFileRecord, Reservation, UploadPolicy, UploadRequest
from dropcode.repositories import FileRecordStore, PendingUploadRegistry
from dropcode.services.code_generator import CodeGenerator
from dropcode.storage import BlobStore
from dropcode.utils.security import PasswordHasher

_MIME_PATTERN = re.compile(r"^[a-z0-9][a-z0-9!#$&^_.+-]*/[a-z0-9][a-z0-9!#$&^_.+-]*$")
# bcrypt 只使用前 72 字节，超长密码直接拒绝
_PASSWORD_MAX_BYTES = 72
DEFAULT_MIME_TYPE = "application/octet-stream"


def sanitize_filename(filename: str | None, *, max_length: int = 255) -> str:
    """去掉路径部分与控制字符，返回可安全展示的文件名"""
    raw = str(filename or "").replace("\\", "/")
    name = PurePosixPath(raw).name
    name = "".join(ch for ch in name if unicodedata.category(ch)[0] != "C").strip()
    if not name or name in {".", ".."}:
        raise ValidationError("Filename is required")
    if len(name) > max_length:
        raise ValidationError(f"Filename must be at most {max_length} characters")
    return name


def normalize_mime_type(mime_type: str | None) -> str:
    value = str(mime_type or "").split(";", 1)[0].strip().lower()
    if not value:
        return DEFAULT_MIME_TYPE
    if not _MIME_PATTERN.match(value):
        raise ValidationError("Invalid mimetype")
    return value


def mime_type_allowed(mime_type: str, allowed: list[str]) -> bool:
    for pattern in allowed:
        pattern = pattern.strip().lower()
        if pattern in {"*", "*/*"} or pattern == mime_type:
            return True
        if pattern.endswith("/*") and mime_type.startswith(pattern[:-1]):
            return True
    return False


class UploadWorkflow:
    """
    上传编排

    预签名直传：request_upload -> (客户端 PUT 对象存储) -> complete_upload
    服务端中转：upload_direct
    两条路径最终都经过 _commit 分配取件码并写入 FileRecordStore。
    """

    def __init__(
        self,
        *,
        blob_store: BlobStore,
        records: FileRecordStore,
        registry: PendingUploadRegistry,
        code_generator: CodeGenerator,
        hasher: PasswordHasher,
        config: Settings | None = None,
    ):
        self.blob_store = blob_store
        self.records = records
        self.registry = registry
        self.code_generator = code_generator
        self.hasher = hasher
        self.config = config or default_settings

    def validate_policy(self, policy: UploadPolicy) -> UploadPolicy:
        hours = policy.expires_in_hours
        if hours is None:
            hours = self.config.FILE_DEFAULT_EXPIRES_HOURS
        if not 1 <= int(hours) <= self.config.FILE_MAX_EXPIRES_HOURS:
            raise ValidationError(
                f"expiresIn must be between 1 and {self.config.FILE_MAX_EXPIRES_HOURS} hours"
            )
        if policy.max_downloads is not None and policy.max_downloads < 1:
            raise ValidationError("maxDownloads must be a positive integer")
        password = policy.password or None
        if password is not None and len(password.encode("utf-8")) > _PASSWORD_MAX_BYTES:
            raise ValidationError(f"Password must be at most {_PASSWORD_MAX_BYTES} bytes")
        return UploadPolicy(
            expires_in_hours=int(hours),
            password=password,
            max_downloads=policy.max_downloads,
            is_one_time=bool(policy.is_one_time),
        )

    def validate_file(self, filename: str | None, mime_type: str | None, size: int, *, max_bytes: int) -> tuple[str, str]:
        name = sanitize_filename(filename, max_length=self.config.UPLOAD_FILENAME_MAX_LENGTH)
        mime = normalize_mime_type(mime_type)

        if size is None or int(size) <= 0:
            raise ValidationError("File is empty")
        if int(size) > max_bytes:
            raise ValidationError(f"File exceeds the maximum size of {max_bytes} bytes")
        if not mime_type_allowed(mime, self.config.UPLOAD_ALLOWED_MIME_TYPES):
            raise ValidationError(f"File type {mime} is not allowed")

        suffix = PurePosixPath(name).suffix.lower()
        blocked = {ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in self.config.UPLOAD_BLOCKED_EXTENSIONS}
        if suffix and suffix in blocked:
            raise ValidationError(f"File extension {suffix} is not allowed")
        return name, mime

    async def request_upload(
        self,
        filename: str | None,
        mime_type: str | None,
        declared_size: int,
        policy: UploadPolicy,
    ) -> Reservation:
        """校验通过后才会触达对象存储"""
        name, mime = self.validate_file(filename, mime_type, declared_size, max_bytes=self.config.UPLOAD_MAX_BYTES)
        policy = self.validate_policy(policy)
        storage_key = self.blob_store.build_object_key(name, mime)
        return await self.registry.reserve(
            UploadRequest(
                storage_key=storage_key,
                original_name=name,
                size=int(declared_size),
                mime_type=mime,
                policy=policy,
            )
        )

    async def complete_upload(self, upload_id: str, observed_storage_key: str | None = None) -> FileRecord:
        pending = self.registry.consume(upload_id, observed_storage_key)

        try:
            meta = await self.blob_store.head(pending.storage_key)
        except StorageError:
            # HEAD 是幂等读：归还预留，客户端可重试，遗留对象仍由 TTL 清理负责
            self.registry.restore(pending)
            raise

        tolerance = self.config.UPLOAD_SIZE_TOLERANCE_BYTES
        if meta is None:
            await self._discard_blob(pending.storage_key, reason="missing")
            raise VerificationFailed("Uploaded file was not found in storage")
        if meta.size_bytes <= 0 or abs(meta.size_bytes - pending.size) > tolerance:
            logger.warning(
                "upload_size_mismatch",
                extra={
                    "upload_id": upload_id,
                    "declared": pending.size,
                    "stored": meta.size_bytes,
                },
            )
            await self._discard_blob(pending.storage_key, reason="size_mismatch")
            raise VerificationFailed("Uploaded file size does not match the declared size")

        return await self._commit_or_discard(
            pending.storage_key,
            original_name=pending.original_name,
            size=meta.size_bytes,
            mime_type=pending.mime_type,
            policy=pending.policy,
        )

    async def abort_upload(self, upload_id: str) -> None:
        await self.registry.abort(upload_id)

    async def upload_direct(
        self,
        filename: str | None,
        mime_type: str | None,
        data: bytes,
        policy: UploadPolicy,
    ) -> FileRecord:
        """经服务端中转的小文件上传"""
        name, mime = self.validate_file(filename, mime_type, len(data), max_bytes=self.config.DIRECT_UPLOAD_MAX_BYTES)
        policy = self.validate_policy(policy)
        storage_key = self.blob_store.build_object_key(name, mime)

        await self.blob_store.put(storage_key, data, content_type=mime)
        return await self._commit_or_discard(
            storage_key,
            original_name=name,
            size=len(data),
            mime_type=mime,
            policy=policy,
        )

    async def _commit_or_discard(
        self,
        storage_key: str,
        *,
        original_name: str,
        size: int,
        mime_type: str,
        policy: UploadPolicy,
    ) -> FileRecord:
        try:
            record = await self._commit(
                storage_key,
                original_name=original_name,
                size=size,
                mime_type=mime_type,
                policy=policy,
            )
        except FileShareError:
            await self._discard_blob(storage_key, reason="commit_failed")
            raise
        logger.info(
            "upload_committed",
            extra={"file_id": record.id, "code": record.code, "size": record.size, "object_key": storage_key},
        )
        return record

    async def _commit(
        self,
        storage_key: str,
        *,
        original_name: str,
        size: int,
        mime_type: str,
        policy: UploadPolicy,
    ) -> FileRecord:
        # 先完成哈希（挂起点），再同步地分配取件码并写索引，中间不让出事件循环
        password_hash = await self.hasher.hash(policy.password) if policy.password else None

        code = self.code_generator.allocate_unique_code(self.records)
        return self.records.create(
            NewFileRecord(
                code=code,
                storage_key=storage_key,
                original_name=original_name,
                size=size,
                mime_type=mime_type,
                expires_at=self.records.now() + timedelta(hours=policy.expires_in_hours),
                password_hash=password_hash,
                max_downloads=policy.max_downloads,
                is_one_time=policy.is_one_time,
            )
        )

    async def _discard_blob(self, storage_key: str, *, reason: str) -> None:
        try:
            await self.blob_store.delete(storage_key)
        except Exception as exc:
            logger.warning(
                "blob_cleanup_failed",
                extra={"object_key": storage_key, "reason": reason, "error": str(exc)},
            )


__all__ = [
    "DEFAULT_MIME_TYPE",
    "UploadWorkflow",
    "mime_type_allowed",
    "normalize_mime_type",
    "sanitize_filename",
]
