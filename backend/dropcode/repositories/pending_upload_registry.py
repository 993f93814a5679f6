"""
预签名直传的短期预留

reserve -> (客户端直传对象存储) -> consume 恰好一次；
未完成的预留在 TTL 后由 sweep_expired() 回收，并尽力删除遗留对象。
"""
from __future__ import annotations

import secrets
from collections.abc import Callable
from datetime import datetime, timedelta

from dropcode.core.errors import NotFound, UploadMismatch
from dropcode.core.logging import logger
from dropcode.models import PendingUpload, Reservation, UploadRequest
from dropcode.storage import BlobStore
from dropcode.utils.time_utils import Datetime


class PendingUploadRegistry:
    def __init__(
        self,
        blob_store: BlobStore,
        *,
        ttl_seconds: int = 15 * 60,
        presign_expires_seconds: int = 600,
        clock: Callable[[], datetime] = Datetime.now,
    ):
        self.blob_store = blob_store
        self.ttl = timedelta(seconds=ttl_seconds)
        self.presign_expires_seconds = presign_expires_seconds
        self._clock = clock
        self._pending: dict[str, PendingUpload] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def _is_stale(self, pending: PendingUpload, now: datetime) -> bool:
        return pending.created_at + self.ttl <= now

    async def reserve(self, request: UploadRequest) -> Reservation:
        # 先签名再登记：签名失败不会留下悬空预留
        presigned = await self.blob_store.presign_put(
            request.storage_key,
            content_type=request.mime_type,
            expires_seconds=self.presign_expires_seconds,
        )
        upload_id = secrets.token_urlsafe(24)
        self._pending[upload_id] = PendingUpload(
            upload_id=upload_id,
            storage_key=request.storage_key,
            original_name=request.original_name,
            size=request.size,
            mime_type=request.mime_type,
            policy=request.policy,
            created_at=self._clock(),
        )
        logger.info(
            "upload_reserved",
            extra={"upload_id": upload_id, "object_key": request.storage_key, "size": request.size},
        )
        return Reservation(
            upload_id=upload_id,
            upload_url=presigned.url,
            storage_key=request.storage_key,
            upload_headers=presigned.headers,
            expires_in=presigned.expires_in,
        )

    def consume(self, upload_id: str, observed_storage_key: str | None = None) -> PendingUpload:
        """
        取出并移除预留（恰好一次）。

        不存在 / 已消费 / 已过期对外统一为 NotFound，原因只记日志。
        """
        pending = self._pending.get(upload_id)
        if pending is None:
            logger.info("upload_consume_missing", extra={"upload_id": upload_id})
            raise NotFound("Upload session not found or expired")
        if self._is_stale(pending, self._clock()):
            # 留给 sweep 删除遗留对象
            logger.info("upload_consume_stale", extra={"upload_id": upload_id})
            raise NotFound("Upload session not found or expired")
        if observed_storage_key is not None and observed_storage_key != pending.storage_key:
            logger.warning(
                "upload_key_mismatch",
                extra={"upload_id": upload_id, "observed": observed_storage_key},
            )
            raise UploadMismatch()
        del self._pending[upload_id]
        return pending

    def restore(self, pending: PendingUpload) -> None:
        """归还一次因可重试的存储错误而未能完成的消费"""
        self._pending.setdefault(pending.upload_id, pending)

    async def abort(self, upload_id: str) -> None:
        pending = self._pending.pop(upload_id, None)
        if pending is None:
            return
        logger.info("upload_aborted", extra={"upload_id": upload_id})
        await self._discard_blob(pending)

    async def sweep_expired(self) -> int:
        now = self._clock()
        stale = [p for p in self._pending.values() if self._is_stale(p, now)]
        for pending in stale:
            self._pending.pop(pending.upload_id, None)
        for pending in stale:
            await self._discard_blob(pending)
        if stale:
            logger.info("pending_uploads_swept", extra={"count": len(stale)})
        return len(stale)

    async def _discard_blob(self, pending: PendingUpload) -> None:
        try:
            await self.blob_store.delete(pending.storage_key)
        except Exception as exc:
            logger.warning(
                "orphan_blob_cleanup_failed",
                extra={"upload_id": pending.upload_id, "object_key": pending.storage_key, "error": str(exc)},
            )


__all__ = ["PendingUploadRegistry"]
