from __future__ import annotations

from collections.abc import AsyncIterator

from dropcode.core.errors import (
    FileShareError,
    IncorrectPassword,
    LimitReached,
    NotFound,
    PasswordRequired,
    StorageError,
)
from dropcode.core.logging import logger
from dropcode.models import FileRecord, PublicFileView
from dropcode.repositories import FileRecordStore
from dropcode.storage import BlobStore, BlobStream
from dropcode.utils.security import PasswordHasher, sign_download_link, verify_download_link


class DownloadSession:
    """
    一次已计数的下载

    用法：
        session = await workflow.stream_download(code, password)
        try:
            async for chunk in session.iter_bytes():
                ...
        finally:
            await session.finish()

    finish() 根据是否完整读完决定回滚计数或执行下载后清理，只会生效一次。
    """

    def __init__(self, workflow: DownloadWorkflow, record: FileRecord, stream: BlobStream):
        self.workflow = workflow
        self.record = record
        self.stream = stream
        self.completed = False
        self.bytes_sent = 0
        self._finished = False

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self.stream:
            self.bytes_sent += len(chunk)
            yield chunk
        self.completed = True

    async def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        try:
            await self.stream.aclose()
        except Exception as exc:
            logger.warning("download_stream_close_failed", extra={"file_id": self.record.id, "error": str(exc)})

        if self.completed:
            logger.info(
                "download_completed",
                extra={"file_id": self.record.id, "code": self.record.code, "bytes": self.bytes_sent},
            )
            await self.workflow.after_download(self.record)
        else:
            self.workflow.rollback_download(self.record, bytes_sent=self.bytes_sent)


class DownloadWorkflow:
    """
    下载编排：查码 -> 鉴权（密码、上限） -> 先计数 -> 打开对象流 -> 完成后清理 / 失败回滚
    """

    def __init__(
        self,
        *,
        blob_store: BlobStore,
        records: FileRecordStore,
        hasher: PasswordHasher,
        delete_on_limit: bool = True,
        chunk_size: int = 64 * 1024,
        link_secret: str = "",
        link_ttl_seconds: int = 3600,
    ):
        self.blob_store = blob_store
        self.records = records
        self.hasher = hasher
        self.delete_on_limit = delete_on_limit
        self.chunk_size = chunk_size
        self.link_secret = link_secret
        self.link_ttl_seconds = link_ttl_seconds

    def _unix_now(self) -> int:
        return int(self.records.now().timestamp())

    def resolve_code(self, code: str) -> PublicFileView | None:
        record = self.records.get_by_code(code)
        return PublicFileView.from_record(record) if record else None

    async def verify_password(self, code: str, supplied_password: str | None) -> bool:
        record = self.records.get_by_code(code)
        if record is None:
            raise NotFound()
        if not record.is_password_protected:
            return True
        if not supplied_password:
            raise PasswordRequired()
        return await self.hasher.compare(supplied_password, record.password_hash)

    async def authorize(self, record: FileRecord, supplied_password: str | None, *, check_password: bool = True) -> None:
        """
        校验密码与下载上限，失败抛出 PasswordRequired / IncorrectPassword / LimitReached。

        此处的上限检查只用于尽早拒绝；真正的占位在 FileRecordStore.claim_download。
        """
        if check_password and record.is_password_protected:
            if not supplied_password:
                raise PasswordRequired()
            if not await self.hasher.compare(supplied_password, record.password_hash):
                logger.info("download_password_rejected", extra={"code": record.code})
                raise IncorrectPassword()
        if record.limit_reached():
            raise LimitReached()

    async def create_download_link(self, code: str, supplied_password: str | None, *, ttl_seconds: int | None = None) -> tuple[FileRecord, int, str]:
        """鉴权后签发短链，返回 (record, expires, sig)"""
        record = self.records.get_by_code(code)
        if record is None:
            raise NotFound()
        await self.authorize(record, supplied_password)
        expires, sig = sign_download_link(
            record.code,
            record.id,
            secret_key=self.link_secret,
            ttl_seconds=ttl_seconds or self.link_ttl_seconds,
            now=self._unix_now(),
            not_after=int(record.expires_at.timestamp()),
        )
        return record, expires, sig

    async def stream_link_download(self, code: str, *, file_id: str, expires: int, sig: str) -> DownloadSession:
        """凭签名短链下载：签名校验通过且 code 仍指向签发时的那条记录才放行"""
        verify_download_link(
            code,
            file_id,
            expires=expires,
            sig=sig,
            secret_key=self.link_secret,
            now=self._unix_now(),
        )
        return await self.stream_download(code, None, check_password=False, expected_file_id=file_id)

    async def stream_download(
        self,
        code: str,
        supplied_password: str | None,
        *,
        check_password: bool = True,
        expected_file_id: str | None = None,
    ) -> DownloadSession:
        record = self.records.get_by_code(code)
        if record is None:
            raise NotFound()
        if expected_file_id is not None and record.id != expected_file_id:
            # code 已被其他文件复用
            logger.info("download_link_stale", extra={"code": code, "file_id": expected_file_id})
            raise NotFound()
        await self.authorize(record, supplied_password, check_password=check_password)

        # 鉴权期间可能有挂起点，这里重新原子地检查上限并计数
        claimed = self.records.claim_download(record.id)
        try:
            stream = await self.blob_store.open_stream(claimed.storage_key, chunk_size=self.chunk_size)
        except FileShareError:
            self.rollback_download(claimed, bytes_sent=0)
            raise
        except Exception as exc:
            self.rollback_download(claimed, bytes_sent=0)
            raise StorageError(f"Failed to open stored file: {exc}") from exc

        logger.info(
            "download_started",
            extra={"file_id": claimed.id, "code": claimed.code, "download_count": claimed.download_count},
        )
        return DownloadSession(self, claimed, stream)

    def rollback_download(self, record: FileRecord, *, bytes_sent: int) -> None:
        count = self.records.increment_download_count(record.id, -1)
        logger.warning(
            "download_rollback",
            extra={"file_id": record.id, "code": record.code, "bytes": bytes_sent, "download_count": count},
        )

    async def after_download(self, record: FileRecord) -> None:
        """
        下载完整结束后的清理。

        上限判断读取当前计数而不是领取时的快照：
        并发下载中先领取的一次若已回滚，后完成的这次不应据旧值删除文件。
        """
        if record.is_one_time:
            await self.delete_file(record, reason="one_time")
            return
        if not self.delete_on_limit:
            return

        live = self.records.get(record.id)
        if live is None:
            return
        if live.max_downloads is not None and live.download_count >= live.max_downloads:
            await self.delete_file(live, reason="limit_reached")

    async def delete_file(self, record: FileRecord, *, reason: str) -> None:
        """删除记录与对象；对象删除失败只记日志，不影响已完成的下载"""
        removed = self.records.delete(record.id)
        if removed is None:
            # 已被其他请求清理
            return
        logger.info("file_deleted", extra={"file_id": record.id, "code": record.code, "reason": reason})
        await self.purge_blob(removed)

    async def purge_blob(self, record: FileRecord) -> None:
        try:
            await self.blob_store.delete(record.storage_key)
        except Exception as exc:
            logger.warning(
                "blob_cleanup_failed",
                extra={"file_id": record.id, "object_key": record.storage_key, "error": str(exc)},
            )

    async def purge_expired(self) -> int:
        """周期任务：回收过期记录并删除其对象"""
        expired = self.records.sweep_expired()
        for record in expired:
            await self.purge_blob(record)
        if expired:
            logger.info("expired_files_swept", extra={"count": len(expired)})
        return len(expired)


__all__ = ["DownloadSession", "DownloadWorkflow"]
