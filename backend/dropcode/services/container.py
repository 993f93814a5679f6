from __future__ import annotations

import time
from collections.abc import Callable
from datetime import datetime

from dropcode.core.config import Settings, settings as default_settings
from dropcode.core.logging import logger
from dropcode.repositories import FileRecordStore, PendingUploadRegistry
from dropcode.services.code_generator import CodeGenerator
from dropcode.services.download_service import DownloadWorkflow
from dropcode.services.sweeper import PeriodicSweeper
from dropcode.services.upload_service import UploadWorkflow
from dropcode.storage import BlobStore, create_blob_store
from dropcode.utils.security import PasswordHasher
from dropcode.utils.time_utils import Datetime


class ServiceContainer:
    """
    显式构造的服务集合

    进程启动时创建并 start()，关闭时 stop()；测试可直接构造并注入替身。
    """

    def __init__(
        self,
        *,
        config: Settings | None = None,
        blob_store: BlobStore | None = None,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], datetime] = Datetime.now,
    ):
        self.config = config or default_settings
        self.blob_store = blob_store or create_blob_store(self.config)
        self.hasher = hasher or PasswordHasher(self.config.PASSWORD_HASH_ROUNDS)
        self.started_at = time.monotonic()

        self.records = FileRecordStore(clock=clock)
        self.registry = PendingUploadRegistry(
            self.blob_store,
            ttl_seconds=self.config.PENDING_UPLOAD_TTL_SECONDS,
            presign_expires_seconds=self.config.PRESIGN_EXPIRES_SECONDS,
            clock=clock,
        )
        self.code_generator = CodeGenerator(max_attempts=self.config.CODE_MAX_ATTEMPTS)
        self.uploads = UploadWorkflow(
            blob_store=self.blob_store,
            records=self.records,
            registry=self.registry,
            code_generator=self.code_generator,
            hasher=self.hasher,
            config=self.config,
        )
        self.downloads = DownloadWorkflow(
            blob_store=self.blob_store,
            records=self.records,
            hasher=self.hasher,
            delete_on_limit=self.config.DELETE_ON_DOWNLOAD_LIMIT,
            chunk_size=self.config.STREAM_CHUNK_SIZE,
            link_secret=self.config.SECRET_KEY,
            link_ttl_seconds=self.config.DOWNLOAD_LINK_TTL_SECONDS,
        )
        self.sweepers = [
            PeriodicSweeper("expired_files", self.config.FILE_SWEEP_INTERVAL_SECONDS, self.downloads.purge_expired),
            PeriodicSweeper("pending_uploads", self.config.PENDING_SWEEP_INTERVAL_SECONDS, self.registry.sweep_expired),
        ]

    @property
    def storage_mode(self) -> str:
        return self.blob_store.mode

    def uptime_seconds(self) -> int:
        return int(time.monotonic() - self.started_at)

    async def start(self) -> None:
        for sweeper in self.sweepers:
            sweeper.start()
        logger.info("services_started", extra={"storage_mode": self.storage_mode})

    async def stop(self) -> None:
        for sweeper in self.sweepers:
            await sweeper.stop()
        await self.blob_store.close()
        logger.info("services_stopped", extra={"files": len(self.records), "pending_uploads": len(self.registry)})


__all__ = ["ServiceContainer"]
