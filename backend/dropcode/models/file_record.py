"""FileRecord - 已提交文件的元数据（实际字节存放在对象存储）"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime


@dataclass
class FileRecord:
    id: str
    code: str
    storage_key: str
    original_name: str
    size: int
    mime_type: str
    uploaded_at: datetime
    expires_at: datetime
    password_hash: str | None = None
    max_downloads: int | None = None
    download_count: int = 0
    is_one_time: bool = False

    @property
    def is_password_protected(self) -> bool:
        return self.password_hash is not None

    @property
    def remaining_downloads(self) -> int | None:
        if self.max_downloads is None:
            return None
        return max(0, self.max_downloads - self.download_count)

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    @property
    def effective_limit(self) -> int | None:
        # 一次性文件在首次下载进行中即占满名额
        if self.is_one_time:
            return 1
        return self.max_downloads

    def limit_reached(self) -> bool:
        limit = self.effective_limit
        return limit is not None and self.download_count >= limit

    def snapshot(self) -> FileRecord:
        """返回副本，避免调用方修改索引内的对象"""
        return replace(self)


@dataclass(frozen=True)
class NewFileRecord:
    """FileRecordStore.create 的入参"""

    code: str
    storage_key: str
    original_name: str
    size: int
    mime_type: str
    expires_at: datetime
    password_hash: str | None = None
    max_downloads: int | None = None
    is_one_time: bool = False


@dataclass(frozen=True)
class PublicFileView:
    """对外暴露的文件信息（不含 id / storage_key / password_hash）"""

    code: str
    original_name: str
    size: int
    mime_type: str
    uploaded_at: datetime
    expires_at: datetime
    is_password_protected: bool
    download_count: int
    max_downloads: int | None
    remaining_downloads: int | None
    is_one_time: bool

    @classmethod
    def from_record(cls, record: FileRecord) -> PublicFileView:
        return cls(
            code=record.code,
            original_name=record.original_name,
            size=record.size,
            mime_type=record.mime_type,
            uploaded_at=record.uploaded_at,
            expires_at=record.expires_at,
            is_password_protected=record.is_password_protected,
            download_count=record.download_count,
            max_downloads=record.max_downloads,
            remaining_downloads=record.remaining_downloads,
            is_one_time=record.is_one_time,
        )
