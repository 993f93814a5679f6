"""PendingUpload - 预签名直传的预留记录（尚未成为 FileRecord）"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class UploadPolicy:
    """上传方请求的分享策略"""

    expires_in_hours: int | None = None
    password: str | None = None
    max_downloads: int | None = None
    is_one_time: bool = False


@dataclass(frozen=True)
class UploadRequest:
    """PendingUploadRegistry.reserve 的入参"""

    storage_key: str
    original_name: str
    size: int
    mime_type: str
    policy: UploadPolicy


@dataclass(frozen=True)
class PendingUpload:
    upload_id: str
    storage_key: str
    original_name: str
    size: int
    mime_type: str
    policy: UploadPolicy
    created_at: datetime


@dataclass(frozen=True)
class Reservation:
    """reserve 的返回值：预留 ID + 预签名上传地址"""

    upload_id: str
    upload_url: str
    storage_key: str
    upload_headers: dict[str, str]
    expires_in: int
