from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_validator

from dropcode.models import UploadPolicy
from dropcode.schemas.base import BaseSchema


class SharePolicyFields(BaseSchema):
    expires_in: int | None = Field(None, description="有效期（小时），缺省 24", gt=0)
    password: str | None = Field(None, description="下载密码（可选）", max_length=128)
    max_downloads: int | None = Field(None, description="最大下载次数（可选）", gt=0)
    is_one_time: bool = Field(False, description="是否阅后即焚")

    @field_validator("password")
    @classmethod
    def _blank_password_to_none(cls, value: str | None) -> str | None:
        if value is None or value == "":
            return None
        return value

    def to_policy(self) -> UploadPolicy:
        return UploadPolicy(
            expires_in_hours=self.expires_in,
            password=self.password,
            max_downloads=self.max_downloads,
            is_one_time=self.is_one_time,
        )


class PresignRequest(SharePolicyFields):
    filename: str = Field(..., description="原始文件名", min_length=1)
    size: int = Field(..., description="声明的文件大小（字节）", gt=0)
    mimetype: str | None = Field(None, description="内容类型", max_length=255)


class PresignResponse(BaseSchema):
    upload_id: str = Field(..., description="上传预留 ID")
    upload_url: str = Field(..., description="预签名上传 URL（PUT）")
    file_key: str = Field(..., description="对象存储 Key")
    upload_headers: dict[str, str] = Field(default_factory=dict, description="上传时需携带的 Header")
    expires_in: int = Field(..., description="预签名上传有效期（秒）")


class UploadCompleteRequest(BaseSchema):
    upload_id: str = Field(..., min_length=1)
    file_key: str | None = Field(None, description="presign 返回的对象存储 Key（可选，用于交叉校验）")


class UploadAbortRequest(BaseSchema):
    upload_id: str = Field(..., min_length=1)


class UploadResultResponse(BaseSchema):
    code: str
    original_name: str
    size: int
    expires_at: datetime
    is_password_protected: bool
    max_downloads: int | None = None
    is_one_time: bool = False


class FileInfoResponse(BaseSchema):
    code: str
    original_name: str
    size: int
    mimetype: str
    uploaded_at: datetime
    expires_at: datetime
    is_password_protected: bool
    download_count: int
    max_downloads: int | None = None
    remaining_downloads: int | None = None
    is_one_time: bool = False


class PasswordRequest(BaseSchema):
    password: str | None = None


class DownloadLinkResponse(BaseSchema):
    download_url: str
    filename: str
    requires_password: bool


class StatsResponse(BaseSchema):
    active_files: int
    pending_uploads: int
    uptime_seconds: int


class HealthResponse(BaseSchema):
    status: str = "ok"
    storage: str


__all__ = [
    "DownloadLinkResponse",
    "FileInfoResponse",
    "HealthResponse",
    "PasswordRequest",
    "PresignRequest",
    "PresignResponse",
    "SharePolicyFields",
    "StatsResponse",
    "UploadAbortRequest",
    "UploadCompleteRequest",
    "UploadResultResponse",
]
