from .base import BaseSchema, ErrorResponse, SuccessResponse
from .file_share import (
    DownloadLinkResponse,
    FileInfoResponse,
    HealthResponse,
    PasswordRequest,
    PresignRequest,
    PresignResponse,
    SharePolicyFields,
    StatsResponse,
    UploadAbortRequest,
    UploadCompleteRequest,
    UploadResultResponse,
)

__all__ = [
    "BaseSchema",
    "DownloadLinkResponse",
    "ErrorResponse",
    "FileInfoResponse",
    "HealthResponse",
    "PasswordRequest",
    "PresignRequest",
    "PresignResponse",
    "SharePolicyFields",
    "StatsResponse",
    "SuccessResponse",
    "UploadAbortRequest",
    "UploadCompleteRequest",
    "UploadResultResponse",
]
