"""
业务异常分类

每个异常自带 HTTP 状态码与面向用户的错误信息，由 main.py 中注册的
异常处理器统一渲染为 ``{"error": "..."}``。
"""
from __future__ import annotations


class FileShareError(Exception):
    """业务异常基类"""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(FileShareError):
    """请求参数不合法"""

    status_code = 400
    default_message = "Invalid request"


class VerificationFailed(FileShareError):
    """直传完成后对象存储中的实际内容与声明不一致"""

    status_code = 400
    default_message = "Upload verification failed"


class UploadMismatch(FileShareError):
    """客户端提交的对象 Key 与预留记录不一致"""

    status_code = 400
    default_message = "Upload identifiers do not match"


class NotFound(FileShareError):
    status_code = 404
    default_message = "File not found or expired"


class PasswordRequired(FileShareError):
    status_code = 401
    default_message = "Password required"


class IncorrectPassword(FileShareError):
    status_code = 401
    default_message = "Incorrect password"


class LimitReached(FileShareError):
    status_code = 403
    default_message = "Download limit reached"


class InvalidDownloadLink(FileShareError):
    """短链签名错误或已过期"""

    status_code = 403
    default_message = "Invalid or expired download link"


class Conflict(FileShareError):
    status_code = 409
    default_message = "Code already in use"


class CodeSpaceExhausted(FileShareError):
    """多次尝试仍无法分配唯一取件码"""

    status_code = 503
    default_message = "No free download code available, please retry later"


class StorageError(FileShareError):
    """对象存储读写失败"""

    status_code = 500
    default_message = "Storage operation failed"


class StorageUnconfigured(FileShareError):
    """缺少必要的对象存储配置"""

    status_code = 503
    default_message = "Storage backend is not configured"


__all__ = [
    "CodeSpaceExhausted",
    "Conflict",
    "FileShareError",
    "IncorrectPassword",
    "InvalidDownloadLink",
    "LimitReached",
    "NotFound",
    "PasswordRequired",
    "StorageError",
    "StorageUnconfigured",
    "UploadMismatch",
    "ValidationError",
    "VerificationFailed",
]
