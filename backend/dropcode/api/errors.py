from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dropcode.core.errors import FileShareError
from dropcode.core.logging import logger
from dropcode.schemas import ErrorResponse


def _error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump(), headers=headers)


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    loc = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path", "form"))
    msg = str(first.get("msg") or "invalid value")
    return f"{loc}: {msg}" if loc else msg


def register_exception_handlers(app: FastAPI) -> None:
    """所有错误统一渲染为 {"error": "..."}"""

    @app.exception_handler(FileShareError)
    async def _handle_file_share_error(request: Request, exc: FileShareError):
        if exc.status_code >= 500:
            # 服务端错误的细节（如存储 SDK 报错）只进日志，客户端拿到固定文案
            logger.error(
                "request_failed",
                extra={"path": request.url.path, "status": exc.status_code, "error": exc.message},
            )
            return _error_response(exc.status_code, exc.default_message)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def _handle_http_exception(request: Request, exc: StarletteHTTPException):
        return _error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def _handle_validation_error(request: Request, exc: RequestValidationError):
        return _error_response(400, _describe_validation_error(exc))

    @app.exception_handler(Exception)
    async def _handle_unexpected(request: Request, exc: Exception):
        logger.exception("unhandled_exception", extra={"path": request.url.path})
        return _error_response(500, "Internal server error")


__all__ = ["register_exception_handlers"]
