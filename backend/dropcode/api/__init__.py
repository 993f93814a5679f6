from .download_route import router as download_router
from .errors import register_exception_handlers
from .files_route import router as files_router
from .system_route import router as system_router
from .uploads_route import router as uploads_router

__all__ = [
    "download_router",
    "files_router",
    "register_exception_handlers",
    "system_router",
    "uploads_router",
]
