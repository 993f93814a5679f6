from .services import (
    get_container,
    get_download_workflow,
    get_upload_workflow,
    valid_code,
)

__all__ = [
    "get_container",
    "get_download_workflow",
    "get_upload_workflow",
    "valid_code",
]
