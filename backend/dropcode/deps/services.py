from __future__ import annotations

from fastapi import Depends, Request

from dropcode.core.errors import StorageUnconfigured, ValidationError
from dropcode.services import DownloadWorkflow, ServiceContainer, UploadWorkflow, is_valid_code


def get_container(request: Request) -> ServiceContainer:
    """FastAPI 依赖，返回 lifespan 中创建的服务容器。"""

    container = getattr(request.app.state, "container", None)
    if container is None:
        raise StorageUnconfigured("Service is not ready")
    return container


def get_upload_workflow(container: ServiceContainer = Depends(get_container)) -> UploadWorkflow:
    return container.uploads


def get_download_workflow(container: ServiceContainer = Depends(get_container)) -> DownloadWorkflow:
    return container.downloads


def valid_code(code: str) -> str:
    """路径参数中的取件码必须为 6 位数字"""

    if not is_valid_code(code):
        raise ValidationError("Invalid code format")
    return code


__all__ = ["get_container", "get_download_workflow", "get_upload_workflow", "valid_code"]
