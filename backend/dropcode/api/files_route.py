from __future__ import annotations

from fastapi import APIRouter, Body, Depends, Request

from dropcode.core.errors import IncorrectPassword, NotFound
from dropcode.deps import get_download_workflow, valid_code
from dropcode.schemas import (
    DownloadLinkResponse,
    FileInfoResponse,
    PasswordRequest,
    SuccessResponse,
)
from dropcode.services import DownloadWorkflow

router = APIRouter(tags=["Files"])


@router.get("/file/{code}", response_model=FileInfoResponse)
async def get_file_info(
    code: str = Depends(valid_code),
    workflow: DownloadWorkflow = Depends(get_download_workflow),
):
    """按取件码查询公开元数据（不会暴露存储 Key 与密码哈希）"""
    view = workflow.resolve_code(code)
    if view is None:
        raise NotFound()
    return FileInfoResponse(
        code=view.code,
        original_name=view.original_name,
        size=view.size,
        mimetype=view.mime_type,
        uploaded_at=view.uploaded_at,
        expires_at=view.expires_at,
        is_password_protected=view.is_password_protected,
        download_count=view.download_count,
        max_downloads=view.max_downloads,
        remaining_downloads=view.remaining_downloads,
        is_one_time=view.is_one_time,
    )


@router.post("/file/{code}/verify", response_model=SuccessResponse)
async def verify_file_password(
    payload: PasswordRequest | None = Body(None),
    code: str = Depends(valid_code),
    workflow: DownloadWorkflow = Depends(get_download_workflow),
):
    password = payload.password if payload else None
    if not await workflow.verify_password(code, password):
        raise IncorrectPassword()
    return SuccessResponse()


@router.post("/file/{code}/get-download-link", response_model=DownloadLinkResponse)
async def get_download_link(
    request: Request,
    payload: PasswordRequest | None = Body(None),
    code: str = Depends(valid_code),
    workflow: DownloadWorkflow = Depends(get_download_workflow),
):
    """
    签发可分享的下载短链。

    - 密码在签发时校验，持有短链即可下载；
    - 下载次数与阅后即焚规则在真正下载时才生效。
    """
    password = payload.password if payload else None
    record, expires, sig = await workflow.create_download_link(code, password)
    url = request.url_for("download_by_link", code=record.code).include_query_params(fid=record.id, expires=expires, sig=sig)
    return DownloadLinkResponse(
        download_url=str(url),
        filename=record.original_name,
        requires_password=record.is_password_protected,
    )


__all__ = ["router"]
