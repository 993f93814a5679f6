from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from dropcode.core.errors import ValidationError
from dropcode.deps import get_upload_workflow
from dropcode.models import UploadPolicy
from dropcode.schemas import (
    PresignRequest,
    PresignResponse,
    SuccessResponse,
    UploadAbortRequest,
    UploadCompleteRequest,
    UploadResultResponse,
)
from dropcode.services import UploadWorkflow

router = APIRouter(tags=["Uploads"])


@router.post("/uploads/presign", response_model=PresignResponse)
async def presign_upload(
    payload: PresignRequest,
    workflow: UploadWorkflow = Depends(get_upload_workflow),
):
    """
    预留一次直传。

    - 返回预签名 PUT URL，客户端直接上传到对象存储；
    - 上传完成后调用 /uploads/complete 校验并生成取件码。
    """
    reservation = await workflow.request_upload(
        payload.filename,
        payload.mimetype,
        payload.size,
        payload.to_policy(),
    )
    return PresignResponse(
        upload_id=reservation.upload_id,
        upload_url=reservation.upload_url,
        file_key=reservation.storage_key,
        upload_headers=reservation.upload_headers,
        expires_in=reservation.expires_in,
    )


@router.post("/uploads/complete", response_model=UploadResultResponse)
async def complete_upload(
    payload: UploadCompleteRequest,
    workflow: UploadWorkflow = Depends(get_upload_workflow),
):
    record = await workflow.complete_upload(payload.upload_id, payload.file_key)
    return UploadResultResponse.model_validate(record)


@router.post("/uploads/abort", response_model=SuccessResponse)
async def abort_upload(
    payload: UploadAbortRequest,
    workflow: UploadWorkflow = Depends(get_upload_workflow),
):
    await workflow.abort_upload(payload.upload_id)
    return SuccessResponse()


@router.post("/upload", response_model=UploadResultResponse)
async def upload_file(
    file: UploadFile = File(...),
    expires_in: int | None = Form(None, alias="expiresIn", gt=0),
    password: str | None = Form(None),
    max_downloads: int | None = Form(None, alias="maxDownloads", gt=0),
    is_one_time: bool = Form(False, alias="isOneTime"),
    workflow: UploadWorkflow = Depends(get_upload_workflow),
):
    """经服务端中转的小文件上传（本地存储模式下唯一的上传方式）"""
    limit = workflow.config.DIRECT_UPLOAD_MAX_BYTES
    if file.size is not None and file.size > limit:
        raise ValidationError(f"File exceeds the maximum size of {limit} bytes")

    try:
        data = await file.read(limit + 1)
    finally:
        await file.close()

    record = await workflow.upload_direct(
        file.filename,
        file.content_type,
        data,
        UploadPolicy(
            expires_in_hours=expires_in,
            password=password or None,
            max_downloads=max_downloads,
            is_one_time=is_one_time,
        ),
    )
    return UploadResultResponse.model_validate(record)


__all__ = ["router"]
