from __future__ import annotations

from urllib.parse import quote

import anyio
from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from dropcode.deps import get_download_workflow, valid_code
from dropcode.schemas import PasswordRequest
from dropcode.services import DownloadSession, DownloadWorkflow

router = APIRouter(tags=["Downloads"])


def content_disposition(filename: str) -> str:
    """attachment 头：ASCII 回退名 + RFC 5987 的 UTF-8 文件名"""
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "").strip()
    return f"attachment; filename=\"{fallback or 'download'}\"; filename*=UTF-8''{quote(filename, safe='')}"


class DownloadResponse(StreamingResponse):
    """
    绑定 DownloadSession 的流式响应

    无论正常结束、客户端断开还是存储流出错，响应结束后都会调用
    session.finish()，由它决定执行下载后清理还是回滚计数。
    """

    def __init__(self, session: DownloadSession):
        record = session.record
        super().__init__(
            session.iter_bytes(),
            media_type=record.mime_type,
            headers={
                "Content-Disposition": content_disposition(record.original_name),
                "Content-Length": str(record.size),
                "Cache-Control": "no-store",
            },
        )
        self.session = session

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            # 断开连接时外层任务已被取消，屏蔽取消以保证回滚/清理执行完
            with anyio.CancelScope(shield=True):
                await self.session.finish()


@router.post("/download/{code}")
async def download_file(
    payload: PasswordRequest | None = Body(None),
    code: str = Depends(valid_code),
    workflow: DownloadWorkflow = Depends(get_download_workflow),
):
    """
    下载文件。

    - 先计数再传输，传输未完成会回滚计数；
    - 阅后即焚或达到次数上限时，传输完成后删除记录与对象。
    """
    password = payload.password if payload else None
    session = await workflow.stream_download(code, password)
    return DownloadResponse(session)


@router.get("/download/{code}", name="download_by_link")
async def download_by_link(
    code: str = Depends(valid_code),
    fid: str = Query(..., description="File id the link was issued for"),
    expires: int = Query(..., description="Unix timestamp (seconds)"),
    sig: str = Query(..., description="HMAC signature"),
    workflow: DownloadWorkflow = Depends(get_download_workflow),
):
    """
    通过签名短链下载；密码已在签发时校验，次数与阅后即焚规则照常生效。

    code 被其他文件复用后旧短链返回 404。
    """
    session = await workflow.stream_link_download(code, file_id=fid, expires=expires, sig=sig)
    return DownloadResponse(session)


__all__ = ["DownloadResponse", "content_disposition", "router"]
