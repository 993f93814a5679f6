import asyncio

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.types import Receive, Scope, Send

from dropcode.core.config import settings
from dropcode.core.logging import logger


class RequestGate:
    """
    入口闸门：限制单进程同时处理的请求数

    acquire() 在排队超时后返回 False；可替换为按 IP 限流等其他实现，
    只要提供同样的 acquire / release。
    """

    def __init__(self, max_concurrency: int, queue_timeout: float):
        self.max_concurrency = max_concurrency
        self.queue_timeout = queue_timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def acquire(self, request: Request) -> bool:
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout=self.queue_timeout)
        except TimeoutError:
            return False
        return True

    def release(self) -> None:
        self._semaphore.release()


class GatedResponse:
    """下游响应的包装：响应体发送结束（正常、异常或取消）时归还名额"""

    def __init__(self, response: Response, gate: RequestGate):
        self.response = response
        self.gate = gate

    def __getattr__(self, name: str):
        return getattr(self.response, name)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await self.response(scope, receive, send)
        finally:
            self.gate.release()


def build_concurrency_middleware(gate: RequestGate | None = None):
    """
    并发/背压控制中间件
    - 超过并发且在队列等待超时时返回 503
    - 名额占用到响应体发送完，流式下载全程计入并发
    """
    gate = gate or RequestGate(settings.MAX_CONCURRENT_REQUESTS, settings.QUEUE_TIMEOUT_SECONDS)

    async def concurrency_middleware(request: Request, call_next):
        if not await gate.acquire(request):
            logger.warning("request_rejected_overloaded", extra={"path": request.url.path})
            return JSONResponse(
                status_code=503,
                content={"error": "Server is busy, please retry later"},
            )

        try:
            response: Response = await call_next(request)
        except BaseException:
            gate.release()
            raise
        return GatedResponse(response, gate)

    return concurrency_middleware
