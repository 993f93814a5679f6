from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class PeriodicSweeper:
    """
    进程内周期任务

    元数据只存在于本进程内存中，清理必须在同一事件循环里执行，
    因此这里不走 Celery beat，而是随应用生命周期启停的 asyncio 任务。
    """

    def __init__(self, name: str, interval_seconds: float, job: Callable[[], Awaitable[Any]]):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval_seconds = interval_seconds
        self.job = job
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"sweeper:{self.name}")
        logger.info("sweeper_started name=%s interval=%s", self.name, self.interval_seconds)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("sweeper_stopped name=%s", self.name)

    async def run_once(self) -> Any:
        try:
            return await self.job()
        except Exception as exc:
            # 单次失败不终止循环，下个周期重试
            logger.warning("sweeper_run_failed name=%s err=%s", self.name, exc)
            return None

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            await self.run_once()


__all__ = ["PeriodicSweeper"]
