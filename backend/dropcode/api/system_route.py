from __future__ import annotations

from fastapi import APIRouter, Depends

from dropcode.deps import get_container
from dropcode.schemas import HealthResponse, StatsResponse
from dropcode.services import ServiceContainer

router = APIRouter(tags=["System"])


@router.get("/health", response_model=HealthResponse)
async def health(container: ServiceContainer = Depends(get_container)):
    return HealthResponse(storage=container.storage_mode)


@router.get("/stats", response_model=StatsResponse)
async def stats(container: ServiceContainer = Depends(get_container)):
    return StatsResponse(
        active_files=container.records.count_live(),
        pending_uploads=len(container.registry),
        uptime_seconds=container.uptime_seconds(),
    )


__all__ = ["router"]
