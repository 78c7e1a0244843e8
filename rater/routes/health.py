from __future__ import annotations

from fastapi import APIRouter, Request

from ..models.schemas import SystemHealth
from ..stores.base import StoreUnavailable

router = APIRouter(prefix="/api/v1", tags=["health"])


@router.get("/health", response_model=SystemHealth)
async def health(request: Request) -> SystemHealth:
    service = request.app.state.service
    store_status = "connected"
    try:
        await service.store.size()
    except StoreUnavailable:
        store_status = "degraded"
    components = {
        "store": store_status,
        "catalog": f"{len(service.catalog)} classes",
    }
    status = "ok" if store_status == "connected" else "degraded"
    return SystemHealth(status=status, components=components)
