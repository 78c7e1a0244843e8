from __future__ import annotations

import time

from fastapi import APIRouter, HTTPException, Request

from ..catalog import LimitClass
from ..models.schemas import (
    CatalogResponse,
    DecisionRequest,
    DecisionResponse,
    LimitClassOut,
    LimitKeyOut,
    PurgeRequest,
    PurgeResponse,
    ServiceStats,
)
from ..stores.base import StoreUnavailable

router = APIRouter(prefix="/api/v1", tags=["limits"])


def _class_out(limit_class: LimitClass) -> LimitClassOut:
    keys = [LimitKeyOut(pattern=key.pattern, window=key.window, limit=key.limit) for key in limit_class.keys]
    return LimitClassOut(name=limit_class.name, keys=keys)


@router.get("/classes", response_model=CatalogResponse)
async def list_classes(request: Request) -> CatalogResponse:
    catalog = request.app.state.service.catalog
    items = [_class_out(limit_class) for limit_class in catalog.values()]
    return CatalogResponse(items=items, total=len(items))


@router.get("/classes/{name}", response_model=LimitClassOut)
async def get_class(name: str, request: Request) -> LimitClassOut:
    limit_class = request.app.state.service.catalog.lookup(name)
    if limit_class is None:
        raise HTTPException(status_code=404, detail={"error_code": "CLASS_NOT_FOUND", "message": f"Class not found: {name}"})
    return _class_out(limit_class)


@router.get("/stats", response_model=ServiceStats)
async def stats(request: Request) -> ServiceStats:
    service = request.app.state.service
    try:
        marks: int | None = await service.store.size()
    except StoreUnavailable:
        marks = None
    return ServiceStats(
        decisions=dict(service.engine.stats),
        marks=marks,
        uptime_seconds=round(time.monotonic() - service.started_at, 3),
    )


@router.post("/decide", response_model=DecisionResponse)
async def decide(payload: DecisionRequest, request: Request) -> DecisionResponse:
    verdict = await request.app.state.service.engine.decide(payload.line)
    return DecisionResponse(code=verdict.code, kind=verdict.kind, detail=verdict.detail, reply=verdict.report())


@router.post("/marks/purge", response_model=PurgeResponse)
async def purge_marks(request: Request, payload: PurgeRequest | None = None) -> PurgeResponse:
    service = request.app.state.service
    age = payload.age if payload and payload.age else service.settings.max_age
    try:
        removed = await service.store.purge_older_than(age)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail={"error_code": "STORE_UNAVAILABLE", "message": str(exc)}) from exc
    return PurgeResponse(removed=removed, age=age)
