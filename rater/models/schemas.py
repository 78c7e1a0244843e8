from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BaseSchema(BaseModel):
    """Base schema with attribute extraction enabled."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class SystemHealth(BaseSchema):
    status: str
    components: Dict[str, str] = Field(default_factory=dict)


class LimitKeyOut(BaseSchema):
    pattern: str
    window: int
    limit: int


class LimitClassOut(BaseSchema):
    name: str
    keys: List[LimitKeyOut] = Field(default_factory=list)


class CatalogResponse(BaseSchema):
    items: List[LimitClassOut] = Field(default_factory=list)
    total: int = 0


class ServiceStats(BaseSchema):
    decisions: Dict[str, int] = Field(default_factory=dict)
    marks: Optional[int] = None
    uptime_seconds: float = 0.0


class DecisionRequest(BaseSchema):
    line: str = Field(..., min_length=1)


class DecisionResponse(BaseSchema):
    code: int
    kind: str
    detail: str
    reply: str


class PurgeRequest(BaseSchema):
    age: Optional[int] = Field(default=None, gt=0)


class PurgeResponse(BaseSchema):
    removed: int
    age: int
