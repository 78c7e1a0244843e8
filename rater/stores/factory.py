from __future__ import annotations

from ..config import Settings
from .base import Clock, MarkStore, system_clock
from .memory import MemoryMarkStore
from .sql import SqlMarkStore


def build_store(settings: Settings, clock: Clock = system_clock) -> MarkStore:
    if settings.store_backend == "sql":
        return SqlMarkStore(settings.db_url, clock=clock)
    return MemoryMarkStore(clock=clock)
