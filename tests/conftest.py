from __future__ import annotations

import asyncio
import os

import pytest
from fastapi.testclient import TestClient

from rater.app import RaterService
from rater.catalog import Catalog
from rater.config import Settings
from rater.engine import DecisionEngine
from rater.stores.memory import MemoryMarkStore
from rater.stores.sql import SqlMarkStore

LIMITS = [
    ("ip", [("10.0.0.*", 90, 10), ("*", 60, 100)]),
    ("user", [("joe*", 60, 5), ("*", 60, 1)]),
    ("host", [("*.example.com", 30, 2)]),
]


class FakeClock:
    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def clear_env(monkeypatch):
    for key in list(os.environ):
        if key.startswith("RATER_"):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def catalog() -> Catalog:
    return Catalog.from_definitions(LIMITS)


@pytest.fixture(params=["memory", "sql"])
def store(request, clock):
    if request.param == "sql":
        return SqlMarkStore("sqlite+aiosqlite://", clock=clock)
    return MemoryMarkStore(clock=clock)


@pytest.fixture()
def memory_store(clock) -> MemoryMarkStore:
    return MemoryMarkStore(clock=clock)


@pytest.fixture()
def engine(catalog, memory_store, clock) -> DecisionEngine:
    asyncio.run(memory_store.open())
    return DecisionEngine(catalog, memory_store, clock=clock)


@pytest.fixture()
def service(catalog, clock) -> RaterService:
    settings = Settings(port=0, control_enabled=False, max_age=90)
    service = RaterService(settings, catalog, store=MemoryMarkStore(clock=clock), clock=clock)
    asyncio.run(service.store.open())
    return service


@pytest.fixture()
def client(service) -> TestClient:
    return TestClient(service.control_app)
