from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


class StoreUnavailable(Exception):
    """The mark store could not complete a read or write."""


@dataclass(frozen=True)
class Mark:
    value: str
    class_name: str
    timestamp: float


class MarkStore(Protocol):
    async def open(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def record(self, value: str, class_name: str, timestamp: float) -> None:
        ...

    async def count_since(self, value: str, threshold: float, class_name: str | None = None) -> int:
        ...

    async def purge_older_than(self, age: float) -> int:
        ...

    async def size(self) -> int:
        ...
