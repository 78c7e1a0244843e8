from __future__ import annotations

import asyncio
import bisect
from operator import attrgetter

from .base import Clock, Mark, StoreUnavailable, system_clock

_timestamp = attrgetter("timestamp")


class MemoryMarkStore:
    """Marks kept per value in timestamp order.

    Windowed counts bisect the per-value list, purges drop a prefix of each
    list, so neither walks marks outside the range they touch.
    """

    def __init__(self, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._marks: dict[str, list[Mark]] = {}
        self._lock = asyncio.Lock()
        self._open = False

    async def open(self) -> None:
        async with self._lock:
            self._marks.clear()
            self._open = True

    async def close(self) -> None:
        async with self._lock:
            self._marks.clear()
            self._open = False

    def _ensure_open(self) -> None:
        if not self._open:
            raise StoreUnavailable("memory store is closed")

    async def record(self, value: str, class_name: str, timestamp: float) -> None:
        async with self._lock:
            self._ensure_open()
            marks = self._marks.setdefault(value, [])
            bisect.insort(marks, Mark(value=value, class_name=class_name, timestamp=timestamp), key=_timestamp)

    async def count_since(self, value: str, threshold: float, class_name: str | None = None) -> int:
        async with self._lock:
            self._ensure_open()
            marks = self._marks.get(value)
            if not marks:
                return 0
            start = bisect.bisect_right(marks, threshold, key=_timestamp)
            if class_name is None:
                return len(marks) - start
            return sum(1 for mark in marks[start:] if mark.class_name == class_name)

    async def purge_older_than(self, age: float) -> int:
        cutoff = self._clock() - age
        removed = 0
        async with self._lock:
            self._ensure_open()
            for value in list(self._marks):
                marks = self._marks[value]
                stale = bisect.bisect_left(marks, cutoff, key=_timestamp)
                if not stale:
                    continue
                removed += stale
                if stale == len(marks):
                    del self._marks[value]
                else:
                    del marks[:stale]
        return removed

    async def size(self) -> int:
        async with self._lock:
            self._ensure_open()
            return sum(len(marks) for marks in self._marks.values())
