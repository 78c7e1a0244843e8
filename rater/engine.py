"""Per-request rate decisions.

``DecisionEngine.decide`` turns one request line of the form ``class value``
into a verdict. Matching a key records a mark, then the marks for the value
inside that key's window are counted and compared with the key's limit.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from typing import ClassVar, Literal

from .catalog import Catalog, LimitKey
from .logging_config import logger
from .stores.base import Clock, MarkStore, StoreUnavailable, system_clock

CODE_OK = 0
CODE_EXCEEDED = 1
CODE_ERROR = 2


@dataclass(frozen=True)
class Verdict(ABC):
    code: ClassVar[int] = CODE_ERROR

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    @abstractmethod
    def detail(self) -> str:
        ...

    def report(self) -> str:
        return f"{self.code} {self.detail}"


@dataclass(frozen=True)
class Allowed(Verdict):
    count: int = 0
    limit: int = 0
    code: ClassVar[int] = CODE_OK

    @property
    def detail(self) -> str:
        return f"{self.count}/{self.limit}"


@dataclass(frozen=True)
class Exceeded(Verdict):
    count: int = 0
    limit: int = 0
    code: ClassVar[int] = CODE_EXCEEDED

    @property
    def detail(self) -> str:
        return f"{self.count}/{self.limit}"


@dataclass(frozen=True)
class BadInput(Verdict):
    reason: str = "no space"

    @property
    def detail(self) -> str:
        return f"Bad Input ({self.reason})"


@dataclass(frozen=True)
class UnknownClass(Verdict):
    raw_line: str = ""

    @property
    def detail(self) -> str:
        return f"Class not found: {self.raw_line}"


@dataclass(frozen=True)
class NoMatchingKey(Verdict):
    raw_line: str = ""

    @property
    def detail(self) -> str:
        return f"No matching key: {self.raw_line}"


@dataclass(frozen=True)
class StoreFailure(Verdict):
    reason: str = ""

    @property
    def detail(self) -> str:
        return "Storage unavailable"


def strip_terminator(line: str) -> str:
    if line.endswith("\n"):
        line = line[:-1]
    if line.endswith("\r"):
        line = line[:-1]
    return line


def sanitize(field: str) -> str:
    """Drop characters no store can carry inside a bound text value."""
    return field.replace("\x00", "").replace("\r", "")


class DecisionEngine:
    def __init__(
        self,
        catalog: Catalog,
        store: MarkStore,
        *,
        clock: Clock = system_clock,
        count_scope: Literal["value", "class"] = "value",
        store_timeout: float | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self._clock = clock
        self._count_scope = count_scope
        self._store_timeout = store_timeout
        self.stats: Counter[str] = Counter()

    async def _bounded(self, awaitable):
        if self._store_timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout=self._store_timeout)
        except asyncio.TimeoutError as exc:
            raise StoreUnavailable(f"store call exceeded {self._store_timeout}s") from exc

    async def decide(self, raw_line: str) -> Verdict:
        verdict = await self._decide(strip_terminator(raw_line))
        self.stats[verdict.kind] += 1
        return verdict

    async def _decide(self, line: str) -> Verdict:
        class_part, sep, value_part = line.partition(" ")
        if not sep:
            logger.info("request.bad_input", line=line)
            return BadInput()

        class_name = sanitize(class_part)
        value = sanitize(value_part)

        limit_class = self.catalog.lookup(class_name)
        if limit_class is None:
            logger.error("request.class_not_found", class_name=class_name, line=line)
            return UnknownClass(raw_line=line)

        key = limit_class.match(value)
        if key is None:
            logger.warning("request.no_matching_key", class_name=class_name, value=value)
            return NoMatchingKey(raw_line=line)

        logger.debug("request.matched", class_name=class_name, value=value, pattern=key.pattern, window=key.window, limit=key.limit)
        return await self._check(class_name, value, key)

    async def _check(self, class_name: str, value: str, key: LimitKey) -> Verdict:
        now = self._clock()
        try:
            await self._bounded(self.store.record(value, class_name, now))
        except StoreUnavailable as exc:
            logger.error("store.write_failed", class_name=class_name, value=value, error=str(exc))

        scope = class_name if self._count_scope == "class" else None
        try:
            count = await self._bounded(self.store.count_since(value, now - key.window, scope))
        except StoreUnavailable as exc:
            logger.error("store.read_failed", class_name=class_name, value=value, error=str(exc))
            return StoreFailure(reason=str(exc))

        if count > key.limit:
            verdict: Verdict = Exceeded(count=count, limit=key.limit)
            logger.info("rate.exceeded", class_name=class_name, value=value, report=verdict.report())
        else:
            verdict = Allowed(count=count, limit=key.limit)
            logger.info("rate.ok", class_name=class_name, value=value, report=verdict.report())
        return verdict
