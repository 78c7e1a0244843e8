from __future__ import annotations

import asyncio

from .logging_config import logger
from .stores.base import MarkStore, StoreUnavailable


class ExpiryScheduler:
    """Purges marks older than ``max_age`` every ``interval`` seconds."""

    def __init__(self, store: MarkStore, *, interval: float, max_age: float) -> None:
        self.store = store
        self.interval = interval
        self.max_age = max_age
        self._task: asyncio.Task[None] | None = None

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="rater-expiry")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> int:
        logger.debug("expiry.start", max_age=self.max_age)
        try:
            removed = await self.store.purge_older_than(self.max_age)
        except StoreUnavailable as exc:
            logger.error("expiry.failed", error=str(exc))
            return 0
        logger.debug("expiry.purged", removed=removed, max_age=self.max_age)
        return removed

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
