from __future__ import annotations

import asyncio
import contextlib
import signal
import time
from collections.abc import Iterator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .catalog import Catalog
from .config import Settings
from .engine import DecisionEngine
from .logging_config import logger
from .routes import health, limits
from .scheduler import ExpiryScheduler
from .server import LineServer
from .stores.base import Clock, MarkStore, system_clock
from .stores.factory import build_store

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def create_control_app(service: "RaterService") -> FastAPI:
    app = FastAPI(title=f"{service.settings.app_name} control", version="1.0.0")
    app.state.service = service

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        logger.warning("value.error", path=str(request.url), reason=str(exc))
        return JSONResponse(status_code=400, content={"error_code": "VALUE_ERROR", "message": str(exc)})

    app.include_router(health.router)
    app.include_router(limits.router)
    return app


class _ControlServer(uvicorn.Server):
    """uvicorn server that leaves signal handling to the owning service."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class RaterService:
    def __init__(
        self,
        settings: Settings,
        catalog: Catalog,
        *,
        store: MarkStore | None = None,
        clock: Clock = system_clock,
    ) -> None:
        self.settings = settings
        self.catalog = catalog
        self.store = store if store is not None else build_store(settings, clock=clock)
        self.engine = DecisionEngine(
            catalog,
            self.store,
            clock=clock,
            count_scope=settings.count_scope,
            store_timeout=settings.store_timeout_seconds,
        )
        self.line_server = LineServer(
            self.engine,
            host=settings.address,
            port=settings.port,
            max_line_length=settings.max_line_length,
            line_too_long_code=settings.line_too_long_code,
            read_timeout=settings.read_timeout_seconds,
        )
        self.scheduler = ExpiryScheduler(
            self.store,
            interval=settings.expiration_timer,
            max_age=settings.max_age,
        )
        self.control_app = create_control_app(self)
        self._control_server: _ControlServer | None = None
        self._control_task: asyncio.Task[None] | None = None
        self._shutdown: asyncio.Event | None = None
        self.started_at = time.monotonic()

    async def start(self) -> None:
        await self.store.open()
        await self.line_server.start()
        self.scheduler.start()
        if self.settings.control_enabled:
            config = uvicorn.Config(
                self.control_app,
                host=self.settings.control_address,
                port=self.settings.control_port,
                log_config=None,
                lifespan="off",
            )
            self._control_server = _ControlServer(config)
            self._control_task = asyncio.create_task(self._control_server.serve(), name="rater-control")
        self.started_at = time.monotonic()
        logger.info(
            "service.start",
            address=self.settings.address,
            port=self.line_server.bound_port,
            control=self.settings.control_enabled,
            classes=len(self.catalog),
        )

    async def stop(self) -> None:
        await self.line_server.stop()
        await self.scheduler.stop()
        if self._control_server is not None and self._control_task is not None:
            self._control_server.should_exit = True
            await self._control_task
            self._control_server = None
            self._control_task = None
        await self.store.close()
        logger.info("service.stop")

    def request_shutdown(self, signum: int | None = None) -> None:
        if signum is not None:
            logger.info("service.signal", signal=signal.Signals(signum).name)
        if self._shutdown is not None:
            self._shutdown.set()

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        self._shutdown = asyncio.Event()
        for signum in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(signum, self.request_shutdown, signum)
        try:
            await self.start()
            await self._shutdown.wait()
        finally:
            for signum in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(signum)
            await self.stop()
