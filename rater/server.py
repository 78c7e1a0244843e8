from __future__ import annotations

import asyncio

from .engine import DecisionEngine
from .logging_config import logger

READ_CHUNK = 100


class LineTooLong(Exception):
    def __init__(self, size: int) -> None:
        super().__init__(f"line too long ({size} bytes)")
        self.size = size


class LineServer:
    """One request line per connection, one reply line, then close."""

    def __init__(
        self,
        engine: DecisionEngine,
        *,
        host: str = "127.0.0.1",
        port: int = 1999,
        max_line_length: int = 1000,
        line_too_long_code: int = 1,
        read_timeout: float = 10.0,
    ) -> None:
        self.engine = engine
        self.host = host
        self.port = port
        self.max_line_length = max_line_length
        self.line_too_long_code = line_too_long_code
        self.read_timeout = read_timeout
        self._server: asyncio.Server | None = None

    @property
    def bound_port(self) -> int:
        if not self._server or not self._server.sockets:
            return self.port
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, self.host, self.port)
        logger.info("server.listening", address=self.host, port=self.bound_port)

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("server.stopped")

    async def _read_line(self, reader: asyncio.StreamReader) -> str | None:
        buffer = bytearray()
        while True:
            chunk = await reader.read(READ_CHUNK)
            if not chunk:
                return None
            newline = chunk.find(b"\n")
            if newline >= 0:
                buffer += chunk[:newline]
            else:
                buffer += chunk
            if len(buffer) > self.max_line_length:
                raise LineTooLong(len(buffer))
            if newline >= 0:
                return buffer.decode("utf-8", errors="replace")

    async def _handle(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        try:
            try:
                line = await asyncio.wait_for(self._read_line(reader), timeout=self.read_timeout)
            except LineTooLong as exc:
                logger.error("request.line_too_long", peer=str(peer), size=exc.size)
                await self._reply(writer, f"{self.line_too_long_code} Line is too long")
                return
            except asyncio.TimeoutError:
                logger.info("request.read_timeout", peer=str(peer))
                return
            if line is None:
                logger.info("request.closed_early", peer=str(peer))
                return
            logger.debug("request.received", peer=str(peer), line=line)
            verdict = await self.engine.decide(line)
            await self._reply(writer, verdict.report())
        except ConnectionError as exc:
            logger.info("connection.error", peer=str(peer), error=str(exc))
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _reply(self, writer: asyncio.StreamWriter, message: str) -> None:
        writer.write(f"{message}\r\n".encode("utf-8"))
        await writer.drain()
