import asyncio

import pytest

from rater.__main__ import main
from rater.app import RaterService
from rater.config import Settings
from rater.stores.base import StoreUnavailable


def test_service_answers_over_tcp_and_closes_store(catalog):
    service = RaterService(Settings(port=0, control_enabled=False), catalog)

    async def scenario():
        await service.start()
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", service.line_server.bound_port)
            writer.write(b"user joey\n")
            await writer.drain()
            reply = await reader.read()
            writer.close()
            await writer.wait_closed()
        finally:
            await service.stop()
        with pytest.raises(StoreUnavailable):
            await service.store.size()
        return reply

    assert asyncio.run(scenario()) == b"0 1/5\r\n"


def test_service_with_sql_backend(catalog):
    service = RaterService(Settings(port=0, control_enabled=False, store_backend="sql"), catalog)

    async def scenario():
        await service.start()
        try:
            return [(await service.engine.decide("user bob")).report() for _ in range(2)]
        finally:
            await service.stop()

    assert asyncio.run(scenario()) == ["0 1/1", "1 2/1"]


def test_shutdown_request_ends_run(catalog):
    service = RaterService(Settings(port=0, control_enabled=False), catalog)

    async def scenario():
        runner = asyncio.create_task(service.run())
        await asyncio.sleep(0.05)
        service.request_shutdown()
        await asyncio.wait_for(runner, timeout=2)

    asyncio.run(scenario())


def test_cli_check_accepts_valid_config(tmp_path):
    path = tmp_path / "rater.toml"
    path.write_text('[limits]\nip = [["*", 60, 10]]\n', encoding="utf-8")
    assert main(["--config", str(path), "--check"]) == 0


def test_cli_refuses_bad_config(tmp_path):
    path = tmp_path / "rater.toml"
    path.write_text("[settings]\nport = 1\n", encoding="utf-8")
    assert main(["--config", str(path)]) == 2
