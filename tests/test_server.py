import asyncio

from rater.server import LineServer


async def _exchange(port: int, payload: bytes, *, eof: bool = False) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    writer.write(payload)
    await writer.drain()
    if eof:
        writer.write_eof()
    reply = await reader.read()
    writer.close()
    await writer.wait_closed()
    return reply


def run_server(engine, scenario, **kwargs):
    async def wrapper():
        server = LineServer(engine, host="127.0.0.1", port=0, **kwargs)
        await server.start()
        try:
            return await scenario(server.bound_port)
        finally:
            await server.stop()

    return asyncio.run(wrapper())


def test_reply_then_close(engine):
    async def scenario(port):
        return [await _exchange(port, b"ip 10.0.0.4\r\n") for _ in range(2)]

    assert run_server(engine, scenario) == [b"0 1/10\r\n", b"0 2/10\r\n"]


def test_error_replies(engine):
    async def scenario(port):
        return (
            await _exchange(port, b"badlinewithoutspace\n"),
            await _exchange(port, b"nosuchclass foo\n"),
        )

    assert run_server(engine, scenario) == (
        b"2 Bad Input (no space)\r\n",
        b"2 Class not found: nosuchclass foo\r\n",
    )


def test_line_split_across_writes(engine):
    async def scenario(port):
        reader, writer = await asyncio.open_connection("127.0.0.1", port)
        writer.write(b"user jo")
        await writer.drain()
        await asyncio.sleep(0.05)
        writer.write(b"ey\n")
        await writer.drain()
        reply = await reader.read()
        writer.close()
        await writer.wait_closed()
        return reply

    assert run_server(engine, scenario) == b"0 1/5\r\n"


def test_line_too_long(engine):
    async def scenario(port):
        return await _exchange(port, b"ip " + b"x" * 20 + b"\n")

    assert run_server(engine, scenario, max_line_length=10) == b"1 Line is too long\r\n"


def test_line_too_long_code_is_configurable(engine):
    async def scenario(port):
        return await _exchange(port, b"ip " + b"x" * 20 + b"\n")

    assert run_server(engine, scenario, max_line_length=10, line_too_long_code=2) == b"2 Line is too long\r\n"


def test_line_at_limit_is_accepted(engine):
    line = b"ip 10.0.0." + b"9" * 3

    async def scenario(port):
        return await _exchange(port, line + b"\r\n")

    # The trailing CR still counts towards the limit.
    assert run_server(engine, scenario, max_line_length=len(line) + 1) == b"0 1/10\r\n"


def test_eof_before_newline_gets_no_reply(engine):
    async def scenario(port):
        return await _exchange(port, b"ip 10.0.0.4", eof=True)

    assert run_server(engine, scenario) == b""
    assert engine.stats == {}
