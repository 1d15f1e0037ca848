from __future__ import annotations

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from rbxlsp.engine.errors import ProtocolError, ResponseError
from rbxlsp.engine.protocol import JsonRpcConnection, encode_message, read_message


def _reader(data: bytes) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    reader.feed_eof()
    return reader


def test_encode_message_frames_utf8_body() -> None:
    frame = encode_message({"jsonrpc": "2.0", "method": "$/status/report", "params": {"text": "é"}})

    header, body = frame.split(b"\r\n\r\n", 1)
    assert header == b"Content-Length: %d" % len(body)
    assert json.loads(body.decode("utf-8"))["params"]["text"] == "é"


@pytest.mark.asyncio
async def test_read_message_sequence_then_eof() -> None:
    first = {"jsonrpc": "2.0", "id": 1, "result": None}
    second = {"jsonrpc": "2.0", "method": "$/status/show"}
    reader = _reader(encode_message(first) + encode_message(second))

    assert await read_message(reader) == first
    assert await read_message(reader) == second
    assert await read_message(reader) is None


@pytest.mark.asyncio
async def test_read_message_accepts_extra_headers() -> None:
    body = b'{"jsonrpc":"2.0","method":"x"}'
    data = (
        b"Content-Type: application/vscode-jsonrpc; charset=utf-8\r\n"
        b"content-length: %d\r\n\r\n" % len(body)
    ) + body

    assert await read_message(_reader(data)) == {"jsonrpc": "2.0", "method": "x"}


@pytest.mark.asyncio
async def test_read_message_missing_length() -> None:
    with pytest.raises(ProtocolError, match="Invalid headers"):
        await read_message(_reader(b"X-Other: 1\r\n\r\n{}"))


@pytest.mark.asyncio
async def test_non_numeric_length_skips_to_next_frame() -> None:
    valid = {"jsonrpc": "2.0", "method": "ok"}
    reader = _reader(b"Content-Length: abc\r\n\r\n{\"a\":1}" + encode_message(valid))

    assert await read_message(reader) == valid
    assert await read_message(reader) is None


@pytest.mark.asyncio
async def test_zero_length_skips_to_next_frame() -> None:
    valid = {"jsonrpc": "2.0", "id": 4, "result": 1}
    reader = _reader(b"Content-Length: 0\r\n\r\n" + encode_message(valid))

    assert await read_message(reader) == valid


@pytest.mark.asyncio
async def test_read_message_rejects_non_object() -> None:
    body = b"[1, 2]"
    with pytest.raises(ProtocolError, match="JSON object"):
        await read_message(_reader(b"Content-Length: %d\r\n\r\n" % len(body) + body))


@pytest.mark.asyncio
async def test_read_message_rejects_bad_json() -> None:
    body = b"{nope"
    with pytest.raises(ProtocolError, match="Undecodable"):
        await read_message(_reader(b"Content-Length: %d\r\n\r\n" % len(body) + body))


@pytest.mark.asyncio
async def test_truncated_body_is_eof() -> None:
    assert await read_message(_reader(b"Content-Length: 50\r\n\r\n{}")) is None


def test_response_error_carries_payload() -> None:
    exc = ResponseError({"code": -32601, "message": "Method not found", "data": {"m": "x"}})

    assert exc.code == -32601
    assert exc.message == "Method not found"
    assert exc.data == {"m": "x"}
    assert "Method not found" in str(exc)


@pytest.mark.asyncio
async def test_close_cancels_unanswered_backend_requests() -> None:
    reader = asyncio.StreamReader()
    writer = MagicMock()
    connection = JsonRpcConnection(reader, writer)
    entered = asyncio.Event()
    cancelled: list[bool] = []

    async def slow(params):
        entered.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled.append(True)
            raise

    connection.on_request("workspace/slow", slow)
    connection.start(lambda method, params: None)
    reader.feed_data(encode_message({"jsonrpc": "2.0", "id": 9, "method": "workspace/slow"}))
    await asyncio.wait_for(entered.wait(), timeout=1)

    await connection.close()

    assert cancelled == [True]
    assert connection.closed
    writer.write.assert_not_called()
    writer.close.assert_called_once()
