"""JSON-RPC over stdio with ``Content-Length`` framing.

One ``JsonRpcConnection`` wraps the stdin/stdout pair of a backend
subprocess. A single reader task dispatches frames in arrival order:
responses resolve pending request futures, notifications go to the
notification handler synchronously, and backend-originated requests are
answered from the registered request handlers (or with ``null``).
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Callable
from typing import Any

from .errors import ConnectionClosedError, ProtocolError, ResponseError

logger = logging.getLogger(__name__)

CONTENT_LENGTH = "content-length"
HEADER_MARKER = b"Content-Length:"
MAX_HEADER_BYTES = 4096

NotificationHandler = Callable[[str, Any], None]
RequestHandler = Callable[[Any], Any]


def encode_message(payload: dict[str, Any]) -> bytes:
    """Frame a JSON-RPC payload for the wire."""
    body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    header = f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
    return header + body


async def _read_headers(
    reader: asyncio.StreamReader, pending: bytes = b""
) -> dict[str, str] | None:
    """Read one header block, starting with *pending* if given. None on EOF."""
    headers: dict[str, str] = {}
    header_bytes = 0
    while True:
        if pending:
            raw, pending = pending, b""
        else:
            try:
                raw = await reader.readline()
            except (asyncio.IncompleteReadError, ConnectionResetError):
                return None
            except ValueError as exc:
                raise ProtocolError(f"Header line too long: {exc}") from exc
            if not raw:
                return None
        header_bytes += len(raw)
        if header_bytes > MAX_HEADER_BYTES:
            raise ProtocolError("Excessively long header block")
        line = raw.decode("ascii", errors="replace").strip()
        if not line:
            if headers:
                return headers
            continue
        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        headers[name.strip().lower()] = value.strip()


def _content_length(headers: dict[str, str]) -> int | None:
    try:
        length = int(headers.get(CONTENT_LENGTH, ""))
    except ValueError:
        return None
    return length if length > 0 else None


async def _skip_to_next_header(reader: asyncio.StreamReader) -> bytes | None:
    """Discard input up to the next ``Content-Length:`` header.

    Returns that header line, or None when the stream ends first.
    """
    try:
        while True:
            try:
                await reader.readuntil(HEADER_MARKER)
                break
            except asyncio.LimitOverrunError as exc:
                await reader.readexactly(exc.consumed)
        rest = await reader.readline()
    except (asyncio.IncompleteReadError, ConnectionResetError, ValueError):
        return None
    return HEADER_MARKER + rest


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any] | None:
    """Read one framed message. Returns None on a clean EOF.

    A frame whose headers carry no usable length is dropped together with
    its body: input is skipped up to the next ``Content-Length:`` header
    and that frame is read instead. ProtocolError is raised when no frame
    follows a dropped one, and for bodies that cannot be decoded. In the
    latter case the stream is still positioned at the next frame.
    """
    pending = b""
    while True:
        try:
            headers = await _read_headers(reader, pending)
        except ProtocolError as exc:
            problem = str(exc)
        else:
            if headers is None:
                return None
            length = _content_length(headers)
            if length is not None:
                break
            problem = f"Invalid headers: {headers!r}"
        logger.warning("Skipping to next frame after malformed headers: %s", problem)
        next_header = await _skip_to_next_header(reader)
        if next_header is None:
            raise ProtocolError(problem)
        pending = next_header

    try:
        body = await reader.readexactly(length)
    except asyncio.IncompleteReadError:
        return None
    try:
        decoded = json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ProtocolError(f"Undecodable body: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ProtocolError(f"Expected a JSON object, got {type(decoded).__name__}")
    return decoded


class JsonRpcConnection:
    """Bidirectional JSON-RPC endpoint over an asyncio stream pair."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        name: str = "backend",
        request_timeout: float = 30.0,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._name = name
        self._request_timeout = request_timeout
        self._next_id = 1
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._request_handlers: dict[str, RequestHandler] = {}
        self._notification_handler: NotificationHandler | None = None
        self._on_close: Callable[[], None] | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._answer_tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def on_request(self, method: str, handler: RequestHandler) -> None:
        self._request_handlers[method] = handler

    def start(
        self,
        on_notification: NotificationHandler,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._notification_handler = on_notification
        self._on_close = on_close
        self._reader_task = asyncio.create_task(
            self._reader_loop(), name=f"jsonrpc-reader:{self._name}"
        )

    # ── Outbound ──

    def write_notification(self, method: str, params: Any = None) -> None:
        """Queue a notification frame on the transport without draining."""
        if self._closed:
            raise ConnectionClosedError(f"{self._name}: transport closed")
        payload: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            payload["params"] = params
        self._writer.write(encode_message(payload))

    async def drain(self) -> None:
        try:
            await self._writer.drain()
        except (ConnectionResetError, BrokenPipeError) as exc:
            raise ConnectionClosedError(f"{self._name}: {exc}") from exc

    async def notify(self, method: str, params: Any = None) -> None:
        self.write_notification(method, params)
        await self.drain()

    async def request(
        self,
        method: str,
        params: Any = None,
        *,
        timeout: float | None = None,
    ) -> Any:
        if self._closed:
            raise ConnectionClosedError(f"{self._name}: transport closed")
        request_id = self._next_id
        self._next_id += 1
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            payload["params"] = params
        try:
            self._writer.write(encode_message(payload))
            await self.drain()
            return await asyncio.wait_for(
                future,
                timeout=timeout if timeout is not None else self._request_timeout,
            )
        finally:
            self._pending.pop(request_id, None)

    # ── Inbound ──

    async def _reader_loop(self) -> None:
        try:
            while True:
                try:
                    message = await read_message(self._reader)
                except ProtocolError as exc:
                    logger.warning("%s: dropping malformed frame: %s", self._name, exc)
                    continue
                if message is None:
                    logger.info("%s: transport reached EOF", self._name)
                    break
                self._dispatch(message)
        except asyncio.CancelledError:
            pass
        finally:
            self._mark_closed()

    def _dispatch(self, message: dict[str, Any]) -> None:
        method = message.get("method")
        msg_id = message.get("id")
        if method is None and msg_id is not None:
            future = self._pending.get(msg_id)
            if future is None or future.done():
                logger.debug("%s: response for unknown request id %r", self._name, msg_id)
                return
            if "error" in message:
                future.set_exception(ResponseError(message["error"] or {}))
            else:
                future.set_result(message.get("result"))
            return
        if method is None:
            logger.warning("%s: ignoring message without method: %r", self._name, message)
            return
        if msg_id is not None:
            task = asyncio.create_task(self._answer(msg_id, method, message.get("params")))
            self._answer_tasks.add(task)
            task.add_done_callback(self._answer_tasks.discard)
            return
        if self._notification_handler is None:
            return
        try:
            self._notification_handler(method, message.get("params"))
        except Exception:
            logger.exception("%s: notification handler failed for %s", self._name, method)

    async def _answer(self, msg_id: Any, method: str, params: Any) -> None:
        handler = self._request_handlers.get(method)
        response: dict[str, Any] = {"jsonrpc": "2.0", "id": msg_id}
        try:
            result = handler(params) if handler is not None else None
            if inspect.isawaitable(result):
                result = await result
            response["result"] = result
        except Exception as exc:
            logger.exception("%s: request handler failed for %s", self._name, method)
            response["error"] = {"code": -32603, "message": str(exc)}
        if self._closed:
            return
        try:
            self._writer.write(encode_message(response))
            await self.drain()
        except ConnectionClosedError:
            logger.debug("%s: could not answer %s, transport closed", self._name, method)

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(
                    ConnectionClosedError(f"{self._name}: transport closed")
                )
        self._pending.clear()
        if self._on_close is not None:
            try:
                self._on_close()
            except Exception:
                logger.exception("%s: close callback failed", self._name)

    async def close(self) -> None:
        """Stop reading and close the write side."""
        task = self._reader_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        answers = list(self._answer_tasks)
        for answer in answers:
            answer.cancel()
        if answers:
            await asyncio.gather(*answers, return_exceptions=True)
        self._mark_closed()
        try:
            self._writer.close()
        except (ConnectionResetError, BrokenPipeError, RuntimeError):
            pass
