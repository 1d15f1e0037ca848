"""HTTP ingress bridge for external DataModel snapshots.

A Studio-side plugin posts full-state snapshots of the game tree. Each
valid snapshot is forwarded to the active backend session as
``$/updateDataModel`` and kept as the single "last accepted" payload.
This is a most-recent-wins slot, not a queue: a snapshot supersedes
everything before it.

Routes:
    POST /update   {"DataModel": ..., "Version": ...}
    GET  /last     raw text of the last accepted DataModel
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

from aiohttp import web

from rbxlsp.adapters.events import UPDATE_DATAMODEL
from rbxlsp.adapters.shell import EditorShell
from rbxlsp.engine.errors import ForwardingError, RbxLspError
from rbxlsp.engine.manager import SessionManager
from rbxlsp.engine.models import BridgePayload

logger = logging.getLogger(__name__)

DEFAULT_BODY_LIMIT = 10 * 1024 * 1024


def _reject(reason: str) -> web.Response:
    return web.json_response({"success": False, "reason": reason}, status=400)


class BridgeServer:
    """Local HTTP listener forwarding snapshots to the active session."""

    def __init__(
        self,
        manager: SessionManager,
        shell: EditorShell | None = None,
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        body_limit: int = DEFAULT_BODY_LIMIT,
    ) -> None:
        self._manager = manager
        self._shell = shell
        self._host = host
        self._port = port
        self._last: BridgePayload | None = None
        self._runner: web.AppRunner | None = None
        self.app = web.Application(
            middlewares=[self._request_logging_middleware],
            client_max_size=body_limit,
        )
        self._setup_routes()

    @property
    def last_payload(self) -> BridgePayload | None:
        return self._last

    @property
    def port(self) -> int:
        return self._port

    @property
    def running(self) -> bool:
        return self._runner is not None

    # ── Middleware ──

    @web.middleware
    async def _request_logging_middleware(self, request: web.Request, handler) -> web.StreamResponse:
        req_id = str(uuid.uuid4())[:8]
        start = time.monotonic()
        logger.info("HTTP %s %s req=%s from=%s", request.method, request.path_qs, req_id, request.remote)
        try:
            response = await handler(request)
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.info(
                "HTTP %s %s req=%s status=%s duration_ms=%.1f",
                request.method, request.path_qs, req_id,
                getattr(response, "status", "?"), elapsed_ms,
            )
            return response
        except Exception:
            elapsed_ms = (time.monotonic() - start) * 1000
            logger.exception("HTTP %s %s req=%s failed duration_ms=%.1f", request.method, request.path_qs, req_id, elapsed_ms)
            raise

    # ── Route setup ──

    def _setup_routes(self) -> None:
        r = self.app.router
        r.add_post("/update", self._handle_update)
        r.add_get("/last", self._handle_last)

    # ── Handlers ──

    async def _handle_update(self, request: web.Request) -> web.Response:
        body: Any = None
        if request.can_read_body:
            try:
                body = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError):
                body = None
        if not isinstance(body, dict) or not body:
            return _reject("Missing JSON")
        datamodel = body.get("DataModel")
        if not datamodel:
            return _reject("Missing body.DataModel")

        version = body.get("Version")
        payload = BridgePayload(
            datamodel=datamodel,
            version=str(version) if version is not None else None,
        )
        if await self._forward(payload):
            self._last = payload
        return web.json_response({"success": True})

    async def _forward(self, payload: BridgePayload) -> bool:
        """Send *payload* to the active session. Failures are shown, not raised."""
        try:
            session = self._manager.active_session()
            if session is None:
                raise ForwardingError(UPDATE_DATAMODEL, "no running session")
            await session.notify(
                UPDATE_DATAMODEL,
                {"datamodel": payload.datamodel, "version": payload.version},
            )
        except RbxLspError as exc:
            logger.warning("Bridge: %s", exc)
            if self._shell is not None:
                self._shell.show_error(f"Roblox LSP: {exc}")
            return False
        logger.debug(
            "Bridge: forwarded snapshot version=%s received_at=%.3f to %s",
            payload.version, payload.received_at, session.key,
        )
        return True

    async def _handle_last(self, request: web.Request) -> web.Response:
        if self._last is None:
            return web.Response(text="")
        datamodel = self._last.datamodel
        if isinstance(datamodel, str):
            return web.Response(text=datamodel)
        return web.Response(text=json.dumps(datamodel), content_type="application/json")

    # ── Lifecycle ──

    async def start(self) -> int | None:
        """Bind the listener and return its port, or None when disabled."""
        if self._port <= 0:
            logger.info("Bridge disabled (port=%s)", self._port)
            return None
        if self._runner is not None:
            return self._port
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        logger.info("Bridge listening on %s:%d", self._host, self._port)
        return self._port

    async def stop(self) -> None:
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
            logger.info("Bridge stopped")
