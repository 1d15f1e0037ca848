"""One backend subprocess plus its protocol connection.

A ClientSession owns its process handle from ``start()`` until ``stop()``
returns: every exit path (stop, failed handshake, crash) ends with the
process reaped and the session in STOPPED.
"""
from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Callable, Sequence
from typing import Any

from rbxlsp.adapters.event_bus import EventBus
from rbxlsp.adapters.events import notification_to_event

from .errors import (
    ConnectionClosedError,
    ForwardingError,
    LaunchError,
    RbxLspError,
    SessionNotReadyError,
)
from .lifecycle import BUFFERING_STATES, validate_transition
from .models import RootSettings, SessionState, WorkspaceRoot
from .protocol import JsonRpcConnection

logger = logging.getLogger(__name__)

DEFAULT_SESSION_KEY = "<default>"
# Wait after SIGTERM before escalating to SIGKILL.
KILL_GRACE_SECONDS = 2.0

ExitCallback = Callable[["ClientSession"], None]


class ClientSession:
    """A running (or starting) backend connection scoped to one root."""

    def __init__(
        self,
        root: WorkspaceRoot | None,
        settings: RootSettings,
        command: Sequence[str],
        *,
        request_timeout: float = 30.0,
        queue_size: int = 5000,
    ) -> None:
        self.root = root
        self.settings = settings
        self.command = list(command)
        self.events = EventBus(maxsize=queue_size)
        self.started_at: float | None = None
        self._request_timeout = request_timeout
        self._state = SessionState.UNSTARTED
        self._process: asyncio.subprocess.Process | None = None
        self._connection: JsonRpcConnection | None = None
        self._stderr_task: asyncio.Task[None] | None = None
        self._reap_task: asyncio.Task[None] | None = None
        self._outbox: list[tuple[str, Any]] = []
        self._stopping = False
        self._exit_callbacks: list[ExitCallback] = []

    def __repr__(self) -> str:
        return f"ClientSession({self.key!r}, state={self._state.value})"

    @property
    def key(self) -> str:
        return self.root.key if self.root is not None else DEFAULT_SESSION_KEY

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def is_running(self) -> bool:
        if self._state not in (SessionState.STARTING, SessionState.READY):
            return False
        return self._process is None or self._process.returncode is None

    @property
    def pending_notifications(self) -> int:
        return len(self._outbox)

    def add_exit_callback(self, callback: ExitCallback) -> None:
        """Called once if the backend goes away without stop() being asked."""
        self._exit_callbacks.append(callback)

    def _transition(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.debug("Session %s: %s -> %s", self.key, self._state.value, target.value)
        self._state = target

    # ── Startup ──

    def _initialize_params(self) -> dict[str, Any]:
        folders = None
        if self.root is not None:
            folders = [{"uri": self.root.uri, "name": self.root.name}]
        return {
            "processId": os.getpid(),
            "clientInfo": {"name": "rbxlsp"},
            "rootUri": self.root.uri if self.root is not None else None,
            "rootPath": self.root.path if self.root is not None else None,
            "workspaceFolders": folders,
            "capabilities": {
                "workspace": {"configuration": True, "workspaceFolders": True},
                "window": {"workDoneProgress": True},
            },
            "initializationOptions": {},
        }

    async def start(self) -> None:
        """Spawn the backend and run the initialize handshake.

        Raises LaunchError when the executable cannot be spawned or the
        handshake fails. Returns quietly if stop() raced the startup.
        """
        self._transition(SessionState.STARTING)
        cwd = self.root.path if self.root is not None and os.path.isdir(self.root.path) else None
        logger.info("Session %s: launching %s", self.key, self.command[0] if self.command else "<empty>")
        try:
            if not self.command:
                raise OSError("empty backend command")
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as exc:
            self._fail_startup()
            raise LaunchError(self.key, str(exc)) from exc
        if self._stopping:
            await self._shutdown_process(grace=0.0)
            return

        assert self._process.stdout is not None and self._process.stdin is not None
        self._stderr_task = asyncio.create_task(
            self._read_stderr(), name=f"backend-stderr:{self.key}"
        )
        self._connection = JsonRpcConnection(
            self._process.stdout,
            self._process.stdin,
            name=f"backend:{self.key}",
            request_timeout=self._request_timeout,
        )
        self._connection.on_request("workspace/configuration", _empty_configuration)
        self._connection.start(self._on_notification, self._on_transport_closed)

        try:
            await self._connection.request("initialize", self._initialize_params())
            await self._connection.notify("initialized", {})
        except (RbxLspError, asyncio.TimeoutError, OSError) as exc:
            if self._stopping:
                return
            self._stopping = True
            await self._shutdown_process(grace=0.0)
            self._fail_startup()
            raise LaunchError(self.key, f"initialize failed: {exc!r}") from exc

        if self._state is not SessionState.STARTING:
            # stop() or a crash won the race; nothing left to do.
            return
        self.started_at = time.time()
        self._flush_outbox()
        logger.info("Session %s: ready (pid=%s)", self.key, self.pid)
        try:
            await self._connection.drain()
        except ConnectionClosedError:
            logger.warning("Session %s: transport closed while flushing", self.key)

    def _fail_startup(self) -> None:
        if self._state is not SessionState.STOPPED:
            self._transition(SessionState.STOPPED)
        self._outbox.clear()
        self.events.close()

    def _flush_outbox(self) -> None:
        """Write buffered notifications, then become READY, without yielding."""
        assert self._connection is not None
        pending, self._outbox = self._outbox, []
        for method, params in pending:
            self._connection.write_notification(method, params)
        if pending:
            logger.debug("Session %s: flushed %d buffered notification(s)", self.key, len(pending))
        self._transition(SessionState.READY)

    async def _read_stderr(self) -> None:
        if self._process is None or self._process.stderr is None:
            return
        try:
            while True:
                line = await self._process.stderr.readline()
                if not line:
                    break
                logger.debug(
                    "Session %s stderr: %s",
                    self.key, line.decode("utf-8", errors="replace").rstrip(),
                )
        except asyncio.CancelledError:
            pass

    # ── Messaging ──

    def _on_notification(self, method: str, params: Any) -> None:
        event = notification_to_event(method, params, root_key=self.key)
        if event is None:
            logger.debug("Session %s: unhandled notification %s", self.key, method)
            return
        self.events.publish(event)

    async def notify(self, method: str, params: Any = None) -> None:
        """Send a notification, buffering it while the session starts."""
        if self._state in BUFFERING_STATES:
            self._outbox.append((method, params))
            return
        if self._state is not SessionState.READY or self._connection is None:
            raise SessionNotReadyError(method, self.key, self._state.value)
        try:
            await self._connection.notify(method, params)
        except ConnectionClosedError as exc:
            raise ForwardingError(method, str(exc)) from exc

    # ── Shutdown ──

    def _on_transport_closed(self) -> None:
        if self._stopping:
            return
        logger.warning(
            "Session %s: backend exited unexpectedly (state=%s)",
            self.key, self._state.value,
        )
        if self._state is not SessionState.STOPPED:
            self._transition(SessionState.STOPPED)
        self._outbox.clear()
        self.events.close()
        for callback in self._exit_callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception("Session %s: exit callback failed", self.key)
        self._reap_task = asyncio.create_task(
            self._shutdown_process(grace=KILL_GRACE_SECONDS),
            name=f"backend-reap:{self.key}",
        )

    async def stop(self, timeout: float = 5.0) -> None:
        """Ask the backend to shut down, escalating to terminate/kill."""
        if self._stopping:
            return
        self._stopping = True
        if self._reap_task is not None:
            # Crashed earlier; just finish reaping.
            await self._reap_task
            return
        was_ready = self._state is SessionState.READY
        if self._state is not SessionState.STOPPED:
            self._transition(SessionState.STOPPED)
        self._outbox.clear()

        connection = self._connection
        if was_ready and connection is not None and not connection.closed:
            try:
                await connection.request("shutdown", None, timeout=timeout)
                await connection.notify("exit")
            except (RbxLspError, asyncio.TimeoutError, OSError) as exc:
                logger.debug("Session %s: graceful shutdown failed: %r", self.key, exc)
        await self._shutdown_process(grace=timeout if was_ready else 0.0)
        logger.info("Session %s: stopped", self.key)

    async def _shutdown_process(self, grace: float) -> None:
        proc = self._process
        if proc is not None and proc.returncode is None:
            exited = False
            if grace > 0:
                try:
                    await asyncio.wait_for(proc.wait(), timeout=grace)
                    exited = True
                except asyncio.TimeoutError:
                    pass
            if not exited:
                try:
                    proc.terminate()
                    await asyncio.wait_for(proc.wait(), timeout=KILL_GRACE_SECONDS)
                except ProcessLookupError:
                    pass
                except asyncio.TimeoutError:
                    logger.warning("Session %s: backend ignored SIGTERM, killing", self.key)
                    self.kill()
                    await proc.wait()
        if self._connection is not None:
            await self._connection.close()
        if self._stderr_task is not None and not self._stderr_task.done():
            self._stderr_task.cancel()
        self.events.close()

    def kill(self) -> None:
        """Force-kill the backend without waiting."""
        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass


def _empty_configuration(params: Any) -> list[Any]:
    items = params.get("items") if isinstance(params, dict) else None
    return [None] * len(items or [])
