"""Protocol client lifecycle manager.

Sole owner of the root-identity -> ClientSession map. Guarantees at most
one live session per root: a session is registered before its launch is
awaited, so concurrent document events for the same root share it.
Crashed sessions are dropped, never restarted; the next qualifying
document event starts a fresh one.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from .config import ClientConfig
from .errors import LaunchError
from .launcher import backend_command
from .models import RootSettings, SessionState, WorkspaceRoot
from .session import DEFAULT_SESSION_KEY, ClientSession
from .settings import SettingsStore

logger = logging.getLogger(__name__)

SessionFactory = Callable[[WorkspaceRoot | None, RootSettings], ClientSession]
ReadyHook = Callable[[ClientSession], None]
ErrorReporter = Callable[[str], None]


def _key_for(root: WorkspaceRoot | None) -> str:
    return root.key if root is not None else DEFAULT_SESSION_KEY


class SessionManager:
    """Creates, tracks and stops one backend session per workspace root."""

    def __init__(
        self,
        config: ClientConfig,
        settings: SettingsStore,
        *,
        session_factory: SessionFactory | None = None,
        on_ready: ReadyHook | None = None,
        report_error: ErrorReporter | None = None,
    ) -> None:
        self._config = config
        self._settings = settings
        self._session_factory = session_factory
        self._on_ready = on_ready
        self._report_error = report_error
        self._sessions: dict[str, ClientSession] = {}
        self._last_started: str | None = None

    @property
    def sessions(self) -> dict[str, ClientSession]:
        return dict(self._sessions)

    def get(self, root: WorkspaceRoot | None) -> ClientSession | None:
        return self._sessions.get(_key_for(root))

    def set_ready_hook(self, hook: ReadyHook | None) -> None:
        self._on_ready = hook

    def _create_session(self, root: WorkspaceRoot | None) -> ClientSession:
        snapshot = self._settings.for_root(root)
        if self._session_factory is not None:
            return self._session_factory(root, snapshot)
        command = backend_command(self._config.server_dir, snapshot)
        return ClientSession(
            root,
            snapshot,
            command,
            request_timeout=self._config.request_timeout_seconds,
            queue_size=self._config.event_queue_size,
        )

    def _report_launch_error(self, exc: LaunchError) -> None:
        logger.error("%s", exc)
        if self._report_error is not None:
            self._report_error(f"Roblox LSP: {exc}")

    async def ensure_started(self, root: WorkspaceRoot | None) -> ClientSession | None:
        """Return the live session for *root*, launching one if needed.

        Returns None when the backend could not be launched; the error has
        already been reported and the next call retries from scratch.
        """
        key = _key_for(root)
        existing = self._sessions.get(key)
        if existing is not None and existing.is_running:
            return existing
        if existing is not None:
            logger.info("Session %s: replacing stopped session", key)
            del self._sessions[key]

        try:
            session = self._create_session(root)
        except LaunchError as exc:
            self._report_launch_error(exc)
            return None

        self._sessions[key] = session
        session.add_exit_callback(self._on_session_exit)
        try:
            await session.start()
        except LaunchError as exc:
            if self._sessions.get(key) is session:
                del self._sessions[key]
            self._report_launch_error(exc)
            return None

        if session.state is not SessionState.READY:
            logger.info("Session %s: stopped during startup", key)
            return None

        self._last_started = key
        if self._on_ready is not None:
            try:
                self._on_ready(session)
            except Exception:
                logger.exception("Session %s: ready hook failed", key)
        return session

    async def ensure_default_started(self) -> ClientSession | None:
        """The shared session for documents outside every workspace root."""
        return await self.ensure_started(None)

    def active_session(self) -> ClientSession | None:
        """Target for messages with no document context.

        The only running session if there is one, else the most recently
        started one, else the default session.
        """
        running = {k: s for k, s in self._sessions.items() if s.is_running}
        if len(running) == 1:
            return next(iter(running.values()))
        if self._last_started in running:
            return running[self._last_started]
        return running.get(DEFAULT_SESSION_KEY)

    def _on_session_exit(self, session: ClientSession) -> None:
        if self._sessions.get(session.key) is not session:
            return
        del self._sessions[session.key]
        if self._last_started == session.key:
            self._last_started = None
        logger.warning(
            "Session %s: backend exited; it will start again on the next document event",
            session.key,
        )

    async def stop(self, root: WorkspaceRoot | None) -> None:
        """Stop and forget the session for *root*. No-op if there is none."""
        key = _key_for(root)
        session = self._sessions.pop(key, None)
        if session is None:
            return
        if self._last_started == key:
            self._last_started = None
        await session.stop(timeout=self._config.stop_timeout_seconds)

    async def stop_all(self, timeout: float | None = None) -> None:
        """Stop every session concurrently, bounded by *timeout*.

        Sessions still stopping when the timeout elapses are killed and
        assumed dead.
        """
        if timeout is None:
            timeout = self._config.stop_timeout_seconds
        sessions = list(self._sessions.values())
        self._sessions.clear()
        self._last_started = None
        if not sessions:
            return

        tasks = {
            asyncio.create_task(s.stop(timeout=timeout), name=f"stop:{s.key}"): s
            for s in sessions
        }
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in done:
            exc = task.exception()
            if exc is not None:
                logger.error("Session %s: stop failed: %r", tasks[task].key, exc)
        for task in pending:
            session = tasks[task]
            logger.warning("Session %s: stop timed out after %.1fs, killing", session.key, timeout)
            session.kill()
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Stopped %d session(s)", len(sessions))
