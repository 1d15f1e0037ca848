from __future__ import annotations

import asyncio
from typing import Any

import pytest

from rbxlsp.engine.errors import LaunchError
from rbxlsp.engine.models import RootSettings, SessionState, WorkspaceRoot
from rbxlsp.engine.session import ClientSession


class FakeSession(ClientSession):
    """ClientSession with the subprocess replaced by in-memory state."""

    def __init__(
        self,
        root: WorkspaceRoot | None,
        settings: RootSettings,
        *,
        fail: bool = False,
        start_delay: float = 0.0,
        stop_delay: float = 0.0,
    ) -> None:
        super().__init__(root, settings, ["fake-backend"])
        self.fail = fail
        self.start_delay = start_delay
        self.stop_delay = stop_delay
        self.sent: list[tuple[str, Any]] = []
        self.start_calls = 0
        self.stop_calls = 0
        self.killed = False

    async def start(self) -> None:
        self.start_calls += 1
        self._transition(SessionState.STARTING)
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.fail:
            self._fail_startup()
            raise LaunchError(self.key, "boom")
        if self._state is not SessionState.STARTING:
            return
        pending, self._outbox = self._outbox, []
        self.sent.extend(pending)
        self._transition(SessionState.READY)

    async def notify(self, method: str, params: Any = None) -> None:
        if self._state is SessionState.READY:
            self.sent.append((method, params))
            return
        await super().notify(method, params)

    async def stop(self, timeout: float = 5.0) -> None:
        self.stop_calls += 1
        if self.stop_delay:
            await asyncio.sleep(self.stop_delay)
        if self._state is not SessionState.STOPPED:
            self._transition(SessionState.STOPPED)
        self.events.close()

    def kill(self) -> None:
        self.killed = True

    def crash(self) -> None:
        """Simulate the backend exiting on its own."""
        self._transition(SessionState.STOPPED)
        self.events.close()
        for callback in self._exit_callbacks:
            callback(self)


class FakeSessionFactory:
    """Session factory recording every session it builds."""

    def __init__(self) -> None:
        self.created: list[FakeSession] = []
        self.fail_keys: set[str] = set()
        self.start_delay = 0.0
        self.stop_delay = 0.0

    def __call__(self, root: WorkspaceRoot | None, settings: RootSettings) -> FakeSession:
        key = root.key if root is not None else None
        session = FakeSession(
            root,
            settings,
            fail=key in self.fail_keys,
            start_delay=self.start_delay,
            stop_delay=self.stop_delay,
        )
        self.created.append(session)
        return session


@pytest.fixture
def session_factory() -> FakeSessionFactory:
    return FakeSessionFactory()
