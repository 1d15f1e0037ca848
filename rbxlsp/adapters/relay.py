"""Per-session relay between a backend and the editor shell.

Inbound: drains the session's EventBus in order and applies each event
to the shell (commands, status indicator, inline decorations). Status
updates are never merged or reordered.

Outbound: coalesces visible ranges and forwards them to the backend.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from rbxlsp.adapters.events import (
    DID_CHANGE_VISIBLE_RANGES,
    STATUS_CLICK,
    CommandEvent,
    CommentEvent,
    HintEvent,
    SessionEvent,
    StatusHide,
    StatusReport,
    StatusShow,
)
from rbxlsp.adapters.shell import EditorShell, StatusIndicator
from rbxlsp.engine.errors import RbxLspError
from rbxlsp.engine.models import EditorView, VisibleRange
from rbxlsp.engine.ranges import coalesce_ranges
from rbxlsp.engine.session import ClientSession

logger = logging.getLogger(__name__)

CommandHandler = Callable[[Any], Any]

HINT_DECORATION = "hint"
COMMENT_DECORATION = "comment"


def hint_option(edit: dict[str, Any]) -> dict[str, Any]:
    text = str(edit.get("newText", ""))
    return {
        "range": VisibleRange.from_protocol(edit.get("range") or {}),
        "hover_message": text,
        "content_text": text,
    }


class SessionRelay:
    """Consumes one session's inbound events and owns its status indicator."""

    def __init__(
        self,
        session: ClientSession,
        shell: EditorShell,
        *,
        commands: dict[str, CommandHandler] | None = None,
        status_command: str = "",
    ) -> None:
        self.session = session
        self.indicator = StatusIndicator(command=status_command)
        self._shell = shell
        self._commands: dict[str, CommandHandler] = dict(commands or {})
        self._views: dict[str, EditorView] = {}
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.create_task(
                self.run(), name=f"relay:{self.session.key}"
            )
        return self._task

    async def run(self) -> None:
        async for event in self.session.events.consume():
            await self.dispatch(event)
        logger.debug("Relay %s: event stream closed", self.session.key)

    async def close(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ── Inbound ──

    async def dispatch(self, event: SessionEvent) -> None:
        try:
            if isinstance(event, CommandEvent):
                await self._run_command(event)
            elif isinstance(event, StatusShow):
                self.indicator.visible = True
                self._shell.update_status(self.indicator)
            elif isinstance(event, StatusHide):
                self.indicator.visible = False
                self._shell.update_status(self.indicator)
            elif isinstance(event, StatusReport):
                self.indicator.text = event.text
                self.indicator.tooltip = event.tooltip
                self._shell.update_status(self.indicator)
            elif isinstance(event, HintEvent):
                self._apply_hints(event)
            elif isinstance(event, CommentEvent):
                self._apply_comments(event)
            else:
                logger.debug("Relay %s: ignoring %s", self.session.key, event.event_type)
        except Exception as exc:
            logger.exception("Relay %s: failed to apply %s", self.session.key, event.event_type)
            self._shell.show_error(f"Roblox LSP: {event.event_type} failed: {exc}")

    async def _run_command(self, event: CommandEvent) -> None:
        handler = self._commands.get(event.command)
        logger.debug("Relay %s: command %s (local=%s)", self.session.key, event.command, handler is not None)
        if handler is None:
            await self._shell.execute_command(event.command, event.data)
            return
        result = handler(event.data)
        if inspect.isawaitable(result):
            await result

    def _apply_hints(self, event: HintEvent) -> None:
        if event.uri not in self._views:
            return
        options = [hint_option(edit) for edit in event.edits if isinstance(edit, dict)]
        self._shell.set_decorations(event.uri, HINT_DECORATION, options)

    def _apply_comments(self, event: CommentEvent) -> None:
        if event.uri not in self._views:
            return
        options = [
            {"range": VisibleRange.from_protocol(r)}
            for r in event.ranges
            if isinstance(r, dict)
        ]
        self._shell.set_decorations(event.uri, COMMENT_DECORATION, options)

    # ── Outbound ──

    async def notify_visible_ranges(self, view: EditorView) -> list[VisibleRange]:
        """Coalesce *view*'s ranges and report them to the backend."""
        self._views[view.uri] = view
        ranges = coalesce_ranges(view.visible_ranges, view.line_count)
        try:
            await self.session.notify(
                DID_CHANGE_VISIBLE_RANGES,
                {"uri": view.uri, "ranges": [r.to_protocol() for r in ranges]},
            )
        except RbxLspError as exc:
            logger.warning("Relay %s: %s", self.session.key, exc)
            self._shell.show_error(f"Roblox LSP: {exc}")
        return ranges

    def forget_view(self, uri: str) -> None:
        self._views.pop(uri, None)

    async def click_status(self) -> None:
        try:
            await self.session.notify(STATUS_CLICK, {})
        except RbxLspError as exc:
            logger.warning("Relay %s: %s", self.session.key, exc)
            self._shell.show_error(f"Roblox LSP: {exc}")
