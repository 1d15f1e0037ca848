"""Editor shell abstraction.

The shell is the editor host: it executes editor commands, owns the
status indicator and inline decorations, and shows errors to the user.
``ConsoleShell`` renders the same surface to a terminal for headless
use.
"""
from __future__ import annotations

import abc
import json
import logging
from dataclasses import dataclass
from typing import Any

from rich.console import Console
from rich.text import Text

logger = logging.getLogger(__name__)

DEFAULT_STATUS_TEXT = "Roblox LSP"


@dataclass
class StatusIndicator:
    """A single status-bar item owned by one session."""
    text: str = DEFAULT_STATUS_TEXT
    tooltip: str = ""
    visible: bool = False
    command: str = ""


class EditorShell(abc.ABC):
    """Abstract editor host interface."""

    @abc.abstractmethod
    async def execute_command(self, command: str, data: Any) -> Any:
        """Run an editor command by name with opaque arguments."""

    @abc.abstractmethod
    def show_error(self, message: str) -> None:
        """Surface an error to the user."""

    @abc.abstractmethod
    def update_status(self, indicator: StatusIndicator) -> None:
        """Re-render *indicator* after a show/hide/report change."""

    @abc.abstractmethod
    def set_decorations(
        self,
        uri: str,
        kind: str,
        options: list[dict[str, Any]],
    ) -> None:
        """Replace all decorations of *kind* in the views showing *uri*."""


class ConsoleShell(EditorShell):
    """Terminal rendition of the editor shell."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)

    @staticmethod
    def render_status(indicator: StatusIndicator) -> Text:
        bar = Text()
        bar.append(" ● ", style="green" if indicator.visible else "dim")
        bar.append(indicator.text, style="bold")
        if indicator.tooltip:
            bar.append(" │ ", style="dim")
            bar.append(indicator.tooltip, style="dim")
        return bar

    async def execute_command(self, command: str, data: Any) -> Any:
        line = Text()
        line.append("command ", style="cyan")
        line.append(command, style="bold")
        if data is not None:
            line.append(" ")
            line.append(json.dumps(data, default=str)[:200], style="dim")
        self._console.print(line)
        return None

    def show_error(self, message: str) -> None:
        self._console.print(Text(message, style="red bold"))

    def update_status(self, indicator: StatusIndicator) -> None:
        if indicator.visible:
            self._console.print(self.render_status(indicator))

    def set_decorations(
        self,
        uri: str,
        kind: str,
        options: list[dict[str, Any]],
    ) -> None:
        logger.debug("Decorations %s for %s: %d item(s)", kind, uri, len(options))
