"""Core data models for the client orchestration layer.

All dataclasses, enums, and URI helpers. Single source of truth
to avoid circular imports.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse


class SessionState(str, Enum):
    """Client session lifecycle states. See lifecycle.py for transition rules."""
    UNSTARTED = "unstarted"
    STARTING = "starting"
    READY = "ready"
    STOPPED = "stopped"


def to_uri(value: str) -> str:
    """Return *value* as a URI string, converting filesystem paths."""
    if "://" in value or value.startswith("untitled:"):
        return value
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = path.resolve()
    return path.as_uri()


def uri_to_path(uri: str) -> str:
    """Best-effort display path for a URI."""
    parsed = urlparse(uri)
    if parsed.scheme != "file":
        return uri
    return unquote(parsed.path) or "/"


def uri_prefix(uri: str) -> str:
    """Normalize a URI to a trailing-slash-terminated prefix."""
    return uri if uri.endswith("/") else uri + "/"


def uri_scheme(uri: str) -> str:
    return uri.split(":", 1)[0] if ":" in uri else ""


@dataclass(frozen=True)
class WorkspaceRoot:
    """A configured top-level project boundary in a multi-root workspace."""

    uri: str
    name: str = ""

    @classmethod
    def from_path(cls, value: str, name: str = "") -> WorkspaceRoot:
        uri = to_uri(value)
        return cls(uri=uri, name=name or Path(uri_to_path(uri)).name)

    @property
    def key(self) -> str:
        """Canonical identity: the URI without a trailing slash."""
        return self.uri.rstrip("/") or self.uri

    @property
    def prefix(self) -> str:
        return uri_prefix(self.uri)

    @property
    def path(self) -> str:
        return uri_to_path(self.uri)

    @property
    def depth(self) -> int:
        return len([part for part in self.path.split("/") if part])


@dataclass(frozen=True)
class RootSettings:
    """Per-root launch configuration captured when a session starts."""

    develop: bool = False
    debugger_port: int = 11412
    debugger_wait: bool = False
    parameters: str = ""


@dataclass(frozen=True)
class VisibleRange:
    """A visible region of one document, zero-based lines and characters."""

    start_line: int
    start_character: int
    end_line: int
    end_character: int

    @classmethod
    def lines(cls, start_line: int, end_line: int) -> VisibleRange:
        return cls(start_line, 0, end_line, 0)

    @classmethod
    def from_protocol(cls, data: dict[str, Any]) -> VisibleRange:
        start = data.get("start") or {}
        end = data.get("end") or {}
        return cls(
            start_line=int(start.get("line", 0)),
            start_character=int(start.get("character", 0)),
            end_line=int(end.get("line", 0)),
            end_character=int(end.get("character", 0)),
        )

    def to_protocol(self) -> dict[str, Any]:
        return {
            "start": {"line": self.start_line, "character": self.start_character},
            "end": {"line": self.end_line, "character": self.end_character},
        }


@dataclass(frozen=True)
class TextDocument:
    """An editor document as seen by the open/close event stream."""

    uri: str
    language_id: str = "lua"

    @property
    def scheme(self) -> str:
        return uri_scheme(self.uri)


@dataclass
class EditorView:
    """A visible editor pane showing one document."""

    uri: str
    line_count: int
    visible_ranges: list[VisibleRange] = field(default_factory=list)
    language_id: str = "lua"


@dataclass
class BridgePayload:
    """Most recent snapshot accepted by the ingress bridge."""

    datamodel: Any
    version: str | None = None
    received_at: float = field(default_factory=time.time)
