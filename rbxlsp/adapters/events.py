"""Inbound notification types emitted by a backend session.

Each backend notification the client understands is parsed into a typed
dataclass for safe consumption by the relay.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Outbound methods (client -> backend)
UPDATE_DATAMODEL = "$/updateDataModel"
DID_CHANGE_VISIBLE_RANGES = "$/didChangeVisibleRanges"
STATUS_CLICK = "$/status/click"

# Inbound methods (backend -> client)
COMMAND = "$/command"
STATUS_SHOW = "$/status/show"
STATUS_HIDE = "$/status/hide"
STATUS_REPORT = "$/status/report"
HINT = "$/hint"
LUA_COMMENT = "$/luaComment"


@dataclass
class SessionEvent:
    """Base event from a backend session."""
    event_type: str = ""
    root_key: str | None = None


@dataclass
class CommandEvent(SessionEvent):
    event_type: str = "command"
    command: str = ""
    data: Any = None


@dataclass
class StatusShow(SessionEvent):
    event_type: str = "status_show"


@dataclass
class StatusHide(SessionEvent):
    event_type: str = "status_hide"


@dataclass
class StatusReport(SessionEvent):
    event_type: str = "status_report"
    text: str = ""
    tooltip: str = ""


@dataclass
class HintEvent(SessionEvent):
    event_type: str = "hint"
    uri: str = ""
    edits: list = field(default_factory=list)  # [{range, newText}]


@dataclass
class CommentEvent(SessionEvent):
    event_type: str = "lua_comment"
    uri: str = ""
    ranges: list = field(default_factory=list)


# Map of notification methods to dataclass constructors
_METHOD_MAP: dict[str, type[SessionEvent]] = {
    COMMAND: CommandEvent,
    STATUS_SHOW: StatusShow,
    STATUS_HIDE: StatusHide,
    STATUS_REPORT: StatusReport,
    HINT: HintEvent,
    LUA_COMMENT: CommentEvent,
}


def notification_to_event(
    method: str,
    params: Any,
    root_key: str | None = None,
) -> SessionEvent | None:
    """Convert a backend notification into a typed event, or None if unknown."""
    cls = _METHOD_MAP.get(method)
    if cls is None:
        return None
    data = params if isinstance(params, dict) else {}
    # Filter dict keys to only those the dataclass accepts
    valid_fields = {f for f in cls.__dataclass_fields__} - {"event_type", "root_key"}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return cls(root_key=root_key, **filtered)
