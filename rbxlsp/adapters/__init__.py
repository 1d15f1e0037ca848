"""Adapters between backend sessions and the editor shell."""
from .events import (
    CommandEvent,
    CommentEvent,
    HintEvent,
    SessionEvent,
    StatusHide,
    StatusReport,
    StatusShow,
    notification_to_event,
)
from .event_bus import EventBus
from .shell import ConsoleShell, EditorShell, StatusIndicator

__all__ = [
    "CommandEvent",
    "CommentEvent",
    "HintEvent",
    "SessionEvent",
    "StatusHide",
    "StatusReport",
    "StatusShow",
    "notification_to_event",
    "EventBus",
    "ConsoleShell",
    "EditorShell",
    "StatusIndicator",
]
