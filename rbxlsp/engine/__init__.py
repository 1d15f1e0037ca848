"""rbxlsp engine — backend sessions, root resolution and range coalescing."""
from .models import (
    BridgePayload,
    EditorView,
    RootSettings,
    SessionState,
    TextDocument,
    VisibleRange,
    WorkspaceRoot,
)
from .config import ClientConfig
from .errors import (
    ConnectionClosedError,
    ForwardingError,
    LaunchError,
    ProtocolError,
    RbxLspError,
    ResponseError,
    SessionNotReadyError,
)
from .ranges import coalesce_ranges, merge_ranges, pad_range
from .roots import RootResolver

__all__ = [
    # Models
    "BridgePayload",
    "EditorView",
    "RootSettings",
    "SessionState",
    "TextDocument",
    "VisibleRange",
    "WorkspaceRoot",
    # Config
    "ClientConfig",
    # Errors
    "ConnectionClosedError",
    "ForwardingError",
    "LaunchError",
    "ProtocolError",
    "RbxLspError",
    "ResponseError",
    "SessionNotReadyError",
    # Ranges and roots
    "coalesce_ranges",
    "merge_ranges",
    "pad_range",
    "RootResolver",
]
