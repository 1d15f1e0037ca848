"""Exception hierarchy for the client orchestration layer.

Every failure here is local to one session or one request. Nothing in
this package is process-fatal.
"""
from __future__ import annotations

from typing import Any


class RbxLspError(Exception):
    """Base exception for all client-side errors."""


class LaunchError(RbxLspError):
    """The backend executable could not be started or did not initialize."""
    def __init__(self, root_key: str, reason: str):
        self.root_key = root_key
        self.reason = reason
        super().__init__(f"Failed to launch backend for {root_key}: {reason}")


class ForwardingError(RbxLspError):
    """A notification could not be delivered to a session."""
    def __init__(self, method: str, reason: str):
        self.method = method
        self.reason = reason
        super().__init__(f"Cannot forward {method}: {reason}")


class SessionNotReadyError(ForwardingError):
    """The target session is stopped and no longer accepts messages."""
    def __init__(self, method: str, root_key: str, state: str):
        self.root_key = root_key
        self.state = state
        super().__init__(method, f"session {root_key} is {state}")


class ProtocolError(RbxLspError):
    """A malformed frame or message was read from the backend."""


class ConnectionClosedError(RbxLspError):
    """The backend transport closed while a request was outstanding."""


class ResponseError(RbxLspError):
    """The backend answered a request with a JSON-RPC error object."""
    def __init__(self, error_payload: dict[str, Any]):
        self.code = error_payload.get("code", "unknown")
        self.message = error_payload.get("message", "Unknown error")
        self.data = error_payload.get("data")
        super().__init__(f"JSON-RPC error {self.code}: {self.message}")
