"""Process-level configuration loaded from environment variables.

All settings have sensible defaults. Override via RBXLSP_* env vars.
Workspace-scoped settings (debug flags, bridge port) live in settings.py.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Client orchestration configuration."""

    # Directory holding bin/<platform>/ executables and main.lua.
    server_dir: Path = field(default_factory=lambda: Path.cwd() / "server")

    # Only documents with this language id are routed to a backend.
    language_id: str = "lua"

    # Bridge listener. The port itself is a workspace setting.
    bridge_host: str = "127.0.0.1"
    bridge_body_limit: int = 10 * 1024 * 1024

    # Max wait for initialize/shutdown round trips.
    request_timeout_seconds: float = 30.0
    # Upper bound for stop_all(); survivors are killed afterwards.
    stop_timeout_seconds: float = 5.0

    # Inbound notification queue per session.
    event_queue_size: int = 5000

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> ClientConfig:
        """Load configuration from RBXLSP_* environment variables."""
        overrides = {
            k: v for k, v in os.environ.items() if k.startswith("RBXLSP_")
        }
        if overrides:
            logger.info(
                "ClientConfig.from_env: RBXLSP_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(overrides.items())),
            )
        else:
            logger.debug("ClientConfig.from_env: no RBXLSP_* env vars set, using defaults")

        server_dir_raw = os.getenv("RBXLSP_SERVER_DIR")
        config = cls(
            server_dir=(
                Path(server_dir_raw).expanduser()
                if server_dir_raw
                else Path.cwd() / "server"
            ),
            language_id=os.getenv("RBXLSP_LANGUAGE_ID", cls.language_id),
            bridge_host=os.getenv("RBXLSP_BRIDGE_HOST", cls.bridge_host),
            bridge_body_limit=int(os.getenv(
                "RBXLSP_BODY_LIMIT", str(cls.bridge_body_limit)
            )),
            request_timeout_seconds=float(os.getenv(
                "RBXLSP_REQUEST_TIMEOUT", str(cls.request_timeout_seconds)
            )),
            stop_timeout_seconds=float(os.getenv(
                "RBXLSP_STOP_TIMEOUT", str(cls.stop_timeout_seconds)
            )),
            event_queue_size=int(os.getenv(
                "RBXLSP_QUEUE_SIZE", str(cls.event_queue_size)
            )),
            log_level=os.getenv("RBXLSP_LOG_LEVEL", cls.log_level),
        )
        logger.info(
            "ClientConfig.from_env: server_dir=%s bridge_host=%s stop_timeout=%.1fs",
            config.server_dir, config.bridge_host, config.stop_timeout_seconds,
        )
        return config
