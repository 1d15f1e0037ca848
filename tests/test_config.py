from __future__ import annotations

import os
from pathlib import Path

from rbxlsp.engine.config import ClientConfig


def test_defaults_without_env(monkeypatch) -> None:
    for name in list(os.environ):
        if name.startswith("RBXLSP_"):
            monkeypatch.delenv(name)

    config = ClientConfig.from_env()

    assert config.server_dir == Path.cwd() / "server"
    assert config.language_id == "lua"
    assert config.bridge_host == "127.0.0.1"
    assert config.bridge_body_limit == 10 * 1024 * 1024
    assert config.stop_timeout_seconds == 5.0


def test_env_overrides(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("RBXLSP_SERVER_DIR", str(tmp_path))
    monkeypatch.setenv("RBXLSP_BRIDGE_HOST", "0.0.0.0")
    monkeypatch.setenv("RBXLSP_STOP_TIMEOUT", "2.5")
    monkeypatch.setenv("RBXLSP_REQUEST_TIMEOUT", "9")
    monkeypatch.setenv("RBXLSP_QUEUE_SIZE", "10")
    monkeypatch.setenv("RBXLSP_BODY_LIMIT", "1048576")
    monkeypatch.setenv("RBXLSP_LOG_LEVEL", "DEBUG")

    config = ClientConfig.from_env()

    assert config.server_dir == tmp_path
    assert config.bridge_host == "0.0.0.0"
    assert config.stop_timeout_seconds == 2.5
    assert config.request_timeout_seconds == 9.0
    assert config.event_queue_size == 10
    assert config.bridge_body_limit == 1048576
    assert config.log_level == "DEBUG"
