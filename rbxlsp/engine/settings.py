"""Workspace settings: a global layer plus one layer per workspace root.

Example YAML:
    settings:
      robloxLsp.misc.serverPort: 27843
      robloxLsp.misc.parameters: "--locale=en-us"

    folders:
      /home/me/games/obby:
        robloxLsp.develop.enable: true
        robloxLsp.develop.debuggerPort: 11413

Lookup order for a key (highest wins):

1. The innermost folder layer containing the requested URI
2. The global ``settings:`` layer
3. Built-in defaults
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from .models import RootSettings, WorkspaceRoot, to_uri, uri_prefix

logger = logging.getLogger(__name__)

DEVELOP_ENABLE = "robloxLsp.develop.enable"
DEBUGGER_PORT = "robloxLsp.develop.debuggerPort"
DEBUGGER_WAIT = "robloxLsp.develop.debuggerWait"
PARAMETERS = "robloxLsp.misc.parameters"
SERVER_PORT = "robloxLsp.misc.serverPort"

DEFAULTS: dict[str, Any] = {
    DEVELOP_ENABLE: False,
    DEBUGGER_PORT: 11412,
    DEBUGGER_WAIT: False,
    PARAMETERS: "",
    SERVER_PORT: 0,
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


class SettingsStore:
    """Layered key/value settings keyed by dotted names."""

    def __init__(
        self,
        global_settings: dict[str, Any] | None = None,
        folders: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self._global: dict[str, Any] = dict(global_settings or {})
        self._folders: dict[str, dict[str, Any]] = {}
        for location, values in (folders or {}).items():
            self._folders[uri_prefix(to_uri(location))] = dict(values or {})

    def _folder_layers(self, uri: str) -> list[dict[str, Any]]:
        target = uri_prefix(to_uri(uri))
        matches = [
            prefix for prefix in self._folders if target.startswith(prefix)
        ]
        matches.sort(key=len, reverse=True)
        return [self._folders[prefix] for prefix in matches]

    def get(self, key: str, uri: str | None = None, default: Any = None) -> Any:
        if uri is not None:
            for layer in self._folder_layers(uri):
                if key in layer:
                    return layer[key]
        if key in self._global:
            return self._global[key]
        if key in DEFAULTS:
            return DEFAULTS[key]
        return default

    def update(
        self,
        key: str,
        value: Any,
        uri: str | None = None,
        *,
        global_scope: bool = False,
    ) -> None:
        """Write *value* to the global layer or to the folder owning *uri*."""
        if global_scope or uri is None:
            self._global[key] = value
            logger.info("Settings: global %s=%r", key, value)
            return
        target = uri_prefix(to_uri(uri))
        owners = sorted(
            (prefix for prefix in self._folders if target.startswith(prefix)),
            key=len,
            reverse=True,
        )
        prefix = owners[0] if owners else target
        self._folders.setdefault(prefix, {})[key] = value
        logger.info("Settings: %s %s=%r", prefix, key, value)

    def for_root(self, root: WorkspaceRoot | None) -> RootSettings:
        """Snapshot the launch settings that apply to *root*."""
        uri = root.uri if root is not None else None
        return RootSettings(
            develop=_as_bool(self.get(DEVELOP_ENABLE, uri)),
            debugger_port=int(self.get(DEBUGGER_PORT, uri)),
            debugger_wait=_as_bool(self.get(DEBUGGER_WAIT, uri)),
            parameters=str(self.get(PARAMETERS, uri) or ""),
        )

    @property
    def bridge_port(self) -> int:
        try:
            return int(self.get(SERVER_PORT))
        except (TypeError, ValueError):
            logger.warning("Settings: invalid %s=%r, bridge disabled", SERVER_PORT, self.get(SERVER_PORT))
            return 0

    def apply_config_command(self, data: dict[str, Any]) -> None:
        """Handle the backend's ``lua.config`` command.

        ``{"action": "set", "key": ..., "value": ..., "uri": ..., "global": bool}``
        replaces a value; ``"action": "add"`` appends to a list value.
        """
        action = data.get("action")
        key = data.get("key")
        if not key:
            raise ValueError("lua.config requires a key")
        uri = data.get("uri")
        global_scope = bool(data.get("global"))
        if action == "add":
            current = self.get(key, uri)
            values = list(current) if isinstance(current, (list, tuple)) else []
            values.append(data.get("value"))
            self.update(key, values, uri, global_scope=global_scope)
        elif action == "set":
            self.update(key, data.get("value"), uri, global_scope=global_scope)
        else:
            logger.warning("lua.config: ignoring unknown action %r for %s", action, key)


def load_settings(path: str | Path) -> SettingsStore:
    """Load a settings YAML file.

    Raises FileNotFoundError / yaml.YAMLError so the caller decides
    whether a broken settings file is fatal.
    """
    path = Path(path)
    logger.info(
        "load_settings: attempting to load settings from %s (exists=%s)",
        path, path.exists(),
    )
    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.error("load_settings: settings file not found at %s", path.absolute())
        raise
    except yaml.YAMLError as exc:
        logger.error("load_settings: YAML parse error in %s: %s", path, exc)
        raise

    if not isinstance(raw, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    global_settings = raw.get("settings") or {}
    folders = raw.get("folders") or {}
    logger.info(
        "load_settings: %d global key(s), %d folder layer(s) from %s",
        len(global_settings), len(folders), path.name,
    )
    return SettingsStore(global_settings=global_settings, folders=folders)
