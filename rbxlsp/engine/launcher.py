"""Backend executable selection and command-line construction."""
from __future__ import annotations

import logging
import os
import shlex
import stat
import sys
from pathlib import Path

from .errors import LaunchError
from .models import RootSettings

logger = logging.getLogger(__name__)

# sys.platform prefix -> (bin subdirectory, executable name)
PLATFORM_BINARIES: dict[str, tuple[str, str]] = {
    "win32": ("Windows", "lua-language-server.exe"),
    "linux": ("Linux", "lua-language-server"),
    "darwin": ("macOS", "lua-language-server"),
}

ENTRY_SCRIPT = "main.lua"


def _bool_flag(value: bool) -> str:
    return "true" if value else "false"


def select_executable(server_dir: Path, platform: str | None = None) -> Path:
    """Return the platform-specific backend binary under *server_dir*."""
    platform = platform or sys.platform
    for prefix, (subdir, name) in PLATFORM_BINARIES.items():
        if platform.startswith(prefix):
            return server_dir / "bin" / subdir / name
    raise LaunchError(str(server_dir), f"unsupported platform {platform!r}")


def ensure_executable(path: Path, platform: str | None = None) -> None:
    """Fail with LaunchError if *path* is missing; set exec bits on POSIX."""
    if not path.is_file():
        raise LaunchError(str(path), "backend executable not found")
    if (platform or sys.platform).startswith("win32"):
        return
    mode = path.stat().st_mode
    wanted = mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH
    if mode != wanted:
        try:
            path.chmod(wanted)
        except OSError as exc:
            raise LaunchError(str(path), f"cannot mark executable: {exc}") from exc
    if not os.access(path, os.X_OK):
        raise LaunchError(str(path), "backend executable is not runnable")


def build_command(
    executable: Path,
    entry_script: Path,
    settings: RootSettings,
) -> list[str]:
    """Assemble the protocol-negotiation command line for one session."""
    command = [
        str(executable),
        "-E",
        str(entry_script),
        f"--develop={_bool_flag(settings.develop)}",
        f"--dbgport={int(settings.debugger_port)}",
        f"--dbgwait={_bool_flag(settings.debugger_wait)}",
    ]
    if settings.parameters.strip():
        command.extend(shlex.split(settings.parameters))
    return command


def backend_command(
    server_dir: Path,
    settings: RootSettings,
    platform: str | None = None,
) -> list[str]:
    """Resolve, validate and build the full backend command."""
    executable = select_executable(server_dir, platform)
    ensure_executable(executable, platform)
    command = build_command(executable, server_dir / ENTRY_SCRIPT, settings)
    logger.debug("Backend command: %s", shlex.join(command))
    return command
