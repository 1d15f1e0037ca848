"""rbxlsp — headless client entry point."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def _configure_logging(level_name: str) -> Path:
    log_dir = Path.home() / ".rbxlsp" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "rbxlsp.log"

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name.upper(), logging.INFO))
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    file_handler = RotatingFileHandler(
        log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    root.addHandler(file_handler)
    root.addHandler(stream_handler)
    return log_file


async def _serve(extension) -> None:
    await extension.activate()
    try:
        started = await extension.start_all_roots()
        if not started and not extension.resolver.roots:
            await extension.manager.ensure_default_started()
        await asyncio.Event().wait()
    finally:
        await extension.deactivate()


def main() -> None:
    import argparse

    import yaml

    parser = argparse.ArgumentParser(
        prog="rbxlsp",
        description="rbxlsp — run Roblox Lua language server sessions headlessly",
    )
    parser.add_argument(
        "--root", metavar="PATH", action="append", default=[],
        help="Workspace root folder (repeatable)",
    )
    parser.add_argument(
        "--server-dir", metavar="PATH",
        help="Directory holding bin/<platform>/ and main.lua (overrides RBXLSP_SERVER_DIR)",
    )
    parser.add_argument(
        "--settings", metavar="PATH",
        help="YAML workspace settings file",
    )
    parser.add_argument(
        "--port", type=int,
        help="Bridge port (overrides robloxLsp.misc.serverPort; 0=disabled)",
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Log at debug level",
    )
    args = parser.parse_args()

    from rbxlsp.adapters.shell import ConsoleShell
    from rbxlsp.engine.config import ClientConfig
    from rbxlsp.engine.models import WorkspaceRoot
    from rbxlsp.engine.settings import SERVER_PORT, SettingsStore, load_settings
    from rbxlsp.extension import Extension

    log_level = "DEBUG" if args.verbose else os.getenv("RBXLSP_LOG_LEVEL", "INFO")
    log_file = _configure_logging(log_level)
    logger = logging.getLogger(__name__)
    config = ClientConfig.from_env()
    if args.server_dir:
        config.server_dir = Path(args.server_dir).expanduser()

    if args.settings:
        try:
            settings = load_settings(args.settings)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.error("Cannot load settings %s: %s", args.settings, exc)
            sys.exit(2)
    else:
        settings = SettingsStore()
    if args.port is not None:
        settings.update(SERVER_PORT, args.port, global_scope=True)

    roots = [WorkspaceRoot.from_path(p) for p in args.root]
    logger.info(
        "Starting rbxlsp cwd=%s roots=%s server_dir=%s bridge_port=%s log=%s",
        Path.cwd(),
        ", ".join(r.key for r in roots) or "<none>",
        config.server_dir,
        settings.bridge_port,
        log_file,
    )

    extension = Extension(config, settings, ConsoleShell(), roots=roots)
    try:
        asyncio.run(_serve(extension))
    except KeyboardInterrupt:
        logger.info("Interrupted, shut down")
    sys.exit(0)


if __name__ == "__main__":
    main()
