"""Editor-facing facade.

``Extension`` owns the root resolver, the session manager, the ingress
bridge and one relay per ready session, and translates editor events
(documents opened, workspace folders changed, visible ranges changed)
into calls on them.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from rbxlsp.adapters.relay import SessionRelay
from rbxlsp.adapters.shell import EditorShell
from rbxlsp.bridge.server import BridgeServer
from rbxlsp.engine.config import ClientConfig
from rbxlsp.engine.manager import SessionFactory, SessionManager
from rbxlsp.engine.models import (
    EditorView,
    TextDocument,
    VisibleRange,
    WorkspaceRoot,
    uri_scheme,
)
from rbxlsp.engine.roots import RootResolver
from rbxlsp.engine.session import DEFAULT_SESSION_KEY, ClientSession
from rbxlsp.engine.settings import SettingsStore

logger = logging.getLogger(__name__)

SUPPORTED_SCHEMES = frozenset({"file", "untitled"})
CONFIG_COMMAND = "lua.config"
STATUS_CLICK_COMMAND = "rbxlsp.statusClick"


class Extension:
    """Wires documents, sessions, relays and the bridge together."""

    def __init__(
        self,
        config: ClientConfig,
        settings: SettingsStore,
        shell: EditorShell,
        *,
        roots: Iterable[WorkspaceRoot] = (),
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.config = config
        self.settings = settings
        self.shell = shell
        self.resolver = RootResolver(roots)
        self.manager = SessionManager(
            config,
            settings,
            session_factory=session_factory,
            on_ready=self._on_session_ready,
            report_error=shell.show_error,
        )
        self.bridge = BridgeServer(
            self.manager,
            shell,
            host=config.bridge_host,
            port=settings.bridge_port,
            body_limit=config.bridge_body_limit,
        )
        self._relays: dict[str, SessionRelay] = {}
        self._views: dict[str, EditorView] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def relays(self) -> dict[str, SessionRelay]:
        return dict(self._relays)

    # ── Activation ──

    async def activate(self, documents: Iterable[TextDocument] = ()) -> None:
        """Start the bridge and route documents that are already open."""
        try:
            await self.bridge.start()
        except OSError as exc:
            logger.error("Bridge failed to start on port %s: %s", self.bridge.port, exc)
            self.shell.show_error(f"Roblox LSP: bridge failed to start: {exc}")
        for document in documents:
            await self.did_open_text_document(document)
        logger.info(
            "Activated with %d root(s), bridge=%s",
            len(self.resolver), "on" if self.bridge.running else "off",
        )

    async def start_all_roots(self) -> list[ClientSession]:
        """Eagerly start one session per outermost workspace root."""
        started: list[ClientSession] = []
        seen: set[str] = set()
        for root in self.resolver.sorted_roots():
            owner = self.resolver.outermost(root)
            if owner.key in seen:
                continue
            seen.add(owner.key)
            session = await self.manager.ensure_started(owner)
            if session is not None:
                started.append(session)
        return started

    async def deactivate(self) -> None:
        """Stop the bridge, every relay and every session."""
        await self.bridge.stop()
        relays = list(self._relays.values())
        self._relays.clear()
        for relay in relays:
            await relay.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.manager.stop_all(self.config.stop_timeout_seconds)
        logger.info("Deactivated")

    # ── Documents and folders ──

    def owner_of(self, uri: str) -> WorkspaceRoot | None:
        """The root owning *uri*; None routes to the default session."""
        if uri_scheme(uri) != "file":
            return None
        return self.resolver.resolve(uri)

    def _accepts(self, language_id: str, uri: str) -> bool:
        return (
            language_id == self.config.language_id
            and uri_scheme(uri) in SUPPORTED_SCHEMES
        )

    async def did_open_text_document(self, document: TextDocument) -> ClientSession | None:
        if not self._accepts(document.language_id, document.uri):
            return None
        owner = self.owner_of(document.uri)
        logger.debug(
            "Opened %s -> %s", document.uri,
            owner.key if owner is not None else DEFAULT_SESSION_KEY,
        )
        return await self.manager.ensure_started(owner)

    async def did_change_workspace_folders(
        self,
        added: Iterable[WorkspaceRoot] = (),
        removed: Iterable[WorkspaceRoot] = (),
    ) -> None:
        for root in removed:
            self.resolver.remove(root)
            relay = self._relays.pop(root.key, None)
            if relay is not None:
                await relay.close()
            await self.manager.stop(root)
            logger.info("Workspace folder removed: %s", root.key)
        for root in added:
            self.resolver.add(root)
            logger.info("Workspace folder added: %s", root.key)

    # ── Visible ranges ──

    def _relay_for(self, uri: str) -> SessionRelay | None:
        owner = self.owner_of(uri)
        key = owner.key if owner is not None else DEFAULT_SESSION_KEY
        relay = self._relays.get(key)
        if relay is None or not relay.session.is_running:
            return None
        return relay

    async def did_change_visible_ranges(self, view: EditorView) -> list[VisibleRange] | None:
        """Forward *view*'s coalesced ranges to the owning session."""
        if not self._accepts(view.language_id, view.uri):
            return None
        self._views[view.uri] = view
        relay = self._relay_for(view.uri)
        if relay is None:
            return None
        return await relay.notify_visible_ranges(view)

    async def did_change_visible_editors(self, views: Iterable[EditorView]) -> None:
        visible = [v for v in views if self._accepts(v.language_id, v.uri)]
        uris = {v.uri for v in visible}
        for uri in list(self._views):
            if uri not in uris:
                del self._views[uri]
                for relay in self._relays.values():
                    relay.forget_view(uri)
        for view in visible:
            await self.did_change_visible_ranges(view)

    # ── Status ──

    async def click_status(self, uri: str | None = None) -> None:
        if uri is not None:
            relay = self._relay_for(uri)
        else:
            session = self.manager.active_session()
            relay = self._relays.get(session.key) if session is not None else None
        if relay is not None:
            await relay.click_status()

    # ── Session hooks ──

    def _on_session_ready(self, session: ClientSession) -> None:
        relay = SessionRelay(
            session,
            self.shell,
            commands={CONFIG_COMMAND: self.settings.apply_config_command},
            status_command=STATUS_CLICK_COMMAND,
        )
        self._relays[session.key] = relay
        relay.start()
        task = asyncio.create_task(
            self._report_visible_views(relay), name=f"report-views:{session.key}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _report_visible_views(self, relay: SessionRelay) -> None:
        for view in list(self._views.values()):
            if self._relay_for(view.uri) is relay:
                await relay.notify_visible_ranges(view)
