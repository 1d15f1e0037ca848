from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest
from aiohttp.test_utils import AioHTTPTestCase

from conftest import FakeSessionFactory
from rbxlsp.adapters.events import UPDATE_DATAMODEL
from rbxlsp.adapters.shell import EditorShell
from rbxlsp.bridge.server import BridgeServer
from rbxlsp.engine.config import ClientConfig
from rbxlsp.engine.manager import SessionManager
from rbxlsp.engine.models import WorkspaceRoot
from rbxlsp.engine.settings import SettingsStore

PROJ = WorkspaceRoot("file:///proj", "proj")


class TestBridgeServer(AioHTTPTestCase):
    async def get_application(self):
        self.factory = FakeSessionFactory()
        self.manager = SessionManager(
            ClientConfig(), SettingsStore(), session_factory=self.factory
        )
        self.session = await self.manager.ensure_started(PROJ)
        self.shell = MagicMock(spec=EditorShell)
        self.bridge = BridgeServer(self.manager, self.shell)
        return self.bridge.app

    async def _last_text(self) -> str:
        resp = await self.client.get("/last")
        assert resp.status == 200
        return await resp.text()

    async def test_empty_object_is_missing_json(self):
        resp = await self.client.post("/update", json={})

        assert resp.status == 400
        assert await resp.json() == {"success": False, "reason": "Missing JSON"}
        assert await self._last_text() == ""
        assert self.session.sent == []

    async def test_no_body_is_missing_json(self):
        resp = await self.client.post("/update")

        assert resp.status == 400
        assert (await resp.json())["reason"] == "Missing JSON"

    async def test_unparsable_body_is_missing_json(self):
        resp = await self.client.post(
            "/update",
            data="{not json",
            headers={"Content-Type": "application/json"},
        )

        assert resp.status == 400
        assert (await resp.json())["reason"] == "Missing JSON"

    async def test_non_object_body_is_missing_json(self):
        resp = await self.client.post("/update", json=[1, 2, 3])

        assert resp.status == 400
        assert (await resp.json())["reason"] == "Missing JSON"

    async def test_missing_datamodel(self):
        for body in ({"Version": "3"}, {"DataModel": ""}, {"DataModel": None}):
            resp = await self.client.post("/update", json=body)

            assert resp.status == 400
            assert await resp.json() == {
                "success": False,
                "reason": "Missing body.DataModel",
            }
        assert self.bridge.last_payload is None
        assert self.session.sent == []

    async def test_last_write_wins(self):
        first = await self.client.post(
            "/update", json={"DataModel": {"Workspace": {}}, "Version": "1"}
        )
        second = await self.client.post("/update", json={"DataModel": "Y"})

        assert first.status == 200
        assert await first.json() == {"success": True}
        assert second.status == 200
        assert await self._last_text() == "Y"
        assert self.session.sent == [
            (UPDATE_DATAMODEL, {"datamodel": {"Workspace": {}}, "version": "1"}),
            (UPDATE_DATAMODEL, {"datamodel": "Y", "version": None}),
        ]
        self.shell.show_error.assert_not_called()

    async def test_x_then_y_returns_y(self):
        await self.client.post("/update", json={"DataModel": "X"})
        await self.client.post("/update", json={"DataModel": "Y"})

        assert await self._last_text() == "Y"

    async def test_last_returns_json_text_for_objects(self):
        await self.client.post(
            "/update", json={"DataModel": {"Workspace": {"Part": 1}}, "Version": 7}
        )

        text = await self._last_text()

        assert json.loads(text) == {"Workspace": {"Part": 1}}
        assert self.bridge.last_payload.version == "7"
        assert self.bridge.last_payload.received_at > 0

    async def test_rejected_request_keeps_previous_payload(self):
        await self.client.post("/update", json={"DataModel": "X"})
        await self.client.post("/update", json={})

        assert await self._last_text() == "X"

    async def test_forwarding_failure_keeps_previous_payload(self):
        await self.client.post("/update", json={"DataModel": "X"})
        await self.manager.stop(PROJ)

        resp = await self.client.post("/update", json={"DataModel": "Y"})

        assert resp.status == 200
        assert await resp.json() == {"success": True}
        assert await self._last_text() == "X"
        assert self.bridge.last_payload.datamodel == "X"
        self.shell.show_error.assert_called_once()
        assert "no running session" in self.shell.show_error.call_args[0][0]

    async def test_forwarding_failure_stores_nothing(self):
        await self.manager.stop(PROJ)

        resp = await self.client.post("/update", json={"DataModel": "X"})

        assert resp.status == 200
        assert await self._last_text() == ""
        assert self.bridge.last_payload is None


@pytest.mark.asyncio
async def test_bridge_disabled_without_port() -> None:
    manager = SessionManager(ClientConfig(), SettingsStore(), session_factory=FakeSessionFactory())
    bridge = BridgeServer(manager, port=0)

    assert await bridge.start() is None
    assert not bridge.running
    await bridge.stop()
