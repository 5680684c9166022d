"""Tests for the webhook endpoint and admin call inspection, over ASGI."""

import asyncio

import httpx
import pytest

from jobline.app import create_app
from jobline.channels.yemot_channel import HANGUP_ACTION
from jobline.stores.memory import MemoryStore

from conftest import CALLER


class FakeSettings:
    def __init__(self, admin_api_key="", debug=False):
        self.admin_api_key = admin_api_key
        self.debug = debug


async def _settle():
    """Let call tasks and their done callbacks run."""
    for _ in range(50):
        await asyncio.sleep(0)


@pytest.fixture
def app(config):
    return create_app(store=MemoryStore(), config=config)


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _hangup(client, call_id):
    await client.get("/yemot", params={"ApiCallId": call_id, "hangup": "yes"})
    await _settle()


class TestWebhook:
    async def test_call_round_trip(self, client, app):
        first = await client.get("/yemot", params={"ApiCallId": "abc", "ApiPhone": CALLER})
        assert first.status_code == 200
        assert first.text.startswith("read=f-welcome.f-034=menu_choice_1,")

        # contact line
        second = await client.get("/yemot", params={"ApiCallId": "abc", "menu_choice_1": "4"})
        assert "f-contact_menu" in second.text
        assert "=contact_choice_2," in second.text

        gone = await client.get("/yemot", params={"ApiCallId": "abc", "hangup": "yes"})
        assert gone.text == ""
        await _settle()
        assert "abc" not in app.state.channels

        # A late hit for a finished call never restarts it
        late = await client.get("/yemot", params={"ApiCallId": "abc", "menu_choice_1": "1"})
        assert late.text == HANGUP_ACTION

    async def test_post_with_extension_path(self, client):
        resp = await client.post("/yemot/jobs", data={"ApiCallId": "p1", "ApiPhone": CALLER})
        assert resp.status_code == 200
        assert "=jobs_filter_1," in resp.text
        assert "f-welcome" not in resp.text
        await _hangup(client, "p1")

    async def test_missing_call_id_hangs_up(self, client):
        resp = await client.get("/yemot")
        assert resp.text == HANGUP_ACTION

    async def test_hangup_for_unknown_call(self, client, app):
        resp = await client.get("/yemot", params={"ApiCallId": "never", "hangup": "yes"})
        assert resp.text == ""
        assert app.state.channels == {}

    async def test_invalid_menu_choice_is_announced(self, client):
        await client.get("/yemot", params={"ApiCallId": "bad", "ApiPhone": CALLER})
        resp = await client.get("/yemot", params={"ApiCallId": "bad", "menu_choice_1": "8"})
        assert resp.text.startswith("id_list_message=f-")
        assert "&read=f-034=menu_choice_2," in resp.text
        await _hangup(client, "bad")


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert "active_calls" in body


class TestAdminCalls:
    async def test_requires_token(self, client, monkeypatch):
        monkeypatch.setattr("jobline.auth.settings", FakeSettings(admin_api_key="secret"))
        resp = await client.get("/api/calls")
        assert resp.status_code == 401

    async def test_lists_live_call_with_redacted_caller(self, client, monkeypatch):
        monkeypatch.setattr("jobline.auth.settings", FakeSettings(admin_api_key="secret"))
        headers = {"Authorization": "Bearer secret"}
        await client.get("/yemot", params={"ApiCallId": "adm", "ApiPhone": CALLER})

        resp = await client.get("/api/calls", headers=headers)
        assert resp.status_code == 200
        [call] = [c for c in resp.json()["calls"] if c["call_id"] == "adm"]
        assert call["caller"] == "050***67"
        assert call["state"] == "main"

        detail = await client.get("/api/calls/adm", headers=headers)
        assert detail.status_code == 200
        assert "read" in [e["type"] for e in detail.json()["events"]]

        await _hangup(client, "adm")
        missing = await client.get("/api/calls/adm", headers=headers)
        assert missing.status_code == 404

    async def test_rejects_malformed_call_id(self, client, monkeypatch):
        monkeypatch.setattr("jobline.auth.settings", FakeSettings(admin_api_key="secret"))
        resp = await client.get("/api/calls/bad%20id", headers={"Authorization": "Bearer secret"})
        assert resp.status_code == 400
