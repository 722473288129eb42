"""Tests for the WhatsApp webhook endpoint."""

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from chatengine.config.settings import get_settings
from chatengine.whatsapp.endpoint import webhook_router
from chatengine.whatsapp.models import MessageKind

from conftest import SENDER


def notification(*messages: dict) -> dict:
    return {
        "object": "whatsapp_business_account",
        "entry": [{"id": "waba-1", "changes": [{"value": {"messages": list(messages)}}]}],
    }


def text(body: str, message_id: str = "wamid.1") -> dict:
    return {"from": SENDER, "id": message_id, "type": "text", "text": {"body": body}}


def make_app(dispatcher=None) -> FastAPI:
    app = FastAPI()
    app.include_router(webhook_router)
    app.state.dispatcher = dispatcher
    return app


@pytest.fixture
async def client(dispatcher):
    """HTTP client for an app wired to the test dispatcher."""
    async with AsyncClient(
        transport=ASGITransport(app=make_app(dispatcher)), base_url="http://test"
    ) as client:
        yield client


class TestVerification:
    """Tests for the subscription handshake."""

    @pytest.fixture(autouse=True)
    def verify_token(self, monkeypatch):
        monkeypatch.setenv("ENGINE_WHATSAPP_VERIFY_TOKEN", "s3cret")
        get_settings.cache_clear()

    async def test_handshake(self, client):
        """Test the challenge is echoed for a matching token."""
        response = await client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "s3cret", "hub.challenge": "42"},
        )

        assert response.status_code == 200
        assert response.text == "42"

    async def test_wrong_token(self, client):
        """Test a mismatched token is rejected."""
        response = await client.get(
            "/webhook",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "42"},
        )

        assert response.status_code == 403

    async def test_wrong_mode(self, client):
        """Test only subscribe requests are answered."""
        response = await client.get(
            "/webhook",
            params={"hub.mode": "unsubscribe", "hub.verify_token": "s3cret"},
        )

        assert response.status_code == 403

    async def test_unset_token_rejects(self, client, monkeypatch):
        """Test an unconfigured token never verifies."""
        monkeypatch.setenv("ENGINE_WHATSAPP_VERIFY_TOKEN", "")
        get_settings.cache_clear()

        response = await client.get(
            "/webhook", params={"hub.mode": "subscribe", "hub.verify_token": ""}
        )

        assert response.status_code == 403


class TestReceive:
    """Tests for message notifications."""

    async def test_turn_runs_inline(self, client, messenger):
        """Test replies are sent before the acknowledgement."""
        response = await client.post("/webhook", json=notification(text("hello")))

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert messenger.sent
        assert all(to == SENDER for to, _ in messenger.sent)
        assert list(messenger.read) == ["wamid.1"]

    async def test_messages_in_order(self, client, messenger):
        """Test several messages in one notification run in order."""
        await client.post(
            "/webhook",
            json=notification(text("hello", "wamid.1"), text("help", "wamid.2")),
        )

        assert list(messenger.read) == ["wamid.1", "wamid.2"]

    async def test_malformed_payload(self, client, messenger):
        """Test an unreadable payload is acknowledged and ignored."""
        response = await client.post("/webhook", json={"entry": "nope"})

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        assert not messenger.sent

    async def test_non_object_payload(self, client, messenger):
        """Test a JSON array is acknowledged and ignored."""
        response = await client.post("/webhook", json=[])

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        assert not messenger.sent

    async def test_non_json_body(self, client, messenger):
        """Test a body that is not JSON is acknowledged and ignored."""
        response = await client.post(
            "/webhook", content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ignored"}
        assert not messenger.sent

    async def test_status_callback(self, client, messenger):
        """Test delivery receipts produce no turn."""
        body = {
            "object": "whatsapp_business_account",
            "entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1"}]}}]}],
        }

        response = await client.post("/webhook", json=body)

        assert response.json() == {"status": "ok"}
        assert not messenger.sent

    async def test_failed_turn_acknowledged(self):
        """Test a turn that raises still gets a 200."""
        dispatcher = AsyncMock()
        dispatcher.handle.side_effect = RuntimeError("boom")
        transport = ASGITransport(app=make_app(dispatcher))

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post(
                "/webhook", json=notification(text("hello"), text("again", "wamid.2"))
            )

        assert response.status_code == 200
        assert dispatcher.handle.await_count == 2
        message = dispatcher.handle.await_args_list[0].args[0]
        assert message.kind == MessageKind.TEXT
        assert message.text == "hello"

    async def test_not_initialized(self):
        """Test a missing dispatcher returns 503."""
        transport = ASGITransport(app=make_app(None))

        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/webhook", json=notification(text("hello")))

        assert response.status_code == 503
