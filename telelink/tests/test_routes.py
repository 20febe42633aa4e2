"""Integration tests for the HTTP surface: link management, notify, webhook."""

from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest
from conftest import sent_texts

from telelink.errors import TransportError
from telelink.main import create_app
from telelink.repos.link_code_repo import LinkCodeRegistry

pytestmark = pytest.mark.asyncio(loop_scope="session")

WEBHOOK = "/api/telegram/webhook"


def _client_for(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


def _update(text: str, chat_id: int = 1001, update_id: int = 1) -> dict:
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id,
            "from": {"id": chat_id, "is_bot": False, "first_name": "Alice", "username": "alice"},
            "chat": {"id": chat_id, "type": "private"},
            "date": 1700000000,
            "text": text,
        },
    }


async def _link_via_bot(async_client, user_id: str = "user-1", chat_id: int = 1001) -> None:
    res = await async_client.post("/api/telegram/link", json={"userId": user_id})
    code = res.json()["code"]
    res = await async_client.post(WEBHOOK, json=_update(f"/link {code}", chat_id=chat_id))
    assert res.json() == {"ok": True}


def _shipment() -> dict:
    return {
        "id": "SH001",
        "origin": "Delhi",
        "destination": "Mumbai",
        "status": "in-transit",
        "currentLocation": "Jaipur",
        "progress": 40,
    }


class TestLinkRoutes:
    async def test_generate_code(self, async_client):
        res = await async_client.post(
            "/api/telegram/link",
            json={"userId": "user-1", "userName": "Alice", "role": "supplier"},
        )

        assert res.status_code == 200
        data = res.json()
        assert len(data["code"]) == 6
        assert 0 < data["expiresIn"] <= 15 * 60
        assert "expiresAt" in data

    async def test_generate_code_expiry_follows_registry_clock(self, app, async_client, clock):
        app.state.registry = LinkCodeRegistry(app.state.links, issue_demo_codes=False, clock=clock)

        res = await async_client.post("/api/telegram/link", json={"userId": "user-1"})

        data = res.json()
        assert data["expiresIn"] == 15 * 60
        assert datetime.fromisoformat(data["expiresAt"]) == clock.now + timedelta(minutes=15)

    async def test_generate_code_missing_user_id(self, async_client):
        res = await async_client.post("/api/telegram/link", json={"userName": "Alice"})

        assert res.status_code == 400
        assert res.json()["detail"]["reason"] == "invalid_input"

    async def test_generate_code_when_already_linked(self, async_client):
        await _link_via_bot(async_client)

        res = await async_client.post("/api/telegram/link", json={"userId": "user-1"})

        assert res.status_code == 400
        detail = res.json()["detail"]
        assert detail["reason"] == "already_linked"
        assert detail["telegramId"] == 1001

    async def test_demo_mode_issues_role_code(self, transport):
        app = create_app(transport=transport, issue_demo_codes=True, webhook_secret="")
        async with _client_for(app) as client:
            res = await client.post("/api/telegram/link", json={"userId": "user-9", "role": "customer"})

        assert res.status_code == 200
        assert res.json()["code"] == "CUS150"

    async def test_status_not_linked(self, async_client):
        res = await async_client.get("/api/telegram/link", params={"userId": "user-1"})

        assert res.status_code == 200
        assert res.json() == {"linked": False}

    async def test_status_requires_user_id(self, async_client):
        res = await async_client.get("/api/telegram/link")

        assert res.status_code == 400
        assert res.json()["detail"]["reason"] == "invalid_input"

    async def test_full_link_flow(self, async_client, transport):
        """Issue a code, redeem it through the webhook, then see the link."""
        await _link_via_bot(async_client)

        res = await async_client.get("/api/telegram/link", params={"userId": "user-1"})

        data = res.json()
        assert data["linked"] is True
        assert data["telegramId"] == 1001
        assert data["telegramUsername"] == "alice"
        assert data["telegramFirstName"] == "Alice"
        assert data["notifications"] is True
        assert "linkedAt" in data
        assert "Account Linked Successfully" in sent_texts(transport)[0]

    async def test_code_check(self, async_client):
        res = await async_client.post("/api/telegram/link", json={"userId": "user-1"})
        code = res.json()["code"]

        res = await async_client.get("/api/telegram/link", params={"userId": "user-1", "code": code})
        data = res.json()
        assert data["valid"] is True
        assert data["expiresIn"] > 0

        await async_client.post(WEBHOOK, json=_update(f"/link {code}"))
        res = await async_client.get("/api/telegram/link", params={"userId": "user-1", "code": code})
        assert res.json() == {"valid": False, "reason": "already_used"}

        res = await async_client.get("/api/telegram/link", params={"userId": "user-1", "code": "NOPE00"})
        assert res.json() == {"valid": False, "reason": "not_found"}

    async def test_overlong_code_is_not_found(self, async_client):
        res = await async_client.get("/api/telegram/link", params={"userId": "user-1", "code": "X" * 40})

        assert res.status_code == 200
        assert res.json() == {"valid": False, "reason": "not_found"}

    async def test_unlink(self, async_client):
        await _link_via_bot(async_client)

        res = await async_client.delete("/api/telegram/link", params={"userId": "user-1"})

        assert res.status_code == 200
        assert res.json() == {"success": True}
        res = await async_client.get("/api/telegram/link", params={"userId": "user-1"})
        assert res.json()["linked"] is False

    async def test_unlink_when_not_linked(self, async_client):
        res = await async_client.delete("/api/telegram/link", params={"userId": "user-1"})

        assert res.status_code == 404
        assert res.json()["detail"]["reason"] == "not_linked"

    async def test_toggle_notifications(self, async_client):
        await _link_via_bot(async_client)

        res = await async_client.patch(
            "/api/telegram/link/notifications",
            json={"userId": "user-1", "enabled": False},
        )

        assert res.json() == {"success": True, "notifications": False}
        res = await async_client.get("/api/telegram/link", params={"userId": "user-1"})
        assert res.json()["notifications"] is False

    async def test_toggle_notifications_not_linked(self, async_client):
        res = await async_client.patch(
            "/api/telegram/link/notifications",
            json={"userId": "user-1", "enabled": True},
        )

        assert res.status_code == 404

    async def test_subscriptions(self, async_client, app):
        await _link_via_bot(async_client)

        res = await async_client.post("/api/telegram/subscriptions", json={"userId": "user-1", "shipmentId": "SH001"})
        assert res.json() == {"success": True}
        assert await app.state.subscriptions.subscribers_of("SH001") == {1001}

        res = await async_client.request(
            "DELETE",
            "/api/telegram/subscriptions",
            json={"userId": "user-1", "shipmentId": "SH001"},
        )
        assert res.json() == {"success": True}
        assert await app.state.subscriptions.subscribers_of("SH001") == set()

    async def test_subscribe_not_linked(self, async_client):
        res = await async_client.post("/api/telegram/subscriptions", json={"userId": "ghost", "shipmentId": "SH001"})

        assert res.status_code == 404


class TestNotifyRoutes:
    async def test_notify_shipment_to_subscribers(self, async_client, transport):
        await _link_via_bot(async_client)
        await async_client.post("/api/telegram/subscriptions", json={"userId": "user-1", "shipmentId": "SH001"})

        res = await async_client.post(
            "/api/telegram/notify/shipment",
            json={"shipment": _shipment(), "updateType": "location_updated"},
        )

        assert res.status_code == 200
        assert res.json() == {"attempted": 1, "delivered": 1, "failedChatIds": []}
        chat_id, text, buttons = transport.send_message_with_actions.call_args.args
        assert chat_id == 1001
        assert "is now at: Jaipur" in text
        assert buttons[0].url == "https://app.example.com/track/SH001"

    async def test_notify_shipment_reports_failures(self, async_client, transport):
        await _link_via_bot(async_client)
        transport.send_message_with_actions.side_effect = TransportError("bot was blocked by the user")

        res = await async_client.post(
            "/api/telegram/notify/shipment",
            json={"shipment": _shipment(), "updateType": "created", "userIds": ["user-1"]},
        )

        assert res.status_code == 200
        assert res.json() == {"attempted": 1, "delivered": 0, "failedChatIds": [1001]}

    async def test_notify_shipment_with_no_audience(self, async_client):
        res = await async_client.post(
            "/api/telegram/notify/shipment",
            json={"shipment": _shipment(), "updateType": "delivered"},
        )

        assert res.json() == {"attempted": 0, "delivered": 0, "failedChatIds": []}

    async def test_notify_shipment_bad_update_type(self, async_client):
        res = await async_client.post(
            "/api/telegram/notify/shipment",
            json={"shipment": _shipment(), "updateType": "teleported"},
        )

        assert res.status_code == 400

    async def test_notify_disruption(self, async_client, transport):
        await _link_via_bot(async_client)

        res = await async_client.post(
            "/api/telegram/notify/disruption",
            json={
                "disruption": {
                    "id": "D1",
                    "shipmentId": "SH001",
                    "type": "traffic",
                    "severity": "medium",
                    "message": "Congestion near Surat.",
                },
                "userIds": ["user-1"],
            },
        )

        assert res.json()["delivered"] == 1
        text = transport.send_message_with_actions.call_args.args[1]
        assert text.startswith("🔶 *Traffic Disruption*")

    async def test_broadcast_to_all(self, async_client, transport):
        await _link_via_bot(async_client, "user-1", 1001)
        await _link_via_bot(async_client, "user-2", 2002)
        transport.send_message.reset_mock()

        res = await async_client.post("/api/telegram/broadcast", json={"message": "Scheduled maintenance."})

        assert res.json()["delivered"] == 2
        assert sorted(c.args[0] for c in transport.send_message.call_args_list) == [1001, 2002]

    async def test_broadcast_to_users_with_buttons(self, async_client, transport):
        await _link_via_bot(async_client)

        res = await async_client.post(
            "/api/telegram/broadcast",
            json={
                "message": "Invoice ready",
                "userIds": ["user-1"],
                "buttons": [{"label": "Open", "url": "https://app.example.com/invoices/1"}],
            },
        )

        assert res.json()["delivered"] == 1
        assert transport.send_message_with_actions.call_args.args[1] == "Invoice ready"

    async def test_broadcast_empty_message(self, async_client):
        res = await async_client.post("/api/telegram/broadcast", json={"message": ""})

        assert res.status_code == 400


class TestWebhook:
    async def test_malformed_json_still_ok(self, async_client):
        res = await async_client.post(
            WEBHOOK,
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert res.status_code == 200
        assert res.json() == {"ok": True}

    async def test_non_object_body_still_ok(self, async_client):
        res = await async_client.post(WEBHOOK, json=[1, 2, 3])

        assert res.json() == {"ok": True}

    async def test_invalid_update_still_ok(self, async_client, transport):
        res = await async_client.post(WEBHOOK, json={"message": {"text": "hi"}})

        assert res.json() == {"ok": True}
        assert sent_texts(transport) == []

    async def test_send_failure_still_ok(self, async_client, transport):
        transport.send_message.side_effect = TransportError("Telegram is down")

        res = await async_client.post(WEBHOOK, json=_update("/start"))

        assert res.status_code == 200
        assert res.json() == {"ok": True}

    async def test_bad_code_gets_distinct_reply(self, async_client, transport):
        res = await async_client.post(WEBHOOK, json=_update("/link ZZZZZZ"))

        assert res.json() == {"ok": True}
        assert "doesn't exist" in sent_texts(transport)[0]

    async def test_secret_token_required_when_configured(self, transport):
        app = create_app(transport=transport, issue_demo_codes=False, webhook_secret="s3cret")
        async with _client_for(app) as client:
            rejected = await client.post(WEBHOOK, json=_update("/start"))
            wrong = await client.post(
                WEBHOOK,
                json=_update("/start"),
                headers={"X-Telegram-Bot-Api-Secret-Token": "guess"},
            )
            accepted = await client.post(
                WEBHOOK,
                json=_update("/start"),
                headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"},
            )

        assert rejected.status_code == 401
        assert wrong.status_code == 401
        assert accepted.status_code == 200
        transport.send_message.assert_called_once()
