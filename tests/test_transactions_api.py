"""
tests.test_transactions_api

Transactions, coordinators and notification preferences over HTTP.
"""

from __future__ import annotations

import uuid
from datetime import date

import httpx
import pytest
from sqlalchemy import func, select

from contract_conduit.db.models import Activity, NotificationSetting, SentNotification
from contract_conduit.db.repositories.notifications import SentNotificationRepo


async def _create(client: httpx.AsyncClient, headers, **fields) -> dict:
    body = {"property_address": "12 Oak Ln, Austin, TX 78701", **fields}
    r = await client.post("/api/transactions", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_create_without_slack(client: httpx.AsyncClient, auth, upstreams) -> None:
    txn = await _create(client, auth(), is_under_contract=False, list_price=500_000)

    assert txn["status"] == "active"
    assert txn["user_id"] == "agent-1"
    assert txn["slack_channel_id"] is None
    assert upstreams.slack_calls() == []

    r = await client.get(f"/api/transactions/{txn['id']}/activities", headers=auth())
    (created,) = r.json()
    assert created["type"] == "transaction_created"
    assert created["category"] == "transaction"
    assert "metadata" in created


@pytest.mark.asyncio
async def test_create_with_slack_channel(client: httpx.AsyncClient, auth, upstreams) -> None:
    r = await client.post(
        "/api/coordinators",
        json={"name": "Casey", "email": "casey@example.com", "slack_user_id": "UCOORD"},
        headers=auth(),
    )
    coordinator_id = r.json()["id"]
    await client.put(
        "/api/agent/profile",
        json={"display_name": "Jane Doe", "slack_user_id": "UJANE"},
        headers=auth(),
    )

    txn = await _create(
        client,
        auth(),
        create_slack_channel=True,
        closing_date="2025-06-30",
        coordinator_ids=[coordinator_id],
    )

    assert txn["status"] == "in_contract"
    assert txn["slack_channel_id"] == "C0NEW"
    assert txn["slack_channel_name"] == "buy-12oakln-janedoe"
    (invite,) = upstreams.slack_calls("conversations.invite")
    assert invite["users"] == "UJANE,UCOORD"
    (welcome,) = upstreams.slack_calls("chat.postMessage")
    assert "<@UJANE> is the agent" in welcome["text"]
    assert "<@UCOORD>" in welcome["text"]
    assert "2025-06-30" in welcome["text"]


@pytest.mark.asyncio
async def test_slack_ids_looked_up_by_email(client: httpx.AsyncClient, auth, upstreams) -> None:
    r = await client.post(
        "/api/coordinators", json={"name": "Casey", "email": "casey@example.com"}, headers=auth()
    )
    coordinator_id = r.json()["id"]

    headers = auth(email="jane@example.com")
    await _create(client, headers, create_slack_channel=True, coordinator_ids=[coordinator_id])

    lookups = [c["email"] for c in upstreams.slack_calls("users.lookupByEmail")]
    assert lookups == ["jane@example.com", "casey@example.com"]
    (invite,) = upstreams.slack_calls("conversations.invite")
    assert invite["users"] == "U0FOUND"


@pytest.mark.asyncio
async def test_slack_failure_does_not_block_creation(
    client: httpx.AsyncClient, auth, upstreams
) -> None:
    upstreams.slack_errors["conversations.create"] = "name_taken"

    txn = await _create(client, auth(), create_slack_channel=True)
    assert txn["slack_channel_id"] is None


@pytest.mark.asyncio
async def test_update_logs_timeline(client: httpx.AsyncClient, auth) -> None:
    txn = await _create(client, auth(), list_price=500_000)
    url = f"/api/transactions/{txn['id']}"

    r = await client.patch(
        url,
        json={
            "status": "pending_inspection",
            "list_price": 480_000,
            "notes": "Buyer asked for repairs",
        },
        headers=auth(),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "pending_inspection"

    r = await client.get(f"{url}/activities", headers=auth())
    types = {a["type"] for a in r.json()}
    assert {"status_changed", "price_changed", "note_added"} <= types

    r = await client.patch(url, json={"notes": None}, headers=auth())
    assert r.json()["notes"] is None


@pytest.mark.asyncio
async def test_transactions_are_team_visible(client: httpx.AsyncClient, auth) -> None:
    txn = await _create(client, auth("agent-1"))
    r = await client.get(f"/api/transactions/{txn['id']}", headers=auth("agent-2"))
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_archive_and_restore_reminder_settings(client: httpx.AsyncClient, auth) -> None:
    txn = await _create(client, auth())
    url = f"/api/transactions/{txn['id']}"

    r = await client.put(
        f"{url}/notification-settings",
        json={"closing_reminders": True, "reminder_7_days": True},
        headers=auth(),
    )
    assert r.json()["scope"] == "transaction"

    r = await client.post(f"{url}/archive", headers=auth())
    assert r.status_code == 200
    assert r.json()["is_archived"] is True
    r = await client.get(f"{url}/notification-settings", headers=auth())
    assert r.json()["closing_reminders"] is False

    r = await client.get("/api/transactions", headers=auth())
    assert r.json() == []
    r = await client.get("/api/transactions?include_archived=true", headers=auth())
    assert len(r.json()) == 1

    r = await client.post(f"{url}/archive", headers=auth())
    assert r.status_code == 400

    r = await client.post(f"{url}/restore", headers=auth())
    assert r.json()["is_archived"] is False
    r = await client.get(f"{url}/notification-settings", headers=auth())
    assert r.json()["closing_reminders"] is True
    assert r.json()["reminder_7_days"] is True


@pytest.mark.asyncio
async def test_delete_and_missing(client: httpx.AsyncClient, auth) -> None:
    txn = await _create(client, auth())
    url = f"/api/transactions/{txn['id']}"

    r = await client.delete(url, headers=auth())
    assert r.json() == {"success": True}
    r = await client.get(url, headers=auth())
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_delete_cascades_to_dependent_rows(
    client: httpx.AsyncClient, auth, session_factory
) -> None:
    txn = await _create(client, auth())
    url = f"/api/transactions/{txn['id']}"
    await client.put(
        f"{url}/notification-settings",
        json={"closing_reminders": True, "reminder_7_days": True},
        headers=auth(),
    )

    async with session_factory() as session:
        await SentNotificationRepo(session).record(
            transaction_id=uuid.UUID(txn["id"]),
            notification_type="closing_7_days",
            channel_id="C0DEAL",
            day=date(2025, 3, 7),
            message_ts=None,
        )
        await session.commit()
        for model in (Activity, NotificationSetting, SentNotification):
            stmt = select(func.count()).where(model.transaction_id == uuid.UUID(txn["id"]))
            assert (await session.execute(stmt)).scalar_one() > 0, model.__name__

    r = await client.delete(url, headers=auth())
    assert r.json() == {"success": True}

    async with session_factory() as session:
        for model in (Activity, NotificationSetting, SentNotification):
            stmt = select(func.count()).where(model.transaction_id == uuid.UUID(txn["id"]))
            assert (await session.execute(stmt)).scalar_one() == 0, model.__name__


@pytest.mark.asyncio
async def test_coordinator_crud(client: httpx.AsyncClient, auth) -> None:
    r = await client.post(
        "/api/coordinators", json={"name": "Casey", "email": "casey@example.com"}, headers=auth()
    )
    assert r.status_code == 201
    coordinator_id = r.json()["id"]

    r = await client.patch(
        f"/api/coordinators/{coordinator_id}",
        json={"is_active": False, "name": None},
        headers=auth(),
    )
    assert r.json()["name"] == "Casey"
    assert r.json()["is_active"] is False

    r = await client.get("/api/coordinators", headers=auth())
    assert r.json() == []
    r = await client.get("/api/coordinators?active_only=false", headers=auth())
    assert len(r.json()) == 1

    r = await client.delete(f"/api/coordinators/{coordinator_id}", headers=auth())
    assert r.status_code == 200


@pytest.mark.asyncio
async def test_notification_preferences(client: httpx.AsyncClient, auth) -> None:
    r = await client.get("/api/user/notification-preferences", headers=auth())
    assert r.json()["scope"] == "default"
    assert r.json()["closing_reminders"] is False

    r = await client.put(
        "/api/user/notification-preferences",
        json={"closing_reminders": True, "reminder_1_day": True},
        headers=auth(),
    )
    assert r.json()["scope"] == "global"
    assert r.json()["reminder_1_day"] is True

    r = await client.put(
        "/api/user/notification-preferences", json={"closing_reminders": False}, headers=auth()
    )
    assert r.json()["reminder_1_day"] is False


@pytest.mark.asyncio
async def test_notification_admin_routes(client: httpx.AsyncClient, auth, upstreams) -> None:
    r = await client.post("/api/notifications/trigger", headers=auth())
    assert r.status_code == 403

    r = await client.post("/api/notifications/trigger", headers=auth("ops", "admin"))
    assert r.status_code == 200
    assert r.json() == {
        "success": True,
        "stats": {"processed": 0, "sent": 0, "skipped": 0, "disabled": 0, "errors": 0},
    }

    r = await client.post(
        "/api/notifications/test", json={"channel_id": "C0TEST"}, headers=auth("ops", "admin")
    )
    assert r.json()["ts"] == "1700000000.000100"
    (call,) = upstreams.slack_calls("chat.postMessage")
    assert call["channel"] == "C0TEST"

    r = await client.get("/api/notifications/status", headers=auth())
    body = r.json()
    assert body["bot_configured"] is True
    assert body["scheduler"]["running"] is False
    assert body["available_reminders"][0] == "30 days"
