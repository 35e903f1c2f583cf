"""
tests.test_smoke

Smoke tests: the service boots, probes answer, and auth guards the API.
"""

from __future__ import annotations

import httpx
import pytest


@pytest.mark.asyncio
async def test_health_endpoints(client: httpx.AsyncClient) -> None:
    r = await client.get("/healthz")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"

    r = await client.get("/readyz")
    assert r.status_code == 200
    assert r.json()["status"] == "ready"


@pytest.mark.asyncio
async def test_api_requires_bearer_token(client: httpx.AsyncClient) -> None:
    r = await client.get("/api/transactions")
    assert r.status_code == 401

    r = await client.get("/api/transactions", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_dev_token_round_trip(client: httpx.AsyncClient) -> None:
    r = await client.post("/api/dev/token", json={"subject": "agent-7"})
    assert r.status_code == 200
    token = r.json()["access_token"]

    r = await client.get("/api/transactions", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json() == []


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: httpx.AsyncClient) -> None:
    r = await client.get("/healthz", headers={"x-request-id": "req-123"})
    assert r.headers["x-request-id"] == "req-123"


@pytest.mark.asyncio
async def test_role_without_agent_is_forbidden(client: httpx.AsyncClient, auth) -> None:
    r = await client.get("/api/transactions", headers=auth("viewer-1", "viewer"))
    assert r.status_code == 403
