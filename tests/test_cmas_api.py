"""
tests.test_cmas_api

CMAs, report config and templates, share links, share email, PDF export, and the
agent profile/resources shown on shared CMAs.
"""

from __future__ import annotations

import httpx
import pytest

PROPERTIES = [
    {
        "mlsNumber": "SUBJ",
        "address": "1 Subject Way",
        "livingArea": 2000,
        "bedroomsTotal": 3,
        "bathroomsTotal": 2,
        "yearBuilt": 2010,
    },
    {
        "mlsNumber": "C1",
        "streetAddress": "12 Oak Ln",
        "soldPrice": 400_000,
        "closePrice": 400_000,
        "livingArea": 1600,
        "bedroomsTotal": 3,
        "bathroomsTotal": 2,
        "yearBuilt": 2010,
        "daysOnMarket": 12,
        "listDate": "2025-01-01",
        "closeDate": "2025-01-13",
        "status": "Closed",
    },
    {
        "mlsNumber": "C2",
        "streetAddress": "14 Oak Ln",
        "listPrice": 600_000,
        "livingArea": 2400,
        "bedroomsTotal": 4,
        "bathroomsTotal": 3,
        "yearBuilt": 2015,
        "daysOnMarket": 30,
        "listDate": "2025-02-01",
        "status": "Active",
    },
]


async def _create_cma(client: httpx.AsyncClient, headers, **fields) -> dict:
    body = {
        "name": "Oak Ln CMA",
        "subject_property_id": "SUBJ",
        "comparable_property_ids": ["C1", "C2"],
        "properties_data": PROPERTIES,
        **fields,
    }
    r = await client.post("/api/cmas", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_cma_crud_and_ownership(client: httpx.AsyncClient, auth) -> None:
    cma = await _create_cma(client, auth())
    url = f"/api/cmas/{cma['id']}"
    assert cma["user_id"] == "agent-1"

    r = await client.get(url, headers=auth("agent-2"))
    assert r.status_code == 404
    r = await client.get(url, headers=auth("ops", "admin"))
    assert r.status_code == 200

    r = await client.get("/api/cmas", headers=auth("agent-2"))
    assert r.json() == []
    r = await client.get("/api/cmas", headers=auth("ops", "admin"))
    assert len(r.json()) == 1

    r = await client.patch(url, json={"name": "Renamed", "notes": "call seller"}, headers=auth())
    assert r.json()["name"] == "Renamed"
    assert r.json()["notes"] == "call seller"

    r = await client.delete(url, headers=auth())
    assert r.json() == {"success": True}
    r = await client.get(url, headers=auth())
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_cma_linked_to_transaction(client: httpx.AsyncClient, auth) -> None:
    r = await client.post(
        "/api/cmas",
        json={"name": "Orphan", "transaction_id": "00000000-0000-0000-0000-000000000001"},
        headers=auth(),
    )
    assert r.status_code == 400

    r = await client.post(
        "/api/transactions", json={"property_address": "1 Subject Way"}, headers=auth()
    )
    txn_id = r.json()["id"]
    await _create_cma(client, auth(), transaction_id=txn_id)

    r = await client.get(f"/api/transactions/{txn_id}/activities", headers=auth())
    cma_created = next(a for a in r.json() if a["type"] == "cma_created")
    assert cma_created["category"] == "cma"
    assert cma_created["description"] == "CMA created with 2 comparables"


@pytest.mark.asyncio
async def test_statistics_timeline_and_adjustments(client: httpx.AsyncClient, auth) -> None:
    cma = await _create_cma(client, auth())
    url = f"/api/cmas/{cma['id']}"

    r = await client.get(f"{url}/statistics", headers=auth())
    body = r.json()
    assert body["statistics"]["price"]["average"] == 500_000
    assert body["statistics"]["price_per_sqft"]["range"] == {"min": 250.0, "max": 250.0}
    assert body["summary"]["count"] == 2
    assert body["summary"]["price_range"] == "$400,000 - $600,000"

    r = await client.get(f"{url}/timeline", headers=auth())
    assert [p["property_id"] for p in r.json()] == ["C1", "C2"]

    r = await client.get(f"{url}/adjustments", headers=auth())
    body = r.json()
    assert body["enabled"] is True
    assert body["rates"]["sqft_per_unit"] == 50
    c1 = next(res for res in body["results"] if res["comp_id"] == "C1")
    assert c1["total_adjustment"] == 20_000
    assert c1["adjusted_price"] == 420_000


@pytest.mark.asyncio
async def test_adjustments_need_subject(client: httpx.AsyncClient, auth) -> None:
    cma = await _create_cma(client, auth(), subject_property_id=None)
    r = await client.get(f"/api/cmas/{cma['id']}/adjustments", headers=auth())
    assert r.status_code == 400


@pytest.mark.asyncio
async def test_report_config(client: httpx.AsyncClient, auth) -> None:
    cma = await _create_cma(client, auth())
    url = f"/api/cmas/{cma['id']}/report-config"

    r = await client.get(url, headers=auth())
    assert r.json()["is_default"] is True
    assert r.json()["layout"] == "two_photos"

    r = await client.put(url, json={"included_sections": ["cover_page", "bogus"]}, headers=auth())
    assert r.status_code == 422
    r = await client.put(url, json={"layout": "three_photos"}, headers=auth())
    assert r.status_code == 422

    r = await client.put(
        url,
        json={
            "included_sections": ["cover_page", "comparable_stats"],
            "section_order": ["comparable_stats", "cover_page"],
            "photo_layout": "all",
            "cover_page_config": {"title": "For the Smiths"},
        },
        headers=auth(),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["is_default"] is False
    assert body["cover_page_config"]["title"] == "For the Smiths"
    assert body["cover_page_config"]["show_date"] is True

    r = await client.delete(url, headers=auth())
    assert r.json() == {"success": True, "deleted": True}
    r = await client.get(url, headers=auth())
    assert r.json()["is_default"] is True


@pytest.mark.asyncio
async def test_report_templates(client: httpx.AsyncClient, auth) -> None:
    r = await client.get("/api/cma-sections", headers=auth())
    assert len(r.json()["sections"]) == 17

    r = await client.post(
        "/api/cma-report-templates",
        json={"name": "Listing pitch", "is_default": True, "included_sections": ["cover_page"]},
        headers=auth(),
    )
    assert r.status_code == 201
    first = r.json()
    r = await client.post(
        "/api/cma-report-templates",
        json={"name": "Buyer tour", "is_default": True, "layout": "no_photos"},
        headers=auth(),
    )
    second = r.json()

    r = await client.get("/api/cma-report-templates", headers=auth())
    defaults = {t["name"]: t["is_default"] for t in r.json()}
    assert defaults == {"Buyer tour": True, "Listing pitch": False}

    r = await client.patch(
        f"/api/cma-report-templates/{first['id']}", json={"name": "Seller pitch"}, headers=auth()
    )
    assert r.json()["name"] == "Seller pitch"
    r = await client.patch(
        f"/api/cma-report-templates/{first['id']}", json={"name": "x"}, headers=auth("agent-2")
    )
    assert r.status_code == 404

    cma = await _create_cma(client, auth())
    r = await client.post(
        f"/api/cmas/{cma['id']}/report-config/apply-template/{second['id']}", headers=auth()
    )
    assert r.status_code == 200
    assert r.json()["layout"] == "no_photos"

    r = await client.delete(f"/api/cma-report-templates/{second['id']}", headers=auth())
    assert r.json() == {"success": True}


@pytest.mark.asyncio
async def test_share_link_lifecycle(client: httpx.AsyncClient, auth) -> None:
    cma = await _create_cma(client, auth())
    await client.put(
        "/api/agent/profile",
        json={"display_name": "Jane Doe", "bio": "Austin native"},
        headers=auth(),
    )
    r = await client.post(
        "/api/agent/resources",
        json={"name": "Buyer guide", "type": "link", "url": "https://example.com/guide"},
        headers=auth(),
    )
    assert r.status_code == 201

    r = await client.post(f"/api/cmas/{cma['id']}/share", headers=auth())
    share = r.json()
    token = share["public_link"]
    assert share["share_url"] == f"https://conduit.test/shared/cma/{token}"
    assert share["expires_at"] is not None

    # Public: no bearer token.
    r = await client.get(f"/api/shared/cma/{token}")
    assert r.status_code == 200
    body = r.json()
    assert body["cma"]["name"] == "Oak Ln CMA"
    assert "notes" not in body["cma"]
    assert body["summary"]["count"] == 2
    assert body["agent"]["display_name"] == "Jane Doe"
    assert body["report_config"]["is_default"] is True
    assert len(body["adjustments"]) == 2

    r = await client.get(f"/api/shared/cma/{token}/resources")
    assert [res["name"] for res in r.json()] == ["Buyer guide"]

    r = await client.delete(f"/api/cmas/{cma['id']}/share", headers=auth())
    assert r.json() == {"success": True}
    r = await client.get(f"/api/shared/cma/{token}")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_unknown_share_token(client: httpx.AsyncClient) -> None:
    r = await client.get("/api/shared/cma/does-not-exist")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_email_share(client: httpx.AsyncClient, auth, upstreams) -> None:
    cma = await _create_cma(client, auth())
    r = await client.post(
        f"/api/cmas/{cma['id']}/email-share",
        json={
            "recipient_name": "Sam Buyer",
            "recipient_email": "sam@example.com",
            "message": "Here are the comps we discussed.",
            "sender_name": "Jane Doe",
            "sender_email": "jane@example.com",
        },
        headers=auth(),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["email_sent"] is True
    assert body["message_id"] == "email_123"
    assert body["share_url"].startswith("https://conduit.test/shared/cma/")

    (sent,) = upstreams.email_calls()
    assert sent["to"] == ["sam@example.com"]
    assert sent["reply_to"] == "jane@example.com"
    assert "Jane Doe shared a CMA with you" in sent["subject"]
    assert body["share_url"] in sent["html"]
    assert "Here are the comps we discussed." in sent["html"]


@pytest.mark.asyncio
async def test_email_share_provider_failure(client: httpx.AsyncClient, auth, upstreams) -> None:
    cma = await _create_cma(client, auth())
    upstreams.email_status = 500
    r = await client.post(
        f"/api/cmas/{cma['id']}/email-share",
        json={"recipient_name": "Sam", "recipient_email": "sam@example.com"},
        headers=auth(),
    )
    assert r.status_code == 502

    r = await client.post(
        f"/api/cmas/{cma['id']}/email-share",
        json={"recipient_name": "Sam", "recipient_email": "not-an-email"},
        headers=auth(),
    )
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_pdf_export(client: httpx.AsyncClient, auth) -> None:
    cma = await _create_cma(client, auth())
    await client.put(
        f"/api/cmas/{cma['id']}/report-config",
        json={"included_sections": ["cover_page", "summary_comparables", "adjustments"]},
        headers=auth(),
    )

    r = await client.get(f"/api/cmas/{cma['id']}/pdf", headers=auth())
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert 'filename="Oak-Ln-CMA.pdf"' in r.headers["content-disposition"]
    assert r.content.startswith(b"%PDF")


@pytest.mark.asyncio
async def test_agent_resources(client: httpx.AsyncClient, auth) -> None:
    r = await client.get("/api/agent/profile", headers=auth())
    assert r.json()["user_id"] == "agent-1"
    assert r.json()["display_name"] is None

    r = await client.post(
        "/api/agent/resources", json={"name": "Broken", "type": "link"}, headers=auth()
    )
    assert r.status_code == 422

    ids = []
    for name in ("Guide", "Checklist", "Brochure"):
        r = await client.post(
            "/api/agent/resources",
            json={"name": name, "type": "file", "file_name": f"{name.lower()}.pdf"},
            headers=auth(),
        )
        ids.append(r.json()["id"])
    r = await client.get("/api/agent/resources", headers=auth())
    assert [res["display_order"] for res in r.json()] == [0, 1, 2]

    r = await client.post(
        "/api/agent/resources/reorder", json={"resource_ids": list(reversed(ids))}, headers=auth()
    )
    assert r.json() == {"success": True}
    r = await client.get("/api/agent/resources", headers=auth())
    assert [res["name"] for res in r.json()] == ["Brochure", "Checklist", "Guide"]

    r = await client.patch(
        f"/api/agent/resources/{ids[0]}", json={"is_active": False}, headers=auth()
    )
    assert r.json()["is_active"] is False
    r = await client.delete(f"/api/agent/resources/{ids[0]}", headers=auth("agent-2"))
    assert r.status_code == 404
    r = await client.delete(f"/api/agent/resources/{ids[0]}", headers=auth())
    assert r.status_code == 200
