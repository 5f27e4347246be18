"""Integration tests for the v1 API.

Uses a loaded local-only EntitySynchronizer injected into create_app and
httpx AsyncClient over ASGITransport. Responses are camelCase.
"""

from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from src.leaddesk.main import create_app


async def _create_contact(client: AsyncClient, first: str = "Ada", **extra) -> dict:
    response = await client.post(
        "/api/v1/crm/contacts", json={"firstName": first, "lastName": "Byrne", **extra}
    )
    assert response.status_code == 201, response.text
    return response.json()


async def _stages(client: AsyncClient) -> dict[str, dict]:
    response = await client.get("/api/v1/crm/state")
    return {s["name"]: s for s in response.json()["stages"]}


# ── Health & Availability ─────────────────────────────────────────────────


class TestHealth:
    """Health endpoint and uninitialized synchronizer handling."""

    @pytest.mark.asyncio
    async def test_health_reports_local_store(self, client):
        response = await client.get("/api/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["store"] == "local"

    @pytest.mark.asyncio
    async def test_missing_synchronizer_returns_503(self):
        app = create_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/api/v1/crm/contacts")
        assert response.status_code == 503

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        response = await client.get("/api/v1/health")
        assert "X-Request-ID" in response.headers


# ── CRM ───────────────────────────────────────────────────────────────────


class TestCrmEndpoints:
    """Contacts, companies, deals, stages and activities."""

    @pytest.mark.asyncio
    async def test_state_has_default_stages(self, client):
        stages = await _stages(client)
        assert list(stages) == ["Lead", "Qualified", "Proposal Sent", "Negotiation", "Won", "Lost"]

    @pytest.mark.asyncio
    async def test_create_contact_returns_camel_case_with_local_id(self, client):
        contact = await _create_contact(client, jobTitle="Architect")
        assert contact["id"].startswith("local-")
        assert contact["firstName"] == "Ada"
        assert contact["jobTitle"] == "Architect"

    @pytest.mark.asyncio
    async def test_contact_detail_includes_creation_activity(self, client):
        contact = await _create_contact(client)
        response = await client.get(f"/api/v1/crm/contacts/{contact['id']}")
        assert response.status_code == 200
        detail = response.json()
        assert detail["contact"]["id"] == contact["id"]
        assert detail["activities"][0]["type"] == "contact_created"

    @pytest.mark.asyncio
    async def test_unknown_contact_is_404(self, client):
        assert (await client.get("/api/v1/crm/contacts/nope")).status_code == 404
        response = await client.patch("/api/v1/crm/contacts/nope", json={"notes": "x"})
        assert response.status_code == 404
        assert (await client.delete("/api/v1/crm/contacts/nope")).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_body_is_422(self, client):
        response = await client.post("/api/v1/crm/contacts", json={"firstName": "Ada"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_delete_company_orphans_contact(self, client):
        company = (await client.post("/api/v1/crm/companies", json={"name": "Keane"})).json()
        contact = await _create_contact(client, companyId=company["id"])

        response = await client.delete(f"/api/v1/crm/companies/{company['id']}")
        assert response.status_code == 200

        detail = (await client.get(f"/api/v1/crm/contacts/{contact['id']}")).json()
        assert detail["contact"]["companyId"] is None
        assert detail["company"] is None

    @pytest.mark.asyncio
    async def test_move_deal_and_pipeline_board(self, client):
        stages = await _stages(client)
        contact = await _create_contact(client)
        deal = (
            await client.post(
                "/api/v1/crm/deals",
                json={
                    "title": "Quay Street offices",
                    "value": "£10,000",
                    "contactId": contact["id"],
                    "stageId": stages["Lead"]["id"],
                },
            )
        ).json()

        response = await client.post(
            f"/api/v1/crm/deals/{deal['id']}/move", json={"toStageId": stages["Won"]["id"]}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["deal"]["stageId"] == stages["Won"]["id"]
        assert body["activity"]["description"] == "From Lead to Won"

        board = (await client.get("/api/v1/crm/pipeline")).json()
        won = next(col for col in board if col["stage"]["name"] == "Won")
        assert won["dealCount"] == 1
        assert won["valueLabel"] == "10,000"

    @pytest.mark.asyncio
    async def test_move_unknown_deal_is_404(self, client):
        response = await client.post("/api/v1/crm/deals/nope/move", json={"toStageId": "s"})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_deal_on_unknown_stage_is_422(self, client):
        contact = await _create_contact(client)
        response = await client.post(
            "/api/v1/crm/deals",
            json={"title": "Ghost", "contactId": contact["id"], "stageId": "no-such-stage"},
        )
        assert response.status_code == 422
        assert (await client.get("/api/v1/crm/deals")).json() == []

    @pytest.mark.asyncio
    async def test_deal_update_references_are_checked(self, client):
        stages = await _stages(client)
        contact = await _create_contact(client)
        deal = (
            await client.post(
                "/api/v1/crm/deals",
                json={"title": "Quay", "contactId": contact["id"], "stageId": stages["Lead"]["id"]},
            )
        ).json()

        moved = await client.patch(
            f"/api/v1/crm/deals/{deal['id']}", json={"stageId": "no-such-stage"}
        )
        missing = await client.patch("/api/v1/crm/deals/nope", json={"value": "£1"})

        assert moved.status_code == 422
        assert missing.status_code == 404

    @pytest.mark.asyncio
    async def test_apply_stage_changes(self, client):
        stages = await _stages(client)
        response = await client.put(
            "/api/v1/crm/stages",
            json={
                "deleted": [stages["Lost"]["id"]],
                "created": [{"name": "On Hold", "color": "orange", "position": 9}],
            },
        )
        assert response.status_code == 200
        names = [s["name"] for s in response.json()]
        assert "Lost" not in names
        assert names[-1] == "On Hold"

    @pytest.mark.asyncio
    async def test_log_activity_without_contacts_is_409(self, client):
        response = await client.post("/api/v1/crm/activities", json={"title": "Note"})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_log_activity_defaults_to_latest_contact(self, client):
        contact = await _create_contact(client)
        response = await client.post(
            "/api/v1/crm/activities", json={"type": "call", "title": "Intro call"}
        )
        assert response.status_code == 201
        assert response.json()["contactId"] == contact["id"]


# ── Campaigns, Documents, Opportunities ───────────────────────────────────


class TestCampaignEndpoints:
    """Campaign CRUD and helpers."""

    @pytest.mark.asyncio
    async def test_duplicate_and_status(self, client):
        campaign = (
            await client.post(
                "/api/v1/campaigns",
                json={"name": "Spring", "steps": [{"subject": "Hello", "sendDelay": "Day 1"}]},
            )
        ).json()

        copy = (await client.post(f"/api/v1/campaigns/{campaign['id']}/duplicate")).json()
        assert copy["name"] == "Spring (Copy)"
        assert copy["status"] == "draft"
        assert copy["steps"][0]["sendDelay"] == "Day 1"

        response = await client.put(
            f"/api/v1/campaigns/{campaign['id']}/status", json={"status": "active"}
        )
        assert response.json()["status"] == "active"

        listed = (await client.get("/api/v1/campaigns")).json()
        assert [c["id"] for c in listed] == [copy["id"], campaign["id"]]

    @pytest.mark.asyncio
    async def test_unknown_campaign_is_404(self, client):
        response = await client.post("/api/v1/campaigns/nope/duplicate")
        assert response.status_code == 404


class TestDocumentEndpoints:
    """Generated document persistence and text export."""

    @pytest.mark.asyncio
    async def test_save_and_export_proposal(self, client):
        doc = (
            await client.post(
                "/api/v1/documents",
                json={
                    "opportunityId": "opp-1",
                    "kind": "proposal",
                    "sections": ["cover_letter"],
                    "content": {"cover_letter": "Dear client"},
                },
            )
        ).json()

        response = await client.get(f"/api/v1/documents/{doc['id']}/text")
        assert response.status_code == 200
        assert response.text == "## Cover Letter\n\nDear client"

        listed = (await client.get("/api/v1/documents", params={"opportunity_id": "opp-1"})).json()
        assert [d["id"] for d in listed] == [doc["id"]]

    @pytest.mark.asyncio
    async def test_unknown_document_is_404(self, client):
        assert (await client.get("/api/v1/documents/nope/text")).status_code == 404


class TestOpportunityEndpoints:
    """Search results and saved leads."""

    @pytest.mark.asyncio
    async def test_merged_opportunities(self, client):
        await client.put(
            "/api/v1/opportunities/search-results",
            json=[{"id": "1", "title": "Library"}, {"id": "2", "title": "Bridge"}],
        )
        saved = await client.post("/api/v1/opportunities/saved", json={"id": "3", "title": "Pier"})
        assert saved.json()["status"] == "saved"

        merged = (await client.get("/api/v1/opportunities")).json()
        assert [o["id"] for o in merged] == ["1", "2", "3"]

        assert (await client.delete("/api/v1/opportunities/saved/3")).status_code == 200
        assert (await client.delete("/api/v1/opportunities/saved/3")).status_code == 404
