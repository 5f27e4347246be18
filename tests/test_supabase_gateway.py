"""Unit tests for the Supabase PostgREST gateway.

Uses httpx.MockTransport -- no real network calls. Covers request shape
(table, filters, ordering, Prefer headers), row translation and the
fail-soft policy.
"""

from __future__ import annotations

import json

import httpx
import pytest

from src.leaddesk.crm.field_mapping import EntityKind
from src.leaddesk.crm.gateway import RemoteStore
from src.leaddesk.crm.schemas import (
    Contact,
    ContactCreate,
    ContactUpdate,
    Opportunity,
    PipelineStageCreate,
    PipelineStageUpdate,
)
from src.leaddesk.crm.supabase import SupabaseGateway

BASE_URL = "https://demo.supabase.co"

CONTACT_ROW = {
    "id": "6d1f0f6e-0000-4000-8000-000000000001",
    "first_name": "Ada",
    "last_name": "Byrne",
    "email": "ada@example.com",
    "phone": None,
    "company_id": None,
    "job_title": "Architect",
    "tags": ["planning"],
    "notes": None,
    "linked_opportunity_ids": [],
    "created_at": "2026-01-01T00:00:00+00:00",
    "updated_at": "2026-01-01T00:00:00+00:00",
}


class Recorder:
    """MockTransport handler that records requests and replays a canned response."""

    def __init__(self, status_code: int = 200, body=None, exc: Exception | None = None) -> None:
        self.status_code = status_code
        self.body = body
        self.exc = exc
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        if self.body is None:
            return httpx.Response(self.status_code)
        return httpx.Response(self.status_code, json=self.body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


def _gateway(recorder: Recorder) -> SupabaseGateway:
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(recorder),
        base_url=f"{BASE_URL}/rest/v1",
    )
    return SupabaseGateway(BASE_URL, "anon-key", client=client)


# ── Interface & Configuration ─────────────────────────────────────────────


class TestRemoteStoreABC:
    """RemoteStore cannot be used without an implementation."""

    def test_cannot_be_instantiated(self):
        with pytest.raises(TypeError, match="abstract"):
            RemoteStore()  # type: ignore[abstract]


class TestConfiguration:
    """is_configured requires both URL and key."""

    def test_configured_with_url_and_key(self):
        assert SupabaseGateway(BASE_URL, "anon-key").is_configured()

    def test_unconfigured_without_key(self):
        assert not SupabaseGateway(BASE_URL, "").is_configured()

    def test_unconfigured_without_url(self):
        assert not SupabaseGateway("", "anon-key").is_configured()

    def test_default_client_sends_auth_headers(self):
        gateway = SupabaseGateway(BASE_URL + "/", "anon-key")
        headers = gateway._client.headers
        assert headers["apikey"] == "anon-key"
        assert headers["Authorization"] == "Bearer anon-key"
        assert str(gateway._client.base_url).rstrip("/") == f"{BASE_URL}/rest/v1"


# ── Reads ─────────────────────────────────────────────────────────────────


class TestReads:
    """List/get requests and row translation."""

    async def test_list_entities_orders_and_maps_rows(self):
        """Contacts are listed newest first and mapped to Contact models."""
        recorder = Recorder(body=[CONTACT_ROW])
        contacts = await _gateway(recorder).list_entities(EntityKind.CONTACT)

        request = recorder.last
        assert request.method == "GET"
        assert request.url.path == "/rest/v1/crm_contacts"
        assert request.url.params["order"] == "created_at.desc"
        assert request.url.params["select"] == "*"

        assert len(contacts) == 1
        assert isinstance(contacts[0], Contact)
        assert contacts[0].phone == ""
        assert contacts[0].tags == ["planning"]

    async def test_activity_list_is_limited(self):
        recorder = Recorder(body=[])
        await _gateway(recorder).list_entities(EntityKind.ACTIVITY)
        assert recorder.last.url.params["limit"] == "100"

    async def test_get_entity_filters_by_id(self):
        recorder = Recorder(body=[CONTACT_ROW])
        contact = await _gateway(recorder).get_entity(EntityKind.CONTACT, CONTACT_ROW["id"])
        assert recorder.last.url.params["id"] == f"eq.{CONTACT_ROW['id']}"
        assert contact is not None
        assert contact.email == "ada@example.com"

    async def test_get_entity_absent_returns_none(self):
        recorder = Recorder(body=[])
        assert await _gateway(recorder).get_entity(EntityKind.CONTACT, "missing") is None

    async def test_list_by_parent_uses_store_column(self):
        recorder = Recorder(body=[])
        await _gateway(recorder).list_by_parent(EntityKind.DOCUMENT, "opportunity_id", "opp-1")
        assert recorder.last.url.path == "/rest/v1/outreach_assets"
        assert recorder.last.url.params["opportunity_id"] == "eq.opp-1"


# ── Writes ────────────────────────────────────────────────────────────────


class TestWrites:
    """Insert/update/delete requests."""

    async def test_create_entity_asks_for_representation(self):
        recorder = Recorder(status_code=201, body=[CONTACT_ROW])
        created = await _gateway(recorder).create_entity(
            EntityKind.CONTACT, ContactCreate(first_name="Ada", last_name="Byrne")
        )

        request = recorder.last
        assert request.method == "POST"
        assert request.headers["Prefer"] == "return=representation"
        body = json.loads(request.content)
        assert body["first_name"] == "Ada"
        assert "id" not in body
        assert created is not None
        assert created.id == CONTACT_ROW["id"]

    async def test_create_entities_sends_one_bulk_insert(self):
        stage_rows = [
            {"id": "s1", "name": "Lead", "color": "slate", "position": 0, "created_at": "t"},
            {"id": "s2", "name": "Won", "color": "emerald", "position": 1, "created_at": "t"},
        ]
        recorder = Recorder(status_code=201, body=stage_rows)
        created = await _gateway(recorder).create_entities(
            EntityKind.STAGE,
            [PipelineStageCreate(name="Lead"), PipelineStageCreate(name="Won", position=1)],
        )
        assert len(recorder.requests) == 1
        assert len(json.loads(recorder.last.content)) == 2
        assert [s.id for s in created] == ["s1", "s2"]

    async def test_update_mutable_kind_refreshes_updated_at(self):
        recorder = Recorder(body=[CONTACT_ROW])
        await _gateway(recorder).update_entity(
            EntityKind.CONTACT, "c-1", ContactUpdate(job_title="Director")
        )
        request = recorder.last
        assert request.method == "PATCH"
        assert request.url.params["id"] == "eq.c-1"
        body = json.loads(request.content)
        assert body["job_title"] == "Director"
        assert "updated_at" in body

    async def test_update_stage_has_no_updated_at(self):
        row = {"id": "s1", "name": "Lead", "color": "slate", "position": 3, "created_at": "t"}
        recorder = Recorder(body=[row])
        updated = await _gateway(recorder).update_entity(
            EntityKind.STAGE, "s1", PipelineStageUpdate(position=3)
        )
        assert json.loads(recorder.last.content) == {"position": 3}
        assert updated.position == 3

    async def test_update_with_no_changes_reads_current_row(self):
        """An empty immutable-kind update becomes a plain GET."""
        row = {"id": "s1", "name": "Lead", "color": "slate", "position": 0, "created_at": "t"}
        recorder = Recorder(body=[row])
        await _gateway(recorder).update_entity(EntityKind.STAGE, "s1", PipelineStageUpdate())
        assert recorder.last.method == "GET"

    async def test_delete_with_empty_body_succeeds(self):
        recorder = Recorder(status_code=204)
        assert await _gateway(recorder).delete_entity(EntityKind.DEAL, "d-1") is True
        assert recorder.last.method == "DELETE"
        assert recorder.last.url.params["id"] == "eq.d-1"


# ── Opportunities & Watchlist ─────────────────────────────────────────────


class TestOpportunities:
    """Opportunity upserts and the saved-leads watchlist."""

    async def test_upsert_merges_on_id(self):
        recorder = Recorder(status_code=201)
        opp = Opportunity(id="opp-1", title="Harbour Bridge Refit", timestamp="2026-01-03")
        await _gateway(recorder).upsert_opportunities([opp])

        request = recorder.last
        assert request.url.path == "/rest/v1/opportunities"
        assert request.url.params["on_conflict"] == "id"
        assert "merge-duplicates" in request.headers["Prefer"]
        assert json.loads(request.content)[0]["discovered_at"] == "2026-01-03"

    async def test_upsert_nothing_sends_nothing(self):
        recorder = Recorder()
        await _gateway(recorder).upsert_opportunities([])
        assert recorder.requests == []

    async def test_watchlist_unwraps_embedded_opportunities(self):
        body = [
            {
                "opportunity_id": "opp-1",
                "opportunities": {
                    "id": "opp-1",
                    "title": "Harbour Bridge Refit",
                    "stage": "Tender",
                    "discovered_at": "2026-01-03",
                },
            },
            {"opportunity_id": "opp-gone", "opportunities": None},
        ]
        recorder = Recorder(body=body)
        saved = await _gateway(recorder).list_watchlist()

        assert recorder.last.url.path == "/rest/v1/watchlist_items"
        assert [o.id for o in saved] == ["opp-1"]
        assert saved[0].timestamp == "2026-01-03"

    async def test_remove_from_watchlist_filters_by_opportunity(self):
        recorder = Recorder(status_code=204)
        await _gateway(recorder).remove_from_watchlist("opp-1")
        assert recorder.last.method == "DELETE"
        assert recorder.last.url.params["opportunity_id"] == "eq.opp-1"


# ── Fail-Soft Policy ──────────────────────────────────────────────────────


class TestFailSoft:
    """Failures are logged and degraded, never raised."""

    async def test_server_error_degrades_to_empty_list(self):
        recorder = Recorder(status_code=500, body={"message": "boom"})
        assert await _gateway(recorder).list_entities(EntityKind.DEAL) == []

    async def test_connection_error_degrades_to_none(self):
        recorder = Recorder(exc=httpx.ConnectError("unreachable"))
        created = await _gateway(recorder).create_entity(
            EntityKind.CONTACT, ContactCreate(first_name="Ada", last_name="Byrne")
        )
        assert created is None

    async def test_failed_delete_returns_false(self):
        recorder = Recorder(status_code=401, body={"message": "JWT expired"})
        assert await _gateway(recorder).delete_entity(EntityKind.DEAL, "d-1") is False

    async def test_malformed_rows_degrade_to_empty_list(self):
        recorder = Recorder(body=[{"id": "c-1"}])
        assert await _gateway(recorder).list_entities(EntityKind.CONTACT) == []

    async def test_one_malformed_row_does_not_drop_the_rest(self):
        """Only the row that fails validation is skipped."""
        bad_row = {**CONTACT_ROW, "id": "c-bad", "first_name": None}
        recorder = Recorder(body=[CONTACT_ROW, bad_row])

        contacts = await _gateway(recorder).list_entities(EntityKind.CONTACT)

        assert [c.id for c in contacts] == [CONTACT_ROW["id"]]

    async def test_non_json_body_degrades(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"<html>gateway timeout</html>")

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(handler), base_url=f"{BASE_URL}/rest/v1"
        )
        gateway = SupabaseGateway(BASE_URL, "anon-key", client=client)
        assert await gateway.get_entity(EntityKind.CONTACT, "c-1") is None
