"""Supabase gateway -- RemoteStore implementation over the PostgREST API.

Talks to ``{SUPABASE_URL}/rest/v1/{table}`` with the anon key in both the
``apikey`` and bearer headers, and asks for the stored representation on
writes so server-assigned ids and timestamps come back with the insert.

Key implementation details:
- One shared httpx.AsyncClient per gateway (injectable for tests).
- Fail soft: every HTTP, decoding or row-mapping failure is logged and
  degrades to None / [] / False. No retries, no backoff.
- Row translation via field_mapping.to_row / from_row.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from pydantic import BaseModel

from src.leaddesk.crm.field_mapping import (
    WATCHLIST_TABLE,
    EntityKind,
    column_for,
    from_row,
    table_for,
    to_row,
)
from src.leaddesk.crm.gateway import RemoteStore
from src.leaddesk.crm.schemas import Opportunity, UpdateModel

logger = structlog.get_logger(__name__)

_RETURN_REPRESENTATION = "return=representation"
_MERGE_DUPLICATES = "resolution=merge-duplicates,return=minimal"


class SupabaseGateway(RemoteStore):
    """Hosted-store gateway backed by Supabase's REST interface.

    Args:
        url: Supabase project URL. Empty string means "not configured".
        key: Anon (or service) key. Empty string means "not configured".
        timeout: Client timeout in seconds; None disables it.
        client: Optional pre-built httpx.AsyncClient (tests pass one with a
            MockTransport).
    """

    def __init__(
        self,
        url: str,
        key: str,
        *,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url.rstrip("/")
        self._key = key
        self._client = client or httpx.AsyncClient(
            base_url=f"{self._url}/rest/v1",
            headers={
                "apikey": key,
                "Authorization": f"Bearer {key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    def is_configured(self) -> bool:
        return bool(self._url and self._key)

    # ── Transport ────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Issue one PostgREST request.

        Returns the decoded JSON body ([] for an empty body), or None if the
        request failed for any reason.
        """
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
            response.raise_for_status()
            if not response.content:
                return []
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error(
                "supabase.request_failed",
                method=method,
                table=table,
                error=str(exc),
            )
            return None

    def _to_models(self, kind: EntityKind, rows: Any) -> list[BaseModel]:
        if not isinstance(rows, list):
            return []
        models: list[BaseModel] = []
        for row in rows:
            try:
                models.append(from_row(kind, row))
            except ValueError as exc:
                logger.error(
                    "supabase.row_mapping_failed",
                    kind=kind.value,
                    row_id=row.get("id") if isinstance(row, dict) else None,
                    error=str(exc),
                )
        return models

    def _first(self, kind: EntityKind, rows: Any) -> BaseModel | None:
        models = self._to_models(kind, rows)
        return models[0] if models else None

    @staticmethod
    def _order(kind: EntityKind) -> str:
        return ",".join(
            f"{column}.{'desc' if descending else 'asc'}"
            for column, descending in table_for(kind).order
        )

    # ── Entity CRUD ──────────────────────────────────────────────────────

    async def list_entities(self, kind: EntityKind) -> list[BaseModel]:
        meta = table_for(kind)
        params: dict[str, Any] = {"select": "*", "order": self._order(kind)}
        if meta.limit is not None:
            params["limit"] = meta.limit
        rows = await self._request("GET", meta.table, params=params)
        return self._to_models(kind, rows)

    async def get_entity(self, kind: EntityKind, entity_id: str) -> BaseModel | None:
        meta = table_for(kind)
        rows = await self._request(
            "GET",
            meta.table,
            params={"select": "*", "id": f"eq.{entity_id}", "limit": 1},
        )
        return self._first(kind, rows)

    async def list_by_parent(
        self, kind: EntityKind, parent_attribute: str, parent_id: str
    ) -> list[BaseModel]:
        meta = table_for(kind)
        rows = await self._request(
            "GET",
            meta.table,
            params={
                "select": "*",
                column_for(kind, parent_attribute): f"eq.{parent_id}",
                "order": self._order(kind),
            },
        )
        return self._to_models(kind, rows)

    async def create_entity(self, kind: EntityKind, payload: BaseModel) -> BaseModel | None:
        meta = table_for(kind)
        rows = await self._request(
            "POST", meta.table, json=to_row(kind, payload), prefer=_RETURN_REPRESENTATION
        )
        created = self._first(kind, rows)
        if created is not None:
            logger.info("supabase.entity_created", kind=kind.value, entity_id=created.id)
        return created

    async def create_entities(
        self, kind: EntityKind, payloads: list[BaseModel]
    ) -> list[BaseModel]:
        meta = table_for(kind)
        rows = await self._request(
            "POST",
            meta.table,
            json=[to_row(kind, payload) for payload in payloads],
            prefer=_RETURN_REPRESENTATION,
        )
        created = self._to_models(kind, rows)
        logger.info("supabase.entities_created", kind=kind.value, count=len(created))
        return created

    async def update_entity(
        self, kind: EntityKind, entity_id: str, changes: UpdateModel
    ) -> BaseModel | None:
        meta = table_for(kind)
        row = to_row(kind, changes.changes())
        if meta.mutable:
            row["updated_at"] = datetime.now(timezone.utc).isoformat()
        if not row:
            return await self.get_entity(kind, entity_id)

        rows = await self._request(
            "PATCH",
            meta.table,
            params={"id": f"eq.{entity_id}"},
            json=row,
            prefer=_RETURN_REPRESENTATION,
        )
        updated = self._first(kind, rows)
        if updated is not None:
            logger.info(
                "supabase.entity_updated",
                kind=kind.value,
                entity_id=entity_id,
                columns=sorted(row),
            )
        return updated

    async def delete_entity(self, kind: EntityKind, entity_id: str) -> bool:
        meta = table_for(kind)
        result = await self._request("DELETE", meta.table, params={"id": f"eq.{entity_id}"})
        if result is None:
            return False
        logger.info("supabase.entity_deleted", kind=kind.value, entity_id=entity_id)
        return True

    # ── Opportunities & Watchlist ────────────────────────────────────────

    async def upsert_opportunities(self, opportunities: list[Opportunity]) -> None:
        if not opportunities:
            return
        await self._request(
            "POST",
            table_for(EntityKind.OPPORTUNITY).table,
            params={"on_conflict": "id"},
            json=[to_row(EntityKind.OPPORTUNITY, opp) for opp in opportunities],
            prefer=_MERGE_DUPLICATES,
        )

    async def list_opportunities(self) -> list[Opportunity]:
        return await self.list_entities(EntityKind.OPPORTUNITY)  # type: ignore[return-value]

    async def list_watchlist(self) -> list[Opportunity]:
        rows = await self._request(
            "GET",
            WATCHLIST_TABLE,
            params={
                "select": "opportunity_id,opportunities(*)",
                "order": "created_at.desc",
            },
        )
        if not isinstance(rows, list):
            return []
        embedded = [row["opportunities"] for row in rows if row.get("opportunities")]
        return self._to_models(EntityKind.OPPORTUNITY, embedded)  # type: ignore[return-value]

    async def add_to_watchlist(self, opportunity_id: str) -> None:
        await self._request(
            "POST",
            WATCHLIST_TABLE,
            params={"on_conflict": "opportunity_id"},
            json={"opportunity_id": opportunity_id},
            prefer=_MERGE_DUPLICATES,
        )

    async def remove_from_watchlist(self, opportunity_id: str) -> None:
        await self._request(
            "DELETE",
            WATCHLIST_TABLE,
            params={"opportunity_id": f"eq.{opportunity_id}"},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
