"""Shared fixtures for synchronizer, gateway and API tests.

Provides:
- A deterministic IdentityGenerator (fixed clock)
- Local-only and remote-backed EntitySynchronizer instances
- An AsyncMock RemoteStore that behaves like a healthy store
- An async HTTP client bound to an app with an injected local synchronizer
"""

from __future__ import annotations

import itertools
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import BaseModel

from src.leaddesk.crm.field_mapping import EntityKind, table_for
from src.leaddesk.crm.gateway import RemoteStore
from src.leaddesk.crm.identity import IdentityGenerator
from src.leaddesk.crm.synchronizer import EntitySynchronizer

FIXED_NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)
STORE_TIMESTAMP = "2026-03-02T09:30:00+00:00"


def stored_record(kind: EntityKind, payload: BaseModel, entity_id: str) -> BaseModel:
    """Build what a healthy store would return for an insert of ``payload``."""
    meta = table_for(kind)
    attributes: dict[str, Any] = payload.model_dump()
    attributes["id"] = entity_id
    attributes["created_at"] = STORE_TIMESTAMP
    if meta.mutable:
        attributes["updated_at"] = STORE_TIMESTAMP
    return meta.model.model_validate(attributes)


def make_remote_store() -> AsyncMock:
    """AsyncMock RemoteStore configured as a reachable, empty store.

    Inserts return records with ``srv-<n>`` ids; updates return None so the
    synchronizer merges locally; deletes succeed.
    """
    counter = itertools.count(1)
    store = AsyncMock(spec=RemoteStore)
    store.is_configured = MagicMock(return_value=True)

    store.list_entities.return_value = []
    store.get_entity.return_value = None
    store.list_by_parent.return_value = []
    store.list_watchlist.return_value = []
    store.list_opportunities.return_value = []
    store.create_entity.side_effect = lambda kind, payload: stored_record(
        kind, payload, f"srv-{next(counter)}"
    )
    store.create_entities.side_effect = lambda kind, payloads: [
        stored_record(kind, p, f"srv-{next(counter)}") for p in payloads
    ]
    store.update_entity.return_value = None
    store.delete_entity.return_value = True
    store.upsert_opportunities.return_value = None
    store.add_to_watchlist.return_value = None
    store.remove_from_watchlist.return_value = None
    return store


@pytest.fixture
def identity() -> IdentityGenerator:
    """IdentityGenerator with a frozen clock."""
    return IdentityGenerator(clock=lambda: FIXED_NOW)


@pytest.fixture
def local_sync(identity) -> EntitySynchronizer:
    """Synchronizer with no store configured."""
    return EntitySynchronizer(None, identity)


@pytest.fixture
def remote_store() -> AsyncMock:
    return make_remote_store()


@pytest.fixture
def remote_sync(remote_store, identity) -> EntitySynchronizer:
    """Synchronizer backed by the mock store."""
    return EntitySynchronizer(remote_store, identity)


@pytest_asyncio.fixture
async def api_sync(identity) -> EntitySynchronizer:
    """Loaded local synchronizer for API tests (default stages seeded)."""
    sync = EntitySynchronizer(None, identity)
    await sync.load_all()
    return sync


@pytest_asyncio.fixture
async def client(api_sync) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the API with the synchronizer injected."""
    from src.leaddesk.main import create_app

    app = create_app(synchronizer=api_sync)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
