"""Remote store gateway abstract base class.

Defines the per-entity interface the EntitySynchronizer calls when a
hosted store is configured. Implementations translate between in-memory
attribute names and the store's row shape (see field_mapping) and follow
a fail-soft policy: failures are caught and logged inside the gateway and
degrade to ``None`` / ``[]`` / ``False``. Nothing here raises to callers.

Callers must check ``is_configured()`` before any other call; the gateway
does not guard itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel

from src.leaddesk.crm.field_mapping import EntityKind
from src.leaddesk.crm.schemas import Opportunity, UpdateModel


class RemoteStore(ABC):
    """Abstract interface for the hosted relational store.

    Methods:
        is_configured: Whether connection parameters are present.
        list_entities: All rows of a kind in the kind's default ordering.
        get_entity: One row by id.
        list_by_parent: Rows whose foreign key matches a parent id.
        create_entity: Insert one row, return the stored record.
        create_entities: Bulk insert, return the stored records.
        update_entity: Partial update, return the stored record.
        delete_entity: Delete by id.
        upsert_opportunities: Persist search results keyed by opportunity id.
        list_opportunities: Previously persisted search results.
        list_watchlist: Saved ("watchlisted") opportunities.
        add_to_watchlist / remove_from_watchlist: Toggle a saved opportunity.
        aclose: Release the underlying connection pool.
    """

    @abstractmethod
    def is_configured(self) -> bool:
        """Return True if the store connection parameters are present."""
        ...

    @abstractmethod
    async def list_entities(self, kind: EntityKind) -> list[BaseModel]:
        """List all entities of ``kind``; empty list on failure."""
        ...

    @abstractmethod
    async def get_entity(self, kind: EntityKind, entity_id: str) -> BaseModel | None:
        """Fetch one entity by id; None on failure or absence."""
        ...

    @abstractmethod
    async def list_by_parent(
        self, kind: EntityKind, parent_attribute: str, parent_id: str
    ) -> list[BaseModel]:
        """List entities whose ``parent_attribute`` equals ``parent_id``."""
        ...

    @abstractmethod
    async def create_entity(self, kind: EntityKind, payload: BaseModel) -> BaseModel | None:
        """Insert one entity; returns the stored record or None on failure."""
        ...

    @abstractmethod
    async def create_entities(
        self, kind: EntityKind, payloads: list[BaseModel]
    ) -> list[BaseModel]:
        """Insert several entities at once; empty list on failure."""
        ...

    @abstractmethod
    async def update_entity(
        self, kind: EntityKind, entity_id: str, changes: UpdateModel
    ) -> BaseModel | None:
        """Apply a partial update; returns the stored record or None on failure."""
        ...

    @abstractmethod
    async def delete_entity(self, kind: EntityKind, entity_id: str) -> bool:
        """Delete by id; False on failure."""
        ...

    @abstractmethod
    async def upsert_opportunities(self, opportunities: list[Opportunity]) -> None:
        ...

    @abstractmethod
    async def list_opportunities(self) -> list[Opportunity]:
        ...

    @abstractmethod
    async def list_watchlist(self) -> list[Opportunity]:
        ...

    @abstractmethod
    async def add_to_watchlist(self, opportunity_id: str) -> None:
        ...

    @abstractmethod
    async def remove_from_watchlist(self, opportunity_id: str) -> None:
        ...

    @abstractmethod
    async def aclose(self) -> None:
        ...
