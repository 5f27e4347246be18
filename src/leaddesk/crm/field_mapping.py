"""Bidirectional row mappings between in-memory entities and store tables.

Defines:
- EntityKind: every entity kind the synchronization layer governs.
- ColumnMapping / EntityTable: one explicit mapping table per kind
  (attribute name, store column, direction, nullability) plus table name,
  model class, default list ordering and mutability.
- ENTITY_TABLES: exhaustive over EntityKind (checked at import time).
- to_row(): converts a payload model or attribute dict to a store row.
- from_row(): converts a store row to the entity model.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel

from src.leaddesk.crm.schemas import (
    Activity,
    Company,
    Contact,
    EmailCampaign,
    GeneratedDocument,
    Opportunity,
    PipelineDeal,
    PipelineStage,
)


class EntityKind(str, Enum):
    CONTACT = "contact"
    COMPANY = "company"
    STAGE = "stage"
    DEAL = "deal"
    ACTIVITY = "activity"
    CAMPAIGN = "campaign"
    DOCUMENT = "document"
    OPPORTUNITY = "opportunity"


class Direction(str, Enum):
    """Whether a column is written by us or only assigned by the store."""

    BOTH = "both"
    READ = "read"


@dataclass(frozen=True)
class ColumnMapping:
    attribute: str
    column: str
    direction: Direction = Direction.BOTH
    nullable: bool = False


@dataclass(frozen=True)
class EntityTable:
    """Store-side description of one entity kind."""

    kind: EntityKind
    table: str
    model: type[BaseModel]
    columns: tuple[ColumnMapping, ...]
    order: tuple[tuple[str, bool], ...]  # (column, descending)
    mutable: bool = True
    limit: int | None = None

    def writable(self) -> tuple[ColumnMapping, ...]:
        return tuple(c for c in self.columns if c.direction is Direction.BOTH)

    def by_attribute(self, attribute: str) -> ColumnMapping:
        for mapping in self.columns:
            if mapping.attribute == attribute:
                return mapping
        raise KeyError(f"{self.kind.value} has no attribute {attribute!r}")


def _col(attribute: str, column: str | None = None, *, nullable: bool = False) -> ColumnMapping:
    return ColumnMapping(attribute, column or attribute, Direction.BOTH, nullable)


# Store-assigned columns shared by every kind
_ID = ColumnMapping("id", "id", Direction.READ)
_CREATED = ColumnMapping("created_at", "created_at", Direction.READ)
_UPDATED = ColumnMapping("updated_at", "updated_at", Direction.READ)


# ── Mapping Tables ──────────────────────────────────────────────────────────

ENTITY_TABLES: dict[EntityKind, EntityTable] = {
    EntityKind.CONTACT: EntityTable(
        kind=EntityKind.CONTACT,
        table="crm_contacts",
        model=Contact,
        columns=(
            _ID,
            _col("first_name"),
            _col("last_name"),
            _col("email"),
            _col("phone"),
            _col("company_id", nullable=True),
            _col("job_title"),
            _col("tags"),
            _col("notes"),
            _col("linked_opportunity_ids"),
            _CREATED,
            _UPDATED,
        ),
        order=(("created_at", True),),
    ),
    EntityKind.COMPANY: EntityTable(
        kind=EntityKind.COMPANY,
        table="crm_companies",
        model=Company,
        columns=(
            _ID,
            _col("name"),
            _col("industry"),
            _col("website"),
            _col("address"),
            _col("phone"),
            _col("notes"),
            _CREATED,
            _UPDATED,
        ),
        order=(("name", False),),
    ),
    EntityKind.STAGE: EntityTable(
        kind=EntityKind.STAGE,
        table="pipeline_stages",
        model=PipelineStage,
        columns=(
            _ID,
            _col("name"),
            _col("color"),
            _col("position"),
            _CREATED,
        ),
        order=(("position", False),),
        mutable=False,
    ),
    EntityKind.DEAL: EntityTable(
        kind=EntityKind.DEAL,
        table="pipeline_deals",
        model=PipelineDeal,
        columns=(
            _ID,
            _col("title"),
            _col("value"),
            _col("contact_id"),
            _col("company_id", nullable=True),
            _col("stage_id"),
            _col("opportunity_id", nullable=True),
            _col("probability"),
            _col("expected_close_date"),
            _col("notes"),
            _CREATED,
            _UPDATED,
        ),
        order=(("created_at", True),),
    ),
    EntityKind.ACTIVITY: EntityTable(
        kind=EntityKind.ACTIVITY,
        table="crm_activities",
        model=Activity,
        columns=(
            _ID,
            _col("contact_id"),
            _col("deal_id", nullable=True),
            _col("type"),
            _col("title"),
            _col("description"),
            _CREATED,
        ),
        order=(("created_at", True),),
        mutable=False,
        limit=100,
    ),
    EntityKind.CAMPAIGN: EntityTable(
        kind=EntityKind.CAMPAIGN,
        table="email_campaigns",
        model=EmailCampaign,
        columns=(
            _ID,
            _col("name"),
            _col("status"),
            _col("opportunity_id", nullable=True),
            _col("linked_contact_ids"),
            _col("steps"),
            _CREATED,
            _UPDATED,
        ),
        order=(("updated_at", True),),
    ),
    EntityKind.DOCUMENT: EntityTable(
        kind=EntityKind.DOCUMENT,
        table="outreach_assets",
        model=GeneratedDocument,
        columns=(
            _ID,
            _col("opportunity_id"),
            _col("kind", "asset_type"),
            _col("title"),
            _col("sections"),
            _col("content"),
            _CREATED,
            _UPDATED,
        ),
        order=(("created_at", True),),
    ),
    EntityKind.OPPORTUNITY: EntityTable(
        kind=EntityKind.OPPORTUNITY,
        table="opportunities",
        model=Opportunity,
        columns=(
            # Opportunity ids come from lead search, so the id is written
            _col("id"),
            _col("title"),
            _col("location"),
            _col("description"),
            _col("stage"),
            _col("estimated_value", nullable=True),
            _col("source"),
            _col("url", nullable=True),
            _col("timestamp", "discovered_at"),
        ),
        order=(("created_at", True),),
        mutable=False,
    ),
}

WATCHLIST_TABLE = "watchlist_items"

_missing = set(EntityKind) - set(ENTITY_TABLES)
if _missing:
    raise RuntimeError(f"No row mapping for entity kinds: {sorted(k.value for k in _missing)}")


# ── Conversion Functions ────────────────────────────────────────────────────


def table_for(kind: EntityKind) -> EntityTable:
    return ENTITY_TABLES[kind]


def column_for(kind: EntityKind, attribute: str) -> str:
    """Return the store column backing an in-memory attribute."""
    return ENTITY_TABLES[kind].by_attribute(attribute).column


def to_row(kind: EntityKind, data: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """Convert a payload to a store row.

    Only writable attributes present in ``data`` are emitted. Nested models
    and enums are dumped to JSON-compatible values first.

    Args:
        kind: Entity kind whose mapping table applies.
        data: Pydantic payload model or dict keyed by attribute name.

    Returns:
        Dict keyed by store column name.
    """
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")

    row: dict[str, Any] = {}
    for mapping in ENTITY_TABLES[kind].writable():
        if mapping.attribute in data:
            row[mapping.column] = data[mapping.attribute]
    return row


def from_row(kind: EntityKind, row: dict[str, Any]) -> BaseModel:
    """Convert a store row to the entity model for ``kind``.

    NULL in a non-nullable column is dropped so the model default (empty
    string, empty list, 0) applies.
    """
    meta = ENTITY_TABLES[kind]
    attributes: dict[str, Any] = {}

    for mapping in meta.columns:
        if mapping.column not in row:
            continue
        value = row[mapping.column]
        if value is None and not mapping.nullable:
            continue
        attributes[mapping.attribute] = value

    return meta.model.model_validate(attributes)
