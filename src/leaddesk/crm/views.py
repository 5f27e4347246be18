"""Derived read-only views over the synchronized collections.

Pure, deterministic projections (opportunity merge, per-contact filters,
per-stage counts and value totals, the pipeline board, document text
export) plus DerivedViews, which recomputes a projection only when the
identity of one of its input lists changes. The synchronizer replaces a
list on every mutation, so identity is a sufficient change signal; there
is no incremental bookkeeping.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from pydantic import Field

from src.leaddesk.crm.schemas import (
    PROPOSAL_SECTIONS,
    Activity,
    CamelModel,
    Company,
    Contact,
    DocumentKind,
    GeneratedDocument,
    Opportunity,
    PipelineDeal,
    PipelineStage,
)

if TYPE_CHECKING:
    from src.leaddesk.crm.synchronizer import CollectionState

UNKNOWN_LABEL = "unknown"

_NON_NUMERIC = re.compile(r"[^0-9.]")
_LEADING_NUMBER = re.compile(r"\d*\.?\d+")
_SECTION_LABELS = dict(PROPOSAL_SECTIONS)
_DOCUMENT_SEPARATOR = "\n\n---\n\n"


class StageColumn(CamelModel):
    """One column of the pipeline board."""

    stage: PipelineStage
    deals: list[PipelineDeal] = Field(default_factory=list)
    deal_count: int = 0
    value_label: str = ""


class ContactDetail(CamelModel):
    """Everything the contact detail pane shows for one contact."""

    contact: Contact
    company: Company | None = None
    activities: list[Activity] = Field(default_factory=list)
    deals: list[PipelineDeal] = Field(default_factory=list)
    linked_opportunities: list[Opportunity] = Field(default_factory=list)


# ── Pure Projections ────────────────────────────────────────────────────────


def merge_opportunities(*collections: Iterable[Opportunity]) -> list[Opportunity]:
    """Deduplicate opportunity collections by id.

    Later occurrences replace earlier ones (last write wins) but keep the
    position where the id was first seen. Merging a collection with itself
    returns it unchanged.
    """
    merged: dict[str, Opportunity] = {}
    for collection in collections:
        for opp in collection:
            merged[opp.id] = opp
    return list(merged.values())


def activities_for_contact(activities: Iterable[Activity], contact_id: str) -> list[Activity]:
    return [a for a in activities if a.contact_id == contact_id]


def deals_for_contact(deals: Iterable[PipelineDeal], contact_id: str) -> list[PipelineDeal]:
    return [d for d in deals if d.contact_id == contact_id]


def linked_opportunities(
    contact: Contact, opportunities: Iterable[Opportunity]
) -> list[Opportunity]:
    """Resolve a contact's linked ids; ids with no matching opportunity are skipped."""
    linked = set(contact.linked_opportunity_ids)
    return [o for o in opportunities if o.id in linked]


def contact_company(contact: Contact, companies: Iterable[Company]) -> Company | None:
    if not contact.company_id:
        return None
    return next((c for c in companies if c.id == contact.company_id), None)


def deal_count_by_stage(deals: Iterable[PipelineDeal]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for deal in deals:
        counts[deal.stage_id] = counts.get(deal.stage_id, 0) + 1
    return counts


def parse_deal_value(value: str) -> float:
    """Best-effort numeric reading of an opaque display value.

    Everything except digits and '.' is stripped, then the leading number
    is read ("£10,000" -> 10000.0). Unparsable values count as zero.
    """
    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", value or ""))
    return float(match.group()) if match else 0.0


def stage_value_total(deals: Iterable[PipelineDeal], stage_id: str) -> float:
    return sum(parse_deal_value(d.value) for d in deals if d.stage_id == stage_id)


def format_stage_value(total: float) -> str:
    """Render a stage total; zero renders as no indicator at all."""
    if total == 0:
        return ""
    if float(total).is_integer():
        return f"{int(total):,}"
    return f"{total:,.2f}"


def stage_name(
    stages: Iterable[PipelineStage], stage_id: str | None, fallback: str = UNKNOWN_LABEL
) -> str:
    """Resolve a stage id to its name, or ``fallback`` when it does not resolve."""
    for stage in stages:
        if stage.id == stage_id:
            return stage.name
    return fallback


def pipeline_board(
    stages: Iterable[PipelineStage], deals: list[PipelineDeal]
) -> list[StageColumn]:
    """Group deals into stage columns in stage order.

    Deals whose stage id no longer resolves are not shown on the board.
    """
    columns: list[StageColumn] = []
    for stage in sorted(stages, key=lambda s: s.position):
        stage_deals = [d for d in deals if d.stage_id == stage.id]
        columns.append(
            StageColumn(
                stage=stage,
                deals=stage_deals,
                deal_count=len(stage_deals),
                value_label=format_stage_value(stage_value_total(stage_deals, stage.id)),
            )
        )
    return columns


def _humanize(key: str) -> str:
    return key.replace("_", " ").capitalize()


def render_document_text(document: GeneratedDocument) -> str:
    """Plain-text export of a generated document (copy / download).

    Proposals render their selected sections in order under their labels;
    email sequences render one block per step; other kinds render every
    content field under a humanized heading.
    """
    content = document.content

    if document.kind is DocumentKind.PROPOSAL:
        blocks = [
            f"## {_SECTION_LABELS.get(key, key)}\n\n{content.get(key) or ''}"
            for key in document.sections
        ]
    elif document.kind is DocumentKind.EMAIL_SEQUENCE:
        blocks = []
        for index, step in enumerate(content.get("steps") or [], start=1):
            blocks.append(
                f"## Email {index}: {step.get('subject', '')}\n\n"
                f"{step.get('body', '')}\n\n"
                f"Send: {step.get('send_delay', '')}\n"
                f"Call to action: {step.get('call_to_action', '')}"
            )
    else:
        blocks = [f"## {_humanize(key)}\n\n{value}" for key, value in content.items()]

    return _DOCUMENT_SEPARATOR.join(blocks)


# ── Memoized View Builder ───────────────────────────────────────────────────


class DerivedViews:
    """Projections over a CollectionState, recomputed on input identity change.

    Args:
        state: The synchronizer's collection state. Read fresh on every call.
    """

    def __init__(self, state: CollectionState) -> None:
        self._state = state
        self._cache: dict[str, tuple[tuple[Any, ...], Any]] = {}

    def _memo(self, key: str, inputs: tuple[Any, ...], compute: Callable[..., Any]) -> Any:
        cached = self._cache.get(key)
        if cached is not None:
            previous, value = cached
            if len(previous) == len(inputs) and all(a is b for a, b in zip(previous, inputs)):
                return value
        value = compute(*inputs)
        self._cache[key] = (inputs, value)
        return value

    def invalidate(self) -> None:
        self._cache.clear()

    def forget(self, entity_id: str) -> None:
        """Drop the per-entity projections memoized for a deleted contact or stage."""
        suffix = f":{entity_id}"
        for key in [k for k in self._cache if k.endswith(suffix)]:
            del self._cache[key]

    def _contact(self, contact_id: str) -> Contact | None:
        return next((c for c in self._state.contacts if c.id == contact_id), None)

    def all_opportunities(self) -> list[Opportunity]:
        state = self._state
        return self._memo(
            "all_opportunities",
            (state.opportunities, state.saved_leads),
            merge_opportunities,
        )

    def deal_count_by_stage(self) -> dict[str, int]:
        return self._memo("deal_count_by_stage", (self._state.deals,), deal_count_by_stage)

    def pipeline_board(self) -> list[StageColumn]:
        state = self._state
        return self._memo("pipeline_board", (state.stages, state.deals), pipeline_board)

    def stage_value_label(self, stage_id: str) -> str:
        return self._memo(
            f"stage_value:{stage_id}",
            (self._state.deals,),
            lambda deals: format_stage_value(stage_value_total(deals, stage_id)),
        )

    def contact_activities(self, contact_id: str) -> list[Activity]:
        return self._memo(
            f"contact_activities:{contact_id}",
            (self._state.activities,),
            lambda activities: activities_for_contact(activities, contact_id),
        )

    def contact_deals(self, contact_id: str) -> list[PipelineDeal]:
        return self._memo(
            f"contact_deals:{contact_id}",
            (self._state.deals,),
            lambda deals: deals_for_contact(deals, contact_id),
        )

    def linked_opportunities(self, contact_id: str) -> list[Opportunity]:
        contact = self._contact(contact_id)
        if contact is None:
            return []
        return self._memo(
            f"linked_opportunities:{contact_id}",
            (contact, self.all_opportunities()),
            linked_opportunities,
        )

    def contact_detail(self, contact_id: str) -> ContactDetail | None:
        contact = self._contact(contact_id)
        if contact is None:
            return None
        return ContactDetail(
            contact=contact,
            company=contact_company(contact, self._state.companies),
            activities=self.contact_activities(contact_id),
            deals=self.contact_deals(contact_id),
            linked_opportunities=self.linked_opportunities(contact_id),
        )
