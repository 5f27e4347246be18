"""Pydantic schemas for the CRM entity kinds and their payloads.

Defines all structured types handled by the synchronization layer:
- Enums: ActivityType, CampaignStatus, StageColor, DocumentKind, OpportunityStage
- Entities: Contact, Company, PipelineStage, PipelineDeal, Activity,
  EmailCampaign, GeneratedDocument, Opportunity (read-only here)
- Payloads: <Kind>Create / <Kind>Update, StageChanges
- Constants: DEFAULT_PIPELINE_STAGES, PROPOSAL_SECTIONS

Attributes are snake_case in Python and serialize to camelCase for the
browser front end.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting snake_case or camelCase, emitting camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UpdateModel(CamelModel):
    """Partial-update payload.

    Only explicitly-set fields apply. ``None`` is honoured only for the
    attributes listed in ``nullable_fields`` (foreign keys that may be
    cleared); elsewhere it means "leave unchanged".
    """

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    def changes(self) -> dict[str, Any]:
        """Return the set fields as a plain dict, JSON-ready."""
        data = self.model_dump(mode="json", exclude_unset=True)
        return {
            key: value
            for key, value in data.items()
            if value is not None or key in self.nullable_fields
        }


# ── Enums ───────────────────────────────────────────────────────────────────


class ActivityType(str, Enum):
    """Kinds of entries in the append-only activity log."""

    NOTE = "note"
    CALL = "call"
    EMAIL = "email"
    MEETING = "meeting"
    TASK = "task"
    DEAL_MOVED = "deal_moved"
    CONTACT_CREATED = "contact_created"


class CampaignStatus(str, Enum):
    """Email campaign status. Displayed as a progression, not enforced."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


class StageColor(str, Enum):
    """Display palette for pipeline stages."""

    SLATE = "slate"
    BLUE = "blue"
    AMBER = "amber"
    PURPLE = "purple"
    EMERALD = "emerald"
    RED = "red"
    PINK = "pink"
    CYAN = "cyan"
    ORANGE = "orange"
    INDIGO = "indigo"


class DocumentKind(str, Enum):
    """Kinds of LLM-generated outreach collateral."""

    EMAIL_SEQUENCE = "email_sequence"
    PROPOSAL = "proposal"
    ONE_PAGER = "one_pager"


class OpportunityStage(str, Enum):
    """Construction stage of a discovered project lead."""

    PLANNING = "Planning"
    TENDER = "Tender"
    CONSTRUCTION = "Construction"


# ── Contacts ────────────────────────────────────────────────────────────────


class ContactCreate(CamelModel):
    """Schema for creating a contact."""

    first_name: str
    last_name: str
    email: str = ""
    phone: str = ""
    company_id: str | None = None
    job_title: str = ""
    tags: list[str] = Field(default_factory=list)
    notes: str = ""
    linked_opportunity_ids: list[str] = Field(default_factory=list)


class Contact(ContactCreate):
    """A person at a client, contractor or developer."""

    id: str
    created_at: str
    updated_at: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class ContactUpdate(UpdateModel):
    """Schema for editing a contact (all fields optional)."""

    nullable_fields: ClassVar[frozenset[str]] = frozenset({"company_id"})

    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    company_id: str | None = None
    job_title: str | None = None
    tags: list[str] | None = None
    notes: str | None = None
    linked_opportunity_ids: list[str] | None = None


# ── Companies ───────────────────────────────────────────────────────────────


class CompanyCreate(CamelModel):
    """Schema for creating a company."""

    name: str
    industry: str = ""
    website: str = ""
    address: str = ""
    phone: str = ""
    notes: str = ""


class Company(CompanyCreate):
    id: str
    created_at: str
    updated_at: str


class CompanyUpdate(UpdateModel):
    name: str | None = None
    industry: str | None = None
    website: str | None = None
    address: str | None = None
    phone: str | None = None
    notes: str | None = None


# ── Pipeline Stages ─────────────────────────────────────────────────────────


class PipelineStageCreate(CamelModel):
    """Schema for creating a pipeline stage."""

    name: str
    color: StageColor = StageColor.SLATE
    position: int = Field(default=0, ge=0)


class PipelineStage(PipelineStageCreate):
    """A kanban column. No update timestamp is tracked for stages."""

    id: str
    created_at: str


class PipelineStageUpdate(UpdateModel):
    name: str | None = None
    color: StageColor | None = None
    position: int | None = Field(default=None, ge=0)


class StageEdit(PipelineStageCreate):
    """An edited existing stage inside a StageChanges batch."""

    id: str

    def as_update(self) -> PipelineStageUpdate:
        return PipelineStageUpdate(name=self.name, color=self.color, position=self.position)


class StageChanges(CamelModel):
    """Three disjoint change lists from the stage manager.

    Applied in the order deleted -> updated -> created.
    """

    deleted: list[str] = Field(default_factory=list)
    updated: list[StageEdit] = Field(default_factory=list)
    created: list[PipelineStageCreate] = Field(default_factory=list)


DEFAULT_PIPELINE_STAGES: list[PipelineStageCreate] = [
    PipelineStageCreate(name="Lead", color=StageColor.SLATE, position=0),
    PipelineStageCreate(name="Qualified", color=StageColor.BLUE, position=1),
    PipelineStageCreate(name="Proposal Sent", color=StageColor.AMBER, position=2),
    PipelineStageCreate(name="Negotiation", color=StageColor.PURPLE, position=3),
    PipelineStageCreate(name="Won", color=StageColor.EMERALD, position=4),
    PipelineStageCreate(name="Lost", color=StageColor.RED, position=5),
]


# ── Pipeline Deals ──────────────────────────────────────────────────────────


class PipelineDealCreate(CamelModel):
    """Schema for creating a pipeline deal.

    ``value`` is an opaque display string ("£250,000"); no currency
    arithmetic is done on it beyond stage totals.
    """

    title: str
    value: str = ""
    contact_id: str
    company_id: str | None = None
    stage_id: str
    opportunity_id: str | None = None
    probability: int = Field(default=0, ge=0, le=100)
    expected_close_date: str = ""
    notes: str = ""


class PipelineDeal(PipelineDealCreate):
    id: str
    created_at: str
    updated_at: str


class PipelineDealUpdate(UpdateModel):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"company_id", "opportunity_id"})

    title: str | None = None
    value: str | None = None
    contact_id: str | None = None
    company_id: str | None = None
    stage_id: str | None = None
    opportunity_id: str | None = None
    probability: int | None = Field(default=None, ge=0, le=100)
    expected_close_date: str | None = None
    notes: str | None = None


# ── Activities ──────────────────────────────────────────────────────────────


class ActivityCreate(CamelModel):
    """Schema for appending an activity log entry."""

    contact_id: str
    deal_id: str | None = None
    type: ActivityType
    title: str
    description: str = ""


class Activity(ActivityCreate):
    """Immutable activity log entry."""

    id: str
    created_at: str


# ── Email Campaigns ─────────────────────────────────────────────────────────


class EmailStep(CamelModel):
    """One email in an outreach sequence."""

    subject: str = ""
    body: str = ""
    send_delay: str = ""
    call_to_action: str = ""


class EmailCampaignCreate(CamelModel):
    name: str
    status: CampaignStatus = CampaignStatus.DRAFT
    opportunity_id: str | None = None
    linked_contact_ids: list[str] = Field(default_factory=list)
    steps: list[EmailStep] = Field(default_factory=list)


class EmailCampaign(EmailCampaignCreate):
    id: str
    created_at: str
    updated_at: str


class EmailCampaignUpdate(UpdateModel):
    nullable_fields: ClassVar[frozenset[str]] = frozenset({"opportunity_id"})

    name: str | None = None
    status: CampaignStatus | None = None
    opportunity_id: str | None = None
    linked_contact_ids: list[str] | None = None
    steps: list[EmailStep] | None = None


# ── Generated Documents ─────────────────────────────────────────────────────


PROPOSAL_SECTIONS: list[tuple[str, str]] = [
    ("cover_letter", "Cover Letter"),
    ("executive_summary", "Executive Summary"),
    ("scope_of_services", "Scope of Services"),
    ("methodology", "Methodology"),
    ("timeline", "Timeline"),
    ("fee_structure", "Fee Structure"),
    ("qualifications", "Qualifications"),
    ("case_studies", "Case Studies"),
    ("team_bios", "Team Bios"),
    ("terms_and_conditions", "Terms & Conditions"),
]

DEFAULT_PROPOSAL_SECTIONS: list[str] = [key for key, _ in PROPOSAL_SECTIONS[:6]]


class GeneratedDocumentCreate(CamelModel):
    """Schema for persisting a generated email sequence, proposal or one-pager.

    ``content`` is whatever structured result the generation service
    returned; it is stored as-is and never inspected here.
    """

    opportunity_id: str
    kind: DocumentKind
    title: str = ""
    sections: list[str] = Field(default_factory=list)
    content: dict[str, Any] = Field(default_factory=dict)


class GeneratedDocument(GeneratedDocumentCreate):
    id: str
    created_at: str
    updated_at: str


class GeneratedDocumentUpdate(UpdateModel):
    title: str | None = None
    sections: list[str] | None = None
    content: dict[str, Any] | None = None


# ── Opportunities ───────────────────────────────────────────────────────────


class Opportunity(CamelModel):
    """A discovered construction project lead.

    Owned by the lead-search collaborator; consumed read-only for linking.
    """

    id: str
    title: str
    location: str = ""
    description: str = ""
    stage: OpportunityStage = OpportunityStage.PLANNING
    estimated_value: str | None = None
    source: str = ""
    url: str | None = None
    timestamp: str = ""
