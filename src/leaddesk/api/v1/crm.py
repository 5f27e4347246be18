"""REST API endpoints for the CRM and pipeline board.

Provides CRUD endpoints for contacts, companies and deals, the stage
manager batch, manual activity logging, the deal-move command and the
derived board / contact-detail views. Every write goes through the
session's EntitySynchronizer, which picks the remote or local branch.

Unknown ids return 404 and deals pointing at unknown stages or contacts
return 422; the synchronizer itself never raises for either.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from src.leaddesk.api.deps import get_synchronizer, not_found, unresolved_reference
from src.leaddesk.crm.schemas import (
    Activity,
    ActivityType,
    CamelModel,
    Company,
    CompanyCreate,
    CompanyUpdate,
    Contact,
    ContactCreate,
    ContactUpdate,
    PipelineDeal,
    PipelineDealCreate,
    PipelineDealUpdate,
    PipelineStage,
    StageChanges,
)
from src.leaddesk.crm.synchronizer import EntitySynchronizer
from src.leaddesk.crm.views import ContactDetail, StageColumn

router = APIRouter(prefix="/crm", tags=["crm"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class CrmStateResponse(CamelModel):
    """Snapshot of the CRM collections for initial render."""

    contacts: list[Contact] = Field(default_factory=list)
    companies: list[Company] = Field(default_factory=list)
    stages: list[PipelineStage] = Field(default_factory=list)
    deals: list[PipelineDeal] = Field(default_factory=list)
    activities: list[Activity] = Field(default_factory=list)
    deal_count_by_stage: dict[str, int] = Field(default_factory=dict)


class LinkOpportunitiesRequest(CamelModel):
    opportunity_ids: list[str] = Field(default_factory=list)


class MoveDealRequest(CamelModel):
    """Move command with explicit source/target stage ids."""

    to_stage_id: str
    from_stage_id: str | None = None


class MoveDealResponse(CamelModel):
    deal: PipelineDeal
    activity: Activity | None = None


class LogActivityRequest(CamelModel):
    """Manually logged activity. Without a contact id the newest contact is used."""

    type: ActivityType = ActivityType.NOTE
    title: str
    description: str = ""
    contact_id: str | None = None
    deal_id: str | None = None


# ── State & Views ────────────────────────────────────────────────────────────


@router.get("/state", response_model=CrmStateResponse)
async def get_state(
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> CrmStateResponse:
    """Return every CRM collection in its display order."""
    state = sync.state
    return CrmStateResponse(
        contacts=state.contacts,
        companies=state.companies,
        stages=state.stages,
        deals=state.deals,
        activities=state.activities,
        deal_count_by_stage=sync.views.deal_count_by_stage(),
    )


@router.get("/pipeline", response_model=list[StageColumn])
async def get_pipeline_board(
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> list[StageColumn]:
    """Kanban board: stages in position order with their deals and value totals."""
    return sync.views.pipeline_board()


# ── Contact Endpoints ────────────────────────────────────────────────────────


@router.get("/contacts", response_model=list[Contact])
async def list_contacts(sync: EntitySynchronizer = Depends(get_synchronizer)) -> list[Contact]:
    return sync.state.contacts


@router.post("/contacts", response_model=Contact, status_code=201)
async def create_contact(
    body: ContactCreate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Contact:
    """Create a contact (also logs a contact_created activity)."""
    return await sync.create_contact(body)


@router.get("/contacts/{contact_id}", response_model=ContactDetail)
async def get_contact_detail(
    contact_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> ContactDetail:
    """Contact with its company, activities, deals and linked opportunities."""
    detail = sync.views.contact_detail(contact_id)
    if detail is None:
        raise not_found("Contact", contact_id)
    return detail


@router.patch("/contacts/{contact_id}", response_model=Contact)
async def update_contact(
    contact_id: str,
    body: ContactUpdate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Contact:
    contact = await sync.update_contact(contact_id, body)
    if contact is None:
        raise not_found("Contact", contact_id)
    return contact


@router.delete("/contacts/{contact_id}")
async def delete_contact(
    contact_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Any:
    """Delete a contact together with its deals and activities."""
    if not await sync.delete_contact(contact_id):
        raise not_found("Contact", contact_id)
    return {"status": "deleted", "contact_id": contact_id}


@router.post("/contacts/{contact_id}/opportunities", response_model=Contact)
async def link_contact_opportunities(
    contact_id: str,
    body: LinkOpportunitiesRequest,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Contact:
    """Replace the opportunities linked to a contact."""
    contact = await sync.link_opportunities(contact_id, body.opportunity_ids)
    if contact is None:
        raise not_found("Contact", contact_id)
    return contact


# ── Company Endpoints ────────────────────────────────────────────────────────


@router.get("/companies", response_model=list[Company])
async def list_companies(sync: EntitySynchronizer = Depends(get_synchronizer)) -> list[Company]:
    return sync.state.companies


@router.post("/companies", response_model=Company, status_code=201)
async def create_company(
    body: CompanyCreate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Company:
    return await sync.create_company(body)


@router.patch("/companies/{company_id}", response_model=Company)
async def update_company(
    company_id: str,
    body: CompanyUpdate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Company:
    company = await sync.update_company(company_id, body)
    if company is None:
        raise not_found("Company", company_id)
    return company


@router.delete("/companies/{company_id}")
async def delete_company(
    company_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Any:
    """Delete a company; its contacts stay, with the company reference cleared."""
    if not await sync.delete_company(company_id):
        raise not_found("Company", company_id)
    return {"status": "deleted", "company_id": company_id}


# ── Deal Endpoints ───────────────────────────────────────────────────────────


@router.get("/deals", response_model=list[PipelineDeal])
async def list_deals(sync: EntitySynchronizer = Depends(get_synchronizer)) -> list[PipelineDeal]:
    return sync.state.deals


@router.post("/deals", response_model=PipelineDeal, status_code=201)
async def create_deal(
    body: PipelineDealCreate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> PipelineDeal:
    deal = await sync.create_deal(body)
    if deal is None:
        raise unresolved_reference("Deal")
    return deal


@router.patch("/deals/{deal_id}", response_model=PipelineDeal)
async def update_deal(
    deal_id: str,
    body: PipelineDealUpdate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> PipelineDeal:
    if not any(d.id == deal_id for d in sync.state.deals):
        raise not_found("Deal", deal_id)
    deal = await sync.update_deal(deal_id, body)
    if deal is None:
        raise unresolved_reference("Deal")
    return deal


@router.delete("/deals/{deal_id}")
async def delete_deal(
    deal_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Any:
    if not await sync.delete_deal(deal_id):
        raise not_found("Deal", deal_id)
    return {"status": "deleted", "deal_id": deal_id}


@router.post("/deals/{deal_id}/move", response_model=MoveDealResponse)
async def move_deal(
    deal_id: str,
    body: MoveDealRequest,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> MoveDealResponse:
    """Move a deal to another stage.

    The target stage is not validated; a stage id that does not resolve is
    recorded as "unknown" in the deal_moved activity. Moving onto the
    current stage returns no activity.
    """
    activity = await sync.move_deal(deal_id, body.to_stage_id, body.from_stage_id)
    deal = next((d for d in sync.state.deals if d.id == deal_id), None)
    if deal is None:
        raise not_found("Deal", deal_id)
    return MoveDealResponse(deal=deal, activity=activity)


# ── Stage & Activity Endpoints ───────────────────────────────────────────────


@router.put("/stages", response_model=list[PipelineStage])
async def apply_stage_changes(
    body: StageChanges,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> list[PipelineStage]:
    """Apply a stage-manager batch (delete, update, create) and return the stages."""
    return await sync.apply_stage_changes(body)


@router.post("/activities", response_model=Activity, status_code=201)
async def log_activity(
    body: LogActivityRequest,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Activity:
    activity = await sync.log_activity(
        body.type,
        body.title,
        body.description,
        contact_id=body.contact_id,
        deal_id=body.deal_id,
    )
    if activity is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No contact to attach the activity to",
        )
    return activity
