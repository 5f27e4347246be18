"""REST API endpoints for email campaigns."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import Field

from src.leaddesk.api.deps import get_synchronizer, not_found
from src.leaddesk.crm.schemas import (
    CamelModel,
    CampaignStatus,
    EmailCampaign,
    EmailCampaignCreate,
    EmailCampaignUpdate,
    EmailStep,
)
from src.leaddesk.crm.synchronizer import EntitySynchronizer

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


class CampaignStatusRequest(CamelModel):
    status: CampaignStatus


class CampaignStepsRequest(CamelModel):
    steps: list[EmailStep] = Field(default_factory=list)


class CampaignContactsRequest(CamelModel):
    contact_ids: list[str] = Field(default_factory=list)


def _found(campaign: EmailCampaign | None, campaign_id: str) -> EmailCampaign:
    if campaign is None:
        raise not_found("Campaign", campaign_id)
    return campaign


@router.get("", response_model=list[EmailCampaign])
async def list_campaigns(
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> list[EmailCampaign]:
    return sync.state.campaigns


@router.post("", response_model=EmailCampaign, status_code=201)
async def create_campaign(
    body: EmailCampaignCreate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> EmailCampaign:
    return await sync.create_campaign(body)


@router.patch("/{campaign_id}", response_model=EmailCampaign)
async def update_campaign(
    campaign_id: str,
    body: EmailCampaignUpdate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> EmailCampaign:
    return _found(await sync.update_campaign(campaign_id, body), campaign_id)


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Any:
    if not await sync.delete_campaign(campaign_id):
        raise not_found("Campaign", campaign_id)
    return {"status": "deleted", "campaign_id": campaign_id}


@router.post("/{campaign_id}/duplicate", response_model=EmailCampaign, status_code=201)
async def duplicate_campaign(
    campaign_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> EmailCampaign:
    """Copy a campaign into a new draft named "<name> (Copy)"."""
    return _found(await sync.duplicate_campaign(campaign_id), campaign_id)


@router.put("/{campaign_id}/status", response_model=EmailCampaign)
async def set_campaign_status(
    campaign_id: str,
    body: CampaignStatusRequest,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> EmailCampaign:
    """Set the campaign status. Any transition is accepted."""
    return _found(await sync.set_campaign_status(campaign_id, body.status), campaign_id)


@router.put("/{campaign_id}/steps", response_model=EmailCampaign)
async def update_campaign_steps(
    campaign_id: str,
    body: CampaignStepsRequest,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> EmailCampaign:
    return _found(await sync.update_campaign_steps(campaign_id, body.steps), campaign_id)


@router.put("/{campaign_id}/contacts", response_model=EmailCampaign)
async def link_campaign_contacts(
    campaign_id: str,
    body: CampaignContactsRequest,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> EmailCampaign:
    return _found(await sync.link_campaign_contacts(campaign_id, body.contact_ids), campaign_id)
