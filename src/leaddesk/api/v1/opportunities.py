"""REST API endpoints for discovered opportunities and saved leads.

Opportunities are produced by the lead-search collaborator; this surface
only records the latest search results, exposes the merged set (search
results plus saved leads, deduplicated by id) and toggles saved leads.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from src.leaddesk.api.deps import get_synchronizer, not_found
from src.leaddesk.crm.schemas import Opportunity
from src.leaddesk.crm.synchronizer import EntitySynchronizer

router = APIRouter(prefix="/opportunities", tags=["opportunities"])


@router.get("", response_model=list[Opportunity])
async def list_opportunities(
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> list[Opportunity]:
    """Search results merged with saved leads, deduplicated by id."""
    return sync.views.all_opportunities()


@router.put("/search-results", response_model=list[Opportunity])
async def record_search_results(
    body: list[Opportunity],
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> list[Opportunity]:
    return await sync.record_search_results(body)


@router.get("/saved", response_model=list[Opportunity])
async def list_saved_leads(
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> list[Opportunity]:
    return sync.state.saved_leads


@router.post("/saved", status_code=201)
async def save_lead(
    body: Opportunity,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Any:
    added = await sync.save_lead(body)
    return {"status": "saved" if added else "already_saved", "opportunity_id": body.id}


@router.delete("/saved/{opportunity_id}")
async def remove_saved_lead(
    opportunity_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Any:
    if not await sync.remove_saved_lead(opportunity_id):
        raise not_found("Saved lead", opportunity_id)
    return {"status": "removed", "opportunity_id": opportunity_id}
