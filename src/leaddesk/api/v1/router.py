"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.leaddesk.api.v1 import campaigns, crm, documents, health, opportunities

router = APIRouter(prefix="/api/v1")

router.include_router(health.router)
router.include_router(crm.router)
router.include_router(campaigns.router)
router.include_router(documents.router)
router.include_router(opportunities.router)
