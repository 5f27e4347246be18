"""REST API endpoints for generated outreach documents.

Email sequences, proposals and one-pagers are stored as one document kind.
Content is whatever the generation service produced and is kept as-is;
``GET /{id}/text`` renders the plain-text export used for copy/download.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse

from src.leaddesk.api.deps import get_synchronizer, not_found
from src.leaddesk.crm.schemas import (
    GeneratedDocument,
    GeneratedDocumentCreate,
    GeneratedDocumentUpdate,
)
from src.leaddesk.crm.synchronizer import EntitySynchronizer
from src.leaddesk.crm.views import render_document_text

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("", response_model=list[GeneratedDocument])
async def list_documents(
    opportunity_id: str | None = Query(default=None, description="Filter by opportunity ID"),
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> list[GeneratedDocument]:
    """List documents, refreshed from the store when one is configured."""
    return await sync.load_documents(opportunity_id)


@router.post("", response_model=GeneratedDocument, status_code=201)
async def save_document(
    body: GeneratedDocumentCreate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> GeneratedDocument:
    return await sync.save_document(body)


@router.patch("/{document_id}", response_model=GeneratedDocument)
async def update_document(
    document_id: str,
    body: GeneratedDocumentUpdate,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> GeneratedDocument:
    document = await sync.update_document(document_id, body)
    if document is None:
        raise not_found("Document", document_id)
    return document


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> Any:
    if not await sync.delete_document(document_id):
        raise not_found("Document", document_id)
    return {"status": "deleted", "document_id": document_id}


@router.get("/{document_id}/text", response_class=PlainTextResponse)
async def export_document_text(
    document_id: str,
    sync: EntitySynchronizer = Depends(get_synchronizer),
) -> str:
    document = next((d for d in sync.state.documents if d.id == document_id), None)
    if document is None:
        raise not_found("Document", document_id)
    return render_document_text(document)
