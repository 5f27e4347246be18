"""FastAPI dependencies for the session-scoped synchronizer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.leaddesk.crm.synchronizer import EntitySynchronizer


def get_synchronizer(request: Request) -> EntitySynchronizer:
    """Retrieve the EntitySynchronizer from app.state, 503 if not available."""
    synchronizer = getattr(request.app.state, "synchronizer", None)
    if synchronizer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Entity synchronizer not initialized",
        )
    return synchronizer


def not_found(kind: str, entity_id: str) -> HTTPException:
    """Build the 404 raised for an id that is not in the synchronized state."""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{kind} not found: {entity_id}",
    )


def unresolved_reference(kind: str) -> HTTPException:
    """Build the 422 raised when a write points at an entity that does not exist."""
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"{kind} references an unknown stage or contact",
    )
