"""
Milestone API routes.

Milestones are created under /api/shipments/{id}/milestones; this router
edits and removes them by their own id. Both recompute the owning
shipment's status.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
import structlog

from models.milestone import MilestoneUpdate, MilestoneResponse
from services.milestone_service import get_milestone_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/milestones", tags=["Milestones"])


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.patch("/{milestone_id}", response_model=MilestoneResponse)
async def update_milestone(milestone_id: str, data: MilestoneUpdate):
    """
    Update a milestone.

    Raises:
        404: Milestone not found
    """
    try:
        return get_milestone_service().update(milestone_id, data)

    except Exception as e:
        return handle_error(e)


@router.delete("/{milestone_id}", status_code=204)
async def delete_milestone(milestone_id: str):
    """
    Delete a milestone.

    Raises:
        404: Milestone not found
    """
    try:
        get_milestone_service().delete(milestone_id)
        return None

    except Exception as e:
        return handle_error(e)
