"""
Shipment API routes.

Shipments, their milestones and status recomputation. Shipments created
here (source=user) that carry an MBL are also registered with Cargoes Flow.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.base import Pagination
from models.shipment import (
    ShipmentCreate,
    ShipmentUpdate,
    ShipmentStatusRecompute,
    ShipmentResponse,
    ShipmentListResponse,
)
from models.milestone import (
    MilestoneCreate,
    MilestoneResponse,
    MilestoneListResponse,
    ShipmentStatusResponse,
)
from services.shipment_service import get_shipment_service
from services.milestone_service import get_milestone_service
from services.cargoes_flow_forwarder import get_cargoes_flow_forwarder
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/shipments", tags=["Shipments"])


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    # Unexpected error
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


# ===================
# ROUTES
# ===================

@router.get("", response_model=ShipmentListResponse)
async def list_shipments(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    status: Optional[str] = Query(None, description="Filter by status"),
    sales_rep: Optional[str] = Query(None, description="Exact sales rep name")
):
    """
    List shipments, newest first.

    sales_rep matches one element of sales_rep_names exactly
    (case and spacing included).
    """
    try:
        service = get_shipment_service()

        shipments, total = service.get_all(
            page=page,
            page_size=page_size,
            status=status,
            sales_rep=sales_rep
        )

        return ShipmentListResponse(
            data=shipments,
            pagination=Pagination.create(page, page_size, total)
        )

    except Exception as e:
        return handle_error(e)


@router.get("/{shipment_id}", response_model=ShipmentResponse)
async def get_shipment(shipment_id: str):
    """
    Get a single shipment by ID.

    Raises:
        404: Shipment not found
    """
    try:
        service = get_shipment_service()
        return service.get_by_id(shipment_id)

    except Exception as e:
        return handle_error(e)


@router.post("", response_model=ShipmentResponse, status_code=201)
async def create_shipment(data: ShipmentCreate):
    """
    Create a shipment by hand.

    With an MBL, the shipment is also posted to Cargoes Flow and seeded
    into the mirror table. That step never fails the request.

    Raises:
        409: Reference number already exists
        422: Validation error
    """
    try:
        service = get_shipment_service()
        shipment = service.create(data)

        if shipment.master_bill_of_lading:
            get_cargoes_flow_forwarder().track_user_shipment(shipment)

        return shipment

    except Exception as e:
        return handle_error(e)


@router.patch("/{shipment_id}", response_model=ShipmentResponse)
async def update_shipment(shipment_id: str, data: ShipmentUpdate):
    """
    Update a shipment. Only provided fields are written.

    Raises:
        404: Shipment not found
        409: Reference number taken by another shipment
    """
    try:
        service = get_shipment_service()
        return service.update(shipment_id, data)

    except Exception as e:
        return handle_error(e)


@router.delete("/{shipment_id}", status_code=204)
async def delete_shipment(shipment_id: str):
    """
    Delete a shipment and its milestones.

    Raises:
        404: Shipment not found
    """
    try:
        service = get_shipment_service()
        service.delete(shipment_id)
        return None  # 204 No Content

    except Exception as e:
        return handle_error(e)


# ===================
# MILESTONES
# ===================

@router.get("/{shipment_id}/milestones", response_model=MilestoneListResponse)
async def list_shipment_milestones(shipment_id: str):
    """
    Milestones for a shipment, oldest first.

    Raises:
        404: Shipment not found
    """
    try:
        get_shipment_service().get_by_id(shipment_id)
        milestones = get_milestone_service().get_by_shipment(shipment_id)
        return MilestoneListResponse(data=milestones, total=len(milestones))

    except Exception as e:
        return handle_error(e)


@router.post("/{shipment_id}/milestones", response_model=MilestoneResponse, status_code=201)
async def create_shipment_milestone(shipment_id: str, data: MilestoneCreate):
    """
    Add a milestone; the shipment's status is recomputed.

    Raises:
        404: Shipment not found
    """
    try:
        return get_milestone_service().create(shipment_id, data)

    except Exception as e:
        return handle_error(e)


@router.post("/{shipment_id}/status", response_model=ShipmentStatusResponse)
async def recompute_shipment_status(
    shipment_id: str,
    data: Optional[ShipmentStatusRecompute] = None
):
    """
    Recompute status from milestones and mark late milestones delayed.

    An explicit status in the body is stored instead of the derived one.

    Raises:
        404: Shipment not found
    """
    try:
        override = data.status if data else None
        return get_milestone_service().recompute_status(
            shipment_id,
            override_status=override,
            persist_delays=True
        )

    except Exception as e:
        return handle_error(e)
