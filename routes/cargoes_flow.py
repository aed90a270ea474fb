"""
Cargoes Flow API routes.

Audit views over posts, update logs, missing-MBL rows and document
uploads, manual post retry, webhook log backfill, carrier sync, document
upload and on-demand risk assessment.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.base import Pagination
from models.cargoes_flow import (
    BatchProcessResult,
    CargoesFlowPostListResponse,
    CargoesFlowPostResponse,
    CargoesFlowRetryResponse,
    CargoesFlowUpdateLogListResponse,
    CargoesFlowUpdateLogResponse,
    CarrierResponse,
    CarrierSyncResult,
    DocumentUploadListResponse,
    DocumentUploadRequest,
    DocumentUploadResult,
    MissingMblShipmentListResponse,
    PostStatus,
    RiskBatchResult,
)
from services.cargoes_flow_service import get_cargoes_flow_service
from services.cargoes_flow_forwarder import get_cargoes_flow_forwarder
from services.carrier_sync_service import get_carrier_sync_service
from services.risk_assessment_service import get_risk_assessment_service
from exceptions import (
    AppError,
    CargoesFlowPostNotFoundError,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/cargoes-flow", tags=["Cargoes Flow"])


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
# POSTS
# ===================

@router.get("/posts", response_model=CargoesFlowPostListResponse)
async def list_posts(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    status: Optional[PostStatus] = Query(None, description="Filter by outcome"),
    search: Optional[str] = Query(None, description="Reference, MBL or container")
):
    """List createShipments attempts, newest first."""
    try:
        posts, total = get_cargoes_flow_service().list_posts(
            page=page,
            page_size=page_size,
            status=status,
            search=search
        )
        return CargoesFlowPostListResponse(
            data=posts,
            pagination=Pagination.create(page, page_size, total)
        )

    except Exception as e:
        return handle_error(e)


@router.get("/posts/by-reference/{reference}", response_model=CargoesFlowPostResponse)
async def get_post_by_reference(reference: str):
    """
    Get the post recorded for a shipment reference.

    Raises:
        404: No post for this reference
    """
    try:
        post = get_cargoes_flow_service().get_post_by_reference(reference)
        if not post:
            raise CargoesFlowPostNotFoundError(reference)
        return post

    except Exception as e:
        return handle_error(e)


@router.post("/retry/{post_id}", response_model=CargoesFlowRetryResponse)
async def retry_post(post_id: str):
    """
    Re-send a post's MBL to createShipments.

    Raises:
        404: Post not found
        400: Cargoes Flow rejected the retry
    """
    try:
        result = get_cargoes_flow_forwarder().retry_post(post_id)
        if not result.success:
            return JSONResponse(status_code=400, content={"error": result.message})
        return result

    except CargoesFlowPostNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Post not found"})
    except Exception as e:
        return handle_error(e)


# ===================
# MISSING MBL
# ===================

@router.get("/missing-mbl", response_model=MissingMblShipmentListResponse)
async def list_missing_mbl(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Reference, container or shipper")
):
    """List drayage shipments waiting for an MBL."""
    try:
        records, total = get_cargoes_flow_service().list_missing_mbl(
            page=page,
            page_size=page_size,
            search=search
        )
        return MissingMblShipmentListResponse(
            data=records,
            pagination=Pagination.create(page, page_size, total)
        )

    except Exception as e:
        return handle_error(e)


@router.delete("/missing-mbl/{record_id}", status_code=204)
async def delete_missing_mbl(record_id: str):
    """
    Remove a missing-MBL row once resolved.

    Raises:
        404: Row not found
    """
    try:
        get_cargoes_flow_service().delete_missing_mbl(record_id)
        return None

    except Exception as e:
        return handle_error(e)


# ===================
# UPDATE LOGS
# ===================

@router.get("/update-logs", response_model=CargoesFlowUpdateLogListResponse)
async def list_update_logs(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    search: Optional[str] = Query(None, description="Shipment number or reference")
):
    """List updateShipments attempts, newest first."""
    try:
        logs, total = get_cargoes_flow_service().list_update_logs(
            page=page,
            page_size=page_size,
            search=search
        )
        return CargoesFlowUpdateLogListResponse(
            data=logs,
            pagination=Pagination.create(page, page_size, total)
        )

    except Exception as e:
        return handle_error(e)


@router.get("/update-logs/{log_id}", response_model=CargoesFlowUpdateLogResponse)
async def get_update_log(log_id: str):
    """
    Get one update log.

    Raises:
        404: Update log not found
    """
    try:
        return get_cargoes_flow_service().get_update_log(log_id)

    except Exception as e:
        return handle_error(e)


# ===================
# CARRIERS
# ===================

@router.get("/carriers", response_model=list[CarrierResponse])
async def list_carriers():
    """List carriers from the last sync, by name."""
    try:
        return get_cargoes_flow_service().list_carriers()

    except Exception as e:
        return handle_error(e)


@router.post("/carriers/sync", response_model=CarrierSyncResult)
async def sync_carriers():
    """
    Pull the carrier list from Cargoes Flow.

    A failed sync is still answered with 200 and success=false; the
    error is also recorded in the sync log.
    """
    try:
        return get_carrier_sync_service().sync()

    except Exception as e:
        return handle_error(e)


@router.get("/carriers/sync-logs")
async def list_carrier_sync_logs(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page")
):
    """List carrier sync runs, newest first."""
    try:
        logs, total = get_cargoes_flow_service().list_sync_logs(page=page, page_size=page_size)
        return {
            "data": logs,
            "pagination": Pagination.create(page, page_size, total).model_dump()
        }

    except Exception as e:
        return handle_error(e)


# ===================
# DOCUMENTS
# ===================

@router.post("/upload-documents", response_model=DocumentUploadResult)
async def upload_documents(data: DocumentUploadRequest):
    """
    Upload base64 documents to a Cargoes Flow shipment.

    Per-file outcomes are in results; one upload row is recorded per file.
    """
    try:
        return get_cargoes_flow_forwarder().upload_documents(data)

    except Exception as e:
        return handle_error(e)


@router.get("/document-uploads", response_model=DocumentUploadListResponse)
async def list_document_uploads(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    shipment_number: Optional[str] = Query(None, description="Cargoes Flow shipment number"),
    upload_status: Optional[PostStatus] = Query(None, description="Filter by outcome")
):
    """List recorded document uploads, newest first."""
    try:
        uploads, total = get_cargoes_flow_service().list_document_uploads(
            page=page,
            page_size=page_size,
            shipment_number=shipment_number,
            upload_status=upload_status
        )
        return DocumentUploadListResponse(
            data=uploads,
            pagination=Pagination.create(page, page_size, total)
        )

    except Exception as e:
        return handle_error(e)


# ===================
# BACKFILL
# ===================

@router.post("/batch-process", response_model=BatchProcessResult)
async def batch_process():
    """
    Replay stored webhook logs and create any missing posts or
    missing-MBL rows.
    """
    try:
        return get_cargoes_flow_forwarder().backfill_from_webhook_logs()

    except Exception as e:
        return handle_error(e)


# ===================
# RISK
# ===================

@router.post("/risk/assess", response_model=RiskBatchResult)
async def assess_risk():
    """Run the risk assessment batch now, outside the schedule."""
    try:
        return get_risk_assessment_service().assess_all()

    except Exception as e:
        return handle_error(e)
