"""
TMS webhook API routes.

The receive and retry endpoints answer with the flat shapes the TMS and the
operations UI expect ({success, webhookId} / {error, webhookId}) rather
than the standard error envelope. The log browsing endpoints use the
standard envelope.
"""

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.base import Pagination
from models.webhook import (
    WebhookLogBulkDelete,
    WebhookLogBulkDeleteResponse,
    WebhookLogListResponse,
    WebhookLogResponse,
    WebhookOperation,
    WebhookRetryResponse,
)
from services.tms_webhook_service import get_tms_webhook_service
from services.webhook_log_service import get_webhook_log_service
from exceptions import (
    AppError,
    InvalidWebhookSignatureError,
    WebhookLogNotFoundError,
    WebhookProcessingError,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/webhooks/tms", tags=["Webhooks"])


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
# RECEIVE / RETRY
# ===================

@router.post("")
async def receive_tms_webhook(
    request: Request,
    x_tms_signature: Optional[str] = Header(None),
    x_tms_key: Optional[str] = Header(None)
):
    """
    Receive one shipment webhook from the TMS.

    Returns:
        200 {success, webhookId}
        401 {error: "Unauthorized"} on secret mismatch (nothing is logged)
        500 {error: "Processing failed", webhookId} when processing failed
    """
    service = get_tms_webhook_service()

    try:
        service.verify_signature(x_tms_signature, x_tms_key)
    except InvalidWebhookSignatureError:
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        payload = await request.json()
    except ValueError:
        logger.warning("webhook_body_not_json")
        return JSONResponse(status_code=400, content={"error": "Invalid JSON body"})

    try:
        webhook_id = service.receive(payload)
        return {"success": True, "webhookId": webhook_id}

    except WebhookProcessingError as e:
        return JSONResponse(
            status_code=500,
            content={"error": "Processing failed", "webhookId": e.webhook_id}
        )
    except Exception as e:
        # Failed before the log row existed
        logger.error("webhook_receipt_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(status_code=500, content={"error": "Failed to process webhook"})


@router.post("/retry/{webhook_id}", response_model=WebhookRetryResponse)
async def retry_tms_webhook(webhook_id: str):
    """
    Reprocess a stored webhook payload.

    Raises:
        404: Webhook log not found
        500: Processing failed again
    """
    try:
        return get_tms_webhook_service().retry(webhook_id)

    except WebhookLogNotFoundError:
        return JSONResponse(status_code=404, content={"error": "Webhook not found"})
    except WebhookProcessingError as e:
        return JSONResponse(
            status_code=500,
            content={"error": e.message, "webhookId": e.webhook_id}
        )
    except Exception as e:
        logger.error("webhook_retry_failed", webhook_id=webhook_id, error=str(e))
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to retry webhook", "webhookId": webhook_id}
        )


# ===================
# LOGS
# ===================

@router.get("/logs", response_model=WebhookLogListResponse)
async def list_webhook_logs(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Items per page"),
    operation: Optional[WebhookOperation] = Query(None, description="Only this operation"),
    exclude_operation: Optional[WebhookOperation] = Query(None, description="Hide this operation"),
    search: Optional[str] = Query(None, description="Shipment id, container or event type")
):
    """List webhook logs, newest first."""
    try:
        logs, total = get_webhook_log_service().get_all(
            page=page,
            page_size=page_size,
            operation=operation,
            exclude_operation=exclude_operation,
            search=search
        )
        return WebhookLogListResponse(
            data=logs,
            pagination=Pagination.create(page, page_size, total)
        )

    except Exception as e:
        return handle_error(e)


@router.get("/logs/{webhook_id}", response_model=WebhookLogResponse)
async def get_webhook_log(webhook_id: str):
    """
    Get one webhook log, including its raw payload.

    Raises:
        404: Webhook log not found
    """
    try:
        return get_webhook_log_service().get_by_id(webhook_id)

    except Exception as e:
        return handle_error(e)


@router.delete("/logs/{webhook_id}", status_code=204)
async def delete_webhook_log(webhook_id: str):
    """
    Delete a webhook log.

    Raises:
        404: Webhook log not found
    """
    try:
        get_webhook_log_service().delete(webhook_id)
        return None

    except Exception as e:
        return handle_error(e)


@router.post("/logs/bulk-delete", response_model=WebhookLogBulkDeleteResponse)
async def bulk_delete_webhook_logs(data: WebhookLogBulkDelete):
    """Delete every log row for the listed TMS shipment ids."""
    try:
        deleted = get_webhook_log_service().delete_by_shipment_ids(data.shipment_ids)
        return WebhookLogBulkDeleteResponse(
            success=True,
            deleted_count=deleted,
            message=f"Deleted {deleted} webhook logs"
        )

    except Exception as e:
        return handle_error(e)
