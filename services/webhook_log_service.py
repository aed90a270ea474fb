"""
Webhook log service.

One row per inbound TMS webhook. Rows are written before processing and
afterwards only processed_at / error_message change.
"""

import structlog
from typing import Optional
from datetime import datetime, timezone

from config import get_supabase_client
from models.base import ilike_any, page_range
from models.webhook import (
    WebhookLogCreate,
    WebhookLogResponse,
    WebhookOperation,
)
from exceptions import WebhookLogNotFoundError, DatabaseError

logger = structlog.get_logger(__name__)

SEARCH_COLUMNS = ("shipment_id", "container_number", "event_type")


class WebhookLogService:
    """Service for webhook log operations."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "webhook_logs"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_all(
        self,
        page: int = 1,
        page_size: int = 20,
        operation: Optional[WebhookOperation] = None,
        exclude_operation: Optional[WebhookOperation] = None,
        search: Optional[str] = None
    ) -> tuple[list[WebhookLogResponse], int]:
        """
        Get webhook logs, newest first.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            operation: Only this operation
            exclude_operation: Everything except this operation
            search: Case-insensitive substring of shipment id, container
                number or event type

        Returns:
            Tuple of (logs list, total count)
        """
        logger.info(
            "getting_webhook_logs",
            page=page,
            page_size=page_size,
            operation=operation,
            exclude_operation=exclude_operation,
            search=search
        )

        try:
            query = self.db.table(self.table).select("*", count="exact")

            if operation:
                query = query.eq("operation", operation.value)
            if exclude_operation:
                query = query.neq("operation", exclude_operation.value)
            if search:
                query = query.or_(ilike_any(SEARCH_COLUMNS, search))

            start, end = page_range(page, page_size)
            result = query.order("received_at", desc=True).range(start, end).execute()

            logs = [WebhookLogResponse(**row) for row in result.data]
            return logs, result.count or 0

        except Exception as e:
            logger.error("get_webhook_logs_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def get_by_id(self, webhook_id: str) -> WebhookLogResponse:
        """
        Get a webhook log by ID.

        Raises:
            WebhookLogNotFoundError: If the log doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", webhook_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_webhook_log_failed", webhook_id=webhook_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise WebhookLogNotFoundError(webhook_id)

        return WebhookLogResponse(**result.data[0])

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: WebhookLogCreate) -> WebhookLogResponse:
        """Persist a newly received webhook (processed_at stays null)."""
        try:
            result = self.db.table(self.table).insert({
                **data.model_dump(mode="json"),
                "processed_at": None,
                "error_message": None,
            }).execute()
        except Exception as e:
            logger.error("create_webhook_log_failed", shipment_id=data.shipment_id, error=str(e))
            raise DatabaseError("insert", str(e))

        log = WebhookLogResponse(**result.data[0])
        logger.info(
            "webhook_log_created",
            webhook_id=log.id,
            operation=log.operation.value,
            shipment_id=log.shipment_id,
            event_type=log.event_type
        )
        return log

    def mark_processed(self, webhook_id: str) -> WebhookLogResponse:
        """Set processed_at to now and clear any earlier error."""
        return self._write(webhook_id, {
            "processed_at": datetime.now(timezone.utc).isoformat(),
            "error_message": None,
        })

    def mark_failed(self, webhook_id: str, error_message: str) -> WebhookLogResponse:
        """Record a processing error and clear processed_at so the row shows as retryable."""
        return self._write(webhook_id, {
            "processed_at": None,
            "error_message": error_message,
        })

    def delete(self, webhook_id: str) -> bool:
        """
        Delete a webhook log.

        Raises:
            WebhookLogNotFoundError: If the log doesn't exist
        """
        self.get_by_id(webhook_id)

        try:
            self.db.table(self.table).delete().eq("id", webhook_id).execute()
        except Exception as e:
            logger.error("delete_webhook_log_failed", webhook_id=webhook_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("webhook_log_deleted", webhook_id=webhook_id)
        return True

    def delete_by_shipment_ids(self, shipment_ids: list[str]) -> int:
        """
        Delete every log row for the given TMS shipment ids.

        Returns:
            Number of rows deleted
        """
        try:
            result = (
                self.db.table(self.table)
                .delete()
                .in_("shipment_id", shipment_ids)
                .execute()
            )
        except Exception as e:
            logger.error("bulk_delete_webhook_logs_failed", error=str(e))
            raise DatabaseError("delete", str(e))

        deleted = len(result.data or [])
        logger.info(
            "webhook_logs_bulk_deleted",
            shipment_ids=len(shipment_ids),
            deleted=deleted
        )
        return deleted

    def iter_all(self, page_size: int = 100):
        """Yield every log row, oldest first, one page at a time."""
        page = 1
        while True:
            try:
                start, end = page_range(page, page_size)
                result = (
                    self.db.table(self.table)
                    .select("*")
                    .order("received_at")
                    .range(start, end)
                    .execute()
                )
            except Exception as e:
                logger.error("iterate_webhook_logs_failed", page=page, error=str(e))
                raise DatabaseError("select", str(e))

            for row in result.data:
                yield WebhookLogResponse(**row)

            if len(result.data) < page_size:
                return
            page += 1

    def _write(self, webhook_id: str, fields: dict) -> WebhookLogResponse:
        try:
            result = (
                self.db.table(self.table)
                .update(fields)
                .eq("id", webhook_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_webhook_log_failed", webhook_id=webhook_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise WebhookLogNotFoundError(webhook_id)

        return WebhookLogResponse(**result.data[0])


# Singleton instance
_webhook_log_service: Optional[WebhookLogService] = None


def get_webhook_log_service() -> WebhookLogService:
    """Get or create WebhookLogService instance."""
    global _webhook_log_service
    if _webhook_log_service is None:
        _webhook_log_service = WebhookLogService()
    return _webhook_log_service
