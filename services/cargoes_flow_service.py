"""
Cargoes Flow persistence service.

Reads and writes every Cargoes Flow table: post and update audit rows,
missing-MBL tracking, the mirrored shipment table, carriers, carrier sync
logs and document uploads. No outbound API calls happen here; see
services.cargoes_flow_forwarder and services.carrier_sync_service.
"""

from typing import Any, Optional
from datetime import datetime, timezone
import structlog

from config import get_supabase_client
from models.base import ilike_any, page_range
from models.cargoes_flow import (
    PostStatus,
    CargoesFlowPostCreate,
    CargoesFlowPostResponse,
    CargoesFlowUpdateLogCreate,
    CargoesFlowUpdateLogResponse,
    MissingMblShipmentCreate,
    MissingMblShipmentResponse,
    CargoesFlowShipmentResponse,
    CargoesFlowShipmentUpsert,
    CarrierResponse,
    DocumentUploadRecord,
)
from exceptions import (
    CargoesFlowPostNotFoundError,
    CargoesFlowUpdateLogNotFoundError,
    MissingMblShipmentNotFoundError,
    DatabaseError,
)

logger = structlog.get_logger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CargoesFlowService:
    """
    Cargoes Flow table access.

    Tables:
        cargoes_flow_posts, cargoes_flow_update_logs, missing_mbl_shipments,
        cargoes_flow_shipments, cargoes_flow_carriers,
        cargoes_flow_carrier_sync_logs, cargoes_flow_document_uploads
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.posts_table = "cargoes_flow_posts"
        self.update_logs_table = "cargoes_flow_update_logs"
        self.missing_mbl_table = "missing_mbl_shipments"
        self.shipments_table = "cargoes_flow_shipments"
        self.carriers_table = "cargoes_flow_carriers"
        self.sync_logs_table = "cargoes_flow_carrier_sync_logs"
        self.uploads_table = "cargoes_flow_document_uploads"

    # ===================
    # QUERY HELPERS
    # ===================

    def _select(self, table: str, column: str, value: Any, operation: str) -> list[dict]:
        try:
            result = self.db.table(table).select("*").eq(column, value).execute()
        except Exception as e:
            logger.error(f"{operation}_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e))
        return result.data

    def _insert(self, table: str, row: dict, operation: str) -> dict:
        try:
            result = self.db.table(table).insert(row).execute()
        except Exception as e:
            logger.error(f"{operation}_failed", table=table, error=str(e))
            raise DatabaseError("insert", str(e))
        return result.data[0]

    def _update(self, table: str, row_id: str, fields: dict, operation: str) -> list[dict]:
        try:
            result = self.db.table(table).update(fields).eq("id", row_id).execute()
        except Exception as e:
            logger.error(f"{operation}_failed", table=table, row_id=row_id, error=str(e))
            raise DatabaseError("update", str(e))
        return result.data

    def _page(
        self,
        table: str,
        page: int,
        page_size: int,
        order_column: str,
        search: Optional[str] = None,
        search_columns: tuple[str, ...] = (),
        filters: Optional[dict] = None
    ) -> tuple[list[dict], int]:
        try:
            query = self.db.table(table).select("*", count="exact")
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            if search and search_columns:
                query = query.or_(ilike_any(search_columns, search))
            start, end = page_range(page, page_size)
            result = query.order(order_column, desc=True).range(start, end).execute()
        except Exception as e:
            logger.error("list_failed", table=table, error=str(e))
            raise DatabaseError("select", str(e))
        return result.data, result.count or 0

    # ===================
    # POSTS
    # ===================

    def create_post(self, data: CargoesFlowPostCreate) -> CargoesFlowPostResponse:
        """Record one createShipments attempt."""
        row = self._insert(
            self.posts_table,
            {**data.model_dump(mode="json"), "posted_at": _now()},
            "create_cargoes_flow_post"
        )
        post = CargoesFlowPostResponse(**row)
        logger.info(
            "cargoes_flow_post_recorded",
            post_id=post.id,
            shipment_reference=post.shipment_reference,
            status=post.status.value
        )
        return post

    def get_post(self, post_id: str) -> CargoesFlowPostResponse:
        """
        Raises:
            CargoesFlowPostNotFoundError: If the post doesn't exist
        """
        rows = self._select(self.posts_table, "id", post_id, "get_cargoes_flow_post")
        if not rows:
            raise CargoesFlowPostNotFoundError(post_id)
        return CargoesFlowPostResponse(**rows[0])

    def get_post_by_reference(self, shipment_reference: str) -> Optional[CargoesFlowPostResponse]:
        """Existing post for a shipment reference, if any."""
        rows = self._select(
            self.posts_table, "shipment_reference", shipment_reference,
            "get_cargoes_flow_post_by_reference"
        )
        return CargoesFlowPostResponse(**rows[0]) if rows else None

    def list_posts(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[PostStatus] = None,
        search: Optional[str] = None
    ) -> tuple[list[CargoesFlowPostResponse], int]:
        rows, total = self._page(
            self.posts_table, page, page_size, "posted_at",
            search=search,
            search_columns=("shipment_reference", "mbl_number", "container_number"),
            filters={"status": status.value} if status else None
        )
        return [CargoesFlowPostResponse(**row) for row in rows], total

    def update_post_result(
        self,
        post_id: str,
        status: PostStatus,
        response_data: Any = None,
        error_message: Optional[str] = None
    ) -> CargoesFlowPostResponse:
        """Overwrite a post's outcome in place (used by manual retry)."""
        rows = self._update(self.posts_table, post_id, {
            "status": status.value,
            "response_data": response_data,
            "error_message": error_message,
            "posted_at": _now(),
        }, "update_cargoes_flow_post")
        if not rows:
            raise CargoesFlowPostNotFoundError(post_id)
        return CargoesFlowPostResponse(**rows[0])

    # ===================
    # UPDATE LOGS
    # ===================

    def create_update_log(self, data: CargoesFlowUpdateLogCreate) -> CargoesFlowUpdateLogResponse:
        """Record one updateShipments attempt."""
        row = self._insert(
            self.update_logs_table,
            {**data.model_dump(mode="json"), "posted_at": _now()},
            "create_cargoes_flow_update_log"
        )
        log = CargoesFlowUpdateLogResponse(**row)
        logger.info(
            "cargoes_flow_update_recorded",
            log_id=log.id,
            shipment_number=log.shipment_number,
            status=log.status.value
        )
        return log

    def get_update_log(self, log_id: str) -> CargoesFlowUpdateLogResponse:
        """
        Raises:
            CargoesFlowUpdateLogNotFoundError: If the log doesn't exist
        """
        rows = self._select(self.update_logs_table, "id", log_id, "get_cargoes_flow_update_log")
        if not rows:
            raise CargoesFlowUpdateLogNotFoundError(log_id)
        return CargoesFlowUpdateLogResponse(**rows[0])

    def list_update_logs(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None
    ) -> tuple[list[CargoesFlowUpdateLogResponse], int]:
        rows, total = self._page(
            self.update_logs_table, page, page_size, "posted_at",
            search=search,
            search_columns=("shipment_number", "shipment_reference", "tai_shipment_id")
        )
        return [CargoesFlowUpdateLogResponse(**row) for row in rows], total

    # ===================
    # MISSING MBL
    # ===================

    def get_missing_mbl_by_reference(self, shipment_reference: str) -> Optional[MissingMblShipmentResponse]:
        rows = self._select(
            self.missing_mbl_table, "shipment_reference", shipment_reference,
            "get_missing_mbl_by_reference"
        )
        return MissingMblShipmentResponse(**rows[0]) if rows else None

    def create_missing_mbl(self, data: MissingMblShipmentCreate) -> MissingMblShipmentResponse:
        row = self._insert(
            self.missing_mbl_table,
            {**data.model_dump(mode="json"), "received_at": _now()},
            "create_missing_mbl"
        )
        record = MissingMblShipmentResponse(**row)
        logger.info(
            "missing_mbl_tracked",
            record_id=record.id,
            shipment_reference=record.shipment_reference
        )
        return record

    def list_missing_mbl(
        self,
        page: int = 1,
        page_size: int = 20,
        search: Optional[str] = None
    ) -> tuple[list[MissingMblShipmentResponse], int]:
        rows, total = self._page(
            self.missing_mbl_table, page, page_size, "received_at",
            search=search,
            search_columns=("shipment_reference", "container_number", "shipper")
        )
        return [MissingMblShipmentResponse(**row) for row in rows], total

    def delete_missing_mbl(self, record_id: str) -> bool:
        """
        Remove a resolved missing-MBL row.

        Raises:
            MissingMblShipmentNotFoundError: If the row doesn't exist
        """
        if not self._select(self.missing_mbl_table, "id", record_id, "get_missing_mbl"):
            raise MissingMblShipmentNotFoundError(record_id)

        try:
            self.db.table(self.missing_mbl_table).delete().eq("id", record_id).execute()
        except Exception as e:
            logger.error("delete_missing_mbl_failed", record_id=record_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("missing_mbl_deleted", record_id=record_id)
        return True

    # ===================
    # MIRROR SHIPMENTS
    # ===================

    def get_shipment_by_mbl(self, mbl_number: str) -> Optional[CargoesFlowShipmentResponse]:
        """First mirrored shipment with this MBL."""
        rows = self._select(self.shipments_table, "mbl_number", mbl_number, "get_cargoes_flow_shipment_by_mbl")
        return CargoesFlowShipmentResponse(**rows[0]) if rows else None

    def list_shipments(
        self,
        page: int = 1,
        page_size: int = 100
    ) -> tuple[list[CargoesFlowShipmentResponse], int]:
        """Mirror rows in stable id order, for batch jobs."""
        try:
            start, end = page_range(page, page_size)
            result = (
                self.db.table(self.shipments_table)
                .select("*", count="exact")
                .order("id")
                .range(start, end)
                .execute()
            )
        except Exception as e:
            logger.error("list_cargoes_flow_shipments_failed", error=str(e))
            raise DatabaseError("select", str(e))

        return [CargoesFlowShipmentResponse(**row) for row in result.data], result.count or 0

    def update_shipment_raw_data(self, shipment_id: str, raw_data: dict) -> None:
        """Replace a mirror row's raw_data blob."""
        self._update(
            self.shipments_table, shipment_id,
            {"raw_data": raw_data, "updated_at": _now()},
            "update_cargoes_flow_shipment"
        )

    def upsert_shipment(self, data: CargoesFlowShipmentUpsert) -> CargoesFlowShipmentResponse:
        """
        Insert or refresh a mirror row.

        Matched by container number when present, else by shipment
        reference.
        """
        if data.container_number:
            rows = self._select(
                self.shipments_table, "container_number", data.container_number,
                "get_cargoes_flow_shipment_by_container"
            )
        else:
            rows = self._select(
                self.shipments_table, "shipment_reference", data.shipment_reference,
                "get_cargoes_flow_shipment_by_reference"
            )

        fields = {**data.model_dump(mode="json"), "last_fetched_at": _now()}

        if rows:
            updated = self._update(self.shipments_table, rows[0]["id"], fields, "upsert_cargoes_flow_shipment")
            row = updated[0]
        else:
            row = self._insert(self.shipments_table, fields, "upsert_cargoes_flow_shipment")

        logger.info(
            "cargoes_flow_shipment_upserted",
            shipment_id=row["id"],
            mbl_number=data.mbl_number,
            created=not rows
        )
        return CargoesFlowShipmentResponse(**row)

    # ===================
    # CARRIERS
    # ===================

    def list_carriers(self) -> list[CarrierResponse]:
        try:
            result = self.db.table(self.carriers_table).select("*").order("carrier_name").execute()
        except Exception as e:
            logger.error("list_carriers_failed", error=str(e))
            raise DatabaseError("select", str(e))
        return [CarrierResponse(**row) for row in result.data]

    def find_carrier(self, scac: Optional[str], name: str) -> Optional[dict]:
        """Existing carrier row, matched by SCAC when given, else by name."""
        if scac:
            rows = self._select(self.carriers_table, "carrier_scac", scac, "get_carrier_by_scac")
        else:
            rows = self._select(self.carriers_table, "carrier_name", name, "get_carrier_by_name")
        return rows[0] if rows else None

    def insert_carrier(self, fields: dict) -> dict:
        return self._insert(self.carriers_table, {**fields, "last_synced_at": _now()}, "insert_carrier")

    def update_carrier(self, carrier_id: str, fields: dict) -> None:
        self._update(
            self.carriers_table, carrier_id,
            {**fields, "last_synced_at": _now(), "updated_at": _now()},
            "update_carrier"
        )

    def create_sync_log(self, fields: dict) -> dict:
        return self._insert(self.sync_logs_table, fields, "create_carrier_sync_log")

    def list_sync_logs(self, page: int = 1, page_size: int = 20) -> tuple[list[dict], int]:
        return self._page(self.sync_logs_table, page, page_size, "created_at")

    # ===================
    # DOCUMENT UPLOADS
    # ===================

    def create_document_upload(self, fields: dict) -> dict:
        return self._insert(self.uploads_table, fields, "create_document_upload")

    def list_document_uploads(
        self,
        page: int = 1,
        page_size: int = 50,
        shipment_number: Optional[str] = None,
        upload_status: Optional[PostStatus] = None
    ) -> tuple[list[DocumentUploadRecord], int]:
        """Upload rows, newest first, optionally for one shipment or outcome."""
        filters = {}
        if shipment_number:
            filters["shipment_number"] = shipment_number
        if upload_status:
            filters["upload_status"] = upload_status.value
        rows, total = self._page(
            self.uploads_table, page, page_size, "created_at",
            filters=filters
        )
        return [DocumentUploadRecord(**row) for row in rows], total


# Singleton instance
_cargoes_flow_service: Optional[CargoesFlowService] = None


def get_cargoes_flow_service() -> CargoesFlowService:
    """Get or create CargoesFlowService instance."""
    global _cargoes_flow_service
    if _cargoes_flow_service is None:
        _cargoes_flow_service = CargoesFlowService()
    return _cargoes_flow_service
