"""
Shipment service for business logic operations.

Shipments are keyed by reference_number. Webhook processing writes the
normalized field dicts through insert_fields/update_fields; the API goes
through create/update with validated schemas.
"""

from typing import Any, Optional
from datetime import datetime, timezone
import structlog

from config import get_supabase_client
from models.base import page_range
from models.shipment import (
    ShipmentCreate,
    ShipmentUpdate,
    ShipmentResponse,
)
from exceptions import (
    ShipmentNotFoundError,
    ShipmentReferenceExistsError,
    DatabaseError,
)

logger = structlog.get_logger(__name__)


class ShipmentService:
    """
    Shipment business logic.

    Handles CRUD operations for shipments.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "shipments"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_all(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[str] = None,
        sales_rep: Optional[str] = None
    ) -> tuple[list[ShipmentResponse], int]:
        """
        Get all shipments with optional filters.

        Args:
            page: Page number (1-indexed)
            page_size: Items per page
            status: Filter by exact status label
            sales_rep: Only shipments whose sales_rep_names contain this
                exact name

        Returns:
            Tuple of (shipments list, total count)
        """
        logger.info(
            "getting_shipments",
            page=page,
            page_size=page_size,
            status=status,
            sales_rep=sales_rep
        )

        try:
            query = self.db.table(self.table).select("*", count="exact")

            if status:
                query = query.eq("status", status)
            if sales_rep:
                query = query.contains("sales_rep_names", [sales_rep])

            start, end = page_range(page, page_size)
            query = query.order("created_at", desc=True).range(start, end)

            result = query.execute()

            shipments = [self._row_to_response(row) for row in result.data]
            total = result.count or 0

            logger.info("shipments_retrieved", count=len(shipments), total=total)

            return shipments, total

        except Exception as e:
            logger.error("get_shipments_failed", error=str(e))
            raise DatabaseError("select", str(e))

    def get_by_id(self, shipment_id: str) -> ShipmentResponse:
        """
        Get a single shipment by ID.

        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        logger.debug("getting_shipment", shipment_id=shipment_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", shipment_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_shipment_failed", shipment_id=shipment_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise ShipmentNotFoundError(shipment_id)

        return self._row_to_response(result.data[0])

    def get_by_reference(self, reference_number: str) -> Optional[ShipmentResponse]:
        """
        Get a shipment by its business key.

        Returns:
            ShipmentResponse or None if not found
        """
        logger.debug("getting_shipment_by_reference", reference_number=reference_number)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("reference_number", reference_number)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "get_shipment_by_reference_failed",
                reference_number=reference_number,
                error=str(e)
            )
            raise DatabaseError("select", str(e))

        if not result.data:
            return None

        return self._row_to_response(result.data[0])

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(self, data: ShipmentCreate) -> ShipmentResponse:
        """
        Create a shipment from the API.

        Raises:
            ShipmentReferenceExistsError: If reference number already exists
        """
        logger.info("creating_shipment", reference_number=data.reference_number)

        if self.get_by_reference(data.reference_number):
            raise ShipmentReferenceExistsError(data.reference_number)

        return self.insert_fields(data.model_dump(mode="json"))

    def insert_fields(self, fields: dict[str, Any]) -> ShipmentResponse:
        """
        Insert a shipment row as given.

        A unique violation on reference_number surfaces as DatabaseError.
        """
        try:
            result = self.db.table(self.table).insert(fields).execute()
        except Exception as e:
            logger.error(
                "create_shipment_failed",
                reference_number=fields.get("reference_number"),
                error=str(e)
            )
            raise DatabaseError("insert", str(e))

        row = result.data[0]
        logger.info(
            "shipment_created",
            shipment_id=row["id"],
            reference_number=row.get("reference_number"),
            source=row.get("source")
        )
        return self._row_to_response(row)

    def update(self, shipment_id: str, data: ShipmentUpdate) -> ShipmentResponse:
        """
        Update an existing shipment. Only non-None fields are written.

        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
            ShipmentReferenceExistsError: If the new reference is taken
        """
        logger.info("updating_shipment", shipment_id=shipment_id)

        existing = self.get_by_id(shipment_id)

        update_data = data.model_dump(mode="json", exclude_none=True)

        new_reference = update_data.get("reference_number")
        if new_reference and new_reference != existing.reference_number:
            if self.get_by_reference(new_reference):
                raise ShipmentReferenceExistsError(new_reference)

        if not update_data:
            return existing

        return self.update_fields(shipment_id, update_data)

    def update_fields(self, shipment_id: str, fields: dict[str, Any]) -> ShipmentResponse:
        """
        Overwrite the given columns and bump updated_at.

        Raises:
            ShipmentNotFoundError: If no row was updated
        """
        update_data = {**fields, "updated_at": datetime.now(timezone.utc).isoformat()}

        try:
            result = (
                self.db.table(self.table)
                .update(update_data)
                .eq("id", shipment_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_shipment_failed", shipment_id=shipment_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise ShipmentNotFoundError(shipment_id)

        logger.info(
            "shipment_updated",
            shipment_id=shipment_id,
            fields=list(fields.keys())
        )
        return self._row_to_response(result.data[0])

    def update_status(self, shipment_id: str, status: str) -> ShipmentResponse:
        """Store a (derived) status label."""
        logger.info("updating_shipment_status", shipment_id=shipment_id, new_status=status)
        return self.update_fields(shipment_id, {"status": status})

    def delete(self, shipment_id: str) -> bool:
        """
        Hard delete a shipment and its milestones.

        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        logger.info("deleting_shipment", shipment_id=shipment_id)

        self.get_by_id(shipment_id)

        try:
            self.db.table("milestones").delete().eq("shipment_id", shipment_id).execute()
            self.db.table(self.table).delete().eq("id", shipment_id).execute()
        except Exception as e:
            logger.error("delete_shipment_failed", shipment_id=shipment_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("shipment_deleted", shipment_id=shipment_id)
        return True

    # ===================
    # HELPERS
    # ===================

    def _row_to_response(self, row: dict) -> ShipmentResponse:
        """Convert database row to ShipmentResponse."""
        return ShipmentResponse(
            id=str(row["id"]),
            reference_number=row["reference_number"],
            booking_number=row.get("booking_number"),
            master_bill_of_lading=row.get("master_bill_of_lading"),
            shipper=row.get("shipper"),
            consignee=row.get("consignee"),
            origin_port=row.get("origin_port"),
            destination_port=row.get("destination_port"),
            etd=row.get("etd"),
            eta=row.get("eta"),
            atd=row.get("atd"),
            ata=row.get("ata"),
            status=row.get("status") or "planned",
            carrier=row.get("carrier"),
            vessel_name=row.get("vessel_name"),
            voyage_number=row.get("voyage_number"),
            office_name=row.get("office_name"),
            sales_rep_names=row.get("sales_rep_names"),
            source=row.get("source"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )


# Singleton instance
_shipment_service: Optional[ShipmentService] = None


def get_shipment_service() -> ShipmentService:
    """Get or create ShipmentService instance."""
    global _shipment_service
    if _shipment_service is None:
        _shipment_service = ShipmentService()
    return _shipment_service
