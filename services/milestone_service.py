"""
Milestone Service - CRUD operations for shipment milestones.

Every create/update/delete recomputes the parent shipment's status from
its full milestone history.
"""

import structlog
from typing import Any, Optional

from config import get_supabase_client
from models.milestone import (
    MilestoneCreate,
    MilestoneUpdate,
    MilestoneResponse,
    MilestoneStatus,
    ShipmentStatusResponse,
    calculate_shipment_status,
    detect_delays,
)
from services.shipment_service import get_shipment_service
from exceptions import MilestoneNotFoundError, DatabaseError

logger = structlog.get_logger(__name__)


class MilestoneService:
    """Service for milestone operations."""

    def __init__(self):
        self.db = get_supabase_client()
        self.table = "milestones"

    # ===================
    # READ OPERATIONS
    # ===================

    def get_by_id(self, milestone_id: str) -> MilestoneResponse:
        """
        Get a milestone by ID.

        Raises:
            MilestoneNotFoundError: If milestone doesn't exist
        """
        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("id", milestone_id)
                .execute()
            )
        except Exception as e:
            logger.error("get_milestone_failed", milestone_id=milestone_id, error=str(e))
            raise DatabaseError("select", str(e))

        if not result.data:
            raise MilestoneNotFoundError(milestone_id)

        return MilestoneResponse(**result.data[0])

    def get_by_shipment(self, shipment_id: str) -> list[MilestoneResponse]:
        """All milestones of a shipment, oldest first."""
        logger.debug("getting_milestones", shipment_id=shipment_id)

        try:
            result = (
                self.db.table(self.table)
                .select("*")
                .eq("shipment_id", shipment_id)
                .order("created_at")
                .execute()
            )
        except Exception as e:
            logger.error("get_milestones_failed", shipment_id=shipment_id, error=str(e))
            raise DatabaseError("select", str(e))

        return [MilestoneResponse(**row) for row in result.data]

    # ===================
    # WRITE OPERATIONS
    # ===================

    def create(
        self,
        shipment_id: str,
        data: MilestoneCreate,
        recompute: bool = True
    ) -> MilestoneResponse:
        """
        Create a milestone.

        Args:
            shipment_id: Parent shipment UUID
            data: Milestone fields
            recompute: Recompute shipment status afterwards. Webhook
                processing passes False and recomputes once at the end.

        Raises:
            ShipmentNotFoundError: If shipment doesn't exist
        """
        get_shipment_service().get_by_id(shipment_id)

        logger.info(
            "creating_milestone",
            shipment_id=shipment_id,
            event_type=data.event_type,
            status=data.status.value
        )

        try:
            result = self.db.table(self.table).insert({
                "shipment_id": shipment_id,
                **data.model_dump(mode="json"),
            }).execute()
        except Exception as e:
            logger.error("create_milestone_failed", shipment_id=shipment_id, error=str(e))
            raise DatabaseError("insert", str(e))

        milestone = MilestoneResponse(**result.data[0])
        logger.info("milestone_created", milestone_id=milestone.id, shipment_id=shipment_id)

        if recompute:
            self.recompute_status(shipment_id)

        return milestone

    def update(self, milestone_id: str, data: MilestoneUpdate) -> MilestoneResponse:
        """
        Update a milestone. Only provided fields are written.

        Raises:
            MilestoneNotFoundError: If milestone doesn't exist
        """
        existing = self.get_by_id(milestone_id)

        update_data = data.model_dump(mode="json", exclude_none=True)
        if not update_data:
            return existing

        milestone = self._write(milestone_id, update_data)
        logger.info("milestone_updated", milestone_id=milestone_id, fields=list(update_data.keys()))

        self.recompute_status(milestone.shipment_id)
        return milestone

    def delete(self, milestone_id: str) -> bool:
        """
        Delete a milestone.

        Raises:
            MilestoneNotFoundError: If milestone doesn't exist
        """
        existing = self.get_by_id(milestone_id)

        try:
            self.db.table(self.table).delete().eq("id", milestone_id).execute()
        except Exception as e:
            logger.error("delete_milestone_failed", milestone_id=milestone_id, error=str(e))
            raise DatabaseError("delete", str(e))

        logger.info("milestone_deleted", milestone_id=milestone_id, shipment_id=existing.shipment_id)

        self.recompute_status(existing.shipment_id)
        return True

    # ===================
    # STATUS
    # ===================

    def recompute_status(
        self,
        shipment_id: str,
        override_status: Optional[str] = None,
        persist_delays: bool = False
    ) -> ShipmentStatusResponse:
        """
        Recompute and store a shipment's status from its milestones.

        Args:
            shipment_id: Shipment UUID
            override_status: Store this label instead of the derived one
            persist_delays: Also write status=delayed on late milestones

        Returns:
            ShipmentStatusResponse with the updated shipment and the
            milestones as seen after delay detection
        """
        shipment_service = get_shipment_service()
        shipment_service.get_by_id(shipment_id)

        milestones = self.get_by_shipment(shipment_id)
        with_delays = detect_delays(milestones)
        delayed = [m for m in with_delays if m.status == MilestoneStatus.DELAYED]

        if persist_delays:
            originals = {m.id: m.status for m in milestones}
            for milestone in delayed:
                if originals.get(milestone.id) != MilestoneStatus.DELAYED:
                    self._write(milestone.id, {"status": MilestoneStatus.DELAYED.value})

        new_status = override_status or calculate_shipment_status(milestones).value
        shipment = shipment_service.update_status(shipment_id, new_status)

        logger.info(
            "shipment_status_recomputed",
            shipment_id=shipment_id,
            status=new_status,
            delays=len(delayed),
            overridden=bool(override_status)
        )

        return ShipmentStatusResponse(
            shipment=shipment,
            milestones=with_delays,
            delays=len(delayed),
            delayed_milestones=delayed,
        )

    def _write(self, milestone_id: str, fields: dict[str, Any]) -> MilestoneResponse:
        try:
            result = (
                self.db.table(self.table)
                .update(fields)
                .eq("id", milestone_id)
                .execute()
            )
        except Exception as e:
            logger.error("update_milestone_failed", milestone_id=milestone_id, error=str(e))
            raise DatabaseError("update", str(e))

        if not result.data:
            raise MilestoneNotFoundError(milestone_id)

        return MilestoneResponse(**result.data[0])


# Singleton instance
_milestone_service: Optional[MilestoneService] = None


def get_milestone_service() -> MilestoneService:
    """Get or create MilestoneService instance."""
    global _milestone_service
    if _milestone_service is None:
        _milestone_service = MilestoneService()
    return _milestone_service
