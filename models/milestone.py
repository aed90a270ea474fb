"""
Milestone schemas and status derivation.

A milestone is a single event in a shipment's history. Shipment status is
derived from the most recent completed milestone via STATUS_RULES.
"""

from pydantic import BaseModel, Field
from typing import Callable, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, TimestampMixin
from models.shipment import ShipmentStatus, ShipmentResponse
from utils.date_utils import parse_datetime, EARLIEST


class MilestoneStatus(str, Enum):
    """Milestone status values."""
    PENDING = "pending"
    COMPLETED = "completed"
    DELAYED = "delayed"


# ===================
# MILESTONE SCHEMAS
# ===================

class MilestoneCreate(BaseSchema):
    """Create a milestone for a shipment."""
    event_type: str = Field(..., min_length=1, max_length=100, description="PICKUP, DELIVERY, or a TMS status")
    location: Optional[str] = Field(None, max_length=500)
    timestamp_planned: Optional[str] = Field(None, description="Planned time (ISO)")
    timestamp_actual: Optional[str] = Field(None, description="Actual time (ISO)")
    status: MilestoneStatus = Field(MilestoneStatus.PENDING)
    notes: Optional[str] = Field(None, max_length=1000)


class MilestoneUpdate(BaseSchema):
    """Update milestone. Only provided fields are written."""
    event_type: Optional[str] = Field(None, min_length=1, max_length=100)
    location: Optional[str] = Field(None, max_length=500)
    timestamp_planned: Optional[str] = None
    timestamp_actual: Optional[str] = None
    status: Optional[MilestoneStatus] = None
    notes: Optional[str] = Field(None, max_length=1000)


class MilestoneResponse(BaseSchema, TimestampMixin):
    """Milestone response."""
    id: str
    shipment_id: str
    event_type: str
    location: Optional[str] = None
    timestamp_planned: Optional[str] = None
    timestamp_actual: Optional[str] = None
    status: MilestoneStatus
    notes: Optional[str] = None


class MilestoneListResponse(BaseModel):
    """Milestones for one shipment."""
    data: list[MilestoneResponse]
    total: int


class ShipmentStatusResponse(BaseModel):
    """Result of a status recompute; milestones have delay detection applied."""
    shipment: ShipmentResponse
    milestones: list[MilestoneResponse]
    delays: int
    delayed_milestones: list[MilestoneResponse]


# ===================
# STATUS DERIVATION
# ===================

def is_delayed(milestone: MilestoneResponse) -> bool:
    """True when both timestamps parse and actual is later than planned."""
    planned = parse_datetime(milestone.timestamp_planned)
    actual = parse_datetime(milestone.timestamp_actual)
    if planned is None or actual is None:
        return False
    return actual > planned


def detect_delays(milestones: list[MilestoneResponse]) -> list[MilestoneResponse]:
    """
    Mark late milestones as delayed.

    Returns copies; the input list is not modified. Milestones that are not
    late keep their existing status.
    """
    return [
        m.model_copy(update={"status": MilestoneStatus.DELAYED}) if is_delayed(m) else m
        for m in milestones
    ]


def _contains(*needles: str) -> Callable[[str], bool]:
    return lambda event_type: any(n in event_type for n in needles)


# Evaluated in order against the upper-cased event type; first match wins.
STATUS_RULES: list[tuple[Callable[[str], bool], ShipmentStatus]] = [
    (_contains("ARRIVED", "DELIVERY", "DISCHARGE"), ShipmentStatus.ARRIVED),
    (_contains("DEPARTED", "LOADING", "LOADED"), ShipmentStatus.IN_TRANSIT),
    (_contains("GATE"), ShipmentStatus.AT_TERMINAL),
]

DEFAULT_STATUS = ShipmentStatus.IN_TRANSIT


def status_for_event(event_type: str) -> ShipmentStatus:
    """Map a free-text event type to a coarse shipment status."""
    upper = (event_type or "").upper()
    for predicate, status in STATUS_RULES:
        if predicate(upper):
            return status
    return DEFAULT_STATUS


def _actual_sort_key(milestone: MilestoneResponse) -> datetime:
    # Unparseable timestamps sort last
    return parse_datetime(milestone.timestamp_actual) or EARLIEST


def calculate_shipment_status(milestones: list[MilestoneResponse]) -> ShipmentStatus:
    """
    Derive shipment status from its milestones.

    Delays are detected first, so a late milestone counts as delayed rather
    than completed. The latest completed milestone (by actual timestamp)
    decides the status; with none, the shipment is still planned.
    """
    completed = [
        m for m in detect_delays(milestones)
        if m.status == MilestoneStatus.COMPLETED and m.timestamp_actual
    ]
    if not completed:
        return ShipmentStatus.PLANNED

    latest = sorted(completed, key=_actual_sort_key, reverse=True)[0]
    return status_for_event(latest.event_type)
