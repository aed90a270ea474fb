"""
Shipment schemas for validation and serialization.

Shipments are created by TMS webhooks or by users. Status is a free-text
label recomputed from the milestone history (see models.milestone).
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from enum import Enum

from models.base import BaseSchema, TimestampMixin, Pagination


class ShipmentStatus(str, Enum):
    """Coarse statuses derived from milestones."""
    PLANNED = "planned"
    IN_TRANSIT = "in-transit"
    AT_TERMINAL = "at-terminal"
    ARRIVED = "arrived"


class ShipmentSource(str, Enum):
    """Where a shipment record originated."""
    USER = "user"
    WEBHOOK = "webhook"


# ===================
# SHIPMENT SCHEMAS
# ===================

class ShipmentCreate(BaseSchema):
    """
    Create a new shipment.

    Only reference_number is required. Dates are stored as sent
    (ISO date or datetime strings).
    """

    reference_number: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Business key, unique across shipments"
    )
    booking_number: Optional[str] = Field(None, max_length=100, description="Booking / shipper reference")
    master_bill_of_lading: Optional[str] = Field(
        None,
        max_length=100,
        description="MBL / MAWB number; presence enables Cargoes Flow tracking"
    )
    shipper: Optional[str] = Field(None, max_length=255)
    consignee: Optional[str] = Field(None, max_length=255)
    origin_port: Optional[str] = Field(None, max_length=500)
    destination_port: Optional[str] = Field(None, max_length=500)
    etd: Optional[str] = Field(None, description="Estimated departure")
    eta: Optional[str] = Field(None, description="Estimated arrival")
    atd: Optional[str] = Field(None, description="Actual departure")
    ata: Optional[str] = Field(None, description="Actual arrival")
    status: str = Field("planned", max_length=100)
    carrier: Optional[str] = Field(None, max_length=255)
    vessel_name: Optional[str] = Field(None, max_length=255)
    voyage_number: Optional[str] = Field(None, max_length=100)
    office_name: Optional[str] = Field(None, max_length=255)
    sales_rep_names: Optional[list[str]] = Field(None, description="Ordered sales rep names")
    commodity_description: Optional[str] = Field(None, max_length=1000)
    source: ShipmentSource = Field(ShipmentSource.USER)

    @field_validator("master_bill_of_lading")
    @classmethod
    def normalize_mbl(cls, v: Optional[str]) -> Optional[str]:
        """Uppercase MBL numbers; blank becomes None."""
        if v is None or not v.strip():
            return None
        return v.upper().strip()

    @field_validator("sales_rep_names")
    @classmethod
    def drop_empty_names(cls, v: Optional[list[str]]) -> Optional[list[str]]:
        """Trim names and drop blanks; an empty list is stored as None."""
        if v is None:
            return v
        names = [name.strip() for name in v if name and name.strip()]
        return names or None


class ShipmentUpdate(BaseSchema):
    """
    Update shipment.

    All fields optional - only provided (non-None) fields are written.
    """

    reference_number: Optional[str] = Field(None, min_length=1, max_length=100)
    booking_number: Optional[str] = Field(None, max_length=100)
    master_bill_of_lading: Optional[str] = Field(None, max_length=100)
    shipper: Optional[str] = Field(None, max_length=255)
    consignee: Optional[str] = Field(None, max_length=255)
    origin_port: Optional[str] = Field(None, max_length=500)
    destination_port: Optional[str] = Field(None, max_length=500)
    etd: Optional[str] = None
    eta: Optional[str] = None
    atd: Optional[str] = None
    ata: Optional[str] = None
    status: Optional[str] = Field(None, max_length=100)
    carrier: Optional[str] = Field(None, max_length=255)
    vessel_name: Optional[str] = Field(None, max_length=255)
    voyage_number: Optional[str] = Field(None, max_length=100)
    office_name: Optional[str] = Field(None, max_length=255)
    sales_rep_names: Optional[list[str]] = None
    commodity_description: Optional[str] = Field(None, max_length=1000)


class ShipmentStatusRecompute(BaseModel):
    """Body for the status recompute endpoint; status overrides the derived one."""
    status: Optional[str] = Field(None, max_length=100)


class ShipmentResponse(BaseSchema, TimestampMixin):
    """Shipment response with all fields."""

    id: str
    reference_number: str
    booking_number: Optional[str] = None
    master_bill_of_lading: Optional[str] = None
    shipper: Optional[str] = None
    consignee: Optional[str] = None
    origin_port: Optional[str] = None
    destination_port: Optional[str] = None
    etd: Optional[str] = None
    eta: Optional[str] = None
    atd: Optional[str] = None
    ata: Optional[str] = None
    status: str
    carrier: Optional[str] = None
    vessel_name: Optional[str] = None
    voyage_number: Optional[str] = None
    office_name: Optional[str] = None
    sales_rep_names: Optional[list[str]] = None
    commodity_description: Optional[str] = None
    source: Optional[str] = None


class ShipmentListResponse(BaseModel):
    """Paginated list of shipments."""
    data: list[ShipmentResponse]
    pagination: Pagination

