"""
TMS webhook payload and webhook log schemas.

The payload models are deliberately lenient: unknown keys are kept, every
block is optional, and numeric identifiers are coerced to strings. The raw
JSON is stored verbatim on the log row, so nothing here needs to be strict.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, Pagination


class WebhookOperation(str, Enum):
    """Decision recorded on the log row at receipt time."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"


class ReferenceType(str, Enum):
    """Reference types read from shipmentReferenceNumbers."""
    CONTAINER_NUMBER = "Container Number"
    MAWB_NUMBER = "MAWB Number"
    MBL_NUMBER = "MBL Number"
    SHIPMENT_ID = "Shipment Id"
    SHIPPER_REFERENCE = "Shipper Reference Number"


class StopType(str, Enum):
    """Stop types used to build origin and destination."""
    FIRST_PICKUP = "First Pickup"
    LAST_DROP = "Last Drop"


# ===================
# TMS PAYLOAD
# ===================

class TmsModel(BaseModel):
    """Base for TMS payload blocks: camelCase aliases, extra keys allowed."""
    model_config = ConfigDict(
        populate_by_name=True,
        extra="allow",
        str_strip_whitespace=True
    )


def _to_optional_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, bool):
        return str(v).lower()
    if isinstance(v, (int, float)):
        return str(v)
    return v


class TmsReferenceNumber(TmsModel):
    reference_type: Optional[str] = Field(None, alias="referenceType")
    value: Optional[str] = None

    coerce_value = field_validator("value", mode="before")(_to_optional_str)


class TmsStop(TmsModel):
    stop_type: Optional[str] = Field(None, alias="stopType")
    company_name: Optional[str] = Field(None, alias="companyName")
    city: Optional[str] = None
    state: Optional[str] = None
    estimated_ready_date_time: Optional[str] = Field(None, alias="estimatedReadyDateTime")
    actual_departure_date_time: Optional[str] = Field(None, alias="actualDepartureDateTime")
    actual_arrival_date_time: Optional[str] = Field(None, alias="actualArrivalDateTime")


class TmsCustomer(TmsModel):
    name: Optional[str] = None
    staff_name: Optional[str] = Field(None, alias="staffName")
    sales_rep_names: Optional[str] = Field(None, alias="salesRepNames")
    office: Optional[str] = None

    @field_validator("sales_rep_names", mode="before")
    @classmethod
    def join_list(cls, v: Any) -> Any:
        """Some senders post a list instead of a comma-separated string."""
        if isinstance(v, list):
            return ", ".join(str(name) for name in v if name)
        return v


class TmsCommodity(TmsModel):
    description: Optional[str] = None
    weight_total: Optional[Any] = Field(None, alias="weightTotal")
    pieces_total: Optional[Any] = Field(None, alias="piecesTotal")


class TmsCarrier(TmsModel):
    name: Optional[str] = None


class TmsWebhookPayload(TmsModel):
    """
    Inbound TMS shipment webhook.

    Example:
        {
            "shipmentType": "Drayage",
            "shipmentId": 555,
            "status": "Booked",
            "customer": {"name": "ACME", "salesRepNames": "Ann, Bob"},
            "shipmentReferenceNumbers": [
                {"referenceType": "MAWB Number", "value": "MBLX1"}
            ],
            "stops": [{"stopType": "First Pickup", "city": "Oakland"}]
        }
    """
    shipment_type: Optional[str] = Field(None, alias="shipmentType")
    shipment_id: Optional[str] = Field(None, alias="shipmentId")
    status: Optional[str] = None
    customer: Optional[TmsCustomer] = None
    shipment_reference_numbers: list[TmsReferenceNumber] = Field(
        default_factory=list,
        alias="shipmentReferenceNumbers"
    )
    stops: list[TmsStop] = Field(default_factory=list)
    commodities: list[TmsCommodity] = Field(default_factory=list)
    carrier_list: list[TmsCarrier] = Field(default_factory=list, alias="carrierList")

    coerce_shipment_id = field_validator("shipment_id", mode="before")(_to_optional_str)

    @field_validator(
        "shipment_reference_numbers", "stops", "commodities", "carrier_list",
        mode="before"
    )
    @classmethod
    def null_to_empty(cls, v: Any) -> Any:
        """Treat null arrays as empty."""
        return [] if v is None else v


# ===================
# WEBHOOK LOG SCHEMAS
# ===================

class WebhookLogCreate(BaseSchema):
    """Row written before any processing runs."""
    event_type: str = Field(..., description="TMS shipment type (Drayage, Truckload, ...)")
    operation: WebhookOperation
    shipment_id: str = Field(..., description="External TMS shipment id")
    container_number: Optional[str] = None
    status: str
    raw_payload: Any


class WebhookLogResponse(BaseSchema):
    """Webhook log row."""
    id: str
    event_type: str
    operation: WebhookOperation
    shipment_id: str
    container_number: Optional[str] = None
    status: str
    raw_payload: Any
    processed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    received_at: Optional[datetime] = None


class WebhookLogListResponse(BaseModel):
    """Paginated webhook logs."""
    data: list[WebhookLogResponse]
    pagination: Pagination


class WebhookRetryResponse(BaseModel):
    """Result of replaying a stored payload."""
    success: bool
    message: str


class WebhookLogBulkDelete(BaseModel):
    """Body for deleting every log of the listed TMS shipment ids."""
    model_config = ConfigDict(populate_by_name=True)

    shipment_ids: list[str] = Field(..., alias="shipmentIds", min_length=1)

    @field_validator("shipment_ids")
    @classmethod
    def drop_blank_ids(cls, v: list[str]) -> list[str]:
        ids = [shipment_id.strip() for shipment_id in v if shipment_id and shipment_id.strip()]
        if not ids:
            raise ValueError("shipmentIds must contain at least one id")
        return ids


class WebhookLogBulkDeleteResponse(BaseModel):
    success: bool
    deleted_count: int
    message: str
