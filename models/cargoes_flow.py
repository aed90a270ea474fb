"""
Cargoes Flow schemas: audit rows for posts and updates, missing-MBL
tracking, the mirrored shipment table, carriers, document uploads and
risk assessment.

The mirror's raw_data column is an opaque blob from the Cargoes Flow API.
Business logic reads it only through the accessor functions at the bottom
of this module.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, Optional
from enum import Enum
from datetime import datetime

from models.base import BaseSchema, Pagination


class PostStatus(str, Enum):
    """Outcome of an outbound Cargoes Flow call."""
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class RiskLevel(str, Enum):
    """Risk levels, lowest to highest."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class CargoesFlowResult(BaseModel):
    """
    Result of any Cargoes Flow API call.

    Failures are returned, never raised.
    """
    success: bool
    response: Optional[Any] = None
    error: Optional[str] = None


# ===================
# POSTS (createShipments)
# ===================

class CargoesFlowPostCreate(BaseSchema):
    """Audit row for one createShipments attempt."""
    shipment_reference: str
    mbl_number: str
    status: PostStatus
    webhook_id: Optional[str] = None
    tai_shipment_id: Optional[str] = None
    container_number: Optional[str] = None
    carrier: Optional[str] = None
    booking_number: Optional[str] = None
    office: Optional[str] = None
    sales_rep_names: Optional[list[str]] = None
    response_data: Optional[Any] = None
    error_message: Optional[str] = None


class CargoesFlowPostResponse(BaseSchema):
    id: str
    shipment_reference: str
    mbl_number: str
    status: PostStatus
    webhook_id: Optional[str] = None
    tai_shipment_id: Optional[str] = None
    container_number: Optional[str] = None
    carrier: Optional[str] = None
    booking_number: Optional[str] = None
    office: Optional[str] = None
    sales_rep_names: Optional[list[str]] = None
    response_data: Optional[Any] = None
    error_message: Optional[str] = None
    posted_at: Optional[datetime] = None


class CargoesFlowPostListResponse(BaseModel):
    data: list[CargoesFlowPostResponse]
    pagination: Pagination


class CargoesFlowRetryResponse(BaseModel):
    """Result of a manual post retry."""
    success: bool
    message: str
    post: CargoesFlowPostResponse


# ===================
# UPDATE LOGS (updateShipments)
# ===================

class CargoesFlowUpdateLogCreate(BaseSchema):
    """Audit row for one updateShipments attempt."""
    shipment_number: str
    shipment_reference: str
    status: PostStatus
    update_data: dict[str, Any] = Field(default_factory=dict)
    webhook_id: Optional[str] = None
    tai_shipment_id: Optional[str] = None
    response_data: Optional[Any] = None
    error_message: Optional[str] = None


class CargoesFlowUpdateLogResponse(BaseSchema):
    id: str
    shipment_number: str
    shipment_reference: str
    status: PostStatus
    update_data: Optional[dict[str, Any]] = None
    webhook_id: Optional[str] = None
    tai_shipment_id: Optional[str] = None
    response_data: Optional[Any] = None
    error_message: Optional[str] = None
    posted_at: Optional[datetime] = None


class CargoesFlowUpdateLogListResponse(BaseModel):
    data: list[CargoesFlowUpdateLogResponse]
    pagination: Pagination


# ===================
# MISSING MBL
# ===================

class MissingMblShipmentCreate(BaseSchema):
    """Drayage shipment received without an MBL."""
    shipment_reference: str
    webhook_id: Optional[str] = None
    container_number: Optional[str] = None
    shipper: Optional[str] = None
    consignee: Optional[str] = None
    origin_port: Optional[str] = None
    destination_port: Optional[str] = None
    carrier: Optional[str] = None
    status: Optional[str] = None


class MissingMblShipmentResponse(MissingMblShipmentCreate):
    id: str
    received_at: Optional[datetime] = None


class MissingMblShipmentListResponse(BaseModel):
    data: list[MissingMblShipmentResponse]
    pagination: Pagination


# ===================
# MIRROR (cargoes_flow_shipments)
# ===================

class CargoesFlowShipmentResponse(BaseSchema):
    """One container/shipment row mirrored from Cargoes Flow."""
    id: str
    shipment_reference: Optional[str] = None
    tai_shipment_id: Optional[str] = None
    mbl_number: Optional[str] = None
    container_number: Optional[str] = None
    booking_number: Optional[str] = None
    shipper: Optional[str] = None
    consignee: Optional[str] = None
    origin_port: Optional[str] = None
    destination_port: Optional[str] = None
    etd: Optional[str] = None
    eta: Optional[str] = None
    status: Optional[str] = None
    carrier: Optional[str] = None
    raw_data: dict[str, Any] = Field(default_factory=dict)
    last_fetched_at: Optional[datetime] = None

    @field_validator("raw_data", mode="before")
    @classmethod
    def null_raw_data(cls, v: Any) -> Any:
        return {} if v is None else v


class CargoesFlowShipmentUpsert(BaseSchema):
    """Fields written when seeding or refreshing a mirror row."""
    shipment_reference: str
    mbl_number: str
    tai_shipment_id: Optional[str] = None
    container_number: Optional[str] = None
    booking_number: Optional[str] = None
    shipper: Optional[str] = None
    consignee: Optional[str] = None
    origin_port: Optional[str] = None
    destination_port: Optional[str] = None
    etd: Optional[str] = None
    eta: Optional[str] = None
    status: Optional[str] = None
    carrier: Optional[str] = None
    raw_data: dict[str, Any] = Field(default_factory=dict)


# ===================
# CARRIERS
# ===================

class CarrierResponse(BaseSchema):
    id: str
    carrier_name: str
    carrier_scac: Optional[str] = None
    shipment_type: Optional[str] = None
    supports_track_by_mbl: bool = False
    supports_track_by_booking_number: bool = False
    requires_mbl: bool = False
    last_synced_at: Optional[datetime] = None


class CarrierSyncResult(BaseModel):
    success: bool
    carriers_processed: int = 0
    carriers_created: int = 0
    carriers_updated: int = 0
    error: Optional[str] = None


# ===================
# DOCUMENT UPLOAD
# ===================

class DocumentUploadFile(BaseModel):
    """One file as sent by the UI; file_data is a base64 data URL."""
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName", min_length=1)
    file_extension: str = Field(..., alias="fileExtension")
    file_data: str = Field(..., alias="fileData", description="data:<mime>;base64,<payload>")
    file_size: Optional[int] = Field(None, alias="fileSize", ge=0)


class DocumentUploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    shipment_number: str = Field(..., alias="shipmentNumber", min_length=1)
    files: list[DocumentUploadFile] = Field(..., min_length=1)


class DocumentUploadFileResult(BaseModel):
    file_name: Optional[str] = None
    success: bool
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    document_extension: Optional[str] = None
    created_at: Optional[str] = None
    error: Optional[str] = None


class DocumentUploadResult(BaseModel):
    success: bool
    results: list[DocumentUploadFileResult] = Field(default_factory=list)
    api_response: Optional[Any] = None
    error: Optional[str] = None


class DocumentUploadRecord(BaseSchema):
    """One stored upload outcome."""
    id: str
    shipment_number: str
    file_name: Optional[str] = None
    file_extension: Optional[str] = None
    file_size: Optional[int] = None
    organization_id: Optional[str] = None
    organization_name: Optional[str] = None
    upload_status: PostStatus
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None


class DocumentUploadListResponse(BaseModel):
    data: list[DocumentUploadRecord]
    pagination: Pagination


# ===================
# BATCH BACKFILL
# ===================

class BatchProcessResult(BaseModel):
    """Counts from replaying stored webhook logs through the forwarding gates."""
    success: bool = True
    processed: int = 0
    posted: int = 0
    missing_mbl: int = 0
    skipped: int = 0
    errors: int = 0


# ===================
# RISK
# ===================

class RiskAssessment(BaseModel):
    risk_level: RiskLevel
    risk_score: int
    risk_reasons: list[str]


class RiskBatchResult(BaseModel):
    updated: int
    errors: int


# ===================
# RAW DATA ACCESSORS
# ===================

def get_containers(raw_data: Optional[dict]) -> list[dict]:
    """Containers array from a mirror blob; [] when absent or malformed."""
    containers = (raw_data or {}).get("containers")
    if not isinstance(containers, list):
        return []
    return [c for c in containers if isinstance(c, dict)]


def get_first_container(raw_data: Optional[dict]) -> Optional[dict]:
    containers = get_containers(raw_data)
    return containers[0] if containers else None


def get_last_free_day(raw_data: Optional[dict]) -> Optional[str]:
    """LFD of the first container (lastFreeDay, else containerFreeTime)."""
    container = get_first_container(raw_data)
    if not container:
        return None
    return container.get("lastFreeDay") or container.get("containerFreeTime")


def get_risk_fields(raw_data: Optional[dict]) -> Optional[RiskAssessment]:
    """Last stored risk assessment, or None if never assessed."""
    data = raw_data or {}
    if data.get("riskLevel") not in {level.value for level in RiskLevel}:
        return None
    return RiskAssessment(
        risk_level=data["riskLevel"],
        risk_score=data.get("riskScore") or 0,
        risk_reasons=data.get("riskReasons") or []
    )


def with_risk_fields(
    raw_data: Optional[dict],
    assessment: RiskAssessment,
    assessed_at: datetime
) -> dict[str, Any]:
    """Copy of raw_data with the risk fields merged in."""
    return {
        **(raw_data or {}),
        "riskLevel": assessment.risk_level.value,
        "riskScore": assessment.risk_score,
        "riskReasons": assessment.risk_reasons,
        "riskAssessedAt": assessed_at.isoformat(),
    }
