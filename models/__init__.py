"""
Pydantic models for validation and serialization.
"""

from models.base import (
    BaseSchema,
    TimestampMixin,
    Pagination,
)
from models.shipment import (
    ShipmentStatus,
    ShipmentSource,
    ShipmentCreate,
    ShipmentUpdate,
    ShipmentResponse,
    ShipmentListResponse,
)
from models.milestone import (
    MilestoneStatus,
    MilestoneCreate,
    MilestoneUpdate,
    MilestoneResponse,
    calculate_shipment_status,
    detect_delays,
)
from models.webhook import (
    WebhookOperation,
    TmsWebhookPayload,
    WebhookLogCreate,
    WebhookLogResponse,
    WebhookLogListResponse,
)
from models.cargoes_flow import (
    PostStatus,
    RiskLevel,
    RiskAssessment,
    CargoesFlowResult,
    CargoesFlowPostResponse,
    CargoesFlowUpdateLogResponse,
    MissingMblShipmentResponse,
    CargoesFlowShipmentResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "TimestampMixin",
    "Pagination",

    # Shipment
    "ShipmentStatus",
    "ShipmentSource",
    "ShipmentCreate",
    "ShipmentUpdate",
    "ShipmentResponse",
    "ShipmentListResponse",

    # Milestone
    "MilestoneStatus",
    "MilestoneCreate",
    "MilestoneUpdate",
    "MilestoneResponse",
    "calculate_shipment_status",
    "detect_delays",

    # Webhook
    "WebhookOperation",
    "TmsWebhookPayload",
    "WebhookLogCreate",
    "WebhookLogResponse",
    "WebhookLogListResponse",

    # Cargoes Flow
    "PostStatus",
    "RiskLevel",
    "RiskAssessment",
    "CargoesFlowResult",
    "CargoesFlowPostResponse",
    "CargoesFlowUpdateLogResponse",
    "MissingMblShipmentResponse",
    "CargoesFlowShipmentResponse",
]
