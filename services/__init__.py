"""
Business logic services.

Each service handles one domain area.
"""

from services.shipment_service import ShipmentService, get_shipment_service
from services.milestone_service import MilestoneService, get_milestone_service
from services.webhook_log_service import WebhookLogService, get_webhook_log_service
from services.cargoes_flow_service import CargoesFlowService, get_cargoes_flow_service
from services.cargoes_flow_forwarder import (
    CargoesFlowForwarder,
    ForwardOutcome,
    get_cargoes_flow_forwarder,
)
from services.tms_webhook_service import TmsWebhookService, get_tms_webhook_service
from services.risk_assessment_service import (
    RiskAssessmentService,
    assess_shipment_risk,
    get_risk_assessment_service,
)
from services.carrier_sync_service import CarrierSyncService, get_carrier_sync_service

__all__ = [
    "ShipmentService",
    "get_shipment_service",
    "MilestoneService",
    "get_milestone_service",
    "WebhookLogService",
    "get_webhook_log_service",
    "CargoesFlowService",
    "get_cargoes_flow_service",
    "CargoesFlowForwarder",
    "ForwardOutcome",
    "get_cargoes_flow_forwarder",
    "TmsWebhookService",
    "get_tms_webhook_service",
    "RiskAssessmentService",
    "assess_shipment_risk",
    "get_risk_assessment_service",
    "CarrierSyncService",
    "get_carrier_sync_service",
]
