"""
TMS webhook processing.

Per inbound webhook:

    received -> signature check -> logged -> processing -> processed | failed

The log row (with its CREATE/UPDATE decision) is written before any
business logic, so every delivery that passes the signature check leaves
a retryable record. Retry replays the stored raw payload through the same
_process() used on receipt.
"""

import hmac
from typing import Any, Optional
import structlog
from pydantic import ValidationError as PydanticValidationError

from config import settings
from exceptions import InvalidWebhookSignatureError, WebhookProcessingError
from models.milestone import MilestoneCreate, MilestoneStatus
from models.shipment import ShipmentResponse
from models.webhook import (
    TmsWebhookPayload,
    WebhookLogCreate,
    WebhookOperation,
    WebhookRetryResponse,
)
from parsers.tms_parser import NormalizedShipment, normalize_payload, summarize_for_log
from services.cargoes_flow_forwarder import (
    CargoesFlowForwarder,
    ForwardOutcome,
    get_cargoes_flow_forwarder,
)
from services.milestone_service import get_milestone_service
from services.shipment_service import get_shipment_service
from services.webhook_log_service import get_webhook_log_service
from utils.date_utils import utc_now

logger = structlog.get_logger(__name__)

PICKUP = "PICKUP"
DELIVERY = "DELIVERY"
STATUS_UPDATE = "STATUS_UPDATE"


class TmsWebhookService:
    """Orchestrates TMS webhook receipt, processing and retry."""

    def __init__(self, forwarder: Optional[CargoesFlowForwarder] = None):
        self.logs = get_webhook_log_service()
        self.shipments = get_shipment_service()
        self.milestones = get_milestone_service()
        self.forwarder = forwarder or get_cargoes_flow_forwarder()

    # ===================
    # RECEIPT
    # ===================

    def verify_signature(self, signature: Optional[str], key: Optional[str] = None) -> None:
        """
        Check the shared-secret header when TMS_WEBHOOK_SECRET is set.

        Args:
            signature: x-tms-signature header
            key: x-tms-key header, used when signature is absent

        Raises:
            InvalidWebhookSignatureError: If the header doesn't match
        """
        secret = settings.tms_webhook_secret
        if not secret:
            return

        received = signature or key
        if received is None or not hmac.compare_digest(received.encode(), secret.encode()):
            logger.warning("webhook_signature_invalid", header_present=received is not None)
            raise InvalidWebhookSignatureError()

    def receive(self, raw_payload: Any) -> str:
        """
        Log and process one inbound webhook.

        Args:
            raw_payload: Parsed JSON body, stored verbatim

        Returns:
            Webhook log id

        Raises:
            WebhookProcessingError: If processing failed after the log row
                was written (carries webhook_id)
        """
        summary = summarize_for_log(raw_payload)

        normalized: Optional[NormalizedShipment] = None
        parse_error: Optional[Exception] = None
        try:
            normalized = normalize_payload(TmsWebhookPayload.model_validate(raw_payload))
        except PydanticValidationError as e:
            parse_error = e

        # Decided once, here, and stored on the log row
        lookup_reference = normalized.reference_number if normalized else summary.shipment_id
        existing = self.shipments.get_by_reference(lookup_reference)
        operation = WebhookOperation.UPDATE if existing else WebhookOperation.CREATE

        log = self.logs.create(WebhookLogCreate(
            event_type=summary.shipment_type,
            operation=operation,
            shipment_id=summary.shipment_id,
            container_number=summary.container_number,
            status=summary.status,
            raw_payload=raw_payload,
        ))

        logger.info(
            "webhook_received",
            webhook_id=log.id,
            shipment_id=summary.shipment_id,
            shipment_type=summary.shipment_type,
            operation=operation.value
        )

        try:
            if parse_error is not None:
                raise parse_error
            self._process(normalized, existing, log.id)
        except Exception as e:
            self._fail(log.id, e)

        self.logs.mark_processed(log.id)
        logger.info("webhook_processed", webhook_id=log.id, operation=operation.value)
        return log.id

    def retry(self, webhook_id: str) -> WebhookRetryResponse:
        """
        Replay a stored payload through the same processing.

        CREATE/UPDATE is decided afresh from the current store; the log's
        recorded operation is left as it was. Safe to call repeatedly.

        Raises:
            WebhookLogNotFoundError: If the log doesn't exist
            WebhookProcessingError: If processing failed again
        """
        log = self.logs.get_by_id(webhook_id)

        logger.info(
            "webhook_retrying",
            webhook_id=webhook_id,
            previously_processed=log.processed_at is not None,
            previous_error=log.error_message
        )

        try:
            normalized = normalize_payload(TmsWebhookPayload.model_validate(log.raw_payload))
            existing = self.shipments.get_by_reference(normalized.reference_number)
            self._process(normalized, existing, webhook_id)
        except Exception as e:
            self._fail(webhook_id, e)

        self.logs.mark_processed(webhook_id)
        logger.info("webhook_retry_succeeded", webhook_id=webhook_id)
        return WebhookRetryResponse(success=True, message="Webhook reprocessed successfully")

    def _fail(self, webhook_id: str, error: Exception) -> None:
        message = str(error) or type(error).__name__
        logger.error(
            "webhook_processing_failed",
            webhook_id=webhook_id,
            error=message,
            error_type=type(error).__name__
        )
        try:
            self.logs.mark_failed(webhook_id, message)
        except Exception as e:
            logger.error("webhook_error_record_failed", webhook_id=webhook_id, error=str(e))
        raise WebhookProcessingError(webhook_id, message) from error

    # ===================
    # PROCESSING
    # ===================

    def _process(
        self,
        normalized: NormalizedShipment,
        existing: Optional[ShipmentResponse],
        webhook_id: str
    ) -> ForwardOutcome:
        """
        Upsert the shipment, derive milestones, forward to Cargoes Flow.

        Shipment write errors propagate. Milestone and forwarding errors are
        logged and do not fail the webhook.
        """
        if existing:
            operation = WebhookOperation.UPDATE
            # Empty payload fields clear the stored value; source stays as created
            fields = {
                key: value
                for key, value in normalized.to_shipment_fields().items()
                if key != "source"
            }
            shipment = self.shipments.update_fields(existing.id, fields)
            self._append_status_milestone(shipment, normalized)
        else:
            operation = WebhookOperation.CREATE
            shipment = self.shipments.insert_fields(normalized.to_shipment_fields())
            self._seed_milestones(shipment, normalized)

        outcome = self.forwarder.forward(normalized, operation, webhook_id)

        logger.info(
            "webhook_shipment_processed",
            webhook_id=webhook_id,
            shipment_id=shipment.id,
            reference_number=shipment.reference_number,
            operation=operation.value,
            cargoes_flow=outcome.value
        )
        return outcome

    def _seed_milestones(self, shipment: ShipmentResponse, normalized: NormalizedShipment) -> None:
        """PICKUP and DELIVERY milestones from the first pickup / last drop stops."""
        candidates = []

        pickup = normalized.first_pickup
        if pickup and pickup.estimated_ready_date_time:
            candidates.append(MilestoneCreate(
                event_type=PICKUP,
                location=normalized.origin_port,
                timestamp_planned=pickup.estimated_ready_date_time,
                timestamp_actual=pickup.actual_departure_date_time,
                status=MilestoneStatus.COMPLETED if pickup.actual_departure_date_time else MilestoneStatus.PENDING,
            ))

        drop = normalized.last_drop
        if drop:
            candidates.append(MilestoneCreate(
                event_type=DELIVERY,
                location=normalized.destination_port,
                timestamp_planned=drop.estimated_ready_date_time,
                timestamp_actual=drop.actual_arrival_date_time,
                status=MilestoneStatus.COMPLETED if drop.actual_arrival_date_time else MilestoneStatus.PENDING,
            ))

        self._write_milestones(shipment, candidates)

    def _append_status_milestone(self, shipment: ShipmentResponse, normalized: NormalizedShipment) -> None:
        """One completed milestone per update webhook, whether or not status changed."""
        self._write_milestones(shipment, [MilestoneCreate(
            event_type=normalized.raw_status or STATUS_UPDATE,
            location=normalized.destination_port or None,
            timestamp_planned=None,
            timestamp_actual=utc_now().isoformat(),
            status=MilestoneStatus.COMPLETED,
        )])

    def _write_milestones(self, shipment: ShipmentResponse, milestones: list[MilestoneCreate]) -> None:
        if not milestones:
            return

        created = 0
        for milestone in milestones:
            try:
                self.milestones.create(shipment.id, milestone, recompute=False)
                created += 1
            except Exception as e:
                # Milestones are secondary to the shipment row
                logger.error(
                    "webhook_milestone_failed",
                    shipment_id=shipment.id,
                    event_type=milestone.event_type,
                    error=str(e)
                )

        if created:
            try:
                self.milestones.recompute_status(shipment.id)
            except Exception as e:
                logger.error("webhook_status_recompute_failed", shipment_id=shipment.id, error=str(e))


# Singleton instance
_tms_webhook_service: Optional[TmsWebhookService] = None


def get_tms_webhook_service() -> TmsWebhookService:
    """Get or create TmsWebhookService instance."""
    global _tms_webhook_service
    if _tms_webhook_service is None:
        _tms_webhook_service = TmsWebhookService()
    return _tms_webhook_service
