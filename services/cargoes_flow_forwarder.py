"""
Cargoes Flow forwarder.

Decides, per processed webhook, whether and how shipment data goes to
Cargoes Flow:

    1. Not drayage          -> skip
    2. Drayage without MBL  -> track in missing_mbl_shipments (once per reference)
    3. Drayage with MBL
        CREATE -> createShipments with the MBL only, unless a post already
                  exists for the reference; the attempt is always recorded
        UPDATE -> updateShipments against the Cargoes Flow shipment number
                  found in the mirror table; no mirror row means skip

Forwarding is best-effort. Nothing raised in here reaches the webhook
handler; failures end up in audit rows and the log.
"""

from enum import Enum
from typing import Optional
import structlog

from integrations.cargoes_flow import CargoesFlowClient, get_cargoes_flow_client
from models.cargoes_flow import (
    PostStatus,
    BatchProcessResult,
    CargoesFlowResult,
    CargoesFlowPostCreate,
    CargoesFlowPostResponse,
    CargoesFlowRetryResponse,
    CargoesFlowShipmentUpsert,
    CargoesFlowUpdateLogCreate,
    DocumentUploadRequest,
    DocumentUploadResult,
    MissingMblShipmentCreate,
)
from models.shipment import ShipmentResponse
from models.webhook import TmsWebhookPayload, WebhookOperation
from parsers.tms_parser import NormalizedShipment, normalize_payload
from services.cargoes_flow_service import CargoesFlowService, get_cargoes_flow_service
from services.webhook_log_service import get_webhook_log_service
from utils.date_utils import to_simple_date

logger = structlog.get_logger(__name__)

MIRROR_STATUS_ACTIVE = "ACTIVE"


class ForwardOutcome(str, Enum):
    """What the forwarder did for one webhook."""
    SKIPPED_NOT_DRAYAGE = "skipped_not_drayage"
    MISSING_MBL_TRACKED = "missing_mbl_tracked"
    MISSING_MBL_ALREADY_TRACKED = "missing_mbl_already_tracked"
    ALREADY_POSTED = "already_posted"
    POSTED = "posted"
    POST_FAILED = "post_failed"
    UPDATE_SKIPPED_NO_MAPPING = "update_skipped_no_mapping"
    UPDATED = "updated"
    UPDATE_FAILED = "update_failed"
    ERROR = "error"


def build_update_fields(normalized: NormalizedShipment) -> dict:
    """Fields for updateShipments; only those with a value are sent."""
    fields = {}
    if normalized.shipper:
        fields["shipper"] = normalized.shipper
    if normalized.consignee:
        fields["consignee"] = normalized.consignee
    if normalized.etd and to_simple_date(normalized.etd):
        fields["promisedEtd"] = to_simple_date(normalized.etd)
    if normalized.eta and to_simple_date(normalized.eta):
        fields["promisedEta"] = to_simple_date(normalized.eta)
    return fields


class CargoesFlowForwarder:
    """Gating and audit logic around CargoesFlowClient."""

    def __init__(
        self,
        client: Optional[CargoesFlowClient] = None,
        service: Optional[CargoesFlowService] = None
    ):
        self.client = client or get_cargoes_flow_client()
        self.service = service or get_cargoes_flow_service()

    # ===================
    # WEBHOOK FORWARDING
    # ===================

    def forward(
        self,
        normalized: NormalizedShipment,
        operation: WebhookOperation,
        webhook_id: Optional[str]
    ) -> ForwardOutcome:
        """
        Forward one processed webhook. Never raises.

        Args:
            normalized: Shipment fields from the webhook
            operation: CREATE/UPDATE decided at receipt
            webhook_id: Webhook log row id, stored on audit rows
        """
        if not normalized.is_drayage:
            logger.info(
                "cargoes_flow_skipped_not_drayage",
                reference_number=normalized.reference_number,
                shipment_type=normalized.shipment_type
            )
            return ForwardOutcome.SKIPPED_NOT_DRAYAGE

        try:
            if not normalized.has_mbl:
                return self._track_missing_mbl(normalized, webhook_id)
            if operation == WebhookOperation.CREATE:
                return self._post_new_shipment(normalized, webhook_id)
            return self._send_update(normalized, webhook_id)

        except Exception as e:
            logger.error(
                "cargoes_flow_forward_failed",
                reference_number=normalized.reference_number,
                operation=operation.value,
                error=str(e),
                error_type=type(e).__name__
            )
            return ForwardOutcome.ERROR

    def _track_missing_mbl(
        self,
        normalized: NormalizedShipment,
        webhook_id: Optional[str]
    ) -> ForwardOutcome:
        if self.service.get_missing_mbl_by_reference(normalized.reference_number):
            logger.info(
                "missing_mbl_already_tracked",
                reference_number=normalized.reference_number
            )
            return ForwardOutcome.MISSING_MBL_ALREADY_TRACKED

        self.service.create_missing_mbl(MissingMblShipmentCreate(
            shipment_reference=normalized.reference_number,
            webhook_id=webhook_id,
            container_number=normalized.container_number,
            shipper=normalized.shipper,
            consignee=normalized.consignee,
            origin_port=normalized.origin_port,
            destination_port=normalized.destination_port,
            carrier=normalized.carrier,
            status=normalized.status,
        ))
        return ForwardOutcome.MISSING_MBL_TRACKED

    def _post_new_shipment(
        self,
        normalized: NormalizedShipment,
        webhook_id: Optional[str]
    ) -> ForwardOutcome:
        existing = self.service.get_post_by_reference(normalized.reference_number)
        if existing:
            logger.info(
                "cargoes_flow_already_posted",
                reference_number=normalized.reference_number,
                post_id=existing.id,
                status=existing.status.value
            )
            return ForwardOutcome.ALREADY_POSTED

        post = self.post_shipment(
            shipment_reference=normalized.reference_number,
            mbl_number=normalized.master_bill_of_lading,
            webhook_id=webhook_id,
            tai_shipment_id=normalized.tai_shipment_id,
            container_number=normalized.container_number,
            carrier=normalized.carrier,
            booking_number=normalized.booking_number or None,
            office=normalized.office_name,
            sales_rep_names=normalized.sales_rep_names,
        )
        if post.status == PostStatus.SUCCESS:
            return ForwardOutcome.POSTED
        return ForwardOutcome.POST_FAILED

    def _send_update(
        self,
        normalized: NormalizedShipment,
        webhook_id: Optional[str]
    ) -> ForwardOutcome:
        mirror = self.service.get_shipment_by_mbl(normalized.master_bill_of_lading)
        if not mirror or not mirror.shipment_reference:
            logger.info(
                "cargoes_flow_update_skipped_no_mapping",
                reference_number=normalized.reference_number,
                mbl_number=normalized.master_bill_of_lading
            )
            return ForwardOutcome.UPDATE_SKIPPED_NO_MAPPING

        shipment_number = mirror.shipment_reference
        update_fields = build_update_fields(normalized)
        result = self.client.update_shipment(shipment_number, update_fields)

        self.service.create_update_log(CargoesFlowUpdateLogCreate(
            shipment_number=shipment_number,
            shipment_reference=normalized.reference_number,
            tai_shipment_id=normalized.tai_shipment_id or normalized.reference_number,
            webhook_id=webhook_id,
            update_data=update_fields,
            status=PostStatus.SUCCESS if result.success else PostStatus.FAILED,
            response_data=result.response,
            error_message=result.error,
        ))

        if result.success:
            return ForwardOutcome.UPDATED
        return ForwardOutcome.UPDATE_FAILED

    # ===================
    # POSTING
    # ===================

    def post_shipment(
        self,
        shipment_reference: str,
        mbl_number: str,
        webhook_id: Optional[str] = None,
        tai_shipment_id: Optional[str] = None,
        container_number: Optional[str] = None,
        carrier: Optional[str] = None,
        booking_number: Optional[str] = None,
        office: Optional[str] = None,
        sales_rep_names: Optional[list[str]] = None
    ) -> CargoesFlowPostResponse:
        """
        Send createShipments and record the attempt, whatever the outcome.

        Returns:
            The recorded post row (status success or failed)
        """
        result = self.client.create_shipment(mbl_number)

        if not result.success:
            logger.error(
                "cargoes_flow_post_failed",
                shipment_reference=shipment_reference,
                mbl_number=mbl_number,
                error=result.error
            )

        return self.service.create_post(CargoesFlowPostCreate(
            shipment_reference=shipment_reference,
            mbl_number=mbl_number,
            webhook_id=webhook_id,
            tai_shipment_id=tai_shipment_id or shipment_reference,
            container_number=container_number,
            carrier=carrier,
            booking_number=booking_number,
            office=office,
            sales_rep_names=sales_rep_names,
            status=PostStatus.SUCCESS if result.success else PostStatus.FAILED,
            response_data=result.response,
            error_message=result.error,
        ))

    def track_user_shipment(self, shipment: ShipmentResponse) -> Optional[CargoesFlowPostResponse]:
        """
        Post a user-created shipment with an MBL and seed it into the
        mirror table as ACTIVE so it shows up before the first poll.

        Best-effort: errors are logged and None is returned.
        """
        if not shipment.master_bill_of_lading:
            return None

        try:
            post = self.post_shipment(
                shipment_reference=shipment.reference_number,
                mbl_number=shipment.master_bill_of_lading,
                tai_shipment_id=shipment.reference_number,
                carrier=shipment.carrier,
                booking_number=shipment.booking_number,
            )
            self.service.upsert_shipment(CargoesFlowShipmentUpsert(
                shipment_reference=shipment.reference_number or f"USER-{shipment.id}",
                tai_shipment_id=shipment.reference_number,
                mbl_number=shipment.master_bill_of_lading,
                booking_number=shipment.booking_number,
                shipper=shipment.shipper,
                consignee=shipment.consignee,
                origin_port=shipment.origin_port,
                destination_port=shipment.destination_port,
                etd=shipment.etd,
                eta=shipment.eta,
                status=MIRROR_STATUS_ACTIVE,
                carrier=shipment.carrier,
                raw_data={"userCreated": True, **shipment.model_dump(mode="json")},
            ))
            return post

        except Exception as e:
            logger.error(
                "cargoes_flow_user_shipment_failed",
                shipment_id=shipment.id,
                error=str(e),
                error_type=type(e).__name__
            )
            return None

    def retry_post(self, post_id: str) -> CargoesFlowRetryResponse:
        """
        Re-send the MBL-only payload of an earlier post and update it in place.

        Raises:
            CargoesFlowPostNotFoundError: If the post doesn't exist
        """
        post = self.service.get_post(post_id)

        logger.info(
            "cargoes_flow_post_retrying",
            post_id=post_id,
            mbl_number=post.mbl_number,
            previous_status=post.status.value
        )

        result: CargoesFlowResult = self.client.create_shipment(post.mbl_number)

        updated = self.service.update_post_result(
            post_id,
            status=PostStatus.SUCCESS if result.success else PostStatus.FAILED,
            response_data=result.response,
            error_message=None if result.success else (result.error or "Unknown error"),
        )

        if result.success:
            logger.info("cargoes_flow_post_retry_succeeded", post_id=post_id)
            return CargoesFlowRetryResponse(success=True, message="Retry successful", post=updated)

        logger.error("cargoes_flow_post_retry_failed", post_id=post_id, error=result.error)
        return CargoesFlowRetryResponse(
            success=False,
            message=result.error or "Failed to post to Cargoes Flow",
            post=updated
        )

    # ===================
    # BACKFILL
    # ===================

    def backfill_from_webhook_logs(self) -> BatchProcessResult:
        """
        Replay every stored webhook log through the forwarding gates.

        Creates the posts and missing-MBL rows that earlier deliveries
        didn't, e.g. an MBL that first arrived on an UPDATE. Existing posts
        and tracked references are left alone, so running it twice is safe.
        Logs without a TMS shipment id are skipped.
        """
        result = BatchProcessResult()
        logger.info("cargoes_flow_backfill_started")

        for log in get_webhook_log_service().iter_all():
            result.processed += 1
            try:
                normalized = normalize_payload(TmsWebhookPayload.model_validate(log.raw_payload))
                if not normalized.tai_shipment_id or not normalized.is_drayage:
                    result.skipped += 1
                    continue

                if normalized.has_mbl:
                    outcome = self._post_new_shipment(normalized, log.id)
                else:
                    outcome = self._track_missing_mbl(normalized, log.id)

            except Exception as e:
                result.errors += 1
                logger.error(
                    "cargoes_flow_backfill_log_failed",
                    webhook_id=log.id,
                    error=str(e),
                    error_type=type(e).__name__
                )
                continue

            if outcome == ForwardOutcome.POSTED:
                result.posted += 1
            elif outcome == ForwardOutcome.POST_FAILED:
                result.errors += 1
            elif outcome == ForwardOutcome.MISSING_MBL_TRACKED:
                result.missing_mbl += 1
            else:
                result.skipped += 1

        logger.info(
            "cargoes_flow_backfill_complete",
            processed=result.processed,
            posted=result.posted,
            missing_mbl=result.missing_mbl,
            skipped=result.skipped,
            errors=result.errors
        )
        return result

    # ===================
    # DOCUMENTS
    # ===================

    def upload_documents(self, request: DocumentUploadRequest) -> DocumentUploadResult:
        """
        Upload documents to a Cargoes Flow shipment and record one upload
        row per returned document, or one failed row per file when the
        request itself failed.
        """
        result = self.client.upload_documents(request.shipment_number, request.files)
        sizes = {f.file_name: f for f in request.files}

        if not result.success:
            for f in request.files:
                self._record_upload(request.shipment_number, f.file_name, f.file_extension, f.file_size,
                                    status=PostStatus.FAILED, error_message=result.error)
            return result

        for item in result.results:
            sent = sizes.get(item.file_name)
            self._record_upload(
                request.shipment_number,
                item.file_name,
                item.document_extension or (sent.file_extension if sent else None),
                sent.file_size if sent else None,
                status=PostStatus.SUCCESS if item.success else PostStatus.FAILED,
                error_message=item.error,
                organization_id=item.organization_id,
                organization_name=item.organization_name,
            )
        return result

    def _record_upload(
        self,
        shipment_number: str,
        file_name: Optional[str],
        file_extension: Optional[str],
        file_size: Optional[int],
        status: PostStatus,
        error_message: Optional[str] = None,
        organization_id: Optional[str] = None,
        organization_name: Optional[str] = None
    ) -> None:
        try:
            self.service.create_document_upload({
                "shipment_number": shipment_number,
                "file_name": file_name,
                "file_extension": file_extension,
                "file_size": file_size,
                "organization_id": organization_id,
                "organization_name": organization_name,
                "upload_status": status.value,
                "error_message": error_message,
            })
        except Exception as e:
            logger.error(
                "document_upload_record_failed",
                shipment_number=shipment_number,
                file_name=file_name,
                error=str(e)
            )


# Singleton instance
_forwarder: Optional[CargoesFlowForwarder] = None


def get_cargoes_flow_forwarder() -> CargoesFlowForwarder:
    """Get or create CargoesFlowForwarder instance."""
    global _forwarder
    if _forwarder is None:
        _forwarder = CargoesFlowForwarder()
    return _forwarder
