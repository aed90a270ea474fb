"""
Carrier list synchronization from Cargoes Flow.

Upserts each carrier (by SCAC, else by name) and writes one sync log row
per run, successful or not.
"""

import json
import time
from typing import Optional
import structlog

from integrations.cargoes_flow import CargoesFlowClient, get_cargoes_flow_client
from models.cargoes_flow import CarrierSyncResult
from services.cargoes_flow_service import CargoesFlowService, get_cargoes_flow_service

logger = structlog.get_logger(__name__)


def _carrier_fields(carrier: dict) -> dict:
    return {
        "carrier_name": carrier.get("carrierName"),
        "carrier_scac": carrier.get("carrierScac"),
        "shipment_type": carrier.get("shipmentType"),
        "supports_track_by_mbl": bool(carrier.get("supportsTrackByMbl")),
        "supports_track_by_booking_number": bool(carrier.get("supportsTrackByBookingNumber")),
        "requires_mbl": bool(carrier.get("requiresMbl")),
    }


class CarrierSyncService:
    """Pulls carrierList and mirrors it into cargoes_flow_carriers."""

    def __init__(
        self,
        client: Optional[CargoesFlowClient] = None,
        service: Optional[CargoesFlowService] = None
    ):
        self.client = client or get_cargoes_flow_client()
        self.service = service or get_cargoes_flow_service()

    def sync(self) -> CarrierSyncResult:
        """
        Run one carrier sync.

        Returns:
            CarrierSyncResult; on failure success=False with the error and
            the counts reached before it
        """
        started = time.monotonic()
        processed = created = updated = 0
        api_request = self.client.carrier_list_request()
        api_response: Optional[str] = None

        logger.info("carrier_sync_started")

        try:
            carriers = self.client.get_carrier_list()
            api_response = json.dumps(carriers, indent=2)

            for carrier in carriers:
                processed += 1
                fields = _carrier_fields(carrier)
                if not fields["carrier_name"]:
                    logger.warning("carrier_sync_skipped_unnamed", carrier=carrier)
                    continue

                existing = self.service.find_carrier(fields["carrier_scac"], fields["carrier_name"])
                if existing:
                    self.service.update_carrier(existing["id"], fields)
                    updated += 1
                else:
                    self.service.insert_carrier(fields)
                    created += 1

        except Exception as e:
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.error(
                "carrier_sync_failed",
                error=str(e),
                processed=processed,
                duration_ms=duration_ms
            )
            self.service.create_sync_log({
                "status": "error",
                "carriers_processed": processed,
                "carriers_created": created,
                "carriers_updated": updated,
                "error_message": str(e),
                "sync_duration_ms": duration_ms,
                "api_request": api_request,
                "api_response": api_response,
            })
            return CarrierSyncResult(
                success=False,
                carriers_processed=processed,
                carriers_created=created,
                carriers_updated=updated,
                error=str(e)
            )

        duration_ms = int((time.monotonic() - started) * 1000)
        self.service.create_sync_log({
            "status": "success",
            "carriers_processed": processed,
            "carriers_created": created,
            "carriers_updated": updated,
            "sync_duration_ms": duration_ms,
            "api_request": api_request,
            "api_response": api_response,
        })

        logger.info(
            "carrier_sync_complete",
            processed=processed,
            created=created,
            updated=updated,
            duration_ms=duration_ms
        )
        return CarrierSyncResult(
            success=True,
            carriers_processed=processed,
            carriers_created=created,
            carriers_updated=updated
        )


# Singleton instance
_carrier_sync_service: Optional[CarrierSyncService] = None


def get_carrier_sync_service() -> CarrierSyncService:
    """Get or create CarrierSyncService instance."""
    global _carrier_sync_service
    if _carrier_sync_service is None:
        _carrier_sync_service = CarrierSyncService()
    return _carrier_sync_service
