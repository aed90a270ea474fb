"""
Test data factories.

Uses factory pattern to generate consistent test data: TMS webhook
payloads and database rows.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4


LOG_EPOCH = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class TmsPayloadFactory:
    """
    Factory for TMS webhook bodies (camelCase, as sent by the TMS).

    Usage:
        # Drayage with MBL and container
        payload = TmsPayloadFactory.create()

        # Drayage without MBL
        payload = TmsPayloadFactory.create(mbl=None)

        # Other shipment types
        payload = TmsPayloadFactory.create(shipment_type="Truckload")
    """

    _counter = 0

    @classmethod
    def _next_counter(cls) -> int:
        cls._counter += 1
        return cls._counter

    @classmethod
    def create(
        cls,
        shipment_id: Optional[object] = None,
        shipment_type: str = "Drayage",
        status: str = "Booked",
        mbl: Optional[str] = "MBLX1",
        container: Optional[str] = "MSCU1234567",
        shipper_reference: Optional[str] = None,
        customer_name: str = "Acme Imports",
        sales_reps: Optional[str] = "Ann Smith, Bob Jones",
        office: Optional[str] = "Oakland",
        pickup_ready: Optional[str] = "2024-03-01T08:00:00Z",
        pickup_departed: Optional[str] = None,
        drop_ready: Optional[str] = "2024-03-03T17:00:00Z",
        drop_arrived: Optional[str] = None,
        carrier: Optional[str] = "Bay Drayage",
        include_stops: bool = True
    ) -> dict:
        """
        Create a single webhook payload.

        Args:
            shipment_id: TMS shipmentId (auto-numbered if not provided)
            mbl: Sent as a "MAWB Number" reference when not None
            container: Sent as a "Container Number" reference when not None
            include_stops: Add First Pickup and Last Drop stops

        Returns:
            dict ready to POST as JSON
        """
        if shipment_id is None:
            shipment_id = 10000 + cls._next_counter()

        references = []
        if container:
            references.append({"referenceType": "Container Number", "value": container})
        if mbl:
            references.append({"referenceType": "MAWB Number", "value": mbl})
        if shipper_reference:
            references.append({"referenceType": "Shipper Reference Number", "value": shipper_reference})

        stops = []
        if include_stops:
            stops = [
                {
                    "stopType": "First Pickup",
                    "companyName": "Port of Oakland",
                    "city": "Oakland",
                    "state": "CA",
                    "estimatedReadyDateTime": pickup_ready,
                    "actualDepartureDateTime": pickup_departed,
                },
                {
                    "stopType": "Last Drop",
                    "companyName": "Acme Warehouse",
                    "city": "Fresno",
                    "state": "CA",
                    "estimatedReadyDateTime": drop_ready,
                    "actualArrivalDateTime": drop_arrived,
                },
            ]

        return {
            "shipmentId": shipment_id,
            "shipmentType": shipment_type,
            "status": status,
            "customer": {
                "name": customer_name,
                "office": office,
                "salesRepNames": sales_reps,
            },
            "shipmentReferenceNumbers": references,
            "stops": stops,
            "commodities": [{"description": "Porcelain tile", "weightTotal": 42000}],
            "carrierList": [{"name": carrier}] if carrier else [],
        }


class ShipmentFactory:
    """Factory for shipments table rows."""

    _counter = 0

    @classmethod
    def create(cls, **overrides) -> dict:
        cls._counter += 1
        row = {
            "id": str(uuid4()),
            "reference_number": f"REF-{cls._counter:04d}",
            "booking_number": None,
            "master_bill_of_lading": None,
            "shipper": "Acme Imports",
            "consignee": "Acme Warehouse",
            "origin_port": "Oakland, CA",
            "destination_port": "Fresno, CA",
            "etd": None,
            "eta": None,
            "status": "planned",
            "carrier": None,
            "source": "user",
            "sales_rep_names": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        row.update(overrides)
        return row


class MilestoneFactory:
    """Factory for milestones table rows."""

    @classmethod
    def create(cls, shipment_id: str, event_type: str = "PICKUP", **overrides) -> dict:
        row = {
            "id": str(uuid4()),
            "shipment_id": shipment_id,
            "event_type": event_type,
            "location": None,
            "timestamp_planned": None,
            "timestamp_actual": None,
            "status": "pending",
            "notes": None,
            "created_at": _now(),
            "updated_at": _now(),
        }
        row.update(overrides)
        return row


class MirrorShipmentFactory:
    """
    Factory for cargoes_flow_shipments rows.

    Usage:
        row = MirrorShipmentFactory.create(mbl_number="MBLX1", shipment_reference="CF-1")
        row = MirrorShipmentFactory.create(last_free_day="2024-03-10")
    """

    @classmethod
    def create(cls, last_free_day: Optional[str] = None, containers: Optional[list] = None, **overrides) -> dict:
        if containers is None:
            containers = [{"containerNumber": "MSCU1234567"}]
            if last_free_day is not None:
                containers[0]["lastFreeDay"] = last_free_day

        row = {
            "id": str(uuid4()),
            "shipment_reference": "CF-0001",
            "tai_shipment_id": None,
            "mbl_number": "MBLX1",
            "container_number": "MSCU1234567",
            "booking_number": None,
            "shipper": None,
            "consignee": None,
            "origin_port": None,
            "destination_port": None,
            "etd": None,
            "eta": None,
            "status": "In Transit",
            "carrier": None,
            "raw_data": {"containers": containers},
            "last_fetched_at": None,
        }
        row.update(overrides)
        return row


class WebhookLogFactory:
    """
    Factory for webhook_logs rows.

    Usage:
        row = WebhookLogFactory.create(TmsPayloadFactory.create(shipment_id=555))
    """

    _counter = 0

    @classmethod
    def create(cls, raw_payload, operation: str = "CREATE", **overrides) -> dict:
        cls._counter += 1
        data = raw_payload if isinstance(raw_payload, dict) else {}
        row = {
            "id": str(uuid4()),
            "event_type": data.get("shipmentType") or "UNKNOWN",
            "operation": operation,
            "shipment_id": str(data.get("shipmentId") or "UNKNOWN"),
            "container_number": None,
            "status": (data.get("status") or "unknown").lower(),
            "raw_payload": raw_payload,
            "processed_at": _now(),
            "error_message": None,
            "received_at": (LOG_EPOCH + timedelta(seconds=cls._counter)).isoformat(),
        }
        row.update(overrides)
        return row
