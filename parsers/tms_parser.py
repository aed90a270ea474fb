"""
TMS (TAI) webhook parser.

Turns a TMS shipment webhook into the canonical shipment fields:

    - Reference extraction: typed values from shipmentReferenceNumbers,
      first match wins, unknown types ignored.
    - Normalization: origin/destination from the First Pickup / Last Drop
      stops, planned/actual dates, sales reps, carrier.

Nothing here touches the database. Missing data never raises; it just
leaves the corresponding field empty.
"""

from dataclasses import dataclass, field
from typing import Any, Optional
import time
import structlog

from models.webhook import (
    TmsWebhookPayload,
    TmsReferenceNumber,
    TmsStop,
    ReferenceType,
    StopType,
)
from models.shipment import ShipmentSource

logger = structlog.get_logger(__name__)

DRAYAGE = "drayage"
DEFAULT_STATUS = "active"
UNKNOWN = "UNKNOWN"


# ===================
# REFERENCE EXTRACTION
# ===================

@dataclass
class ExtractedReferences:
    """Values pulled from shipmentReferenceNumbers."""
    container_number: Optional[str] = None
    mbl_number: Optional[str] = None
    shipment_id: Optional[str] = None
    shipper_reference: Optional[str] = None


def find_reference(
    references: list[TmsReferenceNumber],
    *reference_types: str
) -> Optional[str]:
    """
    Value of the first entry whose type is one of reference_types.

    Returns None when no entry matches.
    """
    wanted = set(reference_types)
    for ref in references:
        if ref.reference_type in wanted:
            return ref.value
    return None


def extract_references(references: list[TmsReferenceNumber]) -> ExtractedReferences:
    """Pull the known reference types out of a reference list."""
    return ExtractedReferences(
        container_number=find_reference(references, ReferenceType.CONTAINER_NUMBER.value),
        mbl_number=find_reference(
            references,
            ReferenceType.MAWB_NUMBER.value,
            ReferenceType.MBL_NUMBER.value
        ),
        shipment_id=find_reference(references, ReferenceType.SHIPMENT_ID.value),
        shipper_reference=find_reference(references, ReferenceType.SHIPPER_REFERENCE.value),
    )


# ===================
# NORMALIZATION
# ===================

def find_stop(stops: list[TmsStop], stop_type: StopType) -> Optional[TmsStop]:
    """First stop with the given type."""
    for stop in stops:
        if stop.stop_type == stop_type.value:
            return stop
    return None


def format_stop_location(stop: Optional[TmsStop]) -> str:
    """'Company, City, ST' from the non-empty parts; '' without a stop."""
    if stop is None:
        return ""
    parts = [stop.company_name, stop.city, stop.state]
    return ", ".join(p for p in parts if p)


def split_sales_reps(value: Optional[str]) -> Optional[list[str]]:
    """Split a comma-separated name list. No names gives None, not []."""
    if not value:
        return None
    names = [name.strip() for name in value.split(",")]
    names = [name for name in names if name]
    return names or None


@dataclass
class NormalizedShipment:
    """
    Canonical shipment derived from one webhook.

    The shipment columns are exposed via to_shipment_fields(). The other
    attributes carry what milestone derivation and forwarding need.
    """
    reference_number: str
    booking_number: str = ""
    master_bill_of_lading: str = ""
    shipper: Optional[str] = None
    consignee: Optional[str] = None
    origin_port: str = ""
    destination_port: str = ""
    etd: Optional[str] = None
    eta: Optional[str] = None
    atd: Optional[str] = None
    ata: Optional[str] = None
    status: str = DEFAULT_STATUS
    carrier: Optional[str] = None
    office_name: Optional[str] = None
    sales_rep_names: Optional[list[str]] = None
    commodity_description: Optional[str] = None

    # Not stored on the shipment row
    shipment_type: str = ""
    raw_status: Optional[str] = None
    tai_shipment_id: Optional[str] = None
    container_number: Optional[str] = None
    first_pickup: Optional[TmsStop] = None
    last_drop: Optional[TmsStop] = None
    references: ExtractedReferences = field(default_factory=ExtractedReferences)

    @property
    def is_drayage(self) -> bool:
        return self.shipment_type.lower() == DRAYAGE

    @property
    def has_mbl(self) -> bool:
        return bool(self.master_bill_of_lading and self.master_bill_of_lading.strip())

    def to_shipment_fields(self) -> dict[str, Any]:
        """Column values for the shipments table."""
        return {
            "reference_number": self.reference_number,
            "booking_number": self.booking_number,
            "master_bill_of_lading": self.master_bill_of_lading,
            "shipper": self.shipper,
            "consignee": self.consignee,
            "origin_port": self.origin_port,
            "destination_port": self.destination_port,
            "etd": self.etd,
            "eta": self.eta,
            "atd": self.atd,
            "ata": self.ata,
            "status": self.status,
            "carrier": self.carrier,
            "vessel_name": None,
            "voyage_number": None,
            "office_name": self.office_name,
            "sales_rep_names": self.sales_rep_names,
            "commodity_description": self.commodity_description,
            "source": ShipmentSource.WEBHOOK.value,
        }


def generate_reference_number() -> str:
    """Fallback business key when the webhook carries no shipment id."""
    return f"TAI-{int(time.time() * 1000)}"


def normalize_payload(payload: TmsWebhookPayload) -> NormalizedShipment:
    """
    Map a TMS webhook into a NormalizedShipment.

    Args:
        payload: Validated webhook payload

    Returns:
        NormalizedShipment with a non-empty reference_number
    """
    refs = extract_references(payload.shipment_reference_numbers)
    tai_shipment_id = refs.shipment_id or payload.shipment_id
    reference_number = tai_shipment_id or generate_reference_number()

    first_pickup = find_stop(payload.stops, StopType.FIRST_PICKUP)
    last_drop = find_stop(payload.stops, StopType.LAST_DROP)

    customer = payload.customer
    descriptions = [c.description for c in payload.commodities if c.description]
    carrier = payload.carrier_list[0].name if payload.carrier_list else None

    normalized = NormalizedShipment(
        reference_number=reference_number,
        booking_number=refs.shipper_reference or "",
        master_bill_of_lading=refs.mbl_number or "",
        shipper=customer.name if customer and customer.name else None,
        consignee=last_drop.company_name if last_drop and last_drop.company_name else None,
        origin_port=format_stop_location(first_pickup),
        destination_port=format_stop_location(last_drop),
        etd=first_pickup.estimated_ready_date_time if first_pickup else None,
        eta=last_drop.estimated_ready_date_time if last_drop else None,
        atd=first_pickup.actual_departure_date_time if first_pickup else None,
        ata=last_drop.actual_arrival_date_time if last_drop else None,
        status=payload.status.lower() if payload.status else DEFAULT_STATUS,
        carrier=carrier,
        office_name=customer.office if customer else None,
        sales_rep_names=split_sales_reps(customer.sales_rep_names if customer else None),
        shipment_type=payload.shipment_type or "",
        raw_status=payload.status,
        tai_shipment_id=tai_shipment_id,
        container_number=refs.container_number,
        commodity_description=", ".join(descriptions) or None,
        first_pickup=first_pickup,
        last_drop=last_drop,
        references=refs,
    )

    logger.debug(
        "tms_payload_normalized",
        reference_number=normalized.reference_number,
        shipment_type=normalized.shipment_type,
        has_mbl=normalized.has_mbl,
        container_number=normalized.container_number
    )

    return normalized


# ===================
# LOG SUMMARY
# ===================

@dataclass
class WebhookLogSummary:
    """Fields copied onto the webhook log row."""
    shipment_id: str
    container_number: Optional[str]
    shipment_type: str
    status: str


def summarize_for_log(raw: Any) -> WebhookLogSummary:
    """
    Best-effort summary straight from the raw JSON body.

    Works on malformed payloads too, so a row can always be written.
    """
    data = raw if isinstance(raw, dict) else {}

    shipment_id = data.get("shipmentId")
    status = data.get("status")
    shipment_type = data.get("shipmentType")

    container_number = None
    references = data.get("shipmentReferenceNumbers")
    if isinstance(references, list):
        for ref in references:
            if isinstance(ref, dict) and ref.get("referenceType") == ReferenceType.CONTAINER_NUMBER.value:
                container_number = ref.get("value")
                break

    return WebhookLogSummary(
        shipment_id=str(shipment_id) if shipment_id not in (None, "") else UNKNOWN,
        container_number=str(container_number) if container_number else None,
        shipment_type=str(shipment_type) if shipment_type else UNKNOWN,
        status=str(status).lower() if status else "unknown",
    )
