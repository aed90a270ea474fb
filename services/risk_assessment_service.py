"""
Risk assessment for mirrored Cargoes Flow shipments.

Additive scoring; every rule is evaluated independently:

    ETA passed, not arrived                  +3
    Last free day passed / today / <= 2 days +4 / +3 / +2
    Status mentions delay, hold or pending   +2
    No tracking update for more than 7 days  +1
    Transit (ETA - ETD) over 45 days         +1

Levels: >= 7 critical, >= 4 high, >= 2 medium, else low.
A rule whose date can't be parsed is skipped.
"""

from datetime import datetime
from typing import Optional
import structlog

from config import settings
from models.cargoes_flow import (
    CargoesFlowShipmentResponse,
    RiskAssessment,
    RiskBatchResult,
    RiskLevel,
    get_last_free_day,
    get_risk_fields,
    with_risk_fields,
)
from services.cargoes_flow_service import CargoesFlowService, get_cargoes_flow_service
from utils.date_utils import parse_date, parse_datetime, utc_now, whole_days_between

logger = structlog.get_logger(__name__)

ARRIVED_STATUSES = {"arrived", "unloaded", "gate-out", "delivered", "completed"}
CLOSED_STATUSES = {"delivered", "completed", "cancelled"}
TROUBLE_KEYWORDS = ("delay", "hold", "pending")

STALE_AFTER_DAYS = 7
LONG_TRANSIT_DAYS = 45
LFD_WARNING_DAYS = 2

# (minimum score, level), highest first
LEVEL_THRESHOLDS = [
    (7, RiskLevel.CRITICAL),
    (4, RiskLevel.HIGH),
    (2, RiskLevel.MEDIUM),
]


def risk_level_for_score(score: int) -> RiskLevel:
    """Map a summed score to a level."""
    for minimum, level in LEVEL_THRESHOLDS:
        if score >= minimum:
            return level
    return RiskLevel.LOW


def assess_shipment_risk(
    shipment: CargoesFlowShipmentResponse,
    now: Optional[datetime] = None
) -> RiskAssessment:
    """
    Score one mirrored shipment.

    Args:
        shipment: Mirror row (LFD is read from raw_data's first container)
        now: Reference time, defaults to current UTC time

    Returns:
        RiskAssessment with level, score and human-readable reasons
    """
    now = now or utc_now()
    score = 0
    reasons: list[str] = []

    status_text = shipment.status or ""
    status = status_text.lower()

    # ETA passed but not arrived
    eta = parse_datetime(shipment.eta)
    if eta and status not in ARRIVED_STATUSES:
        days_past_eta = whole_days_between(eta, now)
        if days_past_eta > 0:
            score += 3
            reasons.append(f"ETA passed {days_past_eta} day(s) ago - container delayed")

    # Last free day, compared as calendar dates
    lfd = parse_date(get_last_free_day(shipment.raw_data))
    if lfd:
        days_until_lfd = (lfd - now.date()).days
        if days_until_lfd < 0:
            score += 4
            reasons.append(f"Demurrage accruing - {abs(days_until_lfd)} day(s) past LFD")
        elif days_until_lfd == 0:
            score += 3
            reasons.append("LFD is TODAY - immediate action required")
        elif days_until_lfd <= LFD_WARNING_DAYS:
            score += 2
            reasons.append(f"LFD in {days_until_lfd} day(s)")

    if any(keyword in status for keyword in TROUBLE_KEYWORDS):
        score += 2
        reasons.append(f"Container status: {status_text}")

    last_fetched = parse_datetime(shipment.last_fetched_at)
    if last_fetched and status not in CLOSED_STATUSES:
        days_since_update = whole_days_between(last_fetched, now)
        if days_since_update > STALE_AFTER_DAYS:
            score += 1
            reasons.append(f"No tracking updates for {days_since_update} days")

    etd = parse_datetime(shipment.etd)
    if etd and eta:
        transit_days = whole_days_between(etd, eta)
        if transit_days > LONG_TRANSIT_DAYS:
            score += 1
            reasons.append(f"Long transit time ({transit_days} days)")

    return RiskAssessment(
        risk_level=risk_level_for_score(score),
        risk_score=score,
        risk_reasons=reasons
    )


class RiskAssessmentService:
    """Batch risk scoring over the cargoes_flow_shipments mirror."""

    def __init__(self, service: Optional[CargoesFlowService] = None):
        self.service = service or get_cargoes_flow_service()
        self.page_size = settings.risk_assessment_page_size

    def assess_all(self) -> RiskBatchResult:
        """
        Score every mirrored shipment and merge the result into raw_data.

        A failure on one shipment is counted and the batch continues.
        Failing to read a page aborts the batch.
        """
        logger.info("risk_assessment_started", page_size=self.page_size)

        updated = 0
        errors = 0
        page = 1

        while True:
            shipments, total = self.service.list_shipments(page=page, page_size=self.page_size)
            if not shipments:
                break

            for shipment in shipments:
                try:
                    previous = get_risk_fields(shipment.raw_data)
                    assessment = assess_shipment_risk(shipment)
                    raw_data = with_risk_fields(shipment.raw_data, assessment, utc_now())
                    self.service.update_shipment_raw_data(shipment.id, raw_data)
                    updated += 1

                    if previous is None or previous.risk_level != assessment.risk_level:
                        logger.info(
                            "risk_level_changed",
                            shipment_id=shipment.id,
                            mbl_number=shipment.mbl_number,
                            previous=previous.risk_level.value if previous else None,
                            current=assessment.risk_level.value,
                            score=assessment.risk_score
                        )
                except Exception as e:
                    errors += 1
                    logger.error(
                        "risk_assessment_shipment_failed",
                        shipment_id=shipment.id,
                        error=str(e)
                    )

            total_pages = (total + self.page_size - 1) // self.page_size
            if page >= total_pages:
                break
            page += 1

        logger.info("risk_assessment_complete", updated=updated, errors=errors)
        return RiskBatchResult(updated=updated, errors=errors)


# Singleton instance
_risk_assessment_service: Optional[RiskAssessmentService] = None


def get_risk_assessment_service() -> RiskAssessmentService:
    """Get or create RiskAssessmentService instance."""
    global _risk_assessment_service
    if _risk_assessment_service is None:
        _risk_assessment_service = RiskAssessmentService()
    return _risk_assessment_service
