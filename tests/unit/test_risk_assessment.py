"""
Unit tests for container risk scoring.

Run: pytest tests/unit/test_risk_assessment.py -v
"""

import pytest
from datetime import datetime, timedelta, timezone

from models.cargoes_flow import CargoesFlowShipmentResponse, RiskLevel, get_risk_fields
from services.risk_assessment_service import (
    RiskAssessmentService,
    assess_shipment_risk,
    risk_level_for_score,
)
from tests.factories import MirrorShipmentFactory

NOW = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


def _shipment(**overrides) -> CargoesFlowShipmentResponse:
    return CargoesFlowShipmentResponse(**MirrorShipmentFactory.create(**overrides))


def _iso(dt: datetime) -> str:
    return dt.isoformat()


# ===================
# LAST FREE DAY
# ===================

class TestLastFreeDay:

    @pytest.mark.parametrize("lfd,score,reason", [
        ("2024-03-09", 4, "Demurrage accruing - 1 day(s) past LFD"),
        ("2024-03-10", 3, "LFD is TODAY - immediate action required"),
        ("2024-03-11", 2, "LFD in 1 day(s)"),
        ("2024-03-12", 2, "LFD in 2 day(s)"),
        ("2024-03-13", 0, None),
    ])
    def test_boundaries(self, lfd, score, reason):
        result = assess_shipment_risk(_shipment(last_free_day=lfd), now=NOW)

        assert result.risk_score == score
        assert result.risk_reasons == ([reason] if reason else [])

    def test_lfd_compared_as_calendar_date(self):
        # Late evening on the LFD is still "today"
        late = datetime(2024, 3, 10, 23, 59, tzinfo=timezone.utc)

        result = assess_shipment_risk(_shipment(last_free_day="2024-03-10T00:00:00Z"), now=late)

        assert result.risk_score == 3

    def test_container_free_time_is_fallback(self):
        shipment = _shipment(containers=[{"containerFreeTime": "2024-03-10"}])

        assert assess_shipment_risk(shipment, now=NOW).risk_score == 3

    def test_only_first_container_is_read(self):
        shipment = _shipment(containers=[{}, {"lastFreeDay": "2024-03-01"}])

        assert assess_shipment_risk(shipment, now=NOW).risk_score == 0

    def test_invalid_lfd_skips_rule(self):
        assert assess_shipment_risk(_shipment(last_free_day="next week"), now=NOW).risk_score == 0


# ===================
# OTHER RULES
# ===================

class TestOtherRules:

    def test_eta_passed(self):
        result = assess_shipment_risk(_shipment(eta=_iso(NOW - timedelta(days=2))), now=NOW)

        assert result.risk_score == 3
        assert result.risk_reasons == ["ETA passed 2 day(s) ago - container delayed"]

    def test_eta_less_than_a_day_ago_does_not_count(self):
        result = assess_shipment_risk(_shipment(eta=_iso(NOW - timedelta(hours=20))), now=NOW)

        assert result.risk_score == 0

    def test_eta_ignored_once_arrived(self):
        result = assess_shipment_risk(
            _shipment(eta=_iso(NOW - timedelta(days=5)), status="Arrived"),
            now=NOW
        )

        assert result.risk_score == 0

    def test_invalid_eta_skips_rule(self):
        assert assess_shipment_risk(_shipment(eta="TBD"), now=NOW).risk_score == 0

    @pytest.mark.parametrize("status", ["Delayed", "On Hold", "Pending Release"])
    def test_trouble_status(self, status):
        result = assess_shipment_risk(_shipment(status=status), now=NOW)

        assert result.risk_score == 2
        assert result.risk_reasons == [f"Container status: {status}"]

    def test_stale_tracking(self):
        result = assess_shipment_risk(_shipment(last_fetched_at=NOW - timedelta(days=9)), now=NOW)

        assert result.risk_score == 1
        assert result.risk_reasons == ["No tracking updates for 9 days"]

    def test_seven_days_is_not_stale(self):
        result = assess_shipment_risk(_shipment(last_fetched_at=NOW - timedelta(days=7)), now=NOW)

        assert result.risk_score == 0

    def test_stale_ignored_when_delivered(self):
        result = assess_shipment_risk(
            _shipment(last_fetched_at=NOW - timedelta(days=30), status="Delivered"),
            now=NOW
        )

        assert result.risk_score == 0

    def test_long_transit(self):
        result = assess_shipment_risk(
            _shipment(etd="2024-01-01", eta="2024-02-20", status="Arrived"),
            now=NOW
        )

        assert result.risk_score == 1
        assert result.risk_reasons == ["Long transit time (50 days)"]


# ===================
# LEVELS
# ===================

class TestRiskLevels:

    @pytest.mark.parametrize("score,level", [
        (0, RiskLevel.LOW),
        (1, RiskLevel.LOW),
        (2, RiskLevel.MEDIUM),
        (3, RiskLevel.MEDIUM),
        (4, RiskLevel.HIGH),
        (6, RiskLevel.HIGH),
        (7, RiskLevel.CRITICAL),
        (11, RiskLevel.CRITICAL),
    ])
    def test_thresholds(self, score, level):
        assert risk_level_for_score(score) == level

    def test_score_six_is_high(self):
        # ETA passed (+3) and LFD today (+3)
        shipment = _shipment(eta=_iso(NOW - timedelta(days=3)), last_free_day="2024-03-10")

        result = assess_shipment_risk(shipment, now=NOW)

        assert result.risk_score == 6
        assert result.risk_level == RiskLevel.HIGH

    def test_score_seven_is_critical(self):
        # ETA passed (+3) and LFD passed (+4)
        shipment = _shipment(eta=_iso(NOW - timedelta(days=3)), last_free_day="2024-03-08")

        result = assess_shipment_risk(shipment, now=NOW)

        assert result.risk_score == 7
        assert result.risk_level == RiskLevel.CRITICAL


# ===================
# BATCH
# ===================

class TestAssessAll:

    def test_writes_risk_fields_into_raw_data(self, mock_db, mock_supabase):
        rows = [
            MirrorShipmentFactory.create(last_free_day="2000-01-01"),
            MirrorShipmentFactory.create(),
            MirrorShipmentFactory.create(status="On Hold"),
        ]
        mock_supabase.set_table_data("cargoes_flow_shipments", rows)

        service = RiskAssessmentService()
        service.page_size = 2
        result = service.assess_all()

        assert result.updated == 3
        assert result.errors == 0

        stored = {row["id"]: row["raw_data"] for row in mock_supabase.rows("cargoes_flow_shipments")}
        past_lfd = stored[rows[0]["id"]]
        assert past_lfd["riskLevel"] == "high"
        assert past_lfd["riskScore"] == 4
        assert past_lfd["riskAssessedAt"]
        assert past_lfd["containers"] == rows[0]["raw_data"]["containers"]
        assert stored[rows[1]["id"]]["riskLevel"] == "low"
        assert stored[rows[2]["id"]]["riskLevel"] == "medium"

    def test_empty_mirror(self, mock_db):
        result = RiskAssessmentService().assess_all()

        assert result.updated == 0
        assert result.errors == 0

    def test_row_failure_is_counted_and_batch_continues(self, mock_db, mock_supabase):
        mock_supabase.set_table_data("cargoes_flow_shipments", [
            MirrorShipmentFactory.create(),
            MirrorShipmentFactory.create(),
        ])
        service = RiskAssessmentService()
        original = service.service.update_shipment_raw_data
        calls = []

        def flaky(shipment_id, raw_data):
            calls.append(shipment_id)
            if len(calls) == 1:
                raise RuntimeError("write failed")
            return original(shipment_id, raw_data)

        service.service.update_shipment_raw_data = flaky

        result = service.assess_all()

        assert result.updated == 1
        assert result.errors == 1


class TestStoredRiskFields:

    def test_reads_previous_assessment(self):
        stored = get_risk_fields({"riskLevel": "high", "riskScore": 4, "riskReasons": ["LFD in 1 day(s)"]})

        assert stored.risk_level == RiskLevel.HIGH
        assert stored.risk_score == 4

    @pytest.mark.parametrize("raw_data", [None, {}, {"riskLevel": "extreme"}])
    def test_missing_or_unknown_level(self, raw_data):
        assert get_risk_fields(raw_data) is None
