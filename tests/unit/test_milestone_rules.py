"""
Unit tests for delay detection and shipment status derivation.

Run: pytest tests/unit/test_milestone_rules.py -v
"""

import pytest

from models.milestone import (
    MilestoneResponse,
    MilestoneStatus,
    calculate_shipment_status,
    detect_delays,
    is_delayed,
    status_for_event,
)
from models.shipment import ShipmentStatus


def _milestone(event_type="PICKUP", planned=None, actual=None, status="pending", milestone_id="m-1"):
    return MilestoneResponse(
        id=milestone_id,
        shipment_id="s-1",
        event_type=event_type,
        timestamp_planned=planned,
        timestamp_actual=actual,
        status=status,
    )


class TestDelayDetection:

    def test_actual_after_planned_is_delayed(self):
        m = _milestone(planned="2024-01-01T00:00Z", actual="2024-01-02T00:00Z", status="completed")

        assert is_delayed(m) is True
        assert detect_delays([m])[0].status == MilestoneStatus.DELAYED

    def test_actual_on_or_before_planned_is_not_delayed(self):
        on_time = _milestone(planned="2024-01-02T00:00Z", actual="2024-01-02T00:00Z", status="completed")
        early = _milestone(planned="2024-01-02T00:00Z", actual="2024-01-01T00:00Z", status="completed")

        result = detect_delays([on_time, early])

        assert [m.status for m in result] == [MilestoneStatus.COMPLETED, MilestoneStatus.COMPLETED]

    def test_missing_or_bad_timestamps_are_not_delayed(self):
        assert is_delayed(_milestone(planned=None, actual="2024-01-02")) is False
        assert is_delayed(_milestone(planned="2024-01-01", actual=None)) is False
        assert is_delayed(_milestone(planned="soon", actual="2024-01-02")) is False

    def test_input_is_not_modified(self):
        m = _milestone(planned="2024-01-01", actual="2024-01-05", status="completed")

        detect_delays([m])

        assert m.status == MilestoneStatus.COMPLETED


class TestStatusRules:

    @pytest.mark.parametrize("event_type,expected", [
        ("CONTAINER ARRIVED", ShipmentStatus.ARRIVED),
        ("DELIVERY", ShipmentStatus.ARRIVED),
        ("discharge", ShipmentStatus.ARRIVED),
        ("VESSEL_DEPARTED", ShipmentStatus.IN_TRANSIT),
        ("LOADED ON VESSEL", ShipmentStatus.IN_TRANSIT),
        ("GATE_IN", ShipmentStatus.AT_TERMINAL),
        ("PICKUP", ShipmentStatus.IN_TRANSIT),
        ("", ShipmentStatus.IN_TRANSIT),
    ])
    def test_status_for_event(self, event_type, expected):
        assert status_for_event(event_type) == expected

    def test_rules_are_ordered(self):
        # Matches both ARRIVED and GATE; the first rule wins
        assert status_for_event("ARRIVED AT GATE") == ShipmentStatus.ARRIVED


class TestCalculateShipmentStatus:

    def test_latest_completed_milestone_decides(self):
        milestones = [
            _milestone("GATE_IN", actual="2024-01-01", status="completed", milestone_id="m-1"),
            _milestone("VESSEL_DEPARTED", actual="2024-01-03", status="completed", milestone_id="m-2"),
        ]

        assert calculate_shipment_status(milestones) == ShipmentStatus.IN_TRANSIT

    def test_order_of_input_does_not_matter(self):
        milestones = [
            _milestone("VESSEL_DEPARTED", actual="2024-01-03", status="completed", milestone_id="m-2"),
            _milestone("GATE_IN", actual="2024-01-01", status="completed", milestone_id="m-1"),
        ]

        assert calculate_shipment_status(milestones) == ShipmentStatus.IN_TRANSIT

    def test_no_completed_milestones_is_planned(self):
        milestones = [_milestone("PICKUP", planned="2024-01-01"), _milestone("DELIVERY")]

        assert calculate_shipment_status(milestones) == ShipmentStatus.PLANNED
        assert calculate_shipment_status([]) == ShipmentStatus.PLANNED

    def test_delayed_milestone_does_not_count_as_completed(self):
        milestones = [
            _milestone("GATE_IN", actual="2024-01-01", status="completed", milestone_id="m-1"),
            _milestone(
                "DELIVERY", planned="2024-01-02", actual="2024-01-05",
                status="completed", milestone_id="m-2"
            ),
        ]

        assert calculate_shipment_status(milestones) == ShipmentStatus.AT_TERMINAL
