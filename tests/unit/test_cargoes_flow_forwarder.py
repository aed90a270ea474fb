"""
Unit tests for CargoesFlowForwarder gating and audit rows.

Run: pytest tests/unit/test_cargoes_flow_forwarder.py -v
"""

import pytest

from models.cargoes_flow import (
    CargoesFlowResult,
    DocumentUploadFileResult,
    DocumentUploadRequest,
    DocumentUploadResult,
    PostStatus,
)
from models.shipment import ShipmentResponse
from models.webhook import TmsWebhookPayload, WebhookOperation
from parsers.tms_parser import normalize_payload
from services.cargoes_flow_forwarder import (
    CargoesFlowForwarder,
    ForwardOutcome,
    build_update_fields,
)
from exceptions import CargoesFlowPostNotFoundError
from tests.factories import MirrorShipmentFactory, TmsPayloadFactory, WebhookLogFactory


def _normalized(**kwargs):
    return normalize_payload(TmsWebhookPayload.model_validate(TmsPayloadFactory.create(**kwargs)))


@pytest.fixture
def forwarder(mock_db, fake_cargoes_flow):
    return CargoesFlowForwarder()


# ===================
# GATING
# ===================

class TestGating:

    def test_non_drayage_is_skipped(self, forwarder, mock_supabase, fake_cargoes_flow):
        outcome = forwarder.forward(_normalized(shipment_type="Truckload"), WebhookOperation.CREATE, "wh-1")

        assert outcome == ForwardOutcome.SKIPPED_NOT_DRAYAGE
        assert mock_supabase.rows("cargoes_flow_posts") == []
        assert mock_supabase.rows("missing_mbl_shipments") == []
        assert fake_cargoes_flow.create_calls == []

    def test_drayage_without_mbl_is_tracked_once(self, forwarder, mock_supabase, fake_cargoes_flow):
        normalized = _normalized(shipment_id=700, mbl=None)

        first = forwarder.forward(normalized, WebhookOperation.CREATE, "wh-1")
        second = forwarder.forward(normalized, WebhookOperation.UPDATE, "wh-2")

        assert first == ForwardOutcome.MISSING_MBL_TRACKED
        assert second == ForwardOutcome.MISSING_MBL_ALREADY_TRACKED
        rows = mock_supabase.rows("missing_mbl_shipments")
        assert len(rows) == 1
        assert rows[0]["shipment_reference"] == "700"
        assert rows[0]["webhook_id"] == "wh-1"
        assert rows[0]["container_number"] == "MSCU1234567"
        assert fake_cargoes_flow.create_calls == []

    def test_drayage_type_match_is_case_insensitive(self, forwarder):
        outcome = forwarder.forward(_normalized(shipment_type="DRAYAGE", mbl=None), WebhookOperation.CREATE, None)

        assert outcome == ForwardOutcome.MISSING_MBL_TRACKED


# ===================
# CREATE
# ===================

class TestCreate:

    def test_posts_mbl_and_records_success(self, forwarder, mock_supabase, fake_cargoes_flow):
        outcome = forwarder.forward(_normalized(shipment_id=555, mbl="MBLX1"), WebhookOperation.CREATE, "wh-1")

        assert outcome == ForwardOutcome.POSTED
        assert fake_cargoes_flow.create_calls == ["MBLX1"]
        posts = mock_supabase.rows("cargoes_flow_posts")
        assert len(posts) == 1
        assert posts[0]["status"] == "success"
        assert posts[0]["shipment_reference"] == "555"
        assert posts[0]["webhook_id"] == "wh-1"
        assert posts[0]["sales_rep_names"] == ["Ann Smith", "Bob Jones"]

    def test_failed_post_is_recorded(self, forwarder, mock_supabase, fake_cargoes_flow):
        fake_cargoes_flow.create_result = CargoesFlowResult(success=False, error="HTTP 500")

        outcome = forwarder.forward(_normalized(mbl="MBLX1"), WebhookOperation.CREATE, "wh-1")

        assert outcome == ForwardOutcome.POST_FAILED
        posts = mock_supabase.rows("cargoes_flow_posts")
        assert posts[0]["status"] == "failed"
        assert posts[0]["error_message"] == "HTTP 500"

    def test_existing_post_prevents_double_posting(self, forwarder, mock_supabase, fake_cargoes_flow):
        normalized = _normalized(shipment_id=555, mbl="MBLX1")

        forwarder.forward(normalized, WebhookOperation.CREATE, "wh-1")
        outcome = forwarder.forward(normalized, WebhookOperation.CREATE, "wh-2")

        assert outcome == ForwardOutcome.ALREADY_POSTED
        assert fake_cargoes_flow.create_calls == ["MBLX1"]
        assert len(mock_supabase.rows("cargoes_flow_posts")) == 1

    def test_storage_errors_do_not_propagate(self, forwarder):
        def broken(*args, **kwargs):
            raise RuntimeError("db down")
        forwarder.service.get_post_by_reference = broken

        outcome = forwarder.forward(_normalized(mbl="MBLX1"), WebhookOperation.CREATE, "wh-1")

        assert outcome == ForwardOutcome.ERROR


# ===================
# UPDATE
# ===================

class TestUpdate:

    def test_no_mirror_row_is_skipped_silently(self, forwarder, mock_supabase, fake_cargoes_flow):
        outcome = forwarder.forward(_normalized(mbl="MBLX1"), WebhookOperation.UPDATE, "wh-1")

        assert outcome == ForwardOutcome.UPDATE_SKIPPED_NO_MAPPING
        assert mock_supabase.rows("cargoes_flow_update_logs") == []
        assert fake_cargoes_flow.update_calls == []

    def test_update_sent_to_mirrored_shipment_number(self, forwarder, mock_supabase, fake_cargoes_flow):
        mock_supabase.set_table_data("cargoes_flow_shipments", [
            MirrorShipmentFactory.create(mbl_number="MBLX1", shipment_reference="CF-42")
        ])

        outcome = forwarder.forward(_normalized(shipment_id=555, mbl="MBLX1"), WebhookOperation.UPDATE, "wh-9")

        assert outcome == ForwardOutcome.UPDATED
        number, fields = fake_cargoes_flow.update_calls[0]
        assert number == "CF-42"
        assert fields == {
            "shipper": "Acme Imports",
            "consignee": "Acme Warehouse",
            "promisedEtd": "2024-03-01",
            "promisedEta": "2024-03-03",
        }
        logs = mock_supabase.rows("cargoes_flow_update_logs")
        assert len(logs) == 1
        assert logs[0]["status"] == "success"
        assert logs[0]["shipment_reference"] == "555"
        assert logs[0]["webhook_id"] == "wh-9"

    def test_failed_update_is_logged(self, forwarder, mock_supabase, fake_cargoes_flow):
        mock_supabase.set_table_data("cargoes_flow_shipments", [
            MirrorShipmentFactory.create(mbl_number="MBLX1", shipment_reference="CF-42")
        ])
        fake_cargoes_flow.update_result = CargoesFlowResult(success=False, error="Shipment not found")

        outcome = forwarder.forward(_normalized(mbl="MBLX1"), WebhookOperation.UPDATE, "wh-9")

        assert outcome == ForwardOutcome.UPDATE_FAILED
        logs = mock_supabase.rows("cargoes_flow_update_logs")
        assert logs[0]["status"] == "failed"
        assert logs[0]["error_message"] == "Shipment not found"

    def test_update_never_creates_post(self, forwarder, mock_supabase):
        forwarder.forward(_normalized(mbl="MBLX1"), WebhookOperation.UPDATE, "wh-1")

        assert mock_supabase.rows("cargoes_flow_posts") == []

    def test_build_update_fields_sends_only_present_values(self):
        normalized = _normalized(include_stops=False)

        assert build_update_fields(normalized) == {"shipper": "Acme Imports"}


# ===================
# RETRY / USER SHIPMENTS / DOCUMENTS
# ===================

class TestRetryPost:

    def test_retry_updates_post_in_place(self, forwarder, mock_supabase, fake_cargoes_flow):
        fake_cargoes_flow.create_result = CargoesFlowResult(success=False, error="timeout")
        forwarder.forward(_normalized(mbl="MBLX1"), WebhookOperation.CREATE, "wh-1")
        post_id = mock_supabase.rows("cargoes_flow_posts")[0]["id"]

        fake_cargoes_flow.create_result = CargoesFlowResult(success=True, response={"ok": True})
        result = forwarder.retry_post(post_id)

        assert result.success is True
        assert result.message == "Retry successful"
        assert fake_cargoes_flow.create_calls == ["MBLX1", "MBLX1"]
        posts = mock_supabase.rows("cargoes_flow_posts")
        assert len(posts) == 1
        assert posts[0]["status"] == "success"
        assert posts[0]["error_message"] is None

    def test_retry_failure_reports_error(self, forwarder, mock_supabase, fake_cargoes_flow):
        fake_cargoes_flow.create_result = CargoesFlowResult(success=False, error="bad MBL")
        forwarder.forward(_normalized(mbl="MBLX1"), WebhookOperation.CREATE, "wh-1")
        post_id = mock_supabase.rows("cargoes_flow_posts")[0]["id"]

        result = forwarder.retry_post(post_id)

        assert result.success is False
        assert result.message == "bad MBL"
        assert result.post.status == PostStatus.FAILED

    def test_retry_unknown_post(self, forwarder):
        with pytest.raises(CargoesFlowPostNotFoundError):
            forwarder.retry_post("missing")


class TestTrackUserShipment:

    def test_posts_and_seeds_mirror(self, forwarder, mock_supabase, fake_cargoes_flow):
        shipment = ShipmentResponse(
            id="s-1",
            reference_number="USR-1",
            master_bill_of_lading="MBLU1",
            status="planned",
            source="user",
        )

        post = forwarder.track_user_shipment(shipment)

        assert post.status == PostStatus.SUCCESS
        assert post.webhook_id is None
        mirror = mock_supabase.rows("cargoes_flow_shipments")
        assert len(mirror) == 1
        assert mirror[0]["status"] == "ACTIVE"
        assert mirror[0]["mbl_number"] == "MBLU1"
        assert mirror[0]["raw_data"]["userCreated"] is True

    def test_without_mbl_does_nothing(self, forwarder, fake_cargoes_flow):
        shipment = ShipmentResponse(id="s-1", reference_number="USR-1", status="planned")

        assert forwarder.track_user_shipment(shipment) is None
        assert fake_cargoes_flow.create_calls == []


class TestUploadDocuments:

    def _request(self):
        return DocumentUploadRequest.model_validate({
            "shipmentNumber": "CF-42",
            "files": [{
                "fileName": "bol.pdf",
                "fileExtension": "pdf",
                "fileData": "data:application/pdf;base64,JVBERi0=",
                "fileSize": 5,
            }],
        })

    def test_one_row_per_result(self, forwarder, mock_supabase, fake_cargoes_flow):
        fake_cargoes_flow.upload_result = DocumentUploadResult(success=True, results=[
            DocumentUploadFileResult(file_name="bol.pdf", success=True, organization_id="7", organization_name="Org"),
        ])

        result = forwarder.upload_documents(self._request())

        assert result.success is True
        rows = mock_supabase.rows("cargoes_flow_document_uploads")
        assert len(rows) == 1
        assert rows[0]["upload_status"] == "success"
        assert rows[0]["file_size"] == 5
        assert rows[0]["file_extension"] == "pdf"
        assert rows[0]["organization_name"] == "Org"

    def test_failed_request_records_each_file(self, forwarder, mock_supabase, fake_cargoes_flow):
        fake_cargoes_flow.upload_result = DocumentUploadResult(success=False, error="HTTP 401")

        result = forwarder.upload_documents(self._request())

        assert result.success is False
        rows = mock_supabase.rows("cargoes_flow_document_uploads")
        assert len(rows) == 1
        assert rows[0]["upload_status"] == "failed"
        assert rows[0]["error_message"] == "HTTP 401"


class TestBackfill:

    def test_mbl_from_later_update_gets_posted(self, forwarder, mock_supabase, fake_cargoes_flow):
        mock_supabase.set_table_data("webhook_logs", [
            WebhookLogFactory.create(TmsPayloadFactory.create(shipment_id=555, mbl=None)),
            WebhookLogFactory.create(TmsPayloadFactory.create(shipment_id=555, mbl="MBLX9"), operation="UPDATE"),
        ])
        mock_supabase.set_table_data("missing_mbl_shipments", [
            {"id": "m1", "shipment_reference": "555", "received_at": "2024-03-01T00:00:00+00:00"}
        ])

        result = forwarder.backfill_from_webhook_logs()

        assert result.processed == 2
        assert result.posted == 1
        assert result.skipped == 1
        assert result.errors == 0
        assert fake_cargoes_flow.create_calls == ["MBLX9"]
        post = mock_supabase.rows("cargoes_flow_posts")[0]
        assert post["shipment_reference"] == "555"
        assert post["webhook_id"] == mock_supabase.rows("webhook_logs")[1]["id"]

    def test_running_twice_posts_once(self, forwarder, mock_supabase, fake_cargoes_flow):
        mock_supabase.set_table_data("webhook_logs", [
            WebhookLogFactory.create(TmsPayloadFactory.create(shipment_id=555, mbl="MBLX1")),
            WebhookLogFactory.create(TmsPayloadFactory.create(shipment_id=700, mbl=None)),
        ])

        first = forwarder.backfill_from_webhook_logs()
        second = forwarder.backfill_from_webhook_logs()

        assert (first.posted, first.missing_mbl) == (1, 1)
        assert (second.posted, second.missing_mbl, second.skipped) == (0, 0, 2)
        assert fake_cargoes_flow.create_calls == ["MBLX1"]
        assert len(mock_supabase.rows("missing_mbl_shipments")) == 1

    def test_skips_non_drayage_and_logs_without_shipment_id(self, forwarder, mock_supabase, fake_cargoes_flow):
        no_id = TmsPayloadFactory.create(mbl="MBLX1")
        del no_id["shipmentId"]
        mock_supabase.set_table_data("webhook_logs", [
            WebhookLogFactory.create(TmsPayloadFactory.create(shipment_type="Truckload", mbl="MBLX1")),
            WebhookLogFactory.create(no_id),
        ])

        result = forwarder.backfill_from_webhook_logs()

        assert result.skipped == 2
        assert fake_cargoes_flow.create_calls == []

    def test_bad_logs_and_failed_posts_are_counted(self, forwarder, mock_supabase, fake_cargoes_flow):
        fake_cargoes_flow.create_result = CargoesFlowResult(success=False, error="HTTP 500")
        mock_supabase.set_table_data("webhook_logs", [
            WebhookLogFactory.create(["not", "a", "shipment"]),
            WebhookLogFactory.create(TmsPayloadFactory.create(shipment_id=555, mbl="MBLX1")),
        ])

        result = forwarder.backfill_from_webhook_logs()

        assert result.processed == 2
        assert result.errors == 2
        assert mock_supabase.rows("cargoes_flow_posts")[0]["status"] == "failed"
