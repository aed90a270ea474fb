"""
Cargoes Flow public tracking API client.

Wraps the createShipments, updateShipments, uploadDocument and carrierList
endpoints. Shipment and document calls never raise: network errors,
non-2xx responses and `result: FAILED` bodies all come back as
CargoesFlowResult(success=False). Only get_carrier_list raises, since the
carrier sync records its own error row.
"""

import base64
import binascii
from typing import Any, Optional
import requests
import structlog

from config.settings import Settings, settings as default_settings
from exceptions import CargoesFlowError
from models.cargoes_flow import (
    CargoesFlowResult,
    DocumentUploadFile,
    DocumentUploadFileResult,
    DocumentUploadResult,
)

logger = structlog.get_logger(__name__)

UPLOAD_TYPE_BY_MBL = "FORM_BY_MBL_NUMBER"
RESULT_FAILED = "FAILED"
NOT_CONFIGURED = "Cargoes Flow API credentials are not configured"


def build_create_payload(mbl_number: str) -> dict:
    """createShipments body. Only the MBL identifies the shipment."""
    return {
        "formData": [{"mblNumber": mbl_number}],
        "uploadType": UPLOAD_TYPE_BY_MBL,
    }


def build_update_payload(shipment_number: str, update_data: dict) -> dict:
    """updateShipments body for a single shipment."""
    return {
        "formData": [{"shipmentNumber": shipment_number, **update_data}]
    }


def decode_data_url(data_url: str) -> bytes:
    """
    Decode a base64 data URL ("data:application/pdf;base64,JVBE...").

    Plain base64 without the "data:" prefix is accepted too.

    Raises:
        ValueError: If the payload is not valid base64
    """
    encoded = data_url.split(",", 1)[1] if "," in data_url else data_url
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 file data: {e}") from e


def _parse_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"message": response.text} if response.text else None


def _error_message(body: Any, status_code: int) -> str:
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP {status_code}"


class CargoesFlowClient:
    """
    Cargoes Flow API client.

    Built once from settings (see get_cargoes_flow_client). Pass a
    different instance to services in tests.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str],
        org_token: Optional[str],
        timeout: int = 30
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.org_token = org_token
        self.timeout = timeout

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "CargoesFlowClient":
        config = config or default_settings
        return cls(
            base_url=config.cargoes_flow_api_url,
            api_key=config.cargoes_flow_api_key,
            org_token=config.cargoes_flow_org_token,
            timeout=config.cargoes_flow_timeout_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key and self.org_token)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def _headers(self, json_body: bool = True) -> dict[str, str]:
        headers = {
            "X-DPW-ApiKey": self.api_key or "",
            "X-DPW-Org-Token": self.org_token or "",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    # ===================
    # SHIPMENTS
    # ===================

    def create_shipment(self, mbl_number: str) -> CargoesFlowResult:
        """
        Register a shipment for tracking by MBL.

        Args:
            mbl_number: Master bill of lading

        Returns:
            CargoesFlowResult with the raw API response
        """
        if not self.is_configured:
            logger.warning("cargoes_flow_not_configured", operation="create_shipment")
            return CargoesFlowResult(success=False, error=NOT_CONFIGURED)

        payload = build_create_payload(mbl_number)
        logger.info("cargoes_flow_create_sending", mbl_number=mbl_number)

        try:
            response = requests.post(
                self._url("createShipments"),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error("cargoes_flow_create_request_failed", mbl_number=mbl_number, error=str(e))
            return CargoesFlowResult(success=False, error=str(e))

        body = _parse_body(response)

        if not response.ok:
            error = _error_message(body, response.status_code)
            logger.error(
                "cargoes_flow_create_failed",
                mbl_number=mbl_number,
                status_code=response.status_code,
                error=error
            )
            return CargoesFlowResult(success=False, response=body, error=error)

        logger.info("cargoes_flow_create_sent", mbl_number=mbl_number)
        return CargoesFlowResult(success=True, response=body)

    def update_shipment(self, shipment_number: str, update_data: dict) -> CargoesFlowResult:
        """
        Update fields on a shipment Cargoes Flow already tracks.

        A 200 response whose body says result == "FAILED" is a failure;
        errorDetail[].error messages are joined with "; ".

        Args:
            shipment_number: Cargoes Flow's own shipment number
            update_data: Fields to send (shipper, consignee, promisedEtd, ...)
        """
        if not self.is_configured:
            logger.warning("cargoes_flow_not_configured", operation="update_shipment")
            return CargoesFlowResult(success=False, error=NOT_CONFIGURED)

        payload = build_update_payload(shipment_number, update_data)
        logger.info(
            "cargoes_flow_update_sending",
            shipment_number=shipment_number,
            fields=list(update_data.keys())
        )

        try:
            response = requests.put(
                self._url("updateShipments"),
                json=payload,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error("cargoes_flow_update_request_failed", shipment_number=shipment_number, error=str(e))
            return CargoesFlowResult(success=False, error=str(e))

        body = _parse_body(response)

        if not response.ok:
            error = _error_message(body, response.status_code)
            logger.error(
                "cargoes_flow_update_failed",
                shipment_number=shipment_number,
                status_code=response.status_code,
                error=error
            )
            return CargoesFlowResult(success=False, response=body, error=error)

        if isinstance(body, dict) and body.get("result") == RESULT_FAILED:
            details = body.get("errorDetail") or []
            messages = [str(d.get("error")) for d in details if isinstance(d, dict) and d.get("error")]
            error = "; ".join(messages) or body.get("message") or "Update failed"
            logger.error(
                "cargoes_flow_update_rejected",
                shipment_number=shipment_number,
                error=error
            )
            return CargoesFlowResult(success=False, response=body, error=error)

        logger.info("cargoes_flow_update_sent", shipment_number=shipment_number)
        return CargoesFlowResult(success=True, response=body)

    # ===================
    # DOCUMENTS
    # ===================

    def upload_documents(
        self,
        shipment_number: str,
        files: list[DocumentUploadFile]
    ) -> DocumentUploadResult:
        """
        Upload documents to a shipment as multipart form data.

        Returns one DocumentUploadFileResult per document in the API
        response.
        """
        if not self.is_configured:
            logger.warning("cargoes_flow_not_configured", operation="upload_documents")
            return DocumentUploadResult(success=False, error=NOT_CONFIGURED)

        try:
            multipart = [
                ("files", (f.file_name, decode_data_url(f.file_data)))
                for f in files
            ]
        except ValueError as e:
            logger.error("cargoes_flow_upload_decode_failed", shipment_number=shipment_number, error=str(e))
            return DocumentUploadResult(success=False, error=str(e))

        logger.info(
            "cargoes_flow_upload_sending",
            shipment_number=shipment_number,
            file_count=len(files)
        )

        try:
            response = requests.post(
                self._url("uploadDocument"),
                files=multipart,
                data={"shipmentNumber": shipment_number},
                headers=self._headers(json_body=False),
                timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            logger.error("cargoes_flow_upload_request_failed", shipment_number=shipment_number, error=str(e))
            return DocumentUploadResult(success=False, error=str(e))

        body = _parse_body(response)

        if not response.ok:
            error = _error_message(body, response.status_code)
            logger.error(
                "cargoes_flow_upload_failed",
                shipment_number=shipment_number,
                status_code=response.status_code,
                error=error
            )
            return DocumentUploadResult(success=False, api_response=body, error=error)

        results = []
        if isinstance(body, list):
            for item in body:
                if not isinstance(item, dict):
                    continue
                organization_id = item.get("organizationId")
                results.append(DocumentUploadFileResult(
                    file_name=item.get("nameOfDocument"),
                    success=not item.get("error"),
                    organization_id=str(organization_id) if organization_id is not None else None,
                    organization_name=item.get("organizationName"),
                    document_extension=item.get("documentExtension"),
                    created_at=item.get("createdAt"),
                    error=item.get("error"),
                ))

        logger.info(
            "cargoes_flow_upload_sent",
            shipment_number=shipment_number,
            result_count=len(results)
        )
        return DocumentUploadResult(success=True, results=results, api_response=body)

    # ===================
    # CARRIERS
    # ===================

    def get_carrier_list(self) -> list[dict]:
        """
        Fetch the carriers Cargoes Flow supports.

        Raises:
            CargoesFlowError: If not configured, the request fails, or the
                body is not a list
        """
        if not self.is_configured:
            raise CargoesFlowError(NOT_CONFIGURED)

        try:
            response = requests.get(
                self._url("carrierList"),
                headers=self._headers(),
                timeout=self.timeout
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            logger.error("cargoes_flow_carrier_list_failed", error=str(e))
            raise CargoesFlowError(f"Carrier list request failed: {e}")
        except ValueError as e:
            raise CargoesFlowError(f"Carrier list response is not JSON: {e}")

        if not isinstance(body, list):
            raise CargoesFlowError("Carrier list response is not a list")

        return body

    def carrier_list_request(self) -> str:
        """Request line recorded on carrier sync logs."""
        return f"GET {self._url('carrierList')}"


# Singleton instance
_cargoes_flow_client: Optional[CargoesFlowClient] = None


def get_cargoes_flow_client() -> CargoesFlowClient:
    """Get or create CargoesFlowClient instance."""
    global _cargoes_flow_client
    if _cargoes_flow_client is None:
        _cargoes_flow_client = CargoesFlowClient.from_settings()
    return _cargoes_flow_client
