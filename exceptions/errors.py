"""
Custom exception classes for the application.

Every error carries a machine-readable code and the HTTP status it maps to.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "SHIPMENT_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class UnauthorizedError(AppError):
    """Request rejected before processing (401)."""

    def __init__(
        self,
        message: str = "Unauthorized",
        code: str = "UNAUTHORIZED",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=401,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class DuplicateError(ConflictError):
    """Duplicate resource (409)."""

    def __init__(
        self,
        resource: str,
        field: str,
        value: str
    ):
        super().__init__(
            code=f"{resource.upper()}_{field.upper()}_EXISTS",
            message=f"{resource} with this {field} already exists",
            details={field: value}
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SHIPMENT ERRORS
# ===================

class ShipmentNotFoundError(NotFoundError):
    """Shipment not found."""

    def __init__(self, shipment_id: str):
        super().__init__(
            resource="Shipment",
            identifier=shipment_id,
            code="SHIPMENT_NOT_FOUND"
        )


class ShipmentReferenceExistsError(DuplicateError):
    """Shipment reference number already exists."""

    def __init__(self, reference_number: str):
        super().__init__(
            resource="Shipment",
            field="reference_number",
            value=reference_number
        )


# ===================
# MILESTONE ERRORS
# ===================

class MilestoneNotFoundError(NotFoundError):
    """Milestone not found."""

    def __init__(self, milestone_id: str):
        super().__init__(
            resource="Milestone",
            identifier=milestone_id,
            code="MILESTONE_NOT_FOUND"
        )


# ===================
# WEBHOOK ERRORS
# ===================

class WebhookLogNotFoundError(NotFoundError):
    """Webhook log not found."""

    def __init__(self, webhook_id: str):
        super().__init__(
            resource="Webhook log",
            identifier=webhook_id,
            code="WEBHOOK_LOG_NOT_FOUND"
        )


class InvalidWebhookSignatureError(UnauthorizedError):
    """Shared secret header did not match TMS_WEBHOOK_SECRET."""

    def __init__(self):
        super().__init__(
            code="INVALID_WEBHOOK_SIGNATURE",
            message="Unauthorized"
        )


class WebhookProcessingError(AppError):
    """Webhook was logged but processing raised."""

    def __init__(self, webhook_id: str, message: str):
        self.webhook_id = webhook_id
        super().__init__(
            code="WEBHOOK_PROCESSING_FAILED",
            message=message,
            status_code=500,
            details={"webhook_id": webhook_id}
        )


# ===================
# CARGOES FLOW ERRORS
# ===================

class CargoesFlowError(ExternalServiceError):
    """Cargoes Flow API error."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="cargoes_flow",
            message=message,
            details=details
        )


class CargoesFlowPostNotFoundError(NotFoundError):
    """Cargoes Flow post not found."""

    def __init__(self, post_id: str):
        super().__init__(
            resource="Cargoes Flow post",
            identifier=post_id,
            code="CARGOES_FLOW_POST_NOT_FOUND"
        )


class CargoesFlowUpdateLogNotFoundError(NotFoundError):
    """Cargoes Flow update log not found."""

    def __init__(self, log_id: str):
        super().__init__(
            resource="Cargoes Flow update log",
            identifier=log_id,
            code="CARGOES_FLOW_UPDATE_LOG_NOT_FOUND"
        )


class MissingMblShipmentNotFoundError(NotFoundError):
    """Missing-MBL tracking row not found."""

    def __init__(self, record_id: str):
        super().__init__(
            resource="Missing MBL shipment",
            identifier=record_id,
            code="MISSING_MBL_SHIPMENT_NOT_FOUND"
        )
