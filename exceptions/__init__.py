"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    UnauthorizedError,
    ConflictError,
    DuplicateError,
    ExternalServiceError,
    DatabaseError,

    # Shipments
    ShipmentNotFoundError,
    ShipmentReferenceExistsError,

    # Milestones
    MilestoneNotFoundError,

    # Webhooks
    WebhookLogNotFoundError,
    InvalidWebhookSignatureError,
    WebhookProcessingError,

    # Cargoes Flow
    CargoesFlowError,
    CargoesFlowPostNotFoundError,
    CargoesFlowUpdateLogNotFoundError,
    MissingMblShipmentNotFoundError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "UnauthorizedError",
    "ConflictError",
    "DuplicateError",
    "ExternalServiceError",
    "DatabaseError",

    # Shipments
    "ShipmentNotFoundError",
    "ShipmentReferenceExistsError",

    # Milestones
    "MilestoneNotFoundError",

    # Webhooks
    "WebhookLogNotFoundError",
    "InvalidWebhookSignatureError",
    "WebhookProcessingError",

    # Cargoes Flow
    "CargoesFlowError",
    "CargoesFlowPostNotFoundError",
    "CargoesFlowUpdateLogNotFoundError",
    "MissingMblShipmentNotFoundError",
]
