"""
Payload parsers module.
"""

from parsers.tms_parser import (
    ExtractedReferences,
    NormalizedShipment,
    WebhookLogSummary,
    extract_references,
    find_reference,
    normalize_payload,
    summarize_for_log,
)

__all__ = [
    "ExtractedReferences",
    "NormalizedShipment",
    "WebhookLogSummary",
    "extract_references",
    "find_reference",
    "normalize_payload",
    "summarize_for_log",
]
