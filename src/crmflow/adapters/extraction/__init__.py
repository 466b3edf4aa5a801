"""Public interface for the extraction API adapter."""

from __future__ import annotations

from .client import ExtractionServiceError, HttpExtractionService
from .schema import ExtractionRequestPayload, ExtractionResponse
from .translator import build_request_payload, parse_extraction_result

__all__ = [
    "ExtractionRequestPayload",
    "ExtractionResponse",
    "ExtractionServiceError",
    "HttpExtractionService",
    "build_request_payload",
    "parse_extraction_result",
]
