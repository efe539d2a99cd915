"""Extraction boundary: source reading, model client, response schema and invoker."""

from .client import ModelClient
from .errors import (
    EmptyOrMalformedResponse,
    ErrorHandler,
    ErrorKind,
    ExtractionError,
    RateLimited,
    SafetyRejected,
    SchemaViolation,
    SourceUnavailable,
)
from .invoker import ExtractionInvoker, build_request_parts
from .schema import RESPONSE_SCHEMA, ExtractionResponse
from .sources import SourceBundle, SourceEvidence, collect_evidence, read_sources

__all__ = [
    "ModelClient",
    "ErrorHandler",
    "ErrorKind",
    "ExtractionError",
    "SourceUnavailable",
    "RateLimited",
    "EmptyOrMalformedResponse",
    "SchemaViolation",
    "SafetyRejected",
    "ExtractionInvoker",
    "build_request_parts",
    "ExtractionResponse",
    "RESPONSE_SCHEMA",
    "SourceBundle",
    "SourceEvidence",
    "collect_evidence",
    "read_sources",
]
