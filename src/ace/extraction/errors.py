"""Error taxonomy for the extraction boundary, with classification helpers."""

import json
from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError

from ..utils.logging import get_logger

logger = get_logger(__name__)


class ErrorKind(Enum):
    """Classification of extraction failures for appropriate handling."""
    SOURCE_UNAVAILABLE = "source_unavailable"  # required input missing - never call the model
    RATE_LIMITED = "rate_limited"              # 429 - backoff and retry
    EMPTY_OR_MALFORMED = "empty_or_malformed"  # empty body - retry once
    SCHEMA_VIOLATION = "schema_violation"      # wrong shape - same path as malformed
    SAFETY_REJECTED = "safety_rejected"        # policy block - retrying will not help
    UNKNOWN = "unknown"                        # anything else - terminal


class ExtractionError(Exception):
    """Base class for failures surfaced by the extraction boundary."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class SourceUnavailable(ExtractionError):
    kind = ErrorKind.SOURCE_UNAVAILABLE


class RateLimited(ExtractionError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, message: str = "Model API rate limit reached (HTTP 429)", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class EmptyOrMalformedResponse(ExtractionError):
    kind = ErrorKind.EMPTY_OR_MALFORMED


class SchemaViolation(EmptyOrMalformedResponse):
    kind = ErrorKind.SCHEMA_VIOLATION


class SafetyRejected(ExtractionError):
    kind = ErrorKind.SAFETY_REJECTED


class ErrorHandler:
    """Map arbitrary exceptions onto :class:`ErrorKind` and operator messages.

    Example:
        >>> handler = ErrorHandler()
        >>> handler.classify_error(RateLimited())
        <ErrorKind.RATE_LIMITED: 'rate_limited'>
    """

    GENERIC_MALFORMED_MESSAGE = "The model returned an empty or malformed response twice; please re-run this case."

    def classify_error(self, error: BaseException) -> ErrorKind:
        if isinstance(error, ExtractionError):
            return error.kind

        if isinstance(error, httpx.HTTPStatusError):
            if error.response.status_code == 429:
                return ErrorKind.RATE_LIMITED
            return ErrorKind.UNKNOWN

        if isinstance(error, (ValidationError, json.JSONDecodeError)):
            return ErrorKind.SCHEMA_VIOLATION

        return ErrorKind.UNKNOWN

    def to_extraction_error(self, error: BaseException) -> ExtractionError:
        """Wrap a foreign exception in the matching :class:`ExtractionError`."""
        if isinstance(error, ExtractionError):
            return error
        kind = self.classify_error(error)
        if kind == ErrorKind.RATE_LIMITED:
            return RateLimited(f"Model API rate limit reached: {error}")
        if kind == ErrorKind.SCHEMA_VIOLATION:
            return SchemaViolation(f"Response did not match the extraction schema: {_first_line(error)}")
        return ExtractionError(f"{type(error).__name__}: {error}")

    def describe(self, error: BaseException) -> str:
        """Human-readable message stored on the failed case."""
        kind = self.classify_error(error)
        if kind == ErrorKind.RATE_LIMITED:
            return "Rate limit persisted after all retries; try again later."
        if kind in (ErrorKind.EMPTY_OR_MALFORMED, ErrorKind.SCHEMA_VIOLATION):
            return f"{self.GENERIC_MALFORMED_MESSAGE} ({_first_line(error)})"
        if isinstance(error, ExtractionError):
            return error.message
        return f"Extraction failed: {type(error).__name__}: {error}"


def _first_line(error: BaseException) -> str:
    text = str(error).strip()
    return text.splitlines()[0] if text else type(error).__name__
