"""Deterministic cross-source verification."""

from .engine import (
    BASE_ID_MISMATCH_MESSAGE,
    VerificationInputs,
    compare_authors,
    compare_titles,
    verify,
)

__all__ = [
    "BASE_ID_MISMATCH_MESSAGE",
    "VerificationInputs",
    "compare_authors",
    "compare_titles",
    "verify",
]
