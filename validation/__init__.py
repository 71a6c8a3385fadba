"""Validation module for KYC records."""

from .validator import (
    RecordValidator,
    ValidationResult,
    ValidationIssue,
    parse_date_of_birth,
    normalize_identifier,
)

__all__ = [
    "RecordValidator",
    "ValidationResult",
    "ValidationIssue",
    "parse_date_of_birth",
    "normalize_identifier",
]
