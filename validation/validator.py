"""
Validation rules for normalized identity records.
Rows with errors are skipped before any provider call; warnings are kept.
"""

import re
import logging
import hashlib
from datetime import datetime, date
from typing import List, Dict, Optional, Set
from dataclasses import dataclass, field

from config import validation_config
from models import IdentifierType, ValidationError

logger = logging.getLogger(__name__)


@dataclass
class ValidationIssue:
    """Represents a single validation issue."""
    field: str
    issue_type: str
    message: str
    severity: str = "error"  # error, warning


@dataclass
class ValidationResult:
    """Result of validation for a single row."""
    row_number: int
    is_valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)
    normalized: Dict[str, Optional[str]] = field(default_factory=dict)

    @property
    def has_errors(self) -> bool:
        return any(i.severity == "error" for i in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(i.severity == "warning" for i in self.issues)

    @property
    def reason(self) -> str:
        """Human readable reason string built from error issues."""
        return "; ".join(f"{i.field}: {i.message}" for i in self.issues if i.severity == "error")


def parse_date_of_birth(value: str, formats: Optional[List[str]] = None) -> date:
    """
    Parse a date of birth in one of the accepted shapes.

    Raises:
        ValidationError: If the value matches none of the formats
    """
    if not value or not isinstance(value, str):
        raise ValidationError("Date of birth is empty", field="date_of_birth")

    text = value.strip()
    for fmt in formats or validation_config.date_formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise ValidationError(f"Invalid date format: {value}", field="date_of_birth")


def normalize_identifier(identifier_type: IdentifierType, value: str) -> str:
    """Upper-case PANs, strip spaces from Aadhaar numbers."""
    if identifier_type == IdentifierType.AADHAAR:
        return re.sub(r"\s", "", value)
    return value.strip().upper()


class RecordValidator:
    """Validator for rows of a single batch."""

    def __init__(self, identifier_type: IdentifierType = IdentifierType.PAN):
        self.config = validation_config
        self.identifier_type = identifier_type
        self._seen_hashes: Set[str] = set()

    def reset_dedupe_cache(self):
        """Reset the deduplication cache."""
        self._seen_hashes.clear()

    def validate(
        self,
        row_number: int,
        identifier: Optional[str],
        name: Optional[str],
        date_of_birth: Optional[str] = None,
        dob_required: bool = False,
    ) -> ValidationResult:
        """
        Validate the required values of one row.

        Args:
            row_number: 1-based data row number
            identifier: PAN or Aadhaar value after trimming
            name: Name value after trimming
            date_of_birth: Raw date of birth, optional
            dob_required: Whether a missing DOB is an error

        Returns:
            ValidationResult with issues and normalized values
        """
        result = ValidationResult(row_number=row_number, is_valid=True)

        self._validate_identifier(identifier, result)
        self._validate_name(name, result)
        self._validate_date_of_birth(date_of_birth, dob_required, result)
        if not result.has_errors:
            self._check_duplicate(result)

        result.is_valid = not result.has_errors
        if result.has_warnings:
            logger.debug(f"Row {row_number} warnings: "
                         + "; ".join(i.message for i in result.issues if i.severity == "warning"))

        return result

    def _validate_identifier(self, identifier: Optional[str], result: ValidationResult):
        """Validate PAN or Aadhaar format."""
        label = "PAN" if self.identifier_type == IdentifierType.PAN else "Aadhaar number"

        if not identifier:
            result.issues.append(ValidationIssue(
                field="identifier",
                issue_type="missing",
                message=f"{label} is missing",
            ))
            return

        normalized = normalize_identifier(self.identifier_type, identifier)
        pattern = (self.config.pan_pattern if self.identifier_type == IdentifierType.PAN
                   else self.config.aadhaar_pattern)

        if not re.match(pattern, normalized):
            result.issues.append(ValidationIssue(
                field="identifier",
                issue_type="format",
                message=f"Invalid {label} format",
            ))
            return

        result.normalized["identifier"] = normalized

    def _validate_name(self, name: Optional[str], result: ValidationResult):
        if not name:
            result.issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Name is missing",
            ))
            return

        if len(name) < self.config.min_name_length:
            result.issues.append(ValidationIssue(
                field="name",
                issue_type="format",
                message=f"Name shorter than {self.config.min_name_length} characters",
            ))
            return

        result.normalized["name"] = name

    def _validate_date_of_birth(self, value: Optional[str], required: bool, result: ValidationResult):
        if not value:
            if required:
                result.issues.append(ValidationIssue(
                    field="date_of_birth",
                    issue_type="missing",
                    message="Date of birth is missing",
                ))
            return

        try:
            parsed = parse_date_of_birth(value, self.config.date_formats)
        except ValidationError as e:
            result.issues.append(ValidationIssue(
                field="date_of_birth",
                issue_type="format",
                message=str(e),
            ))
            return

        if parsed > date.today():
            result.issues.append(ValidationIssue(
                field="date_of_birth",
                issue_type="future_date",
                message=f"Date of birth is in future: {parsed}",
            ))
            return

        result.normalized["date_of_birth"] = value

    def _check_duplicate(self, result: ValidationResult):
        """Flag identifiers already seen in this batch."""
        identifier = result.normalized.get("identifier")
        if not identifier:
            return

        identifier_hash = hashlib.sha256(identifier.encode()).hexdigest()[:16]
        if identifier_hash in self._seen_hashes:
            result.issues.append(ValidationIssue(
                field="identifier",
                issue_type="duplicate",
                message=f"Duplicate identifier in batch (hash: {identifier_hash})",
                severity="warning",
            ))
        else:
            self._seen_hashes.add(identifier_hash)
