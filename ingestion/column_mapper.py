"""
Translate spreadsheet header names into canonical field identifiers.

Matching is case-sensitive and exact against the header text; for each field
the first alias in declared priority order that appears in the header wins.
"""

import logging
from typing import Dict, Iterable, List, NamedTuple

from models import CanonicalField, IdentifierType

logger = logging.getLogger(__name__)


# Aliases in priority order
COLUMN_ALIASES: Dict[CanonicalField, List[str]] = {
    CanonicalField.PAN_NUMBER: [
        "panNumber", "PAN No", "PAN", "pan", "PANNumber", "pan_number", "PAN No.", "PAN Number",
    ],
    CanonicalField.AADHAAR_NUMBER: [
        "aadhaarNumber", "AADHAAR", "Aadhaar", "aadhaar", "Aadhaar Number", "aadhaar_number",
        "Aadhaar No",
    ],
    CanonicalField.NAME: [
        "name", "Name", "NAME", "fullName", "Full Name", "full_name", "FULL NAME", "Name as per PAN",
    ],
    CanonicalField.DATE_OF_BIRTH: [
        "dateOfBirth", "DOB", "dob", "Date of Birth", "birthDate", "Birth Date", "BIRTH DATE",
    ],
    CanonicalField.REASON: ["reason", "Reason", "REASON", "purpose", "Purpose"],
    CanonicalField.FATHER_NAME: ["fatherName", "Father Name", "father_name"],
    CanonicalField.GENDER: ["gender", "Gender", "GENDER", "sex"],
}

# Columns a header must contain, per identifier type
REQUIRED_FIELDS: Dict[IdentifierType, List[CanonicalField]] = {
    IdentifierType.PAN: [
        CanonicalField.PAN_NUMBER,
        CanonicalField.NAME,
        CanonicalField.DATE_OF_BIRTH,
    ],
    IdentifierType.AADHAAR: [
        CanonicalField.AADHAAR_NUMBER,
        CanonicalField.NAME,
    ],
}

OPTIONAL_FIELDS: Dict[IdentifierType, List[CanonicalField]] = {
    IdentifierType.PAN: [CanonicalField.REASON, CanonicalField.FATHER_NAME],
    IdentifierType.AADHAAR: [
        CanonicalField.DATE_OF_BIRTH,
        CanonicalField.GENDER,
        CanonicalField.REASON,
        CanonicalField.FATHER_NAME,
    ],
}


class ColumnMapping(NamedTuple):
    """Resolved header names and the required fields no alias matched."""
    mapping: Dict[CanonicalField, str]
    missing: List[CanonicalField]


def _find_alias(header: set, field_name: CanonicalField) -> str:
    for alias in COLUMN_ALIASES.get(field_name, [field_name.value]):
        if alias in header:
            return alias
    return ""


def map_columns(header_row: Iterable[str], required_fields: Iterable[CanonicalField]) -> ColumnMapping:
    """
    Resolve each required field to a header column.

    Args:
        header_row: Header names as they appear in the spreadsheet
        required_fields: Canonical fields that must be present

    Returns:
        ColumnMapping with the resolved mapping and missing fields
    """
    header = set(header_row)
    mapping: Dict[CanonicalField, str] = {}
    missing: List[CanonicalField] = []

    for field_name in required_fields:
        alias = _find_alias(header, field_name)
        if alias:
            mapping[field_name] = alias
        else:
            missing.append(field_name)

    return ColumnMapping(mapping=mapping, missing=missing)


def resolve_optional_columns(header_row: Iterable[str],
                             fields: Iterable[CanonicalField]) -> Dict[CanonicalField, str]:
    """Resolve optional fields; absent ones are simply left out."""
    header = set(header_row)
    resolved = {}
    for field_name in fields:
        alias = _find_alias(header, field_name)
        if alias:
            resolved[field_name] = alias
    return resolved


def build_column_map(header_row: Iterable[str], identifier_type: IdentifierType) -> ColumnMapping:
    """Required plus optional columns for a batch of the given identifier type."""
    header = list(header_row)
    result = map_columns(header, REQUIRED_FIELDS[identifier_type])
    optional = resolve_optional_columns(header, OPTIONAL_FIELDS[identifier_type])

    mapping = dict(result.mapping)
    for field_name, column in optional.items():
        mapping.setdefault(field_name, column)

    logger.info(f"Column map for {identifier_type.value} batch: "
                + ", ".join(f"{k.value}={v}" for k, v in mapping.items()))
    if result.missing:
        logger.info("Missing columns: " + ", ".join(f.value for f in result.missing))

    return ColumnMapping(mapping=mapping, missing=result.missing)
