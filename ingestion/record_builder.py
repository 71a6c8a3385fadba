"""
Turn raw spreadsheet rows into NormalizedRecords or SkippedRows.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, Optional, Union

from config import app_config
from models import (
    CanonicalField,
    IdentifierType,
    NormalizedRecord,
    SkippedRow,
)
from security import mask_for_log
from validation import RecordValidator
from .column_mapper import COLUMN_ALIASES, ColumnMapping, REQUIRED_FIELDS

logger = logging.getLogger(__name__)

# Day zero of the Excel 1900 date system (accounts for the 1900 leap-year bug)
EXCEL_EPOCH = date(1899, 12, 30)
MAX_DOB_SERIAL = (date(2099, 12, 31) - EXCEL_EPOCH).days

# Headers that name identity fields; never passed through unencrypted
IDENTITY_COLUMNS = frozenset(alias for aliases in COLUMN_ALIASES.values() for alias in aliases)


def cell_to_text(value: Any) -> Optional[str]:
    """Render a cell as trimmed text; whole-number floats lose their '.0'."""
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def dob_cell_to_text(value: Any) -> Optional[str]:
    """
    Date of birth cells may hold an Excel serial number instead of text.

    Numbers outside the serial range (e.g. 19900301 typed as digits) are
    returned as text and left for date parsing to reject.
    """
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if 0 < value <= MAX_DOB_SERIAL:
            return (EXCEL_EPOCH + timedelta(days=int(value))).isoformat()
    return cell_to_text(value)


class RecordBuilder:
    """Applies a column mapping and row validation to raw rows."""

    def __init__(self, column_map: ColumnMapping, identifier_type: IdentifierType):
        self.column_map = column_map
        self.identifier_type = identifier_type
        self.validator = RecordValidator(identifier_type)
        self._mapped_columns = set(column_map.mapping.values())
        self._dob_required = CanonicalField.DATE_OF_BIRTH in REQUIRED_FIELDS[identifier_type]

    @property
    def identifier_field(self) -> CanonicalField:
        if self.identifier_type == IdentifierType.AADHAAR:
            return CanonicalField.AADHAAR_NUMBER
        return CanonicalField.PAN_NUMBER

    def _value(self, row: Dict[str, Any], field_name: CanonicalField) -> Any:
        column = self.column_map.mapping.get(field_name)
        if column is None:
            return None
        return row.get(column)

    def build(self, row_number: int, row: Dict[str, Any]) -> Union[NormalizedRecord, SkippedRow]:
        """
        Build a record from one raw row.

        Args:
            row_number: 1-based data row number
            row: Header name -> cell value

        Returns:
            NormalizedRecord, or SkippedRow with the reason it was dropped
        """
        identifier = cell_to_text(self._value(row, self.identifier_field))
        name = cell_to_text(self._value(row, CanonicalField.NAME))
        dob = dob_cell_to_text(self._value(row, CanonicalField.DATE_OF_BIRTH))

        result = self.validator.validate(
            row_number,
            identifier=identifier,
            name=name,
            date_of_birth=dob,
            dob_required=self._dob_required,
        )

        if not result.is_valid:
            logger.warning(
                f"Skipping row {row_number} ({mask_for_log(identifier, app_config.mask_sensitive_data)}): "
                f"{result.reason}"
            )
            return SkippedRow(row_number=row_number, reason=result.reason, raw=row)

        extra = {
            k: v for k, v in row.items()
            if k not in self._mapped_columns and k not in IDENTITY_COLUMNS
        }

        return NormalizedRecord(
            row_number=row_number,
            identifier_type=self.identifier_type,
            identifier_primary=result.normalized["identifier"],
            name=result.normalized["name"],
            date_of_birth=result.normalized.get("date_of_birth"),
            reason=cell_to_text(self._value(row, CanonicalField.REASON)),
            gender=cell_to_text(self._value(row, CanonicalField.GENDER)),
            father_name=cell_to_text(self._value(row, CanonicalField.FATHER_NAME)),
            extra_fields=extra,
        )
