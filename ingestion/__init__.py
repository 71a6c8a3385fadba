"""Spreadsheet ingestion: reading, column mapping and record building."""

from .column_mapper import (
    ColumnMapping,
    COLUMN_ALIASES,
    REQUIRED_FIELDS,
    OPTIONAL_FIELDS,
    map_columns,
    resolve_optional_columns,
    build_column_map,
)
from .spreadsheet_reader import SheetData, check_upload, read_spreadsheet
from .record_builder import RecordBuilder, cell_to_text, dob_cell_to_text

__all__ = [
    "ColumnMapping",
    "COLUMN_ALIASES",
    "REQUIRED_FIELDS",
    "OPTIONAL_FIELDS",
    "map_columns",
    "resolve_optional_columns",
    "build_column_map",
    "SheetData",
    "check_upload",
    "read_spreadsheet",
    "RecordBuilder",
    "cell_to_text",
    "dob_cell_to_text",
]
