"""Export module for KYC verification results."""

from .excel_writer import (
    ExcelWriter,
    write_excel,
    get_column_schema,
    EXCEL_COLUMNS,
    COLUMN_TYPES,
)

__all__ = [
    "ExcelWriter",
    "write_excel",
    "get_column_schema",
    "EXCEL_COLUMNS",
    "COLUMN_TYPES",
]
