"""
Spreadsheet loading for uploaded identity batches.
Reads the first sheet of an .xlsx/.xls file with pandas.
"""

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from config import app_config
from models import UploadRejectedError

logger = logging.getLogger(__name__)

ENGINES = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}


@dataclass
class SheetData:
    """Header and data rows of a spreadsheet."""
    headers: List[str]
    rows: List[Dict[str, Any]] = field(default_factory=list)
    source_name: str = ""

    @property
    def total_rows(self) -> int:
        return len(self.rows)


def check_upload(filename: str, size_bytes: int, max_size_mb: Optional[int] = None) -> None:
    """
    Reject uploads with a wrong extension or over the size cap.

    Raises:
        UploadRejectedError: If the file cannot be accepted
    """
    suffix = Path(filename or "").suffix.lower()
    if suffix not in app_config.allowed_extensions:
        raise UploadRejectedError(
            f"Invalid file type: {filename}. Only Excel files (.xlsx, .xls) are allowed"
        )

    limit_mb = max_size_mb if max_size_mb is not None else app_config.max_upload_size_mb
    if size_bytes > limit_mb * 1024 * 1024:
        raise UploadRejectedError(f"File too large: {size_bytes} bytes (limit {limit_mb}MB)")

    if size_bytes == 0:
        raise UploadRejectedError("Uploaded file is empty")


def _clean_cell(value: Any) -> Any:
    """Blank cells become None, dates become ISO strings, everything else is kept."""
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and not value.strip():
        return None
    return value


def read_spreadsheet(source: Union[Path, str, bytes], filename: Optional[str] = None) -> SheetData:
    """
    Load the first sheet of a workbook.

    Args:
        source: Path to the file or its raw bytes
        filename: Original file name, used to pick the engine for raw bytes

    Returns:
        SheetData with header names and one dict per data row

    Raises:
        UploadRejectedError: If the workbook cannot be read or has no data rows
    """
    if isinstance(source, (str, Path)):
        path = Path(source)
        name = filename or path.name
        handle = path
    else:
        name = filename or "upload.xlsx"
        handle = io.BytesIO(source)

    engine = ENGINES.get(Path(name).suffix.lower())
    if engine is None:
        raise UploadRejectedError(f"Invalid file type: {name}")

    try:
        df = pd.read_excel(handle, sheet_name=0, dtype=object, engine=engine)
    except Exception as e:
        logger.error(f"Failed to read spreadsheet {name}: {e}")
        raise UploadRejectedError(f"Could not read spreadsheet: {e}") from e

    headers = [str(c).strip() for c in df.columns]
    df.columns = headers

    rows = []
    for raw in df.to_dict(orient="records"):
        row = {k: _clean_cell(v) for k, v in raw.items()}
        # Skip rows that are entirely blank
        if any(v is not None for v in row.values()):
            rows.append(row)

    if not rows:
        raise UploadRejectedError("No data found in the Excel file")

    logger.info(f"Read {len(rows)} rows from {name}; columns: {headers}")
    return SheetData(headers=headers, rows=rows, source_name=name)
