"""
Excel report generation for KYC verification batches.
Produces a results sheet, a summary sheet and, when rows were dropped, a
sheet listing the skipped rows.
"""

import logging
from pathlib import Path
from typing import List, Dict, Any, Optional
from datetime import datetime

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.cell.cell import MergedCell

from models import BatchResult, OutcomeSource, VerificationStatus

logger = logging.getLogger(__name__)


# Excel column schema - defines the exact column order and headers
EXCEL_COLUMNS = [
    "Row",
    "Identifier",
    "Name",
    "Status",
    "Source",
    "Name Match",
    "DOB Match",
    "Category",
    "Aadhaar Seeding",
    "Remarks",
    "Transaction ID",
    "Attempts",
    "Processing Time (ms)",
    "Record ID",
    "Error",
]

COLUMN_TYPES = {
    "Row": "int (1-based data row)",
    "Identifier": "string (masked)",
    "Name": "string",
    "Status": "string (verified/mismatched/invalid/pending/error/cancelled)",
    "Source": "string (provider/fallback_simulation)",
    "Name Match": "bool",
    "DOB Match": "bool",
    "Category": "string",
    "Aadhaar Seeding": "string",
    "Remarks": "string",
    "Transaction ID": "string",
    "Attempts": "int",
    "Processing Time (ms)": "float",
    "Record ID": "string",
    "Error": "string",
}

STATUS_FILLS = {
    VerificationStatus.VERIFIED.value: "C6EFCE",
    VerificationStatus.MISMATCHED.value: "FFEB9C",
    VerificationStatus.INVALID.value: "FFC7CE",
    VerificationStatus.ERROR.value: "FFC7CE",
    VerificationStatus.CANCELLED.value: "D9D9D9",
}


class ExcelWriter:
    """Generate Excel reports from a batch result."""

    def __init__(self):
        self.columns = EXCEL_COLUMNS

        # Styling
        self.header_font = Font(bold=True, color="FFFFFF")
        self.header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
        self.header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

        self.status_fills = {
            status: PatternFill(start_color=color, end_color=color, fill_type="solid")
            for status, color in STATUS_FILLS.items()
        }

        self.thin_border = Border(
            left=Side(style="thin"),
            right=Side(style="thin"),
            top=Side(style="thin"),
            bottom=Side(style="thin")
        )

    def write(
        self,
        result: BatchResult,
        output_path: Path,
        include_summary: bool = True,
        display_rows: Optional[List[Dict[str, Any]]] = None,
    ) -> Path:
        """
        Write a batch result to an Excel file.

        Args:
            result: BatchResult from the orchestrator
            output_path: Path for output Excel file
            include_summary: Whether to include summary sheet
            display_rows: Decrypted rows from ``to_display_row``; supplies the
                masked identifier and name per row number

        Returns:
            Path to created Excel file
        """
        output_path = Path(output_path)
        logger.info(f"Writing {len(result.outcomes)} outcomes to {output_path}")

        by_row = {r["row_number"]: r for r in (display_rows or [])}

        wb = Workbook()

        ws_data = wb.active
        ws_data.title = "Verification Results"
        self._write_data_sheet(ws_data, result, by_row)

        if include_summary:
            ws_summary = wb.create_sheet("Summary")
            self._write_summary_sheet(ws_summary, result)

        if result.skipped:
            ws_skipped = wb.create_sheet("Skipped Rows")
            self._write_skipped_sheet(ws_skipped, result)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(output_path)

        logger.info(f"Excel file saved: {output_path}")
        return output_path

    def _write_header(self, ws, headers: List[str]):
        for col_idx, header in enumerate(headers, 1):
            cell = ws.cell(row=1, column=col_idx, value=header)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = self.header_alignment
            cell.border = self.thin_border

    def _write_data_sheet(self, ws, result: BatchResult, by_row: Dict[int, Dict[str, Any]]):
        """Write one line per outcome."""
        self._write_header(ws, self.columns)

        for row_idx, outcome in enumerate(result.outcomes, 2):
            display = by_row.get(outcome.row_number, {})
            row_data = {
                "Row": outcome.row_number,
                "Identifier": display.get("identifier", ""),
                "Name": display.get("name", ""),
                "Status": outcome.status.value,
                "Source": outcome.source.value,
                "Name Match": outcome.name_match,
                "DOB Match": outcome.dob_match,
                "Category": outcome.category,
                "Aadhaar Seeding": outcome.aadhaar_seeding_status,
                "Remarks": outcome.remarks,
                "Transaction ID": outcome.transaction_id,
                "Attempts": len(outcome.attempts),
                "Processing Time (ms)": outcome.processing_time_ms,
                "Record ID": outcome.record_id,
                "Error": outcome.error_message,
            }

            for col_idx, header in enumerate(self.columns, 1):
                value = row_data.get(header)
                cell = ws.cell(row=row_idx, column=col_idx, value=value)
                cell.border = self.thin_border

                if header == "Processing Time (ms)":
                    cell.number_format = "#,##0.00"
                elif header == "Status" and value in self.status_fills:
                    cell.fill = self.status_fills[value]

        self._auto_fit_columns(ws)
        ws.freeze_panes = "A2"

    def _write_summary_sheet(self, ws, result: BatchResult):
        """Write counts per status and per source."""
        summary = result.summary

        ws["A1"] = "KYC Verification Summary"
        ws["A1"].font = Font(bold=True, size=14)
        ws.merge_cells("A1:D1")

        ws["A2"] = f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}"

        ws["A4"] = "Overall Statistics"
        ws["A4"].font = Font(bold=True)

        stats = [
            ("Batch ID", summary.batch_id),
            ("Identifier Type", summary.identifier_type.value.upper()),
            ("Mode", summary.mode.value),
            ("Total Rows", summary.total_rows),
            ("Accepted Records", summary.accepted_records),
            ("Skipped Rows", summary.skipped_rows),
            ("Cancelled", "Yes" if summary.cancelled else "No"),
        ]

        row = 5
        for label, value in stats:
            ws[f"A{row}"] = label
            ws[f"B{row}"] = value
            row += 1

        row += 1
        row = self._write_breakdown(ws, row, "By Status", "Status",
                                    summary.status_breakdown, [s.value for s in VerificationStatus])
        row += 1
        self._write_breakdown(ws, row, "By Source", "Source",
                              summary.source_breakdown, [s.value for s in OutcomeSource])

        self._auto_fit_columns(ws)

    def _write_breakdown(self, ws, row: int, title: str, label: str,
                         counts: Dict[str, int], keys: List[str]) -> int:
        ws[f"A{row}"] = title
        ws[f"A{row}"].font = Font(bold=True)
        row += 1

        ws[f"A{row}"] = label
        ws[f"B{row}"] = "Count"
        for cell in [f"A{row}", f"B{row}"]:
            ws[cell].fill = self.header_fill
            ws[cell].font = self.header_font
        row += 1

        for key in keys:
            ws[f"A{row}"] = key
            ws[f"B{row}"] = counts.get(key, 0)
            row += 1
        return row

    def _write_skipped_sheet(self, ws, result: BatchResult):
        """Rows that never reached the provider, with the reason."""
        self._write_header(ws, ["Row", "Reason"])
        for row_idx, skipped in enumerate(result.skipped, 2):
            ws.cell(row=row_idx, column=1, value=skipped.row_number).border = self.thin_border
            ws.cell(row=row_idx, column=2, value=skipped.reason).border = self.thin_border
        self._auto_fit_columns(ws)

    def _auto_fit_columns(self, ws, min_width: int = 10, max_width: int = 50):
        """Auto-fit column widths based on content."""
        for column_cells in ws.columns:
            max_length = 0
            column = None

            # Find first non-merged cell to get column letter
            for cell in column_cells:
                if not isinstance(cell, MergedCell):
                    column = cell.column_letter
                    break

            if column is None:
                continue

            for cell in column_cells:
                if isinstance(cell, MergedCell) or cell.value is None:
                    continue
                max_length = max(max_length, len(str(cell.value)))

            ws.column_dimensions[column].width = min(max(max_length + 2, min_width), max_width)


def write_excel(
    result: BatchResult,
    output_path: Path,
    include_summary: bool = True,
    display_rows: Optional[List[Dict[str, Any]]] = None,
) -> Path:
    """Convenience function to write Excel file."""
    writer = ExcelWriter()
    return writer.write(result, output_path, include_summary, display_rows)


def get_column_schema() -> Dict[str, str]:
    """Get the Excel column schema with types."""
    return COLUMN_TYPES.copy()
