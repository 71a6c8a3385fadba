"""
Tests for Excel export functionality.
"""

import pytest
from pathlib import Path
import pandas as pd
from openpyxl import load_workbook

import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from export import (
    ExcelWriter,
    write_excel,
    get_column_schema,
    EXCEL_COLUMNS,
)
from models import (
    BatchResult,
    BatchSummary,
    IdentifierType,
    OutcomeSource,
    SkippedRow,
    VerificationMode,
    VerificationOutcome,
    VerificationStatus,
)


@pytest.fixture
def batch_result() -> BatchResult:
    outcomes = [
        VerificationOutcome(row_number=1, status=VerificationStatus.VERIFIED,
                            name_match=True, dob_match=True, transaction_id="txn-1", record_id="r1"),
        VerificationOutcome(row_number=3, status=VerificationStatus.VERIFIED,
                            source=OutcomeSource.FALLBACK_SIMULATION, record_id="r3"),
    ]
    skipped = [SkippedRow(row_number=2, reason="identifier: PAN is missing")]
    summary = BatchSummary.build(
        batch_id="pan_list_1",
        identifier_type=IdentifierType.PAN,
        mode=VerificationMode.SIMULATION,
        total_rows=3,
        outcomes=outcomes,
        skipped=skipped,
    )
    return BatchResult(summary=summary, outcomes=outcomes, skipped=skipped)


@pytest.fixture
def display_rows() -> list:
    return [
        {"row_number": 1, "identifier": "XXXXXX234F", "name": "Ravi Kumar"},
        {"row_number": 3, "identifier": "XXXXXX789K", "name": "Meena Shah"},
    ]


class TestExcelWriter:
    """Tests for ExcelWriter class."""

    def test_write_results(self, batch_result, display_rows, temp_dir):
        """One line per outcome, in the fixed column order."""
        output_path = temp_dir / "results.xlsx"

        result_path = ExcelWriter().write(batch_result, output_path, display_rows=display_rows)

        assert result_path.exists()
        df = pd.read_excel(result_path, sheet_name="Verification Results")
        assert list(df.columns) == EXCEL_COLUMNS
        assert len(df) == 2
        assert df.iloc[0]["Identifier"] == "XXXXXX234F"
        assert df.iloc[1]["Source"] == "fallback_simulation"

    def test_sheets(self, batch_result, temp_dir):
        """Summary and skipped rows get their own sheets."""
        output_path = write_excel(batch_result, temp_dir / "sheets.xlsx")

        wb = load_workbook(output_path)
        assert wb.sheetnames == ["Verification Results", "Summary", "Skipped Rows"]

    def test_no_summary(self, batch_result, temp_dir):
        output_path = write_excel(batch_result, temp_dir / "nosummary.xlsx", include_summary=False)
        assert "Summary" not in load_workbook(output_path).sheetnames

    def test_no_skipped_sheet_without_skips(self, batch_result, temp_dir):
        result = batch_result.model_copy(update={"skipped": []})
        output_path = write_excel(result, temp_dir / "noskips.xlsx")
        assert "Skipped Rows" not in load_workbook(output_path).sheetnames

    def test_summary_counts(self, batch_result, temp_dir):
        """The summary sheet lists every status and source with its count."""
        output_path = write_excel(batch_result, temp_dir / "summary.xlsx")
        ws = load_workbook(output_path)["Summary"]

        values = {ws.cell(row=r, column=1).value: ws.cell(row=r, column=2).value
                  for r in range(1, ws.max_row + 1)}
        assert values["Accepted Records"] == 2
        assert values["Skipped Rows"] == 1
        assert values["Mode"] == "simulation"
        assert values["verified"] == 2
        assert values["cancelled"] == 0
        assert values["fallback_simulation"] == 1

    def test_skipped_reasons(self, batch_result, temp_dir):
        output_path = write_excel(batch_result, temp_dir / "skipped.xlsx")
        df = pd.read_excel(output_path, sheet_name="Skipped Rows")

        assert df.iloc[0]["Row"] == 2
        assert "PAN is missing" in df.iloc[0]["Reason"]

    def test_creates_parent_directory(self, batch_result, temp_dir):
        output_path = temp_dir / "nested" / "dir" / "out.xlsx"
        assert write_excel(batch_result, output_path).exists()


class TestColumnSchema:
    def test_schema_covers_columns(self):
        assert list(get_column_schema().keys()) == EXCEL_COLUMNS
