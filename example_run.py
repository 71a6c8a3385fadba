#!/usr/bin/env python3
"""
Run a KYC verification batch on a spreadsheet and write the Excel report.

Provider credentials and the cipher passphrase are read from the environment
(KYC_PROVIDER_API_KEY, KYC_PROVIDER_API_SECRET, KYC_CIPHER_PASSPHRASE).

Usage:
    python example_run.py records.xlsx --identifier-type pan --mode strict
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from config import PolicyConfig, app_config, load_settings
from models import IdentifierType, KycError, VerificationMode
from pipeline import InMemoryOutcomeStore, process_file, to_display_row
from security import FieldCipher
from export import write_excel


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify PAN or Aadhaar records from an Excel file")
    parser.add_argument("file", type=Path, help="Spreadsheet (.xlsx or .xls)")
    parser.add_argument(
        "--identifier-type",
        choices=[t.value for t in IdentifierType],
        default=IdentifierType.PAN.value,
    )
    parser.add_argument(
        "--mode",
        choices=[m.value for m in VerificationMode],
        default=None,
        help="Overrides KYC_POLICY_MODE",
    )
    parser.add_argument("--output", type=Path, default=None, help="Excel report path")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, app_config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print("=" * 60)
    print("KYC Batch Verifier - Example Run")
    print("=" * 60)
    print()

    if not args.file.exists():
        print(f"Error: File not found: {args.file}")
        return 1

    try:
        overrides = {}
        if args.mode:
            overrides["policy"] = PolicyConfig(mode=VerificationMode(args.mode))
        settings = load_settings(**overrides)
        cipher = FieldCipher.from_config(settings.cipher)
        store = InMemoryOutcomeStore()

        result = asyncio.run(
            process_file(args.file, settings, cipher, store, IdentifierType(args.identifier_type))
        )
    except KycError as e:
        print(f"✗ {type(e).__name__}: {e}")
        return 1

    summary = result.summary

    print("-" * 60)
    for outcome in result.outcomes:
        print(f"  Row {outcome.row_number:>4}  {outcome.status.value:<11} [{outcome.source.value}]"
              + (f"  {outcome.error_message}" if outcome.error_message else ""))
    for skipped in result.skipped:
        print(f"  Row {skipped.row_number:>4}  skipped     {skipped.reason}")
    print()

    output_path = args.output or app_config.output_dir / f"KYC_{summary.batch_id}.xlsx"
    rows = [to_display_row(r, cipher, mask=True) for r in store.list_batch(summary.batch_id)]
    write_excel(result, output_path, display_rows=rows)

    print("=" * 60)
    print("SUMMARY")
    print("=" * 60)
    print(f"  Batch:            {summary.batch_id}")
    print(f"  Mode:             {summary.mode.value}")
    print(f"  Total rows:       {summary.total_rows}")
    print(f"  Accepted records: {summary.accepted_records}")
    print(f"  Skipped rows:     {summary.skipped_rows}")
    for status, count in summary.status_breakdown.items():
        if count:
            print(f"  {status:<17} {count}")
    for source, count in summary.source_breakdown.items():
        if count:
            print(f"  [{source}] {count}")
    print()
    print(f"Output file: {Path(output_path).absolute()}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
