"""
Batch orchestration: spreadsheet rows in, persisted outcomes and a summary out.

Each run opens its own HTTP client and token manager; nothing about
authentication is shared between runs.
"""

import asyncio
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import httpx

from config import KycSettings, app_config
from models import (
    BatchResult,
    BatchSummary,
    IdentifierType,
    MissingColumnsError,
    NormalizedRecord,
    OutcomeSource,
    SkippedRow,
    VerificationMode,
    VerificationOutcome,
    VerificationStatus,
)
from ingestion import SheetData, RecordBuilder, build_column_map, read_spreadsheet
from provider import AuthTokenManager, VerificationClient, VerificationPolicy
from security import FieldCipher, mask_for_log
from .persistence import OutcomeStore, secure_record

logger = logging.getLogger(__name__)

OutcomeCallback = Callable[[VerificationOutcome], None]


def next_batch_id(filename: str, existing_ids: Iterable[str]) -> str:
    """
    Batch id from the uploaded file name: sanitized stem plus a running index.

    >>> next_batch_id("pan list.xlsx", ["pan_list_1"])
    'pan_list_2'
    """
    base = re.sub(r"[^a-zA-Z0-9]", "_", Path(filename).stem) or "batch"
    existing = set(existing_ids)
    index = sum(1 for e in existing if e.startswith(f"{base}_")) + 1
    while f"{base}_{index}" in existing:
        index += 1
    return f"{base}_{index}"


class BatchOrchestrator:
    """
    Runs a verification batch.

    Steps:
    1. Map the header onto canonical fields (missing required columns abort)
    2. Build normalized records, collecting skipped rows
    3. Authenticate once up front, then verify through a bounded worker pool
    4. Encrypt and persist each outcome as it completes
    5. Summarize
    """

    def __init__(
        self,
        settings: KycSettings,
        cipher: FieldCipher,
        store: OutcomeStore,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.cipher = cipher
        self.store = store
        self.transport = transport

    def prepare(self, sheet: SheetData, identifier_type: IdentifierType):
        """
        Map columns and split rows into records and skipped rows.

        Raises:
            MissingColumnsError: If the header lacks a required column
        """
        column_map = build_column_map(sheet.headers, identifier_type)
        if column_map.missing:
            raise MissingColumnsError([f.value for f in column_map.missing], sheet.headers)

        builder = RecordBuilder(column_map, identifier_type)
        records: List[NormalizedRecord] = []
        skipped: List[SkippedRow] = []

        for row_number, row in enumerate(sheet.rows, start=1):
            built = builder.build(row_number, row)
            if isinstance(built, SkippedRow):
                skipped.append(built)
            else:
                records.append(built)

        logger.info(f"Prepared {len(records)} records, skipped {len(skipped)} of {sheet.total_rows} rows")
        return records, skipped

    async def run_batch(
        self,
        sheet: SheetData,
        batch_id: str,
        identifier_type: IdentifierType = IdentifierType.PAN,
        cancel_event: Optional[Any] = None,
        on_outcome: Optional[OutcomeCallback] = None,
    ) -> BatchResult:
        """
        Verify every acceptable row of a sheet.

        Args:
            sheet: Loaded spreadsheet
            batch_id: Identifier the persisted records are grouped under
            identifier_type: PAN or Aadhaar batch
            cancel_event: Any object with ``is_set()`` (threading.Event or
                asyncio.Event); once set, records not yet started are
                reported as cancelled
            on_outcome: Called with each outcome as soon as it is persisted

        Returns:
            BatchResult with outcomes ordered by row number

        Raises:
            MissingColumnsError: If required columns are absent
            AuthError: If the provider refuses to issue a token
        """
        started_at = datetime.now()
        records, skipped = self.prepare(sheet, identifier_type)
        mode = VerificationMode(self.settings.policy.mode)
        results: Dict[int, VerificationOutcome] = {}

        if records:
            async with httpx.AsyncClient(transport=self.transport) as http_client:
                token_manager = AuthTokenManager(self.settings.provider, http_client)
                client = VerificationClient(self.settings.provider, http_client, token_manager)
                policy = VerificationPolicy(client, token_manager, self.settings.policy)

                # Fail before any record is sent if we cannot authenticate
                await token_manager.get_token()

                queue: asyncio.Queue = asyncio.Queue()
                for record in records:
                    queue.put_nowait(record)

                worker_count = min(self.settings.policy.concurrency, len(records))
                logger.info(f"Batch {batch_id}: verifying {len(records)} records "
                            f"with {worker_count} workers ({mode.value} mode)")

                workers = [
                    asyncio.create_task(
                        self._worker(batch_id, policy, queue, results, cancel_event, on_outcome)
                    )
                    for _ in range(worker_count)
                ]
                try:
                    await asyncio.gather(*workers)
                except BaseException:
                    for worker in workers:
                        worker.cancel()
                    await asyncio.gather(*workers, return_exceptions=True)
                    raise

        outcomes = [results[n] for n in sorted(results)]
        cancelled = any(o.status == VerificationStatus.CANCELLED for o in outcomes)

        summary = BatchSummary.build(
            batch_id=batch_id,
            identifier_type=identifier_type,
            mode=mode,
            total_rows=sheet.total_rows,
            outcomes=outcomes,
            skipped=skipped,
            cancelled=cancelled,
            started_at=started_at,
        )

        logger.info(f"Batch {batch_id} finished: statuses={summary.status_breakdown}, "
                    f"sources={summary.source_breakdown}, skipped={summary.skipped_rows}")

        return BatchResult(summary=summary, outcomes=outcomes, skipped=skipped)

    async def _worker(
        self,
        batch_id: str,
        policy: VerificationPolicy,
        queue: asyncio.Queue,
        results: Dict[int, VerificationOutcome],
        cancel_event: Optional[Any],
        on_outcome: Optional[OutcomeCallback],
    ):
        while True:
            try:
                record = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            if cancel_event is not None and cancel_event.is_set():
                outcome = VerificationOutcome(
                    row_number=record.row_number,
                    status=VerificationStatus.CANCELLED,
                    source=OutcomeSource.PROVIDER,
                    error_message="Batch cancelled before verification",
                )
            else:
                outcome = await policy.verify_with_policy(record)

            self._persist(batch_id, record, outcome)
            results[record.row_number] = outcome

            if on_outcome is not None:
                on_outcome(outcome)

    def _persist(self, batch_id: str, record: NormalizedRecord, outcome: VerificationOutcome):
        secure = secure_record(batch_id, record, outcome, self.cipher)
        record_id = self.store.save(secure)
        outcome.record_id = record_id
        secure.outcome.record_id = record_id

        masked = mask_for_log(record.identifier_primary, app_config.mask_sensitive_data)
        logger.info(f"Row {record.row_number} ({masked}): {outcome.status.value} "
                    f"[{outcome.source.value}] -> {record_id}")


async def process_file(
    path: Union[Path, str],
    settings: KycSettings,
    cipher: FieldCipher,
    store: OutcomeStore,
    identifier_type: IdentifierType = IdentifierType.PAN,
    batch_id: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BatchResult:
    """Read a spreadsheet from disk and run it as one batch."""
    path = Path(path)
    sheet = read_spreadsheet(path)
    batch_id = batch_id or next_batch_id(path.name, store.batch_ids())

    orchestrator = BatchOrchestrator(settings, cipher, store, transport=transport)
    return await orchestrator.run_batch(sheet, batch_id, identifier_type)
