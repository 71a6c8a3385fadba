"""
Persistence collaborator for verification outcomes.

The pipeline only ever hands over SecureVerificationRecords; plaintext
identifiers, names and provider responses never reach the store.
"""

import json
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from models import (
    NormalizedRecord,
    SecureVerificationRecord,
    VerificationOutcome,
    VerificationStatus,
)
from security import ENCRYPTED_PLACEHOLDER, FieldCipher, mask_identifier

logger = logging.getLogger(__name__)


class OutcomeStore(Protocol):
    """Anything that can persist encrypted outcomes."""

    def save(self, record: SecureVerificationRecord) -> str:
        ...

    def list_batch(self, batch_id: str) -> List[SecureVerificationRecord]:
        ...

    def batch_ids(self) -> List[str]:
        ...


class InMemoryOutcomeStore:
    """Process-local store keyed by generated record id."""

    def __init__(self):
        self._records: Dict[str, SecureVerificationRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: SecureVerificationRecord) -> str:
        record_id = str(uuid.uuid4())
        with self._lock:
            self._records[record_id] = record
        return record_id

    def get(self, record_id: str) -> SecureVerificationRecord:
        with self._lock:
            return self._records[record_id]

    def list_batch(self, batch_id: str) -> List[SecureVerificationRecord]:
        with self._lock:
            records = [r for r in self._records.values() if r.batch_id == batch_id]
        return sorted(records, key=lambda r: r.row_number)

    def batch_ids(self) -> List[str]:
        with self._lock:
            return sorted({r.batch_id for r in self._records.values()})

    def delete_batch(self, batch_id: str) -> int:
        """Remove a batch; returns the number of records dropped."""
        with self._lock:
            doomed = [k for k, r in self._records.items() if r.batch_id == batch_id]
            for key in doomed:
                del self._records[key]
        return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _encrypt_optional(cipher: FieldCipher, value: Optional[str]) -> Optional[str]:
    return cipher.encrypt(value) if value else None


def secure_record(
    batch_id: str,
    record: NormalizedRecord,
    outcome: VerificationOutcome,
    cipher: FieldCipher,
) -> SecureVerificationRecord:
    """
    Encrypt the sensitive parts of a record and its outcome.

    The raw provider response is serialized to JSON and encrypted; the
    outcome stored alongside carries no raw response.
    """
    provider_response = None
    if outcome.raw_provider_response is not None:
        provider_response = cipher.encrypt(json.dumps(outcome.raw_provider_response, default=str))

    return SecureVerificationRecord(
        batch_id=batch_id,
        row_number=record.row_number,
        identifier_type=record.identifier_type,
        identifier_encrypted=cipher.encrypt(record.identifier_primary),
        identifier_hash=FieldCipher.hash(record.identifier_primary),
        name_encrypted=cipher.encrypt(record.name),
        date_of_birth_encrypted=_encrypt_optional(cipher, record.date_of_birth),
        father_name_encrypted=_encrypt_optional(cipher, record.father_name),
        reason=record.reason,
        extra_fields=record.extra_fields,
        outcome=outcome.model_copy(update={"raw_provider_response": None}),
        provider_response_encrypted=provider_response,
    )


def to_display_row(record: SecureVerificationRecord, cipher: FieldCipher, mask: bool = True) -> Dict[str, Any]:
    """
    Flatten a stored record for display.

    Decryption failures show as the encrypted placeholder rather than raising.
    """
    identifier = cipher.decrypt_for_display(record.identifier_encrypted)
    if mask and identifier != ENCRYPTED_PLACEHOLDER:
        identifier = mask_identifier(identifier)

    outcome = record.outcome
    return {
        "record_id": outcome.record_id,
        "batch_id": record.batch_id,
        "row_number": record.row_number,
        "identifier_type": record.identifier_type.value,
        "identifier": identifier,
        "name": cipher.decrypt_for_display(record.name_encrypted),
        "date_of_birth": cipher.decrypt_for_display(record.date_of_birth_encrypted or ""),
        "father_name": cipher.decrypt_for_display(record.father_name_encrypted or ""),
        "reason": record.reason,
        "status": outcome.status.value,
        "source": outcome.source.value,
        "name_match": outcome.name_match,
        "dob_match": outcome.dob_match,
        "category": outcome.category,
        "aadhaar_seeding_status": outcome.aadhaar_seeding_status,
        "remarks": outcome.remarks,
        "transaction_id": outcome.transaction_id,
        "attempts": len(outcome.attempts),
        "processing_time_ms": outcome.processing_time_ms,
        "error_message": outcome.error_message,
        "stored_at": record.stored_at.isoformat(),
    }


def status_counts(records: Iterable[SecureVerificationRecord]) -> Dict[str, int]:
    """Number of stored records per verification status, zeros included."""
    counts = {status.value: 0 for status in VerificationStatus}
    for record in records:
        counts[record.outcome.status.value] += 1
    return counts


def verification_stats(store: OutcomeStore, since: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Status totals over every stored record, optionally only those stored since a time.

    Returns:
        Dict with ``total``, one count per status and ``success_rate`` (percent verified)
    """
    records = [
        r for batch_id in store.batch_ids() for r in store.list_batch(batch_id)
        if since is None or r.stored_at >= since
    ]
    counts = status_counts(records)
    total = len(records)
    success_rate = round(counts[VerificationStatus.VERIFIED.value] / total * 100, 2) if total else 0.0
    return {"total": total, **counts, "success_rate": success_rate}
