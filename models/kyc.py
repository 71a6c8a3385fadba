"""
Data models for KYC batch verification.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Dict, Any, List

from pydantic import BaseModel, ConfigDict, Field


class IdentifierType(str, Enum):
    """Kind of identity document a batch verifies."""
    PAN = "pan"
    AADHAAR = "aadhaar"


class CanonicalField(str, Enum):
    """Canonical field identifiers that spreadsheet headers map onto."""
    PAN_NUMBER = "panNumber"
    AADHAAR_NUMBER = "aadhaarNumber"
    NAME = "name"
    DATE_OF_BIRTH = "dateOfBirth"
    REASON = "reason"
    FATHER_NAME = "fatherName"
    GENDER = "gender"


class VerificationStatus(str, Enum):
    """Per-record verification status."""
    VERIFIED = "verified"
    MISMATCHED = "mismatched"
    INVALID = "invalid"
    PENDING = "pending"
    ERROR = "error"
    CANCELLED = "cancelled"


class OutcomeSource(str, Enum):
    """Where an outcome came from."""
    PROVIDER = "provider"
    FALLBACK_SIMULATION = "fallback_simulation"


class VerificationMode(str, Enum):
    """How the pipeline behaves once provider retries are exhausted."""
    STRICT = "strict"
    SIMULATION = "simulation"


class AttemptOutcome(str, Enum):
    """Result of a single provider call."""
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    UNAUTHORIZED = "unauthorized"


class NormalizedRecord(BaseModel):
    """One spreadsheet row after column mapping and validation."""
    row_number: int
    identifier_type: IdentifierType = IdentifierType.PAN
    identifier_primary: str = Field(min_length=1)
    name: str = Field(min_length=1)
    date_of_birth: Optional[str] = None
    reason: Optional[str] = None
    gender: Optional[str] = None
    father_name: Optional[str] = None

    # Optional columns passed through unmodified
    extra_fields: Dict[str, Any] = Field(default_factory=dict)


class SkippedRow(BaseModel):
    """A row that never reached the provider."""
    row_number: int
    reason: str
    raw: Dict[str, Any] = Field(default_factory=dict)


class AuthToken(BaseModel):
    """Bearer token issued by the provider."""
    model_config = ConfigDict(frozen=True)

    token: str
    obtained_at: datetime
    ttl_seconds: int

    @property
    def expires_at(self) -> datetime:
        return self.obtained_at + timedelta(seconds=self.ttl_seconds)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class AttemptRecord(BaseModel):
    """One provider call made for a record."""
    timestamp: datetime
    outcome: AttemptOutcome
    error_message: Optional[str] = None
    status_code: Optional[int] = None


class VerificationOutcome(BaseModel):
    """Result of verifying one record."""
    row_number: int
    status: VerificationStatus
    source: OutcomeSource = OutcomeSource.PROVIDER
    raw_provider_response: Optional[Dict[str, Any]] = None
    attempts: List[AttemptRecord] = Field(default_factory=list)
    processing_time_ms: float = 0.0

    # Provider detail flags
    name_match: Optional[bool] = None
    dob_match: Optional[bool] = None
    remarks: Optional[str] = None
    category: Optional[str] = None
    aadhaar_seeding_status: Optional[str] = None
    transaction_id: Optional[str] = None

    error_message: Optional[str] = None
    record_id: Optional[str] = None


class SecureVerificationRecord(BaseModel):
    """What the persistence collaborator receives: sensitive fields encrypted."""
    batch_id: str
    row_number: int
    identifier_type: IdentifierType
    identifier_encrypted: str
    identifier_hash: str
    name_encrypted: str
    date_of_birth_encrypted: Optional[str] = None
    father_name_encrypted: Optional[str] = None
    reason: Optional[str] = None
    extra_fields: Dict[str, Any] = Field(default_factory=dict)

    # Outcome with raw_provider_response moved into provider_response_encrypted
    outcome: VerificationOutcome
    provider_response_encrypted: Optional[str] = None
    stored_at: datetime = Field(default_factory=datetime.now)


def _empty_breakdown(enum_cls) -> Dict[str, int]:
    return {member.value: 0 for member in enum_cls}


class BatchSummary(BaseModel):
    """Aggregate over one batch run. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    batch_id: str
    identifier_type: IdentifierType
    mode: VerificationMode
    total_rows: int
    accepted_records: int
    skipped_rows: int
    source_breakdown: Dict[str, int] = Field(default_factory=lambda: _empty_breakdown(OutcomeSource))
    status_breakdown: Dict[str, int] = Field(default_factory=lambda: _empty_breakdown(VerificationStatus))
    cancelled: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @classmethod
    def build(
        cls,
        batch_id: str,
        identifier_type: IdentifierType,
        mode: VerificationMode,
        total_rows: int,
        outcomes: List[VerificationOutcome],
        skipped: List[SkippedRow],
        cancelled: bool = False,
        started_at: Optional[datetime] = None,
    ) -> "BatchSummary":
        """Count outcomes per source and status; every category is reported."""
        sources = _empty_breakdown(OutcomeSource)
        statuses = _empty_breakdown(VerificationStatus)
        for outcome in outcomes:
            sources[outcome.source.value] += 1
            statuses[outcome.status.value] += 1

        return cls(
            batch_id=batch_id,
            identifier_type=identifier_type,
            mode=mode,
            total_rows=total_rows,
            accepted_records=len(outcomes),
            skipped_rows=len(skipped),
            source_breakdown=sources,
            status_breakdown=statuses,
            cancelled=cancelled,
            started_at=started_at,
            finished_at=datetime.now(),
        )


class BatchResult(BaseModel):
    """Result of a batch run."""
    summary: BatchSummary
    outcomes: List[VerificationOutcome] = Field(default_factory=list)
    skipped: List[SkippedRow] = Field(default_factory=list)
