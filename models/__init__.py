"""Data models for the KYC batch verifier."""

from .kyc import (
    IdentifierType,
    CanonicalField,
    VerificationStatus,
    OutcomeSource,
    VerificationMode,
    AttemptOutcome,
    NormalizedRecord,
    SkippedRow,
    AuthToken,
    AttemptRecord,
    VerificationOutcome,
    SecureVerificationRecord,
    BatchSummary,
    BatchResult,
)
from .errors import (
    KycError,
    ConfigurationError,
    InvalidInputError,
    ValidationError,
    MissingColumnsError,
    UploadRejectedError,
    AuthError,
    TransientProviderError,
    TokenRejectedError,
    ProviderRejection,
    DecryptionError,
)

__all__ = [
    "IdentifierType",
    "CanonicalField",
    "VerificationStatus",
    "OutcomeSource",
    "VerificationMode",
    "AttemptOutcome",
    "NormalizedRecord",
    "SkippedRow",
    "AuthToken",
    "AttemptRecord",
    "VerificationOutcome",
    "SecureVerificationRecord",
    "BatchSummary",
    "BatchResult",
    "KycError",
    "ConfigurationError",
    "InvalidInputError",
    "ValidationError",
    "MissingColumnsError",
    "UploadRejectedError",
    "AuthError",
    "TransientProviderError",
    "TokenRejectedError",
    "ProviderRejection",
    "DecryptionError",
]
