"""
Error taxonomy for the KYC batch verifier.

Only ConfigurationError, AuthError and MissingColumnsError are fatal for a
batch; every other error is confined to the record it happened on.
"""

from typing import List, Optional


class KycError(Exception):
    """Base class for all errors raised by the pipeline."""


class ConfigurationError(KycError):
    """A required secret or setting is missing or invalid."""


class InvalidInputError(KycError):
    """A value handed to a component is empty or of the wrong type."""


class ValidationError(KycError):
    """A row or value failed validation; the row is skipped."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class MissingColumnsError(ValidationError):
    """The spreadsheet header lacks required columns; the upload is aborted."""

    def __init__(self, missing: List[str], found: List[str]):
        super().__init__(f"Missing required columns: {', '.join(missing)}")
        self.missing = list(missing)
        self.found = list(found)


class UploadRejectedError(ValidationError):
    """The uploaded file has the wrong type, size or no data."""


class AuthError(KycError):
    """A bearer token could not be obtained from the provider."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 provider_message: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.provider_message = provider_message


class TransientProviderError(KycError):
    """Timeout, connection failure or 5xx from the provider; retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None, timeout: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.timeout = timeout


class TokenRejectedError(TransientProviderError):
    """The provider answered 401 to a verification call."""

    def __init__(self, message: str = "Access token rejected by provider"):
        super().__init__(message, status_code=401)


class ProviderRejection(KycError):
    """4xx business rejection from the provider; recorded, not retried."""

    def __init__(self, message: str, status_code: int, body: Optional[dict] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body or {}


class DecryptionError(KycError):
    """Ciphertext is malformed or was produced with a different key."""
