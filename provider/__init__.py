"""Verification provider: authentication, calls, retries and fallback."""

from .auth import AuthTokenManager, TokenState, extract_access_token, extract_expires_in
from .client import VerificationClient, format_provider_date, map_provider_status
from .simulation import simulate_outcome
from .policy import VerificationPolicy

__all__ = [
    "AuthTokenManager",
    "TokenState",
    "extract_access_token",
    "extract_expires_in",
    "VerificationClient",
    "format_provider_date",
    "map_provider_status",
    "simulate_outcome",
    "VerificationPolicy",
]
