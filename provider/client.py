"""
Single verification call against the KYC provider.
"""

import logging
from typing import Any, Dict

import httpx

from config import ProviderConfig, app_config
from models import (
    AuthToken,
    IdentifierType,
    NormalizedRecord,
    OutcomeSource,
    VerificationOutcome,
    VerificationStatus,
    ValidationError,
    TransientProviderError,
    TokenRejectedError,
    ProviderRejection,
)
from security import mask_for_log
from validation import parse_date_of_birth
from .auth import AuthTokenManager

logger = logging.getLogger(__name__)

VERIFY_PATHS = {
    IdentifierType.PAN: "/kyc/pan/verify",
    IdentifierType.AADHAAR: "/kyc/aadhaar/verify",
}

# Match flags reported by the provider, per identifier type
MATCH_FLAGS = {
    IdentifierType.PAN: ["name_as_per_pan_match", "date_of_birth_match"],
    IdentifierType.AADHAAR: ["name_as_per_aadhaar_match", "date_of_birth_match", "gender_match"],
}


def format_provider_date(value: str) -> str:
    """
    Convert a date of birth to the provider's dd/mm/yyyy wire format.

    >>> format_provider_date("1990-03-01")
    '01/03/1990'

    Raises:
        ValidationError: If the value cannot be parsed
    """
    return parse_date_of_birth(value).strftime("%d/%m/%Y")


def map_provider_status(identifier_type: IdentifierType, payload: Dict[str, Any]) -> VerificationStatus:
    """Map the provider status and match flags onto a verification status."""
    if str(payload.get("status", "")).lower() != "valid":
        return VerificationStatus.INVALID

    flags = [payload.get(name) for name in MATCH_FLAGS[identifier_type]]
    reported = [flag for flag in flags if flag is not None]
    if all(bool(flag) for flag in reported):
        return VerificationStatus.VERIFIED
    return VerificationStatus.MISMATCHED


class VerificationClient:
    """Issues one verification request per call; no retries here."""

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        token_manager: AuthTokenManager,
    ):
        self.config = config
        self.http_client = http_client
        self.token_manager = token_manager

    def build_request_body(self, record: NormalizedRecord) -> Dict[str, Any]:
        """Provider request body for a record."""
        reason = record.reason or self.config.default_reason

        if record.identifier_type == IdentifierType.AADHAAR:
            body = {
                "@entity": self.config.aadhaar_entity,
                "aadhaar_number": record.identifier_primary.replace(" ", ""),
                "name_as_per_aadhaar": record.name.strip(),
                "consent": "Y",
                "reason": reason,
            }
            if record.gender:
                body["gender"] = record.gender.strip().upper()[:1]
            if record.date_of_birth:
                body["date_of_birth"] = format_provider_date(record.date_of_birth)
            return body

        if not record.date_of_birth:
            raise ValidationError("Date of birth is required for PAN verification", field="date_of_birth")

        return {
            "@entity": self.config.pan_entity,
            "pan": record.identifier_primary.upper(),
            "name_as_per_pan": record.name.strip(),
            "date_of_birth": format_provider_date(record.date_of_birth),
            "consent": "Y",
            "reason": reason,
        }

    def build_headers(self, token: AuthToken) -> Dict[str, str]:
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "authorization": token.token,
            "x-api-key": self.config.api_key.get_secret_value(),
        }
        if self.config.accept_cache:
            headers["x-accept-cache"] = "true"
        return headers

    async def verify(self, record: NormalizedRecord, token: AuthToken) -> VerificationOutcome:
        """
        Verify one record.

        Args:
            record: Normalized record to verify
            token: Bearer token from the AuthTokenManager

        Returns:
            VerificationOutcome with status verified, mismatched or invalid

        Raises:
            ValidationError: If the record cannot be formatted for the provider
            TokenRejectedError: On 401; the token is invalidated first
            TransientProviderError: On timeouts, connection errors, 429 and 5xx
            ProviderRejection: On any other 4xx
        """
        body = self.build_request_body(record)
        path = VERIFY_PATHS[record.identifier_type]
        masked = mask_for_log(record.identifier_primary, app_config.mask_sensitive_data)

        logger.debug(f"Verifying row {record.row_number} ({masked}) via {path}")

        try:
            response = await self.http_client.post(
                f"{self.config.base_url}{path}",
                json=body,
                headers=self.build_headers(token),
                timeout=self.config.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"Provider request timed out: {e}", timeout=True) from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"Provider connection failed: {e}") from e

        if response.status_code == 401:
            self.token_manager.invalidate(token)
            raise TokenRejectedError()

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(
                f"Provider returned {response.status_code}",
                status_code=response.status_code,
            )

        data = self._json_body(response)

        if not response.is_success:
            message = data.get("message") or data.get("error") or response.reason_phrase
            logger.warning(f"Provider rejected row {record.row_number} ({masked}): "
                           f"{response.status_code} {message}")
            raise ProviderRejection(
                f"Verification failed: {response.status_code} - {message}",
                status_code=response.status_code,
                body=data,
            )

        return self._to_outcome(record, data)

    @staticmethod
    def _json_body(response: httpx.Response) -> Dict[str, Any]:
        try:
            data = response.json()
        except ValueError:
            if response.is_success:
                raise TransientProviderError("Provider returned a non-JSON response",
                                             status_code=response.status_code)
            return {}
        return data if isinstance(data, dict) else {"data": data}

    def _to_outcome(self, record: NormalizedRecord, body: Dict[str, Any]) -> VerificationOutcome:
        payload = body.get("data") if isinstance(body.get("data"), dict) else body
        status = map_provider_status(record.identifier_type, payload)

        name_flag = MATCH_FLAGS[record.identifier_type][0]
        return VerificationOutcome(
            row_number=record.row_number,
            status=status,
            source=OutcomeSource.PROVIDER,
            raw_provider_response=body,
            name_match=payload.get(name_flag),
            dob_match=payload.get("date_of_birth_match"),
            remarks=payload.get("remarks"),
            category=payload.get("category"),
            aadhaar_seeding_status=payload.get("aadhaar_seeding_status"),
            transaction_id=body.get("transaction_id"),
        )
