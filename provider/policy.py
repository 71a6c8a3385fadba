"""
Retry and fallback policy around VerificationClient.

Transient failures are retried with exponential backoff. A 401 triggers one
re-authentication for the record; a second 401 ends the retries. What happens
once retries are exhausted depends on the configured mode:

    strict      -> outcome with status=error, source=provider
    simulation  -> deterministic placeholder, source=fallback_simulation
"""

import logging
import time
from datetime import datetime
from typing import List

from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config import PolicyConfig, app_config
from models import (
    AttemptOutcome,
    AttemptRecord,
    NormalizedRecord,
    OutcomeSource,
    VerificationMode,
    VerificationOutcome,
    VerificationStatus,
    ValidationError,
    ProviderRejection,
    TokenRejectedError,
    TransientProviderError,
)
from security import mask_for_log
from .auth import AuthTokenManager
from .client import VerificationClient
from .simulation import simulate_outcome

logger = logging.getLogger(__name__)


class VerificationPolicy:
    """Applies retries, re-authentication and the strict/simulation fallback."""

    def __init__(
        self,
        client: VerificationClient,
        token_manager: AuthTokenManager,
        config: PolicyConfig,
    ):
        self.client = client
        self.token_manager = token_manager
        self.config = config
        # Fixed for the lifetime of the policy so a run never mixes modes
        self.mode = VerificationMode(config.mode)

    def _retrying(self, attempts: List[AttemptRecord]) -> AsyncRetrying:
        def should_retry(exc: BaseException) -> bool:
            if isinstance(exc, TokenRejectedError):
                unauthorized = sum(1 for a in attempts if a.outcome == AttemptOutcome.UNAUTHORIZED)
                return unauthorized < 2
            return isinstance(exc, TransientProviderError)

        return AsyncRetrying(
            stop=stop_after_attempt(self.config.max_retries + 1),
            wait=wait_exponential(
                multiplier=self.config.backoff_seconds,
                max=self.config.backoff_max_seconds,
            ),
            retry=retry_if_exception(should_retry),
            reraise=True,
        )

    async def _attempt(self, record: NormalizedRecord, attempts: List[AttemptRecord]) -> VerificationOutcome:
        token = await self.token_manager.get_token()
        try:
            outcome = await self.client.verify(record, token)
        except TokenRejectedError as e:
            attempts.append(AttemptRecord(
                timestamp=datetime.now(),
                outcome=AttemptOutcome.UNAUTHORIZED,
                error_message=str(e),
                status_code=401,
            ))
            raise
        except TransientProviderError as e:
            attempts.append(AttemptRecord(
                timestamp=datetime.now(),
                outcome=AttemptOutcome.TIMEOUT if e.timeout else AttemptOutcome.FAILED,
                error_message=str(e),
                status_code=e.status_code,
            ))
            raise
        except ProviderRejection as e:
            attempts.append(AttemptRecord(
                timestamp=datetime.now(),
                outcome=AttemptOutcome.FAILED,
                error_message=str(e),
                status_code=e.status_code,
            ))
            raise

        attempts.append(AttemptRecord(timestamp=datetime.now(), outcome=AttemptOutcome.SUCCESS))
        return outcome

    async def verify_with_policy(self, record: NormalizedRecord) -> VerificationOutcome:
        """
        Verify a record, retrying transient failures.

        Args:
            record: Normalized record to verify

        Returns:
            VerificationOutcome carrying every attempt made

        Raises:
            AuthError: If no token can be obtained; fatal for the batch
        """
        started = time.monotonic()
        attempts: List[AttemptRecord] = []
        masked = mask_for_log(record.identifier_primary, app_config.mask_sensitive_data)

        try:
            async for attempt in self._retrying(attempts):
                with attempt:
                    outcome = await self._attempt(record, attempts)
        except ProviderRejection as e:
            outcome = VerificationOutcome(
                row_number=record.row_number,
                status=VerificationStatus.INVALID,
                source=OutcomeSource.PROVIDER,
                raw_provider_response=e.body or None,
                error_message=str(e),
            )
        except ValidationError as e:
            logger.warning(f"Row {record.row_number} ({masked}) rejected before sending: {e}")
            outcome = VerificationOutcome(
                row_number=record.row_number,
                status=VerificationStatus.INVALID,
                source=OutcomeSource.PROVIDER,
                error_message=str(e),
            )
        except TokenRejectedError as e:
            logger.error(f"Token rejected twice for row {record.row_number} ({masked})")
            outcome = VerificationOutcome(
                row_number=record.row_number,
                status=VerificationStatus.ERROR,
                source=OutcomeSource.PROVIDER,
                error_message=str(e),
            )
        except TransientProviderError as e:
            outcome = self._exhausted(record, e, masked)

        outcome.attempts = attempts
        outcome.processing_time_ms = round((time.monotonic() - started) * 1000, 2)
        return outcome

    def _exhausted(self, record: NormalizedRecord, error: TransientProviderError, masked: str) -> VerificationOutcome:
        if self.mode == VerificationMode.SIMULATION:
            logger.warning(f"Provider unavailable for row {record.row_number} ({masked}); "
                           f"using simulated result: {error}")
            outcome = simulate_outcome(record)
            outcome.error_message = str(error)
            return outcome

        logger.error(f"Verification failed for row {record.row_number} ({masked}): {error}")
        return VerificationOutcome(
            row_number=record.row_number,
            status=VerificationStatus.ERROR,
            source=OutcomeSource.PROVIDER,
            error_message=str(error),
        )
