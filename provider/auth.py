"""
Bearer token lifecycle for the verification provider.

NoToken -> Authenticating -> Valid -> (TTL expiry | 401) -> NoToken

Only one authentication request is in flight at a time; concurrent callers
await the same request and receive the same token or the same AuthError.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

import httpx

from config import ProviderConfig
from models import AuthToken, AuthError

logger = logging.getLogger(__name__)


class TokenState(str, Enum):
    NO_TOKEN = "no_token"
    AUTHENTICATING = "authenticating"
    VALID = "valid"


def extract_access_token(body: Any) -> Optional[str]:
    """Accept both a top-level ``access_token`` and a nested ``data.access_token``."""
    if not isinstance(body, dict):
        return None
    token = body.get("access_token")
    if not token and isinstance(body.get("data"), dict):
        token = body["data"].get("access_token")
    return token or None


def extract_expires_in(body: Any) -> Optional[int]:
    """Provider-declared token lifetime in seconds, if any."""
    if not isinstance(body, dict):
        return None
    for container in (body, body.get("data")):
        if isinstance(container, dict) and container.get("expires_in"):
            try:
                return int(container["expires_in"])
            except (TypeError, ValueError):
                return None
    return None


def _provider_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)


class AuthTokenManager:
    """Obtains, caches and invalidates the provider bearer token."""

    def __init__(
        self,
        config: ProviderConfig,
        http_client: httpx.AsyncClient,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.config = config
        self.http_client = http_client
        self.clock = clock
        self._token: Optional[AuthToken] = None
        self._inflight: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self.authentication_count = 0

    @property
    def state(self) -> TokenState:
        if self._inflight is not None and not self._inflight.done():
            return TokenState.AUTHENTICATING
        if self._token is not None and not self._token.is_expired(self.clock()):
            return TokenState.VALID
        return TokenState.NO_TOKEN

    async def get_token(self) -> AuthToken:
        """
        Return a valid token, authenticating if none is cached.

        Raises:
            AuthError: If the provider does not issue a token
        """
        async with self._lock:
            token = self._token
            if token is not None and not token.is_expired(self.clock()):
                return token

            if token is not None:
                logger.info("Cached access token expired")
                self._token = None

            if self._inflight is None or self._inflight.done():
                self._inflight = asyncio.get_running_loop().create_task(self._authenticate())
            inflight = self._inflight

        try:
            return await inflight
        finally:
            if self._inflight is inflight and inflight.done():
                self._inflight = None

    def invalidate(self, token: AuthToken) -> None:
        """Forget the cached token if it is the one the provider rejected."""
        if self._token is not None and self._token.token == token.token:
            logger.info("Access token rejected by provider; re-authentication required")
            self._token = None

    async def _authenticate(self) -> AuthToken:
        self.authentication_count += 1
        logger.info("Authenticating with verification provider...")

        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "x-api-key": self.config.api_key.get_secret_value(),
            "x-api-secret": self.config.api_secret.get_secret_value(),
        }

        try:
            response = await self.http_client.post(
                f"{self.config.base_url}/authenticate",
                headers=headers,
                timeout=self.config.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise AuthError("Authentication timed out", provider_message=str(e)) from e
        except httpx.HTTPError as e:
            raise AuthError(f"Authentication request failed: {e}", provider_message=str(e)) from e

        if not response.is_success:
            message = _provider_message(response)
            logger.error(f"Provider authentication failed: status={response.status_code}")
            raise AuthError(
                f"Authentication failed: {response.status_code} - {message}",
                status_code=response.status_code,
                provider_message=message,
            )

        try:
            body: Dict[str, Any] = response.json()
        except ValueError as e:
            raise AuthError("Authentication response is not JSON",
                            status_code=response.status_code) from e

        access_token = extract_access_token(body)
        if not access_token:
            logger.error("No access token received from provider")
            raise AuthError("No access token received from authentication",
                            status_code=response.status_code)

        token = AuthToken(
            token=access_token,
            obtained_at=self.clock(),
            ttl_seconds=extract_expires_in(body) or self.config.token_ttl_seconds,
        )
        self._token = token
        logger.info(f"Provider authentication successful (ttl={token.ttl_seconds}s)")
        return token
