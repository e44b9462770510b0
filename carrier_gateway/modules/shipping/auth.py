"""
Carrier Credential Providers

One provider per carrier per process. Two strategies:
- StaticCredentialProvider: precomputed Basic-Auth header, never expires (DHL Express)
- OAuthClientCredentialsProvider: client-credentials grant with expiry and
  single-flight refresh (FedEx)

Tokens live only in process memory and are never logged in clear.
Providers never retry; the carrier client owns the retry policy,
which each provider parameterizes through auth_retry_policy.
"""
import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import httpx

from carrier_gateway.core.exceptions import AuthError
from carrier_gateway.models.shipment import CarrierCode, Credential

logger = logging.getLogger(__name__)

OAUTH_TOKEN_PATH = "/oauth/token"
DEFAULT_REFRESH_BUFFER_SECONDS = 300


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def mask_secret(value: str, visible: int = 6) -> str:
    """Show only a short prefix of a secret for logs."""
    if not value:
        return "<empty>"
    return f"{value[:visible]}***"


@dataclass(frozen=True)
class AuthRetryPolicy:
    """How many times a call may be retried after an authentication rejection."""
    max_retries: int = 1


class CredentialProvider(ABC):
    """Produces a valid Authorization header value for one carrier."""

    auth_retry_policy: AuthRetryPolicy = AuthRetryPolicy()

    @property
    @abstractmethod
    def carrier(self) -> CarrierCode:
        pass

    @abstractmethod
    async def acquire(self) -> Credential:
        """Return a valid credential. Raises AuthError."""
        pass

    @abstractmethod
    def invalidate(self, rejected: Optional[Credential] = None) -> None:
        """
        Drop the cached credential so the next acquire() fetches a fresh one.

        When rejected is given, the cache is only cleared if it still holds
        that credential; a newer one fetched by a concurrent caller is kept.
        """
        pass

    async def close(self) -> None:
        """Release any resources held by the provider."""
        return None


class StaticCredentialProvider(CredentialProvider):
    """
    Basic-Auth credential computed once from configuration.

    acquire() is a pure function of (username, password); invalidate() is a
    no-op since a re-acquire would yield the same header.
    """

    def __init__(self, carrier: CarrierCode, username: str, password: str):
        if not username or not password:
            raise AuthError(
                f"{carrier.value} credentials are not configured",
                carrier=carrier.value,
            )
        self._carrier = carrier
        encoded = base64.b64encode(f"{username}:{password}".encode()).decode()
        self._credential = Credential(carrier=carrier, token=f"Basic {encoded}")

    @property
    def carrier(self) -> CarrierCode:
        return self._carrier

    async def acquire(self) -> Credential:
        return self._credential

    def invalidate(self, rejected: Optional[Credential] = None) -> None:
        logger.debug(f"[AUTH] {self._carrier.value}: static credential, nothing to invalidate")


class OAuthClientCredentialsProvider(CredentialProvider):
    """
    OAuth2 client-credentials provider with in-memory caching.

    - Cached token is reused until expiry minus refresh_buffer
    - Refresh is single-flight: concurrent callers share one token exchange
    - invalidate() forces a fresh exchange on the next acquire()
    """

    def __init__(
        self,
        carrier: CarrierCode,
        base_url: str,
        client_id: str,
        client_secret: str,
        timeout: float = 15.0,
        refresh_buffer_seconds: int = DEFAULT_REFRESH_BUFFER_SECONDS,
        clock: Callable[[], datetime] = utc_now,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token_path: str = OAUTH_TOKEN_PATH,
    ):
        self._carrier = carrier
        self._base_url = base_url.rstrip("/")
        self._client_id = client_id
        self._client_secret = client_secret
        self._timeout = timeout
        self._refresh_buffer = timedelta(seconds=refresh_buffer_seconds)
        self._clock = clock
        self._transport = transport
        self._token_path = token_path

        self._credential: Optional[Credential] = None
        self._lock = asyncio.Lock()
        self._http_client: Optional[httpx.AsyncClient] = None

    @property
    def carrier(self) -> CarrierCode:
        return self._carrier

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _cached(self) -> Optional[Credential]:
        credential = self._credential
        if credential and credential.is_valid(self._clock(), self._refresh_buffer):
            return credential
        return None

    async def acquire(self) -> Credential:
        credential = self._cached()
        if credential:
            return credential

        async with self._lock:
            # Another caller may have refreshed while we waited
            credential = self._cached()
            if credential:
                return credential

            self._credential = await self._exchange()
            return self._credential

    def invalidate(self, rejected: Optional[Credential] = None) -> None:
        if rejected is not None and self._credential is not rejected:
            logger.debug(f"[AUTH] {self._carrier.value}: Rejected token already replaced, keeping cache")
            return
        if self._credential:
            logger.info(f"[AUTH] {self._carrier.value}: Invalidating cached token")
        self._credential = None

    async def _exchange(self) -> Credential:
        """Perform the client-credentials token exchange."""
        carrier = self._carrier.value
        if not self._client_id or not self._client_secret:
            raise AuthError(f"{carrier} OAuth client credentials are not configured", carrier=carrier)

        client = self._get_http_client()
        logger.info(f"[AUTH] {carrier}: Requesting OAuth token for client {mask_secret(self._client_id)}")

        try:
            response = await client.post(
                self._token_path,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data={
                    "grant_type": "client_credentials",
                    "client_id": self._client_id,
                    "client_secret": self._client_secret,
                },
            )
        except httpx.TimeoutException as e:
            logger.error(f"[AUTH] {carrier}: Token request timed out after {self._timeout:.0f}s")
            raise AuthError(f"{carrier} token request timed out", cause=e, carrier=carrier) from e
        except httpx.RequestError as e:
            logger.error(f"[AUTH] {carrier}: Token request failed: {e}")
            raise AuthError(f"{carrier} token request failed: {e}", cause=e, carrier=carrier) from e

        if not response.is_success:
            try:
                raw = response.json()
            except ValueError:
                raw = {"raw": response.text[:500]}
            logger.error(f"[AUTH] {carrier}: Token endpoint returned {response.status_code}")
            raise AuthError(
                f"{carrier} token endpoint returned {response.status_code}",
                carrier=carrier,
                raw=raw,
                details={"status": response.status_code},
            )

        try:
            data = response.json()
            access_token = data["access_token"]
            expires_in = int(data["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            logger.error(f"[AUTH] {carrier}: Malformed token response")
            raise AuthError(
                f"{carrier} returned a malformed token response",
                cause=e,
                carrier=carrier,
                raw={"raw": response.text[:500]},
            ) from e

        if not isinstance(access_token, str) or not access_token:
            raise AuthError(f"{carrier} returned an empty access token", carrier=carrier)

        expires_at = self._clock() + timedelta(seconds=expires_in)
        logger.info(
            f"[AUTH] {carrier}: OAuth token {mask_secret(access_token)} obtained, "
            f"expires in {expires_in}s"
        )
        return Credential(carrier=self._carrier, token=f"Bearer {access_token}", expires_at=expires_at)
