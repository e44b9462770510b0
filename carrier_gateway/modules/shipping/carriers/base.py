"""
Base Carrier Client

Composes the three per-carrier pieces:
- CredentialProvider: produces the Authorization header
- CarrierTransformer: canonical <-> wire format
- CarrierHTTPClient: transport with timeout classification

Retry policy (single place, _execute):
- An authentication rejection (401) invalidates the credential and the call
  is retried up to provider.auth_retry_policy.max_retries times
- Nothing else is retried: not 429, not 4xx validation, not timeouts
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List

from carrier_gateway.core.exceptions import AuthError, CarrierAPIError, CarrierErrorKind
from carrier_gateway.core.http_client import CarrierHTTPClient, parse_payload
from carrier_gateway.models.shipment import (
    BookingResult,
    CarrierCode,
    RateQuote,
    ShipmentRequest,
)
from carrier_gateway.modules.shipping.auth import CredentialProvider
from carrier_gateway.modules.shipping.transformers.base import CarrierTransformer, WireRequest

logger = logging.getLogger(__name__)


class BaseCarrierClient(ABC):
    """
    Abstract base class for carrier API clients.

    All carriers expose get_rates() and book_shipment() over the canonical
    model. Subclasses supply headers, error-message extraction and the
    public tracking URL.
    """

    auth_rejection_statuses: FrozenSet[int] = frozenset({401})

    def __init__(
        self,
        provider: CredentialProvider,
        transformer: CarrierTransformer,
        http: CarrierHTTPClient,
        rate_timeout: float = 30.0,
        booking_timeout: float = 60.0,
    ):
        self.provider = provider
        self.transformer = transformer
        self.http = http
        self.rate_timeout = rate_timeout
        self.booking_timeout = booking_timeout

    @property
    def carrier_code(self) -> CarrierCode:
        return self.transformer.carrier

    @property
    @abstractmethod
    def carrier_name(self) -> str:
        """Return the human-readable carrier name."""
        pass

    @abstractmethod
    def tracking_url(self, tracking_number: str) -> str:
        pass

    @abstractmethod
    def _request_headers(self, request: ShipmentRequest) -> Dict[str, str]:
        """Carrier-specific headers sent with every API call (never Authorization)."""
        pass

    def _error_message(self, raw: Any, status_code: int) -> str:
        return f"{self.carrier_name} returned HTTP {status_code}"

    async def close(self):
        await self.http.close()
        await self.provider.close()

    # ==================== Operations ====================

    async def get_rates(self, request: ShipmentRequest) -> List[RateQuote]:
        """
        Rate a shipment.

        Returns [] when the carrier answers successfully with no services.

        Raises:
            AuthError, CarrierAPIError(RATE_UNAVAILABLE | TIMEOUT | UNREACHABLE),
            ResponseParseError
        """
        wire = self.transformer.to_rate_request(request)
        payload = await self._execute(wire, request, self.rate_timeout, CarrierErrorKind.RATE_UNAVAILABLE)
        quotes = self.transformer.from_rate_response(payload, request)
        logger.info(f"[{self.carrier_name}] {len(quotes)} rate(s) for {request.reference}")
        return quotes

    async def book_shipment(self, request: ShipmentRequest) -> BookingResult:
        """
        Book a shipment.

        Raises:
            AuthError, CarrierAPIError(BOOKING_REJECTED | TIMEOUT | UNREACHABLE),
            ResponseParseError
        """
        wire = self.transformer.to_booking_request(request)
        payload = await self._execute(wire, request, self.booking_timeout, CarrierErrorKind.BOOKING_REJECTED)
        result = self.transformer.from_booking_response(payload)
        if result.tracking_number and not result.tracking_url:
            result.tracking_url = self.tracking_url(result.tracking_number)
        logger.info(
            f"[{self.carrier_name}] Booked {request.reference}: {result.tracking_number} "
            f"({len(result.package_tracking_numbers)} package(s), {len(result.documents)} document(s))"
        )
        return result

    # ==================== Transport ====================

    async def _execute(
        self,
        wire: WireRequest,
        request: ShipmentRequest,
        timeout: float,
        failure_kind: CarrierErrorKind,
    ) -> Any:
        """Send one wire request with credential handling; return the parsed success payload."""
        retries_left = self.provider.auth_retry_policy.max_retries

        while True:
            credential = await self.provider.acquire()
            headers = {
                **self._request_headers(request),
                **wire.headers,
                "Authorization": credential.token,
            }

            response = await self.http.request(
                wire.method,
                wire.path,
                timeout=timeout,
                params=wire.params,
                json=wire.json,
                headers=headers,
            )

            if response.status_code in self.auth_rejection_statuses:
                if retries_left > 0:
                    retries_left -= 1
                    logger.warning(
                        f"[{self.carrier_name}] {wire.method} {wire.path} rejected with "
                        f"{response.status_code}, refreshing credential and retrying"
                    )
                    self.provider.invalidate(credential)
                    continue
                raw = parse_payload(response)
                logger.error(
                    f"[{self.carrier_name}] {wire.method} {wire.path} rejected with "
                    f"{response.status_code} after credential refresh"
                )
                raise AuthError(
                    f"{self.carrier_name} rejected the credential ({response.status_code})",
                    carrier=self.carrier_code.value,
                    raw=raw,
                    details={"status": response.status_code},
                )

            if not response.is_success:
                raw = parse_payload(response)
                message = self._error_message(raw, response.status_code)
                logger.error(f"[{self.carrier_name}] {wire.method} {wire.path} failed: {message}")
                raise CarrierAPIError(
                    message=message,
                    kind=failure_kind,
                    status_code=response.status_code,
                    carrier=self.carrier_code.value,
                    raw=raw,
                )

            return parse_payload(response)
