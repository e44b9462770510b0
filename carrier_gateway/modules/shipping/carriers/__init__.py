"""
Carrier Registry

- CarrierRegistry maps CarrierCode -> builder for a BaseCarrierClient
- Clients are built lazily on first resolve() and cached, one per carrier,
  so each carrier has exactly one credential provider per process
- The registry is an explicit value owned by the composition root;
  there is no module-level registration state
- Only enabled carriers are registered (see build_registry)
"""
import logging
from typing import Callable, Dict, Optional, Set

import httpx

from carrier_gateway.core.exceptions import UnsupportedCarrierError
from carrier_gateway.models.shipment import CarrierCode
from carrier_gateway.modules.shipping.auth import (
    OAuthClientCredentialsProvider,
    StaticCredentialProvider,
)
from carrier_gateway.modules.shipping.carriers.base import BaseCarrierClient
from carrier_gateway.modules.shipping.carriers.dhl import DHLCarrierClient
from carrier_gateway.modules.shipping.carriers.fedex import FedExCarrierClient

logger = logging.getLogger(__name__)

CarrierBuilder = Callable[[], BaseCarrierClient]


class CarrierRegistry:
    """
    Registry of carrier clients.

    Usage:
        registry = CarrierRegistry()
        registry.register(CarrierCode.DHL_EXPRESS, lambda: DHLCarrierClient(...))
        client = registry.resolve(CarrierCode.DHL_EXPRESS)
    """

    def __init__(self):
        self._builders: Dict[CarrierCode, CarrierBuilder] = {}
        self._clients: Dict[CarrierCode, BaseCarrierClient] = {}

    def register(self, code: CarrierCode, builder: CarrierBuilder) -> None:
        if code == CarrierCode.MANUAL:
            raise ValueError("MANUAL shipments are never booked through a carrier client")
        self._builders[code] = builder
        self._clients.pop(code, None)
        logger.info(f"Registered carrier: {code.value}")

    def resolve(self, code: CarrierCode) -> BaseCarrierClient:
        """Return the client for code. Raises UnsupportedCarrierError if not registered."""
        client = self._clients.get(code)
        if client:
            return client

        builder = self._builders.get(code)
        if builder is None:
            raise UnsupportedCarrierError(
                f"Carrier {getattr(code, 'value', code)} is not supported",
                carrier=getattr(code, "value", str(code)),
            )

        client = builder()
        self._clients[code] = client
        return client

    def list_supported(self) -> Set[CarrierCode]:
        return set(self._builders)

    def is_supported(self, code: CarrierCode) -> bool:
        return code in self._builders

    async def close(self) -> None:
        """Close every client built so far."""
        clients = list(self._clients.values())
        self._clients.clear()
        for client in clients:
            await client.close()


def build_registry(settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> CarrierRegistry:
    """
    Build the registry for the enabled carriers in settings.

    transport is forwarded to every HTTP client (tests inject a MockTransport).
    """
    registry = CarrierRegistry()

    if settings.DHL_ENABLED:
        def build_dhl() -> BaseCarrierClient:
            provider = StaticCredentialProvider(
                CarrierCode.DHL_EXPRESS,
                settings.DHL_USERNAME,
                settings.DHL_PASSWORD,
            )
            return DHLCarrierClient(
                provider=provider,
                account_number=settings.DHL_ACCOUNT_NUMBER,
                base_url=settings.dhl_base_url,
                rate_timeout=settings.CARRIER_RATE_TIMEOUT_SECONDS,
                booking_timeout=settings.CARRIER_BOOKING_TIMEOUT_SECONDS,
                label_template=settings.DHL_LABEL_TEMPLATE,
                transport=transport,
            )

        registry.register(CarrierCode.DHL_EXPRESS, build_dhl)

    if settings.FEDEX_ENABLED:
        def build_fedex() -> BaseCarrierClient:
            provider = OAuthClientCredentialsProvider(
                CarrierCode.FEDEX,
                base_url=settings.fedex_base_url,
                client_id=settings.FEDEX_CLIENT_ID,
                client_secret=settings.FEDEX_CLIENT_SECRET,
                timeout=settings.OAUTH_TOKEN_TIMEOUT_SECONDS,
                refresh_buffer_seconds=settings.OAUTH_REFRESH_BUFFER_SECONDS,
                transport=transport,
            )
            return FedExCarrierClient(
                provider=provider,
                account_number=settings.FEDEX_ACCOUNT_NUMBER,
                base_url=settings.fedex_base_url,
                rate_timeout=settings.CARRIER_RATE_TIMEOUT_SECONDS,
                booking_timeout=settings.CARRIER_BOOKING_TIMEOUT_SECONDS,
                label_stock_type=settings.FEDEX_LABEL_STOCK_TYPE,
                transport=transport,
            )

        registry.register(CarrierCode.FEDEX, build_fedex)

    logger.info(
        f"Carrier registry ready: {sorted(code.value for code in registry.list_supported()) or 'none'}"
    )
    return registry


__all__ = [
    "BaseCarrierClient",
    "CarrierRegistry",
    "DHLCarrierClient",
    "FedExCarrierClient",
    "build_registry",
]
