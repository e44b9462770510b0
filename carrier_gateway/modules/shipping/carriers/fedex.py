"""
FedEx Carrier Client (FedEx REST API)

- OAuth2 client-credentials via OAuthClientCredentialsProvider
- x-customer-transaction-id carries the idempotency reference so carrier
  logs can be matched to bookings
"""
import logging
from typing import Any, Dict, Optional

import httpx

from carrier_gateway.core.http_client import CarrierHTTPClient
from carrier_gateway.models.shipment import CarrierCode, ShipmentRequest
from carrier_gateway.modules.shipping.auth import CredentialProvider
from carrier_gateway.modules.shipping.carriers.base import BaseCarrierClient
from carrier_gateway.modules.shipping.transformers.fedex import FedExTransformer

logger = logging.getLogger(__name__)

FEDEX_TRACKING_URL = "https://www.fedex.com/fedextrack/?trknbr={}"


class FedExCarrierClient(BaseCarrierClient):
    """FedEx rating and booking."""

    def __init__(
        self,
        provider: CredentialProvider,
        account_number: str,
        base_url: str,
        rate_timeout: float = 30.0,
        booking_timeout: float = 60.0,
        label_stock_type: str = "PAPER_85X11_TOP_HALF_LABEL",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        http = CarrierHTTPClient(
            carrier=CarrierCode.FEDEX.value,
            base_url=base_url,
            default_timeout=rate_timeout,
            default_headers={"Content-Type": "application/json"},
            transport=transport,
        )
        super().__init__(
            provider=provider,
            transformer=FedExTransformer(account_number, label_stock_type=label_stock_type),
            http=http,
            rate_timeout=rate_timeout,
            booking_timeout=booking_timeout,
        )

    @property
    def carrier_name(self) -> str:
        return "FEDEX"

    def tracking_url(self, tracking_number: str) -> str:
        return FEDEX_TRACKING_URL.format(tracking_number)

    def _request_headers(self, request: ShipmentRequest) -> Dict[str, str]:
        return {
            "X-locale": "en_US",
            "x-customer-transaction-id": request.reference,
        }

    def _error_message(self, raw: Any, status_code: int) -> str:
        errors = raw.get("errors") if isinstance(raw, dict) else None
        if errors:
            parts = [
                f"{error.get('code', 'ERROR')}: {error.get('message', '')}".strip()
                for error in errors
                if isinstance(error, dict)
            ]
            if parts:
                return f"FedEx {status_code}: {'; '.join(parts)}"
        return super()._error_message(raw, status_code)
