"""
DHL Express Carrier Client (MyDHL API)

- Basic-Auth via StaticCredentialProvider
- Every call carries a unique Message-Reference header
- Errors come back as {title, detail, status, additionalDetails}
"""
import logging
import uuid
from typing import Any, Dict, Optional

import httpx

from carrier_gateway.core.http_client import CarrierHTTPClient
from carrier_gateway.models.shipment import CarrierCode, ShipmentRequest
from carrier_gateway.modules.shipping.auth import CredentialProvider
from carrier_gateway.modules.shipping.carriers.base import BaseCarrierClient
from carrier_gateway.modules.shipping.transformers.dhl import DHLTransformer

logger = logging.getLogger(__name__)

DHL_TRACKING_URL = "https://www.dhl.com/en/express/tracking.html?AWB={}"


class DHLCarrierClient(BaseCarrierClient):
    """DHL Express rating and booking."""

    def __init__(
        self,
        provider: CredentialProvider,
        account_number: str,
        base_url: str,
        rate_timeout: float = 30.0,
        booking_timeout: float = 60.0,
        label_template: str = "ECOM26_84_001",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        http = CarrierHTTPClient(
            carrier=CarrierCode.DHL_EXPRESS.value,
            base_url=base_url,
            default_timeout=rate_timeout,
            default_headers={"Accept": "application/json"},
            transport=transport,
        )
        super().__init__(
            provider=provider,
            transformer=DHLTransformer(account_number, label_template=label_template),
            http=http,
            rate_timeout=rate_timeout,
            booking_timeout=booking_timeout,
        )

    @property
    def carrier_name(self) -> str:
        return "DHL"

    def tracking_url(self, tracking_number: str) -> str:
        return DHL_TRACKING_URL.format(tracking_number)

    def _request_headers(self, request: ShipmentRequest) -> Dict[str, str]:
        return {"Message-Reference": str(uuid.uuid4())}

    def _error_message(self, raw: Any, status_code: int) -> str:
        if isinstance(raw, dict) and (raw.get("detail") or raw.get("title")):
            message = raw.get("detail") or raw.get("title")
            extra = raw.get("additionalDetails") or []
            if extra:
                message = f"{message} ({'; '.join(str(item) for item in extra)})"
            return f"DHL {status_code}: {message}"
        return super()._error_message(raw, status_code)
