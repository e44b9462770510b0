"""
HTTP Transport for Carrier API Calls

- One httpx.AsyncClient per carrier client, opened lazily, closed explicitly
- Per-call timeout bound (rate and booking calls use different bounds)
- Transport failures are classified, never retried here:
    * connect error / connect timeout -> UNREACHABLE (request never sent)
    * read / write / pool timeout     -> TIMEOUT (outcome unknown)
    * connection lost mid-response    -> TIMEOUT (outcome unknown)

Retrying is the carrier client's decision. A silent retry after a
timed-out booking risks a duplicate carrier-side shipment.
"""
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from carrier_gateway.core.exceptions import CarrierAPIError, CarrierErrorKind

logger = logging.getLogger(__name__)


def parse_payload(response: httpx.Response) -> Any:
    """Return the response body as JSON when possible, else truncated text."""
    try:
        return response.json()
    except ValueError:
        return {"raw": response.text[:2000]}


class CarrierHTTPClient:
    """
    Async HTTP client shared by a single carrier client.

    Usage:
        async with CarrierHTTPClient("DHL_EXPRESS", base_url) as http:
            response = await http.request("POST", "/shipments", timeout=60.0, json=body)
    """

    def __init__(
        self,
        carrier: str,
        base_url: str,
        default_timeout: float = 30.0,
        default_headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.carrier = carrier
        self.base_url = base_url.rstrip("/")
        self.default_timeout = default_timeout
        self.default_headers = default_headers or {}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.init()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def init(self):
        """Initialize client without context manager. Must call close() when done."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.default_timeout,
                headers=self.default_headers,
                transport=self._transport,
            )
        return self

    async def close(self):
        """Close the client. Use this when not using context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def host(self) -> str:
        return urlparse(self.base_url).netloc

    async def request(
        self,
        method: str,
        path: str,
        timeout: Optional[float] = None,
        **kwargs,
    ) -> httpx.Response:
        """
        Issue one HTTP request. Any status code is returned to the caller.

        Raises:
            CarrierAPIError(kind=UNREACHABLE): connection could not be established
            CarrierAPIError(kind=TIMEOUT): request sent, no answer within bound
        """
        if not self._client:
            await self.init()

        bound = timeout if timeout is not None else self.default_timeout
        logger.debug(f"[HTTP] {self.carrier} {method} {path} (timeout {bound:.0f}s)")

        try:
            response = await self._client.request(method, path, timeout=bound, **kwargs)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            logger.error(f"[HTTP] {self.host}: Connection failed for {method} {path}: {e}")
            raise CarrierAPIError(
                message=f"{self.carrier} unreachable: {e}",
                kind=CarrierErrorKind.UNREACHABLE,
                carrier=self.carrier,
            ) from e
        except httpx.TimeoutException as e:
            logger.error(
                f"[HTTP] {self.host}: No response to {method} {path} within {bound:.0f}s - "
                f"outcome unknown"
            )
            raise CarrierAPIError(
                message=f"{self.carrier} did not respond within {bound:.0f}s",
                kind=CarrierErrorKind.TIMEOUT,
                carrier=self.carrier,
            ) from e
        except (httpx.ReadError, httpx.RemoteProtocolError) as e:
            # Connection dropped after the request went out; treat like a timeout
            logger.error(
                f"[HTTP] {self.host}: Connection lost during {method} {path}: {e} - outcome unknown"
            )
            raise CarrierAPIError(
                message=f"{self.carrier} connection lost before a response was received",
                kind=CarrierErrorKind.TIMEOUT,
                carrier=self.carrier,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"[HTTP] {self.host}: Request failed for {method} {path}: {e}")
            raise CarrierAPIError(
                message=f"{self.carrier} request failed: {e}",
                kind=CarrierErrorKind.UNREACHABLE,
                carrier=self.carrier,
            ) from e

        logger.debug(f"[HTTP] {self.carrier} {method} {path} -> {response.status_code}")
        return response

    async def get(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs) -> httpx.Response:
        return await self.request("POST", path, **kwargs)
