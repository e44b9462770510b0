import httpx
import pytest

from carrier_gateway.core.exceptions import CarrierAPIError, CarrierErrorKind
from carrier_gateway.core.http_client import CarrierHTTPClient, parse_payload


def make_client(handler) -> CarrierHTTPClient:
    return CarrierHTTPClient(
        carrier="DHL_EXPRESS",
        base_url="https://express.api.dhl.com/mydhlapi",
        default_timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_non_success_status_is_returned_to_caller():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"title": "Server error"})

    async with make_client(handler) as client:
        response = await client.post("/shipments", json={})

    assert response.status_code == 500


@pytest.mark.asyncio
@pytest.mark.parametrize("exc_type,kind", [
    (httpx.ConnectError, CarrierErrorKind.UNREACHABLE),
    (httpx.ConnectTimeout, CarrierErrorKind.UNREACHABLE),
    (httpx.ReadTimeout, CarrierErrorKind.TIMEOUT),
    (httpx.WriteTimeout, CarrierErrorKind.TIMEOUT),
    (httpx.PoolTimeout, CarrierErrorKind.TIMEOUT),
    (httpx.RemoteProtocolError, CarrierErrorKind.TIMEOUT),
])
async def test_transport_failures_are_classified(exc_type, kind):
    """Only failures before the request left count as unreachable."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise exc_type("boom", request=request)

    client = make_client(handler)
    with pytest.raises(CarrierAPIError) as exc_info:
        await client.get("/rates")
    await client.close()

    assert exc_info.value.kind == kind
    assert exc_info.value.carrier == "DHL_EXPRESS"


@pytest.mark.asyncio
async def test_per_call_timeout_overrides_default():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.extensions["timeout"])
        return httpx.Response(200, json={})

    async with make_client(handler) as client:
        await client.get("/rates")
        await client.post("/shipments", timeout=60.0, json={})

    assert seen[0]["read"] == 5.0
    assert seen[1]["read"] == 60.0


def test_parse_payload_falls_back_to_text():
    response = httpx.Response(502, text="<html>Bad Gateway</html>")
    assert parse_payload(response) == {"raw": "<html>Bad Gateway</html>"}


def test_host_property():
    client = make_client(lambda request: httpx.Response(200))
    assert client.host == "express.api.dhl.com"
