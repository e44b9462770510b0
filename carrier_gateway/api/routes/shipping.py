"""
Shipping API Routes

Provides endpoints for:
- Carrier discovery (registered carriers)
- Rate quoting
- Booking (with downstream sync) and booking lookup
- Manual resync of a booking whose downstream sync failed
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from carrier_gateway.api.deps import get_orchestrator, get_registry
from carrier_gateway.core.exceptions import (
    AuthError,
    BookingStateError,
    CarrierAPIError,
    CarrierErrorKind,
    CarrierGatewayError,
    DuplicateBookingError,
    ResponseParseError,
    ShipmentValidationError,
    UnsupportedCarrierError,
)
from carrier_gateway.modules.shipping.carriers import CarrierRegistry
from carrier_gateway.schemas.shipping import (
    BookingResponse,
    CarrierListResponse,
    RateListResponse,
    RateResponse,
    ShipmentRequestIn,
)
from carrier_gateway.services.booking_orchestrator import BookingOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/shipping", tags=["shipping"])


def _validation_exception(e: ShipmentValidationError) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail={"code": e.code, "message": e.message, "errors": e.errors},
    )


def _gateway_exception(status_code: int, e: CarrierGatewayError) -> HTTPException:
    """Surface a gateway error with its code, kind and raw carrier payload."""
    detail = e.to_dict()
    if isinstance(e, CarrierAPIError):
        detail["kind"] = e.kind.value
    return HTTPException(status_code=status_code, detail=detail)


def _to_domain(shipment: ShipmentRequestIn):
    try:
        return shipment.to_domain()
    except ShipmentValidationError as e:
        raise _validation_exception(e)


# ==================== Carrier Endpoints ====================


@router.get("/carriers", response_model=CarrierListResponse)
async def list_carriers(registry: CarrierRegistry = Depends(get_registry)):
    """Carriers with automated rating and booking."""
    return CarrierListResponse(carriers=sorted(registry.list_supported(), key=lambda code: code.value))


# ==================== Rate Endpoints ====================


@router.post("/rates", response_model=RateListResponse)
async def get_rates(
    shipment: ShipmentRequestIn,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Rate a shipment with its selected carrier."""
    request = _to_domain(shipment)

    try:
        quotes = await orchestrator.get_rates(request)
    except ShipmentValidationError as e:
        raise _validation_exception(e)
    except UnsupportedCarrierError as e:
        raise _gateway_exception(status.HTTP_400_BAD_REQUEST, e)
    except CarrierAPIError as e:
        if e.kind in (CarrierErrorKind.TIMEOUT, CarrierErrorKind.UNREACHABLE):
            raise _gateway_exception(status.HTTP_503_SERVICE_UNAVAILABLE, e)
        if e.kind == CarrierErrorKind.RATE_UNAVAILABLE and e.status_code is None:
            # Carrier answered successfully with no services
            raise _gateway_exception(status.HTTP_404_NOT_FOUND, e)
        raise _gateway_exception(status.HTTP_502_BAD_GATEWAY, e)
    except AuthError as e:
        logger.error(f"[BOOKING] Carrier authentication failed while rating {request.reference}: {e.message}")
        raise _gateway_exception(status.HTTP_502_BAD_GATEWAY, e)
    except ResponseParseError as e:
        raise _gateway_exception(status.HTTP_502_BAD_GATEWAY, e)

    return RateListResponse(
        reference=request.reference,
        carrier=request.carrier,
        rates=[RateResponse.from_domain(quote) for quote in quotes],
    )


# ==================== Booking Endpoints ====================


@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    shipment: ShipmentRequestIn,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """
    Book a shipment and sync it downstream.

    Carrier-side failures are reported in the record's state and error,
    not as HTTP errors: the record is the source of truth for what happened.
    """
    request = _to_domain(shipment)

    try:
        record = await orchestrator.book_shipment(request)
    except ShipmentValidationError as e:
        raise _validation_exception(e)
    except DuplicateBookingError as e:
        raise _gateway_exception(status.HTTP_409_CONFLICT, e)

    return BookingResponse.from_record(record)


@router.get("/bookings/{reference}", response_model=BookingResponse)
async def get_booking(
    reference: str,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    record = orchestrator.get_record(reference)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return BookingResponse.from_record(record)


@router.post("/bookings/{reference}/resync", response_model=BookingResponse)
async def resync_booking(
    reference: str,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Retry downstream sync for a booking in SYNC_FAILED. Never re-books."""
    if orchestrator.get_record(reference) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    try:
        record = await orchestrator.resync(reference)
    except BookingStateError as e:
        raise _gateway_exception(status.HTTP_409_CONFLICT, e)
    return BookingResponse.from_record(record)
