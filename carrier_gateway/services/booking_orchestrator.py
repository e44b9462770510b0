"""
Booking Orchestrator

Drives one shipment through rating, booking and downstream synchronization.

Booking Flow:
1. Validate the shipment against the carrier's field rules
2. REVIEW_COMPLETED -> BOOKING_IN_PROGRESS
3. Book with the carrier (exactly once per attempt)
4. BOOKING_IN_PROGRESS -> BOOKED (tracking number present), or BOOKING_FAILED on a
   carrier rejection or exhausted auth retry
5. BOOKED -> SYNCING_DOWNSTREAM -> COMPLETE, or SYNC_FAILED

Rules:
- A timed-out or cancelled booking, or one whose 2xx answer cannot be parsed,
  stays BOOKING_IN_PROGRESS: the carrier may have created the shipment. It is
  resolved by reconcile(), never re-booked
- Sync failures are never retried automatically and never re-book
- Carriers without a registered client skip booking and go straight to sync
- There is no fallback to another carrier
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from carrier_gateway.core.exceptions import (
    AuthError,
    BookingStateError,
    CarrierAPIError,
    CarrierErrorKind,
    CarrierGatewayError,
    DuplicateBookingError,
    ResponseParseError,
)
from carrier_gateway.models.shipment import (
    BookingResult,
    BookingState,
    CarrierCode,
    RateQuote,
    ShipmentRequest,
)
from carrier_gateway.modules.shipping.carriers import CarrierRegistry
from carrier_gateway.modules.shipping.validation import ShipmentValidator
from carrier_gateway.services.collaborators import DownstreamSync, ShipmentRepository

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS: Dict[BookingState, frozenset] = {
    BookingState.REVIEW_COMPLETED: frozenset({
        BookingState.BOOKING_IN_PROGRESS,
        BookingState.SYNCING_DOWNSTREAM,  # manual / unregistered carrier
    }),
    BookingState.BOOKING_IN_PROGRESS: frozenset({
        BookingState.BOOKED,
        BookingState.BOOKING_FAILED,
    }),
    BookingState.BOOKED: frozenset({
        BookingState.SYNCING_DOWNSTREAM,
        BookingState.SYNC_FAILED,
    }),
    BookingState.SYNCING_DOWNSTREAM: frozenset({
        BookingState.COMPLETE,
        BookingState.SYNC_FAILED,
    }),
    BookingState.SYNC_FAILED: frozenset({
        BookingState.SYNCING_DOWNSTREAM,  # operator-triggered resync
    }),
    BookingState.COMPLETE: frozenset(),
    BookingState.BOOKING_FAILED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class StateChange:
    from_state: Optional[BookingState]
    to_state: BookingState
    at: datetime
    attempt: int


@dataclass
class BookingRecord:
    """In-memory lifecycle record for one idempotency reference."""
    reference: str
    carrier: CarrierCode
    state: BookingState = BookingState.REVIEW_COMPLETED
    result: Optional[BookingResult] = None
    error: Optional[BaseException] = None
    outcome_unknown: bool = False
    attempt: int = 1
    history: List[StateChange] = field(default_factory=list)
    request: Optional[ShipmentRequest] = field(default=None, repr=False)

    @property
    def error_info(self) -> Optional[Dict]:
        if self.error is None:
            return None
        if isinstance(self.error, CarrierGatewayError):
            return self.error.to_dict()
        return {
            "error_type": type(self.error).__name__,
            "message": str(self.error) or type(self.error).__name__,
        }


@dataclass
class _ReferenceLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class BookingOrchestrator:
    """
    Orchestrates rating and booking for canonical shipments.

    Usage:
        registry = build_registry(settings)
        orchestrator = BookingOrchestrator(registry, downstream=erp_sync)
        quotes = await orchestrator.get_rates(request)
        record = await orchestrator.book_shipment(request)
    """

    def __init__(
        self,
        registry: CarrierRegistry,
        downstream: DownstreamSync,
        validator: Optional[ShipmentValidator] = None,
        repository: Optional[ShipmentRepository] = None,
    ):
        self.registry = registry
        self.downstream = downstream
        self.validator = validator or ShipmentValidator()
        self.repository = repository
        self._records: Dict[str, BookingRecord] = {}
        self._locks: Dict[str, _ReferenceLock] = {}

    @asynccontextmanager
    async def _lock_for(self, reference: str):
        """Serialize work on one reference. The lock is dropped once nobody holds or awaits it."""
        entry = self._locks.get(reference)
        if entry is None:
            entry = self._locks[reference] = _ReferenceLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[reference]

    def get_record(self, reference: str) -> Optional[BookingRecord]:
        return self._records.get(reference)

    def _transition(self, record: BookingRecord, new_state: BookingState) -> None:
        allowed = ALLOWED_TRANSITIONS.get(record.state, frozenset())
        if new_state not in allowed:
            raise BookingStateError(
                f"Illegal transition {record.state.value} -> {new_state.value} for {record.reference}",
                reference=record.reference,
                state=record.state.value,
            )
        record.history.append(StateChange(record.state, new_state, _utcnow(), record.attempt))
        logger.info(
            f"[BOOKING] {record.reference}: {record.state.value} -> {new_state.value} "
            f"(attempt {record.attempt})"
        )
        record.state = new_state

    # ==================== Rates ====================

    async def get_rates(self, request: ShipmentRequest) -> List[RateQuote]:
        """
        Rate a shipment with its selected carrier.

        Raises:
            ShipmentValidationError, UnsupportedCarrierError, AuthError,
            CarrierAPIError (RATE_UNAVAILABLE when the carrier offers nothing),
            ResponseParseError
        """
        self.validator.validate(request)

        async with self._lock_for(request.reference):
            client = self.registry.resolve(request.carrier)
            quotes = await client.get_rates(request)

        if not quotes:
            logger.info(f"[BOOKING] {request.reference}: No rates available from {request.carrier.value}")
            raise CarrierAPIError(
                message="No rates available",
                kind=CarrierErrorKind.RATE_UNAVAILABLE,
                carrier=request.carrier.value,
            )
        return quotes

    # ==================== Booking ====================

    async def book_order(self, order_id: str) -> BookingRecord:
        """Load a reviewed shipment from the repository and book it."""
        if self.repository is None:
            raise RuntimeError("BookingOrchestrator has no ShipmentRepository configured")
        request = await self.repository.get_shipment_request(order_id)
        return await self.book_shipment(request)

    async def book_shipment(self, request: ShipmentRequest) -> BookingRecord:
        """
        Book a shipment and synchronize it downstream.

        Carrier failures are recorded on the returned record, not raised.

        Raises:
            ShipmentValidationError: request rejected before any carrier call
            DuplicateBookingError: reference already booked, in progress or outcome unknown
        """
        self.validator.validate(request)

        async with self._lock_for(request.reference):
            previous = self._records.get(request.reference)
            if previous and previous.state != BookingState.BOOKING_FAILED:
                raise DuplicateBookingError(
                    f"Booking for {request.reference} already exists in state {previous.state.value}",
                    reference=request.reference,
                    state=previous.state.value,
                )

            record = BookingRecord(
                reference=request.reference,
                carrier=request.carrier,
                request=request,
            )
            if previous:
                record.attempt = previous.attempt + 1
                record.history = list(previous.history)
            self._records[request.reference] = record

            if not self.registry.is_supported(request.carrier):
                logger.info(
                    f"[BOOKING] {request.reference}: {request.carrier.value} has no automated booking, "
                    f"forwarding for manual processing"
                )
                record.result = BookingResult.empty()
                self._transition(record, BookingState.SYNCING_DOWNSTREAM)
                await self._sync(record)
                return record

            client = self.registry.resolve(request.carrier)
            self._transition(record, BookingState.BOOKING_IN_PROGRESS)

            try:
                result = await client.book_shipment(request)
            except asyncio.CancelledError as e:
                record.error = e
                record.outcome_unknown = True
                logger.error(
                    f"[BOOKING] {request.reference}: Booking cancelled in flight - outcome unknown, "
                    f"reconcile with {request.carrier.value} before retrying"
                )
                raise
            except CarrierAPIError as e:
                if e.outcome_unknown:
                    return self._mark_outcome_unknown(record, e)
                record.error = e
                self._transition(record, BookingState.BOOKING_FAILED)
                return record
            except AuthError as e:
                record.error = e
                self._transition(record, BookingState.BOOKING_FAILED)
                return record
            except ResponseParseError as e:
                # Carrier answered 2xx; the shipment may exist
                return self._mark_outcome_unknown(record, e)

            if result.is_empty:
                return self._mark_outcome_unknown(record, ResponseParseError(
                    f"{request.carrier.value} booking returned no tracking number",
                    field="tracking_number",
                    carrier=request.carrier.value,
                    raw=result.raw,
                ))

            record.result = result
            self._transition(record, BookingState.BOOKED)
            await self._sync(record)
            return record

    def _mark_outcome_unknown(self, record: BookingRecord, error: CarrierGatewayError) -> BookingRecord:
        """Leave the record BOOKING_IN_PROGRESS until reconcile() settles it."""
        record.error = error
        record.outcome_unknown = True
        logger.error(
            f"[BOOKING] {record.reference}: {error.message} - outcome unknown, "
            f"reconcile with {record.carrier.value} before retrying"
        )
        return record

    # ==================== Downstream ====================

    async def _sync(self, record: BookingRecord) -> None:
        if record.state != BookingState.SYNCING_DOWNSTREAM:
            self._transition(record, BookingState.SYNCING_DOWNSTREAM)

        try:
            synced = await self.downstream.sync(record.result, record.request)
        except Exception as e:
            logger.error(f"[BOOKING] {record.reference}: Downstream sync raised: {e}", exc_info=True)
            record.error = e
            synced = False

        if synced:
            self._transition(record, BookingState.COMPLETE)
            return

        self._transition(record, BookingState.SYNC_FAILED)
        logger.error(
            f"[BOOKING] {record.reference}: Downstream sync failed for "
            f"{record.result.tracking_number or 'manual shipment'} - manual intervention required"
        )

    async def resync(self, reference: str) -> BookingRecord:
        """Retry downstream sync for a SYNC_FAILED booking. Never re-books."""
        async with self._lock_for(reference):
            record = self._require(reference)
            if record.state != BookingState.SYNC_FAILED:
                raise BookingStateError(
                    f"Only SYNC_FAILED bookings can be resynced; {reference} is {record.state.value}",
                    reference=reference,
                    state=record.state.value,
                )
            record.error = None
            await self._sync(record)
            return record

    async def reconcile(self, reference: str, result: Optional[BookingResult]) -> BookingRecord:
        """
        Resolve a booking whose outcome is unknown.

        result is what the carrier reports for the reference: a BookingResult
        when the shipment exists (the booking continues to sync), None when it
        does not (the attempt is marked BOOKING_FAILED and may be retried).
        """
        async with self._lock_for(reference):
            record = self._require(reference)
            if record.state != BookingState.BOOKING_IN_PROGRESS:
                raise BookingStateError(
                    f"Only in-progress bookings can be reconciled; {reference} is {record.state.value}",
                    reference=reference,
                    state=record.state.value,
                )

            record.outcome_unknown = False
            if result is None or result.is_empty:
                logger.info(f"[BOOKING] {reference}: Carrier has no shipment, marking attempt failed")
                self._transition(record, BookingState.BOOKING_FAILED)
                return record

            record.result = result
            record.error = None
            self._transition(record, BookingState.BOOKED)
            await self._sync(record)
            return record

    def _require(self, reference: str) -> BookingRecord:
        record = self._records.get(reference)
        if record is None:
            raise BookingStateError(f"No booking found for {reference}", reference=reference)
        return record
