"""
Carrier Gateway Exception Hierarchy

All exceptions include code, message, and details for audit trail and
debugging. Carrier errors additionally carry the carrier name and the
carrier's raw error payload, surfaced verbatim for diagnostics.

Exception Hierarchy:
    CarrierGatewayError
    ├── ShipmentValidationError
    ├── AuthError
    ├── CarrierAPIError (kind: TIMEOUT, UNREACHABLE, RATE_UNAVAILABLE, BOOKING_REJECTED)
    ├── ResponseParseError
    ├── UnsupportedCarrierError
    └── BookingStateError
        └── DuplicateBookingError
"""
import enum
import logging
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class CarrierGatewayError(Exception):
    """
    Base exception for all carrier gateway errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code for programmatic handling
        details: Additional context for debugging/audit
        severity: P0-P3 severity level
        carrier: Carrier the error originated from, if any
        raw: Carrier raw payload (parsed JSON or text), if any
    """

    default_code: str = "CARRIER_GATEWAY_ERROR"
    default_severity: str = "P2"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[str] = None,
        carrier: Optional[str] = None,
        raw: Any = None,
    ):
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.severity = severity or self.default_severity
        self.carrier = carrier
        self.raw = raw
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "carrier": self.carrier,
            "details": self.details,
            "raw": self.raw,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"


class ShipmentValidationError(CarrierGatewayError):
    """Caller-supplied data violates a carrier's field rules. Never retried."""
    default_code = "SHIPMENT_VALIDATION_FAILED"
    default_severity = "P3"

    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        self.errors = list(errors) if errors else [message]
        details = kwargs.pop("details", {})
        details["errors"] = self.errors
        super().__init__(message, details=details, **kwargs)


class AuthError(CarrierGatewayError):
    """Credential exchange failed, or was rejected after the permitted retry."""
    default_code = "CARRIER_AUTH_FAILED"
    default_severity = "P0"

    def __init__(self, message: str, cause: Optional[BaseException] = None, **kwargs):
        self.cause = cause
        if cause is not None:
            details = kwargs.pop("details", {})
            details["cause"] = f"{type(cause).__name__}: {cause}"
            kwargs["details"] = details
        super().__init__(message, **kwargs)


class CarrierErrorKind(str, enum.Enum):
    TIMEOUT = "TIMEOUT"                    # Outcome unknown
    UNREACHABLE = "UNREACHABLE"            # Request never reached the carrier
    RATE_UNAVAILABLE = "RATE_UNAVAILABLE"
    BOOKING_REJECTED = "BOOKING_REJECTED"


class CarrierAPIError(CarrierGatewayError):
    """Non-success outcome of a rate or booking call."""
    default_code = "CARRIER_API_ERROR"
    default_severity = "P1"

    def __init__(
        self,
        message: str,
        kind: CarrierErrorKind,
        status_code: Optional[int] = None,
        **kwargs
    ):
        self.kind = kind
        self.status_code = status_code
        details = kwargs.pop("details", {})
        details.update({"kind": kind.value, "status_code": status_code})
        kwargs.setdefault("code", f"CARRIER_{kind.value}")
        kwargs.setdefault("severity", EXCEPTION_CATALOG.get(kwargs["code"], {}).get("severity"))
        super().__init__(message, details=details, **kwargs)

    @property
    def outcome_unknown(self) -> bool:
        """A timed-out call may have succeeded carrier-side."""
        return self.kind == CarrierErrorKind.TIMEOUT


class ResponseParseError(CarrierGatewayError):
    """Carrier returned success but the payload lacks required fields."""
    default_code = "CARRIER_RESPONSE_INVALID"
    default_severity = "P1"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        self.field = field
        details = kwargs.pop("details", {})
        details["field"] = field
        super().__init__(message, details=details, **kwargs)


class UnsupportedCarrierError(CarrierGatewayError):
    """Carrier name is not registered."""
    default_code = "CARRIER_UNSUPPORTED"
    default_severity = "P3"


class BookingStateError(CarrierGatewayError):
    """Illegal booking lifecycle transition."""
    default_code = "BOOKING_STATE_INVALID"
    default_severity = "P1"

    def __init__(
        self,
        message: str,
        reference: Optional[str] = None,
        state: Optional[str] = None,
        **kwargs
    ):
        self.reference = reference
        self.state = state
        details = kwargs.pop("details", {})
        details.update({"reference": reference, "state": state})
        super().__init__(message, details=details, **kwargs)


class DuplicateBookingError(BookingStateError):
    """A booking already exists (or may exist) for this idempotency reference."""
    default_code = "BOOKING_DUPLICATE"
    default_severity = "P0"


# =============================================================================
# EXCEPTION CATALOG
# =============================================================================

EXCEPTION_CATALOG = {
    "SHIPMENT_VALIDATION_FAILED": {"class": ShipmentValidationError, "severity": "P3"},
    "CARRIER_AUTH_FAILED": {"class": AuthError, "severity": "P0"},
    "CARRIER_TIMEOUT": {"class": CarrierAPIError, "severity": "P1"},
    "CARRIER_UNREACHABLE": {"class": CarrierAPIError, "severity": "P1"},
    "CARRIER_RATE_UNAVAILABLE": {"class": CarrierAPIError, "severity": "P2"},
    "CARRIER_BOOKING_REJECTED": {"class": CarrierAPIError, "severity": "P1"},
    "CARRIER_RESPONSE_INVALID": {"class": ResponseParseError, "severity": "P1"},
    "CARRIER_UNSUPPORTED": {"class": UnsupportedCarrierError, "severity": "P3"},
    "BOOKING_STATE_INVALID": {"class": BookingStateError, "severity": "P1"},
    "BOOKING_DUPLICATE": {"class": DuplicateBookingError, "severity": "P0"},
}
