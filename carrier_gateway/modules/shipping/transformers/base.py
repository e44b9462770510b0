"""
Base Transformer Interface

Each carrier implements a transformer that maps the canonical model to the
carrier's wire format and back. Transformers are pure (no I/O); they may log
when they truncate a field or fall back to a default code.

Shared rules:
- Package expansion: replicate_count N -> N identical wire packages,
  1-based sequence numbers assigned after expansion
- Truncation is a last-resort wire safety net; rejection belongs to validation
- Unmapped enum values fall back to the carrier default and are logged
"""
import base64
import binascii
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Tuple, TypeVar

from carrier_gateway.core.exceptions import ResponseParseError
from carrier_gateway.models.shipment import (
    BookingResult,
    CarrierCode,
    PackageSpec,
    RateQuote,
    ShipmentRequest,
)

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class WireRequest:
    """A carrier HTTP request, fully built but not yet sent."""
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class FieldLimits:
    """Maximum field lengths accepted by a carrier."""
    address_line: int
    address_lines: int
    city: int
    postal_code: int
    person_name: int
    company: int
    phone: int
    description: int
    commodity_description: int
    reference: int


def expand_packages(packages: List[PackageSpec]) -> List[Tuple[int, PackageSpec]]:
    """
    Expand replicated packages into individual units.

    Returns (sequence_number, package) pairs; sequence numbers are 1-based
    and run across the full expanded list.
    """
    expanded = []
    for package in packages:
        for _ in range(package.replicate_count):
            expanded.append(package)
    return [(index, package) for index, package in enumerate(expanded, start=1)]


def truncate(value: Optional[str], limit: int, field_name: str, carrier: CarrierCode) -> Optional[str]:
    """Cut value to limit, logging when anything is dropped."""
    if value is None:
        return None
    if len(value) <= limit:
        return value
    logger.warning(
        f"[TRANSFORM] {carrier.value}: Truncating {field_name} from {len(value)} to {limit} chars"
    )
    return value[:limit]


def map_with_default(
    table: Mapping[K, V],
    key: K,
    default: V,
    label: str,
    carrier: CarrierCode,
) -> V:
    """Fixed-table lookup; an unmapped key yields the carrier default and is logged."""
    if key in table:
        return table[key]
    logger.warning(
        f"[TRANSFORM] {carrier.value}: No {label} mapping for {getattr(key, 'value', key)!r}, "
        f"using carrier default {default!r}"
    )
    return default


def format_offset(dt: datetime) -> str:
    """+HH:MM offset of an aware datetime, in its own declared zone."""
    offset = dt.utcoffset() or timedelta(0)
    total_minutes = int(offset.total_seconds() // 60)
    sign = "+" if total_minutes >= 0 else "-"
    hours, minutes = divmod(abs(total_minutes), 60)
    return f"{sign}{hours:02d}:{minutes:02d}"


def round_measure(value: float, places: int = 3) -> float:
    return round(value, places)


def decode_document(content: Optional[str], carrier: CarrierCode, field_name: str) -> bytes:
    """Decode a base64 document body returned by a carrier."""
    if not content:
        raise ResponseParseError(
            f"{carrier.value} returned a document without content",
            field=field_name,
            carrier=carrier.value,
        )
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ResponseParseError(
            f"{carrier.value} returned a document that is not valid base64",
            field=field_name,
            carrier=carrier.value,
        ) from e


def parse_carrier_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from a carrier; unparseable values become None."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"[TRANSFORM] Unparseable carrier timestamp: {value!r}")
        return None


def require(payload: Mapping[str, Any], key: str, carrier: CarrierCode, path: str = "") -> Any:
    """Fetch a required key from a carrier payload or raise ResponseParseError."""
    if not isinstance(payload, Mapping) or payload.get(key) in (None, ""):
        field_name = f"{path}.{key}" if path else key
        raise ResponseParseError(
            f"{carrier.value} response is missing required field '{field_name}'",
            field=field_name,
            carrier=carrier.value,
            raw=payload if isinstance(payload, Mapping) else {"raw": payload},
        )
    return payload[key]


class CarrierTransformer(ABC):
    """
    Converts canonical shipments to a carrier wire format and back.

    All carriers implement these four methods.
    """

    carrier: CarrierCode
    limits: FieldLimits

    @abstractmethod
    def to_rate_request(self, request: ShipmentRequest) -> WireRequest:
        pass

    @abstractmethod
    def from_rate_response(self, payload: Dict[str, Any], request: ShipmentRequest) -> List[RateQuote]:
        """Raises ResponseParseError when the payload shape is wrong; [] when no services."""
        pass

    @abstractmethod
    def to_booking_request(self, request: ShipmentRequest) -> WireRequest:
        pass

    @abstractmethod
    def from_booking_response(self, payload: Dict[str, Any]) -> BookingResult:
        """Raises ResponseParseError when required fields are absent."""
        pass

    def _cut(self, value: Optional[str], limit: int, field_name: str) -> Optional[str]:
        return truncate(value, limit, field_name, self.carrier)

    def _street_lines(self, lines: List[str]) -> List[str]:
        """Non-empty lines, capped in count and length per carrier limits."""
        cleaned = [line.strip() for line in lines if line and line.strip()]
        if len(cleaned) > self.limits.address_lines:
            logger.warning(
                f"[TRANSFORM] {self.carrier.value}: Dropping {len(cleaned) - self.limits.address_lines} "
                f"address line(s) beyond the carrier maximum of {self.limits.address_lines}"
            )
            cleaned = cleaned[: self.limits.address_lines]
        return [self._cut(line, self.limits.address_line, "address line") for line in cleaned]
