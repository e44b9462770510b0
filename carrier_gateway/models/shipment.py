"""
Canonical Shipment Model

Carrier-independent shipment, rate and booking types. Every carrier
transformer maps to and from these; nothing here knows a wire format.

Units are explicit on every measurement (Weight, Dimensions, Money).
Carrier-specific customs vocabulary (e.g. Incoterms) is a derived view
computed one-way from DutiesPayer at construction.
"""
import enum
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from carrier_gateway.core.exceptions import ShipmentValidationError


# =============================================================================
# Enums
# =============================================================================

class CarrierCode(str, enum.Enum):
    """
    Carrier selector.

    MANUAL names shipments processed offline; it is never registered,
    so booking bypasses the carrier call entirely.
    """
    DHL_EXPRESS = "DHL_EXPRESS"
    FEDEX = "FEDEX"
    MANUAL = "MANUAL"


class WeightUnit(str, enum.Enum):
    KG = "KG"
    LB = "LB"


class DimensionUnit(str, enum.Enum):
    CM = "CM"
    IN = "IN"


class DutiesPayer(str, enum.Enum):
    """Who pays import duties and taxes."""
    SENDER = "SENDER"
    RECIPIENT = "RECIPIENT"
    THIRD_PARTY = "THIRD_PARTY"


class ShipmentPurpose(str, enum.Enum):
    SOLD = "SOLD"
    GIFT = "GIFT"
    SAMPLE = "SAMPLE"
    REPAIR = "REPAIR"
    RETURN = "RETURN"
    PERSONAL_EFFECTS = "PERSONAL_EFFECTS"
    NOT_SOLD = "NOT_SOLD"


class DocumentType(str, enum.Enum):
    LABEL = "LABEL"
    INVOICE = "INVOICE"
    WAYBILL = "WAYBILL"


class BookingState(str, enum.Enum):
    REVIEW_COMPLETED = "REVIEW_COMPLETED"
    BOOKING_IN_PROGRESS = "BOOKING_IN_PROGRESS"
    BOOKED = "BOOKED"
    SYNCING_DOWNSTREAM = "SYNCING_DOWNSTREAM"
    COMPLETE = "COMPLETE"
    BOOKING_FAILED = "BOOKING_FAILED"
    SYNC_FAILED = "SYNC_FAILED"


# =============================================================================
# Measurements
# =============================================================================

_KG_PER_LB = 0.45359237
_CM_PER_IN = 2.54


@dataclass
class Weight:
    value: float
    unit: WeightUnit = WeightUnit.KG

    def to(self, unit: WeightUnit) -> "Weight":
        if unit == self.unit:
            return Weight(self.value, unit)
        if unit == WeightUnit.KG:
            return Weight(self.value * _KG_PER_LB, unit)
        return Weight(self.value / _KG_PER_LB, unit)


@dataclass
class Dimensions:
    length: float
    width: float
    height: float
    unit: DimensionUnit = DimensionUnit.CM

    def to(self, unit: DimensionUnit) -> "Dimensions":
        if unit == self.unit:
            return Dimensions(self.length, self.width, self.height, unit)
        factor = _CM_PER_IN if unit == DimensionUnit.CM else 1 / _CM_PER_IN
        return Dimensions(
            self.length * factor,
            self.width * factor,
            self.height * factor,
            unit,
        )


@dataclass
class Money:
    amount: Decimal
    currency: str

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            self.amount = Decimal(str(self.amount))
        self.currency = self.currency.upper()


# =============================================================================
# Parties and packages
# =============================================================================

@dataclass
class Address:
    """Postal address. Line count and length limits are carrier rules."""
    street_lines: List[str]
    city: str
    postal_code: str
    country_code: str  # ISO-3166 alpha-2
    state_code: Optional[str] = None

    def __post_init__(self):
        self.country_code = self.country_code.upper()
        if self.state_code:
            self.state_code = self.state_code.upper()


@dataclass
class Contact:
    name: str
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@dataclass
class ShipmentParty:
    address: Address
    contact: Contact


@dataclass
class PackageSpec:
    """
    A physical package, optionally replicated.

    replicate_count > 1 is expanded into individual packages by the
    transformer; no carrier accepts a quantity field.
    """
    weight: Weight
    dimensions: Optional[Dimensions] = None
    replicate_count: int = 1

    def __post_init__(self):
        if self.replicate_count < 1:
            raise ShipmentValidationError(
                f"replicate_count must be >= 1, got {self.replicate_count}"
            )


# =============================================================================
# Customs
# =============================================================================

@dataclass
class CommodityLine:
    description: str
    unit_price: Money
    quantity: int
    net_weight: Weight
    gross_weight: Weight
    country_of_manufacture: str
    unit_of_measure: str = "PCS"
    hs_code: Optional[str] = None

    @property
    def line_value(self) -> Money:
        return Money(self.unit_price.amount * self.quantity, self.unit_price.currency)


@dataclass
class Invoice:
    number: str
    date: date


INCOTERM_BY_DUTIES_PAYER = {
    DutiesPayer.SENDER: "DDP",
    DutiesPayer.RECIPIENT: "DAP",
    DutiesPayer.THIRD_PARTY: "DAP",
}


def derive_incoterm(duties_payer: DutiesPayer) -> str:
    """
    Legacy Incoterm view of who pays duties.

    Pure and one-way. The Incoterm is output only; it is never read back
    into DutiesPayer. Shipment purpose has no bearing on the Incoterm.
    """
    return INCOTERM_BY_DUTIES_PAYER[duties_payer]


@dataclass
class CustomsDeclaration:
    lines: List[CommodityLine]
    invoice: Invoice
    declared_value: Money
    duties_payer: DutiesPayer = DutiesPayer.RECIPIENT
    purpose: ShipmentPurpose = ShipmentPurpose.SOLD
    incoterm: str = field(init=False)

    def __post_init__(self):
        self.incoterm = derive_incoterm(self.duties_payer)


# =============================================================================
# Request and results
# =============================================================================

@dataclass
class ShipmentRequest:
    shipper: ShipmentParty
    receiver: ShipmentParty
    packages: List[PackageSpec]
    planned_ship_at: datetime
    carrier: CarrierCode
    reference: str  # Idempotency reference, sent as the carrier customer reference
    customs: Optional[CustomsDeclaration] = None
    product_code: Optional[str] = None  # Carrier service code, when preselected
    description: Optional[str] = None

    def __post_init__(self):
        if self.planned_ship_at.tzinfo is None or self.planned_ship_at.utcoffset() is None:
            raise ShipmentValidationError(
                "planned_ship_at must carry an explicit timezone offset"
            )

    @property
    def is_cross_border(self) -> bool:
        return self.shipper.address.country_code != self.receiver.address.country_code

    @property
    def expanded_package_count(self) -> int:
        return sum(p.replicate_count for p in self.packages)


@dataclass
class RateQuote:
    carrier: CarrierCode
    service_name: str
    service_code: str
    total_price: Money
    estimated_delivery: Optional[datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ShipmentDocument:
    format: str  # PDF, ZPL, PNG...
    content: bytes
    document_type: DocumentType


@dataclass
class BookingResult:
    tracking_number: Optional[str] = None
    confirmation_reference: Optional[str] = None
    tracking_url: Optional[str] = None
    package_tracking_numbers: List[str] = field(default_factory=list)
    documents: List[ShipmentDocument] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "BookingResult":
        """Placeholder result for shipments processed manually/offline."""
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.tracking_number


@dataclass
class Credential:
    """
    In-memory authorization for one carrier.

    token is the full Authorization header value ("Basic ..." or "Bearer ...").
    expires_at None means it never expires.
    """
    carrier: CarrierCode
    token: str
    expires_at: Optional[datetime] = None

    def is_valid(self, now: datetime, buffer: timedelta = timedelta(0)) -> bool:
        if self.expires_at is None:
            return True
        return now < self.expires_at - buffer
