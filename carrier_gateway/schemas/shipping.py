"""
Shipping Schemas

Pydantic models for the shipping API. Request models convert to the
canonical model with to_domain(); response models are built from it.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from carrier_gateway.models.shipment import (
    Address,
    BookingResult,
    BookingState,
    CarrierCode,
    CommodityLine,
    Contact,
    CustomsDeclaration,
    Dimensions,
    DimensionUnit,
    DutiesPayer,
    Invoice,
    Money,
    PackageSpec,
    RateQuote,
    ShipmentParty,
    ShipmentPurpose,
    ShipmentRequest,
    Weight,
    WeightUnit,
)


# ==================== Party Schemas ====================


class AddressIn(BaseModel):
    street_lines: List[str] = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    postal_code: str = ""
    country_code: str = Field(..., min_length=2, max_length=2)
    state_code: Optional[str] = None

    @field_validator("country_code")
    @classmethod
    def validate_country_code(cls, v):
        return v.upper()

    def to_domain(self) -> Address:
        return Address(
            street_lines=self.street_lines,
            city=self.city,
            postal_code=self.postal_code,
            country_code=self.country_code,
            state_code=self.state_code,
        )


class ContactIn(BaseModel):
    name: str = Field(..., min_length=1)
    company: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class PartyIn(BaseModel):
    address: AddressIn
    contact: ContactIn

    def to_domain(self) -> ShipmentParty:
        return ShipmentParty(
            address=self.address.to_domain(),
            contact=Contact(**self.contact.model_dump()),
        )


# ==================== Package Schemas ====================


class PackageIn(BaseModel):
    """Package details. Dimensions are all-or-nothing."""
    weight: float = Field(..., gt=0)
    weight_unit: WeightUnit = WeightUnit.KG
    length: Optional[float] = Field(None, gt=0)
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)
    dimension_unit: DimensionUnit = DimensionUnit.CM
    replicate_count: int = Field(1, ge=1, description="Number of identical packages")

    @model_validator(mode="after")
    def validate_dimensions(self):
        given = [v is not None for v in (self.length, self.width, self.height)]
        if any(given) and not all(given):
            raise ValueError("length, width and height must be given together")
        return self

    def to_domain(self) -> PackageSpec:
        dimensions = None
        if self.length is not None:
            dimensions = Dimensions(self.length, self.width, self.height, self.dimension_unit)
        return PackageSpec(
            weight=Weight(self.weight, self.weight_unit),
            dimensions=dimensions,
            replicate_count=self.replicate_count,
        )


# ==================== Customs Schemas ====================


class CommodityIn(BaseModel):
    description: str = Field(..., min_length=1)
    unit_price: Decimal = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)
    quantity: int = Field(..., ge=1)
    unit_of_measure: str = "PCS"
    net_weight: float = Field(..., gt=0)
    gross_weight: float = Field(..., gt=0)
    weight_unit: WeightUnit = WeightUnit.KG
    country_of_manufacture: str = Field(..., min_length=2, max_length=2)
    hs_code: Optional[str] = None

    def to_domain(self) -> CommodityLine:
        return CommodityLine(
            description=self.description,
            unit_price=Money(self.unit_price, self.currency),
            quantity=self.quantity,
            unit_of_measure=self.unit_of_measure,
            net_weight=Weight(self.net_weight, self.weight_unit),
            gross_weight=Weight(self.gross_weight, self.weight_unit),
            country_of_manufacture=self.country_of_manufacture.upper(),
            hs_code=self.hs_code,
        )


class CustomsIn(BaseModel):
    lines: List[CommodityIn] = Field(..., min_length=1)
    invoice_number: str = Field(..., min_length=1)
    invoice_date: date
    declared_value: Decimal = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=3)
    duties_payer: DutiesPayer = DutiesPayer.RECIPIENT
    purpose: ShipmentPurpose = ShipmentPurpose.SOLD

    def to_domain(self) -> CustomsDeclaration:
        return CustomsDeclaration(
            lines=[line.to_domain() for line in self.lines],
            invoice=Invoice(self.invoice_number, self.invoice_date),
            declared_value=Money(self.declared_value, self.currency),
            duties_payer=self.duties_payer,
            purpose=self.purpose,
        )


# ==================== Shipment Schemas ====================


class ShipmentRequestIn(BaseModel):
    """A reviewed shipment, ready to rate or book."""
    reference: str = Field(..., min_length=1, description="Idempotency reference")
    carrier: CarrierCode
    shipper: PartyIn
    receiver: PartyIn
    packages: List[PackageIn] = Field(..., min_length=1)
    planned_ship_at: datetime = Field(..., description="Must include a UTC offset")
    customs: Optional[CustomsIn] = None
    product_code: Optional[str] = None
    description: Optional[str] = None

    @field_validator("planned_ship_at")
    @classmethod
    def validate_timezone(cls, v):
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("planned_ship_at must carry an explicit timezone offset")
        return v

    def to_domain(self) -> ShipmentRequest:
        return ShipmentRequest(
            shipper=self.shipper.to_domain(),
            receiver=self.receiver.to_domain(),
            packages=[package.to_domain() for package in self.packages],
            planned_ship_at=self.planned_ship_at,
            carrier=self.carrier,
            reference=self.reference,
            customs=self.customs.to_domain() if self.customs else None,
            product_code=self.product_code,
            description=self.description,
        )


# ==================== Rate Schemas ====================


class RateResponse(BaseModel):
    """A single shipping rate option."""
    carrier: CarrierCode
    service_code: str
    service_name: str
    total_price: Decimal
    currency: str
    estimated_delivery: Optional[datetime] = None

    @classmethod
    def from_domain(cls, quote: RateQuote) -> "RateResponse":
        return cls(
            carrier=quote.carrier,
            service_code=quote.service_code,
            service_name=quote.service_name,
            total_price=quote.total_price.amount,
            currency=quote.total_price.currency,
            estimated_delivery=quote.estimated_delivery,
        )


class RateListResponse(BaseModel):
    reference: str
    carrier: CarrierCode
    rates: List[RateResponse]


class CarrierListResponse(BaseModel):
    carriers: List[CarrierCode]


# ==================== Booking Schemas ====================


class DocumentResponse(BaseModel):
    """Document metadata; bodies are delivered out of band."""
    document_type: str
    format: str
    size_bytes: int


class BookingResponse(BaseModel):
    reference: str
    carrier: CarrierCode
    state: BookingState
    attempt: int
    outcome_unknown: bool = False
    tracking_number: Optional[str] = None
    confirmation_reference: Optional[str] = None
    tracking_url: Optional[str] = None
    package_tracking_numbers: List[str] = []
    documents: List[DocumentResponse] = []
    error: Optional[Dict[str, Any]] = None

    @classmethod
    def from_record(cls, record) -> "BookingResponse":
        result: BookingResult = record.result or BookingResult.empty()
        return cls(
            reference=record.reference,
            carrier=record.carrier,
            state=record.state,
            attempt=record.attempt,
            outcome_unknown=record.outcome_unknown,
            tracking_number=result.tracking_number,
            confirmation_reference=result.confirmation_reference,
            tracking_url=result.tracking_url,
            package_tracking_numbers=result.package_tracking_numbers,
            documents=[
                DocumentResponse(
                    document_type=document.document_type.value,
                    format=document.format,
                    size_bytes=len(document.content),
                )
                for document in result.documents
            ],
            error=record.error_info,
        )
