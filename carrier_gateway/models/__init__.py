from carrier_gateway.models.shipment import (
    Address,
    BookingResult,
    BookingState,
    CarrierCode,
    CommodityLine,
    Contact,
    Credential,
    CustomsDeclaration,
    Dimensions,
    DimensionUnit,
    DocumentType,
    DutiesPayer,
    Invoice,
    Money,
    PackageSpec,
    RateQuote,
    ShipmentDocument,
    ShipmentParty,
    ShipmentPurpose,
    ShipmentRequest,
    Weight,
    WeightUnit,
    derive_incoterm,
)

__all__ = [
    "Address",
    "BookingResult",
    "BookingState",
    "CarrierCode",
    "CommodityLine",
    "Contact",
    "Credential",
    "CustomsDeclaration",
    "Dimensions",
    "DimensionUnit",
    "DocumentType",
    "DutiesPayer",
    "Invoice",
    "Money",
    "PackageSpec",
    "RateQuote",
    "ShipmentDocument",
    "ShipmentParty",
    "ShipmentPurpose",
    "ShipmentRequest",
    "Weight",
    "WeightUnit",
    "derive_incoterm",
]
