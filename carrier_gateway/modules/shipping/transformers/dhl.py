"""
DHL Express Transformer (MyDHL API)

Wire conventions:
- One shipment-level unitOfMeasurement flag ("metric" | "imperial"); every
  weight and dimension is converted into that system
- plannedShippingDateAndTime is "YYYY-MM-DDTHH:MM:SSGMT+HH:MM" in the
  shipment's own timezone; the rate GET takes the local date only
- Single package with dimensions -> GET /rates with query parameters;
  anything else -> POST /rates with a JSON body
"""
import logging
from typing import Any, Dict, List, Optional

from carrier_gateway.core.exceptions import ResponseParseError
from carrier_gateway.models.shipment import (
    BookingResult,
    CarrierCode,
    DimensionUnit,
    DocumentType,
    DutiesPayer,
    Money,
    PackageSpec,
    RateQuote,
    ShipmentDocument,
    ShipmentParty,
    ShipmentPurpose,
    ShipmentRequest,
    WeightUnit,
)
from carrier_gateway.modules.shipping.transformers.base import (
    CarrierTransformer,
    FieldLimits,
    WireRequest,
    decode_document,
    expand_packages,
    format_offset,
    map_with_default,
    parse_carrier_datetime,
    require,
    round_measure,
)

logger = logging.getLogger(__name__)

RATES_PATH = "/rates"
SHIPMENTS_PATH = "/shipments"

DHL_LIMITS = FieldLimits(
    address_line=45,
    address_lines=3,
    city=45,
    postal_code=12,
    person_name=255,
    company=100,
    phone=70,
    description=70,
    commodity_description=512,
    reference=35,
)

# Duties payer -> Incoterm carried on the DHL shipment
DHL_INCOTERMS = {
    DutiesPayer.SENDER: "DDP",
    DutiesPayer.RECIPIENT: "DAP",
}
DHL_DEFAULT_INCOTERM = "DAP"

# Duties paid by shipper is a value-added service on DHL
DHL_DUTIES_PAID_SERVICE = "DD"

DHL_EXPORT_REASON_TYPES = {
    ShipmentPurpose.SOLD: "permanent",
    ShipmentPurpose.GIFT: "permanent",
    ShipmentPurpose.SAMPLE: "permanent",
    ShipmentPurpose.REPAIR: "temporary",
    ShipmentPurpose.RETURN: "return",
    ShipmentPurpose.PERSONAL_EFFECTS: "permanent",
}
DHL_DEFAULT_EXPORT_REASON_TYPE = "permanent"

DHL_DOCUMENT_TYPES = {
    "label": DocumentType.LABEL,
    "invoice": DocumentType.INVOICE,
    "waybillDoc": DocumentType.WAYBILL,
}

# Product codes used when the caller has not preselected a service
DHL_DEFAULT_INTERNATIONAL_PRODUCT = "P"  # EXPRESS WORLDWIDE (non-document)
DHL_DEFAULT_DOMESTIC_PRODUCT = "N"       # EXPRESS DOMESTIC


class DHLTransformer(CarrierTransformer):
    carrier = CarrierCode.DHL_EXPRESS
    limits = DHL_LIMITS

    def __init__(self, account_number: str, label_template: str = "ECOM26_84_001"):
        self.account_number = account_number
        self.label_template = label_template

    # ==================== Units and dates ====================

    @staticmethod
    def unit_system(request: ShipmentRequest) -> str:
        """The first package's weight unit picks the shipment-wide system."""
        if request.packages and request.packages[0].weight.unit == WeightUnit.LB:
            return "imperial"
        return "metric"

    @staticmethod
    def _units(system: str):
        if system == "imperial":
            return WeightUnit.LB, DimensionUnit.IN
        return WeightUnit.KG, DimensionUnit.CM

    @staticmethod
    def format_planned_datetime(request: ShipmentRequest) -> str:
        dt = request.planned_ship_at
        return f"{dt.strftime('%Y-%m-%dT%H:%M:%S')}GMT{format_offset(dt)}"

    def _package(self, package: PackageSpec, system: str) -> Dict[str, Any]:
        weight_unit, dimension_unit = self._units(system)
        wire = {"weight": round_measure(package.weight.to(weight_unit).value)}
        if package.dimensions:
            dims = package.dimensions.to(dimension_unit)
            wire["dimensions"] = {
                "length": round_measure(dims.length),
                "width": round_measure(dims.width),
                "height": round_measure(dims.height),
            }
        return wire

    # ==================== Parties ====================

    def _rate_party(self, party: ShipmentParty) -> Dict[str, Any]:
        address = party.address
        lines = self._street_lines(address.street_lines)
        wire = {
            "postalCode": self._cut(address.postal_code, self.limits.postal_code, "postal code"),
            "cityName": self._cut(address.city, self.limits.city, "city"),
            "countryCode": address.country_code,
        }
        if lines:
            wire["addressLine1"] = lines[0]
        if address.state_code:
            wire["provinceCode"] = address.state_code
        return wire

    def _booking_party(self, party: ShipmentParty) -> Dict[str, Any]:
        address = party.address
        contact = party.contact
        postal = {
            "postalCode": self._cut(address.postal_code, self.limits.postal_code, "postal code"),
            "cityName": self._cut(address.city, self.limits.city, "city"),
            "countryCode": address.country_code,
        }
        if address.state_code:
            postal["provinceCode"] = address.state_code
        for index, line in enumerate(self._street_lines(address.street_lines), start=1):
            postal[f"addressLine{index}"] = line

        full_name = self._cut(contact.name, self.limits.person_name, "person name")
        contact_info = {
            "fullName": full_name,
            # DHL requires a company name; private persons repeat their name
            "companyName": self._cut(contact.company or contact.name, self.limits.company, "company"),
            "phone": self._cut(contact.phone or "", self.limits.phone, "phone"),
        }
        if contact.email:
            contact_info["email"] = contact.email

        return {"postalAddress": postal, "contactInformation": contact_info}

    # ==================== Rates ====================

    def to_rate_request(self, request: ShipmentRequest) -> WireRequest:
        expanded = expand_packages(request.packages)
        system = self.unit_system(request)
        customs_declarable = request.customs is not None

        if len(expanded) == 1 and expanded[0][1].dimensions is not None:
            package = self._package(expanded[0][1], system)
            shipper = request.shipper.address
            receiver = request.receiver.address
            params = {
                "accountNumber": self.account_number,
                "originCountryCode": shipper.country_code,
                "originPostalCode": shipper.postal_code,
                "originCityName": self._cut(shipper.city, self.limits.city, "city"),
                "destinationCountryCode": receiver.country_code,
                "destinationPostalCode": receiver.postal_code,
                "destinationCityName": self._cut(receiver.city, self.limits.city, "city"),
                "weight": package["weight"],
                "length": package["dimensions"]["length"],
                "width": package["dimensions"]["width"],
                "height": package["dimensions"]["height"],
                "plannedShippingDate": request.planned_ship_at.date().isoformat(),
                "isCustomsDeclarable": "true" if customs_declarable else "false",
                "unitOfMeasurement": system,
                "nextBusinessDay": "false",
            }
            return WireRequest(method="GET", path=RATES_PATH, params=params)

        body: Dict[str, Any] = {
            "customerDetails": {
                "shipperDetails": self._rate_party(request.shipper),
                "receiverDetails": self._rate_party(request.receiver),
            },
            "accounts": [{"typeCode": "shipper", "number": self.account_number}],
            "plannedShippingDateAndTime": self.format_planned_datetime(request),
            "unitOfMeasurement": system,
            "isCustomsDeclarable": customs_declarable,
            "nextBusinessDay": False,
            "packages": [self._package(package, system) for _, package in expanded],
        }
        if request.product_code:
            body["productCode"] = request.product_code
        if request.customs:
            body["monetaryAmount"] = [{
                "typeCode": "declaredValue",
                "value": float(request.customs.declared_value.amount),
                "currency": request.customs.declared_value.currency,
            }]
        return WireRequest(method="POST", path=RATES_PATH, json=body)

    def from_rate_response(self, payload: Dict[str, Any], request: ShipmentRequest) -> List[RateQuote]:
        if not isinstance(payload, dict) or not isinstance(payload.get("products"), list):
            raise ResponseParseError(
                "DHL_EXPRESS rate response has no 'products' list",
                field="products",
                carrier=self.carrier.value,
                raw=payload,
            )

        quotes = []
        for product in payload["products"]:
            price = self._billing_price(product.get("totalPrice") or [])
            if price is None:
                logger.warning(
                    f"[DHL] Product {product.get('productCode')!r} returned without a price, skipping"
                )
                continue
            delivery = (product.get("deliveryCapabilities") or {}).get("estimatedDeliveryDateAndTime")
            quotes.append(RateQuote(
                carrier=self.carrier,
                service_name=product.get("productName") or product.get("productCode", ""),
                service_code=require(product, "productCode", self.carrier, "products[]"),
                total_price=price,
                estimated_delivery=parse_carrier_datetime(delivery),
                raw=product,
            ))

        return quotes

    @staticmethod
    def _billing_price(prices: List[Dict[str, Any]]) -> Optional[Money]:
        """Prefer the price in billing currency (BILLC), else the first priced entry."""
        priced = [p for p in prices if p.get("price") is not None and p.get("priceCurrency")]
        if not priced:
            return None
        chosen = next((p for p in priced if p.get("currencyType") == "BILLC"), priced[0])
        return Money(chosen["price"], chosen["priceCurrency"])

    # ==================== Booking ====================

    def to_booking_request(self, request: ShipmentRequest) -> WireRequest:
        expanded = expand_packages(request.packages)
        system = self.unit_system(request)
        reference = self._cut(request.reference, self.limits.reference, "customer reference")

        packages = []
        for _, package in expanded:
            wire = self._package(package, system)
            wire["customerReferences"] = [{"value": reference, "typeCode": "CU"}]
            packages.append(wire)

        product_code = request.product_code or (
            DHL_DEFAULT_INTERNATIONAL_PRODUCT if request.is_cross_border else DHL_DEFAULT_DOMESTIC_PRODUCT
        )

        content: Dict[str, Any] = {
            "packages": packages,
            "isCustomsDeclarable": request.customs is not None,
            "description": self._cut(
                request.description or "General goods", self.limits.description, "description"
            ),
            "unitOfMeasurement": system,
        }

        image_options = [{"typeCode": "label", "templateName": self.label_template}]
        value_added_services = []

        if request.customs:
            customs = request.customs
            content["declaredValue"] = float(customs.declared_value.amount)
            content["declaredValueCurrency"] = customs.declared_value.currency
            content["incoterm"] = map_with_default(
                DHL_INCOTERMS, customs.duties_payer, DHL_DEFAULT_INCOTERM, "incoterm", self.carrier
            )
            content["exportDeclaration"] = self._export_declaration(request, system)
            image_options.append({"typeCode": "invoice", "isRequested": True})
            if customs.duties_payer == DutiesPayer.SENDER:
                value_added_services.append({"serviceCode": DHL_DUTIES_PAID_SERVICE})

        body: Dict[str, Any] = {
            "plannedShippingDateAndTime": self.format_planned_datetime(request),
            "pickup": {"isRequested": False},
            "productCode": product_code,
            "accounts": [{"typeCode": "shipper", "number": self.account_number}],
            "customerReferences": [{"value": reference, "typeCode": "CU"}],
            "outputImageProperties": {
                "encodingFormat": "pdf",
                "imageOptions": image_options,
            },
            "customerDetails": {
                "shipperDetails": self._booking_party(request.shipper),
                "receiverDetails": self._booking_party(request.receiver),
            },
            "content": content,
        }
        if value_added_services:
            body["valueAddedServices"] = value_added_services

        return WireRequest(method="POST", path=SHIPMENTS_PATH, json=body)

    def _export_declaration(self, request: ShipmentRequest, system: str) -> Dict[str, Any]:
        customs = request.customs
        weight_unit, _ = self._units(system)
        reason_type = map_with_default(
            DHL_EXPORT_REASON_TYPES,
            customs.purpose,
            DHL_DEFAULT_EXPORT_REASON_TYPE,
            "export reason type",
            self.carrier,
        )

        line_items = []
        for number, line in enumerate(customs.lines, start=1):
            item = {
                "number": number,
                "description": self._cut(
                    line.description, self.limits.commodity_description, "commodity description"
                ),
                "price": float(line.unit_price.amount),
                "quantity": {"value": line.quantity, "unitOfMeasurement": line.unit_of_measure},
                "exportReasonType": reason_type,
                "manufacturerCountry": line.country_of_manufacture.upper(),
                "weight": {
                    "netValue": round_measure(line.net_weight.to(weight_unit).value),
                    "grossValue": round_measure(line.gross_weight.to(weight_unit).value),
                },
            }
            if line.hs_code:
                item["commodityCodes"] = [{"typeCode": "outbound", "value": line.hs_code}]
            line_items.append(item)

        return {
            "lineItems": line_items,
            "invoice": {
                "number": customs.invoice.number,
                "date": customs.invoice.date.isoformat(),
            },
            "exportReason": customs.purpose.value.replace("_", " ").lower(),
            "exportReasonType": reason_type,
        }

    def from_booking_response(self, payload: Dict[str, Any]) -> BookingResult:
        tracking_number = require(payload, "shipmentTrackingNumber", self.carrier)

        package_numbers = [
            str(package["trackingNumber"])
            for package in payload.get("packages") or []
            if package.get("trackingNumber")
        ]

        documents = []
        for index, document in enumerate(payload.get("documents") or []):
            type_code = document.get("typeCode", "")
            documents.append(ShipmentDocument(
                format=(document.get("imageFormat") or "PDF").upper(),
                content=decode_document(document.get("content"), self.carrier, f"documents[{index}].content"),
                document_type=map_with_default(
                    DHL_DOCUMENT_TYPES, type_code, DocumentType.WAYBILL, "document type", self.carrier
                ),
            ))

        # Keep an audit copy without the (large) document bodies
        raw = {key: value for key, value in payload.items() if key != "documents"}

        return BookingResult(
            tracking_number=str(tracking_number),
            confirmation_reference=payload.get("dispatchConfirmationNumber"),
            tracking_url=payload.get("trackingUrl"),
            package_tracking_numbers=package_numbers,
            documents=documents,
            raw=raw,
        )
