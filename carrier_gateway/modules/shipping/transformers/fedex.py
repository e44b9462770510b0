"""
FedEx Transformer (FedEx REST API)

Wire conventions:
- Units travel with every measurement ("units": KG/LB, CM/IN)
- shipDateStamp (rate) / shipDatestamp (ship) are YYYY-MM-DD in the
  shipment's own timezone
- Dimensions are whole numbers; fractional values are rounded up
"""
import logging
import math
from typing import Any, Dict, List, Optional

from carrier_gateway.core.exceptions import ResponseParseError
from carrier_gateway.models.shipment import (
    BookingResult,
    CarrierCode,
    CommodityLine,
    DocumentType,
    DutiesPayer,
    Money,
    PackageSpec,
    RateQuote,
    ShipmentDocument,
    ShipmentParty,
    ShipmentPurpose,
    ShipmentRequest,
)
from carrier_gateway.modules.shipping.transformers.base import (
    CarrierTransformer,
    FieldLimits,
    WireRequest,
    decode_document,
    expand_packages,
    map_with_default,
    parse_carrier_datetime,
    require,
    round_measure,
)

logger = logging.getLogger(__name__)

RATES_PATH = "/rate/v1/rates/quotes"
SHIP_PATH = "/ship/v1/shipments"

FEDEX_LIMITS = FieldLimits(
    address_line=35,
    address_lines=3,
    city=35,
    postal_code=10,
    person_name=70,
    company=35,
    phone=15,
    description=450,
    commodity_description=450,
    reference=40,
)

FEDEX_DUTIES_PAYMENT_TYPES = {
    DutiesPayer.SENDER: "SENDER",
    DutiesPayer.RECIPIENT: "RECIPIENT",
    DutiesPayer.THIRD_PARTY: "THIRD_PARTY",
}
FEDEX_DEFAULT_DUTIES_PAYMENT_TYPE = "RECIPIENT"

FEDEX_SHIPMENT_PURPOSES = {
    ShipmentPurpose.SOLD: "SOLD",
    ShipmentPurpose.GIFT: "GIFT",
    ShipmentPurpose.SAMPLE: "SAMPLE",
    ShipmentPurpose.REPAIR: "REPAIR_AND_RETURN",
    ShipmentPurpose.RETURN: "REPAIR_AND_RETURN",
    ShipmentPurpose.PERSONAL_EFFECTS: "PERSONAL_EFFECTS",
    ShipmentPurpose.NOT_SOLD: "NOT_SOLD",
}
FEDEX_DEFAULT_SHIPMENT_PURPOSE = "SOLD"

FEDEX_DOCUMENT_TYPES = {
    "LABEL": DocumentType.LABEL,
    "COMMERCIAL_INVOICE": DocumentType.INVOICE,
}

FEDEX_DEFAULT_INTERNATIONAL_SERVICE = "INTERNATIONAL_PRIORITY"
FEDEX_DEFAULT_DOMESTIC_SERVICE = "FEDEX_GROUND"
FEDEX_PICKUP_TYPE = "DROPOFF_AT_FEDEX_LOCATION"


class FedExTransformer(CarrierTransformer):
    carrier = CarrierCode.FEDEX
    limits = FEDEX_LIMITS

    def __init__(self, account_number: str, label_stock_type: str = "PAPER_85X11_TOP_HALF_LABEL"):
        self.account_number = account_number
        self.label_stock_type = label_stock_type

    @staticmethod
    def format_ship_date(request: ShipmentRequest) -> str:
        return request.planned_ship_at.date().isoformat()

    # ==================== Building blocks ====================

    def _address(self, party: ShipmentParty) -> Dict[str, Any]:
        address = party.address
        wire = {
            "streetLines": self._street_lines(address.street_lines),
            "city": self._cut(address.city, self.limits.city, "city"),
            "postalCode": self._cut(address.postal_code, self.limits.postal_code, "postal code"),
            "countryCode": address.country_code,
        }
        if address.state_code:
            wire["stateOrProvinceCode"] = address.state_code
        return wire

    def _contact(self, party: ShipmentParty) -> Dict[str, Any]:
        contact = party.contact
        wire = {
            "personName": self._cut(contact.name, self.limits.person_name, "person name"),
            "phoneNumber": self._cut(contact.phone or "", self.limits.phone, "phone"),
        }
        if contact.company:
            wire["companyName"] = self._cut(contact.company, self.limits.company, "company")
        if contact.email:
            wire["emailAddress"] = contact.email
        return wire

    @staticmethod
    def _package(sequence_number: int, package: PackageSpec) -> Dict[str, Any]:
        wire = {
            "sequenceNumber": sequence_number,
            "weight": {
                "units": package.weight.unit.value,
                "value": round_measure(package.weight.value),
            },
        }
        if package.dimensions:
            dims = package.dimensions
            wire["dimensions"] = {
                "length": math.ceil(dims.length),
                "width": math.ceil(dims.width),
                "height": math.ceil(dims.height),
                "units": dims.unit.value,
            }
        return wire

    @staticmethod
    def _money(money: Money) -> Dict[str, Any]:
        return {"amount": float(money.amount), "currency": money.currency}

    def _commodity(self, line: CommodityLine) -> Dict[str, Any]:
        wire = {
            "description": self._cut(
                line.description, self.limits.commodity_description, "commodity description"
            ),
            "countryOfManufacture": line.country_of_manufacture.upper(),
            "quantity": line.quantity,
            "quantityUnits": line.unit_of_measure,
            "unitPrice": self._money(line.unit_price),
            "customsValue": self._money(line.line_value),
            "weight": {
                "units": line.gross_weight.unit.value,
                "value": round_measure(line.gross_weight.value),
            },
        }
        if line.hs_code:
            wire["harmonizedCode"] = line.hs_code
        return wire

    def _duties_payment(self, request: ShipmentRequest) -> Dict[str, Any]:
        return {
            "paymentType": map_with_default(
                FEDEX_DUTIES_PAYMENT_TYPES,
                request.customs.duties_payer,
                FEDEX_DEFAULT_DUTIES_PAYMENT_TYPE,
                "duties payment type",
                self.carrier,
            )
        }

    # ==================== Rates ====================

    def to_rate_request(self, request: ShipmentRequest) -> WireRequest:
        expanded = expand_packages(request.packages)

        requested_shipment: Dict[str, Any] = {
            "shipper": {"address": self._address(request.shipper)},
            "recipient": {"address": self._address(request.receiver)},
            "shipDateStamp": self.format_ship_date(request),
            "pickupType": FEDEX_PICKUP_TYPE,
            "rateRequestType": ["ACCOUNT", "LIST"],
            "requestedPackageLineItems": [self._package(seq, pkg) for seq, pkg in expanded],
            "totalPackageCount": len(expanded),
        }
        if request.product_code:
            requested_shipment["serviceType"] = request.product_code
        if request.is_cross_border and request.customs:
            requested_shipment["customsClearanceDetail"] = {
                "dutiesPayment": self._duties_payment(request),
                "commodities": [self._commodity(line) for line in request.customs.lines],
            }

        body = {
            "accountNumber": {"value": self.account_number},
            "rateRequestControlParameters": {"returnTransitTimes": True},
            "requestedShipment": requested_shipment,
        }
        return WireRequest(method="POST", path=RATES_PATH, json=body)

    def from_rate_response(self, payload: Dict[str, Any], request: ShipmentRequest) -> List[RateQuote]:
        output = require(payload, "output", self.carrier)
        details = output.get("rateReplyDetails") if isinstance(output, dict) else None
        if not isinstance(details, list):
            raise ResponseParseError(
                "FEDEX rate response has no 'output.rateReplyDetails' list",
                field="output.rateReplyDetails",
                carrier=self.carrier.value,
                raw=payload,
            )

        quotes = []
        for detail in details:
            rated = detail.get("ratedShipmentDetails") or []
            if not rated or rated[0].get("totalNetCharge") is None:
                logger.warning(
                    f"[FEDEX] Service {detail.get('serviceType')!r} returned without a charge, skipping"
                )
                continue
            first = rated[0]
            currency = first.get("currency") or (first.get("shipmentRateDetail") or {}).get("currency")
            if not currency:
                raise ResponseParseError(
                    "FEDEX rate response has a charge without a currency",
                    field="ratedShipmentDetails[0].currency",
                    carrier=self.carrier.value,
                    raw=detail,
                )

            quotes.append(RateQuote(
                carrier=self.carrier,
                service_name=detail.get("serviceName") or detail.get("serviceType", ""),
                service_code=require(detail, "serviceType", self.carrier, "output.rateReplyDetails[]"),
                total_price=Money(first["totalNetCharge"], currency),
                estimated_delivery=self._delivery_estimate(detail),
                raw=detail,
            ))

        return quotes

    @staticmethod
    def _delivery_estimate(detail: Dict[str, Any]):
        day_format = ((detail.get("commit") or {}).get("dateDetail") or {}).get("dayFormat")
        if day_format:
            return parse_carrier_datetime(day_format)
        return parse_carrier_datetime((detail.get("operationalDetail") or {}).get("deliveryDate"))

    # ==================== Booking ====================

    def to_booking_request(self, request: ShipmentRequest) -> WireRequest:
        expanded = expand_packages(request.packages)
        reference = self._cut(request.reference, self.limits.reference, "customer reference")

        line_items = []
        for seq, package in expanded:
            item = self._package(seq, package)
            item["customerReferences"] = [
                {"customerReferenceType": "CUSTOMER_REFERENCE", "value": reference}
            ]
            line_items.append(item)

        service_type = request.product_code or (
            FEDEX_DEFAULT_INTERNATIONAL_SERVICE if request.is_cross_border else FEDEX_DEFAULT_DOMESTIC_SERVICE
        )

        requested_shipment: Dict[str, Any] = {
            "shipper": {
                "contact": self._contact(request.shipper),
                "address": self._address(request.shipper),
            },
            "recipients": [{
                "contact": self._contact(request.receiver),
                "address": self._address(request.receiver),
            }],
            "shipDatestamp": self.format_ship_date(request),
            "serviceType": service_type,
            "packagingType": "YOUR_PACKAGING",
            "pickupType": FEDEX_PICKUP_TYPE,
            "shippingChargesPayment": {"paymentType": "SENDER"},
            "labelSpecification": {
                "imageType": "PDF",
                "labelStockType": self.label_stock_type,
            },
            "totalPackageCount": len(expanded),
            "requestedPackageLineItems": line_items,
        }

        if request.customs:
            requested_shipment["customsClearanceDetail"] = self._customs_clearance(request)
            requested_shipment["shippingDocumentSpecification"] = {
                "shippingDocumentTypes": ["COMMERCIAL_INVOICE"],
                "commercialInvoiceDetail": {
                    "documentFormat": {"stockType": "PAPER_LETTER", "docType": "PDF"},
                },
            }

        body = {
            "labelResponseOptions": "LABEL",
            "accountNumber": {"value": self.account_number},
            "requestedShipment": requested_shipment,
        }
        return WireRequest(method="POST", path=SHIP_PATH, json=body)

    def _customs_clearance(self, request: ShipmentRequest) -> Dict[str, Any]:
        customs = request.customs
        purpose = map_with_default(
            FEDEX_SHIPMENT_PURPOSES,
            customs.purpose,
            FEDEX_DEFAULT_SHIPMENT_PURPOSE,
            "shipment purpose",
            self.carrier,
        )
        commercial_invoice = {
            "shipmentPurpose": purpose,
            "customerReferences": [
                {"customerReferenceType": "INVOICE_NUMBER", "value": customs.invoice.number}
            ],
        }
        if request.description:
            commercial_invoice["comments"] = [
                self._cut(request.description, self.limits.description, "description")
            ]
        return {
            "dutiesPayment": self._duties_payment(request),
            "isDocumentOnly": False,
            "commercialInvoice": commercial_invoice,
            "commodities": [self._commodity(line) for line in customs.lines],
            "totalCustomsValue": self._money(customs.declared_value),
        }

    def from_booking_response(self, payload: Dict[str, Any]) -> BookingResult:
        output = require(payload, "output", self.carrier)
        shipments = output.get("transactionShipments")
        if not isinstance(shipments, list) or not shipments:
            raise ResponseParseError(
                "FEDEX ship response has no transaction shipments",
                field="output.transactionShipments",
                carrier=self.carrier.value,
                raw=payload,
            )

        shipment = shipments[0]
        master = require(shipment, "masterTrackingNumber", self.carrier, "output.transactionShipments[0]")

        package_numbers = []
        documents = []
        for index, piece in enumerate(shipment.get("pieceResponses") or []):
            if piece.get("trackingNumber"):
                package_numbers.append(str(piece["trackingNumber"]))
            documents.extend(
                self._documents(piece.get("packageDocuments") or [], f"pieceResponses[{index}]")
            )
        documents.extend(self._documents(shipment.get("shipmentDocuments") or [], "shipmentDocuments"))

        return BookingResult(
            tracking_number=str(master),
            confirmation_reference=payload.get("transactionId"),
            package_tracking_numbers=package_numbers,
            documents=documents,
            raw={
                "transactionId": payload.get("transactionId"),
                "masterTrackingNumber": master,
                "serviceType": shipment.get("serviceType"),
                "alerts": output.get("alerts") or [],
            },
        )

    def _documents(self, entries: List[Dict[str, Any]], path: str) -> List[ShipmentDocument]:
        documents = []
        for index, entry in enumerate(entries):
            content: Optional[str] = entry.get("encodedLabel")
            if not content and entry.get("url"):
                logger.info(f"[FEDEX] Document {entry.get('contentType')} returned by URL only, not embedded")
                continue
            documents.append(ShipmentDocument(
                format=(entry.get("docType") or "PDF").upper(),
                content=decode_document(content, self.carrier, f"{path}.documents[{index}].encodedLabel"),
                document_type=FEDEX_DOCUMENT_TYPES.get(entry.get("contentType"), DocumentType.WAYBILL),
            ))
        return documents
