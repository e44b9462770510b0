"""
Tests for the FedEx REST API transformer.
"""
import logging
from datetime import datetime, timedelta, timezone

import pytest

from carrier_gateway.core.exceptions import ResponseParseError
from carrier_gateway.models.shipment import (
    Contact,
    CustomsDeclaration,
    Dimensions,
    DimensionUnit,
    DocumentType,
    DutiesPayer,
    PackageSpec,
    ShipmentParty,
    ShipmentPurpose,
    Weight,
    WeightUnit,
)
from carrier_gateway.modules.shipping.transformers.fedex import FedExTransformer

from tests.conftest import INVOICE_PDF, LABEL_PDF


@pytest.fixture
def transformer() -> FedExTransformer:
    return FedExTransformer(account_number="740561073")


class TestRateRequest:
    def test_rate_request_shape(self, transformer, fedex_request):
        wire = transformer.to_rate_request(fedex_request)

        assert wire.method == "POST"
        assert wire.path == "/rate/v1/rates/quotes"
        shipment = wire.json["requestedShipment"]
        assert wire.json["accountNumber"] == {"value": "740561073"}
        assert shipment["shipDateStamp"] == "2026-03-10"
        assert shipment["totalPackageCount"] == 3
        assert [p["sequenceNumber"] for p in shipment["requestedPackageLineItems"]] == [1, 2, 3]
        assert shipment["requestedPackageLineItems"][0]["weight"] == {"units": "KG", "value": 1.5}
        assert shipment["recipient"]["address"]["stateOrProvinceCode"] == "NY"
        assert shipment["customsClearanceDetail"]["dutiesPayment"] == {"paymentType": "RECIPIENT"}

    def test_ship_date_uses_declared_zone(self, transformer, make_request):
        # 01:30 in Dubai on the 11th is still the 10th in UTC
        request = make_request(
            carrier=transformer.carrier,
            planned_ship_at=datetime(2026, 3, 11, 1, 30, tzinfo=timezone(timedelta(hours=4))),
        )
        assert transformer.to_rate_request(request).json["requestedShipment"]["shipDateStamp"] == "2026-03-11"

    def test_units_travel_with_each_package(self, transformer, make_request):
        request = make_request(packages=[
            PackageSpec(Weight(3.2, WeightUnit.LB), Dimensions(11.2, 8, 4.5, DimensionUnit.IN)),
        ])
        item = transformer.to_rate_request(request).json["requestedShipment"]["requestedPackageLineItems"][0]

        assert item["weight"] == {"units": "LB", "value": 3.2}
        assert item["dimensions"] == {"length": 12, "width": 8, "height": 5, "units": "IN"}


class TestRateResponse:
    def test_rate_reply_details_map_to_quotes(self, transformer, fedex_request, fedex_rates_payload):
        quotes = transformer.from_rate_response(fedex_rates_payload, fedex_request)

        assert [q.service_code for q in quotes] == ["INTERNATIONAL_PRIORITY", "INTERNATIONAL_ECONOMY"]
        priority, economy = quotes
        assert str(priority.total_price.amount) == "212.35"
        assert priority.total_price.currency == "USD"
        assert priority.estimated_delivery == datetime(2026, 3, 12, 10, 30)
        assert economy.estimated_delivery == datetime(2026, 3, 16, 18, 0)

    def test_empty_reply_is_no_rates(self, transformer, fedex_request):
        assert transformer.from_rate_response({"output": {"rateReplyDetails": []}}, fedex_request) == []

    @pytest.mark.parametrize("output", [{"alerts": []}, {"rateReplyDetails": None}, {"rateReplyDetails": {}}])
    def test_reply_without_details_list_raises(self, transformer, fedex_request, output):
        with pytest.raises(ResponseParseError) as exc_info:
            transformer.from_rate_response({"output": output}, fedex_request)
        assert exc_info.value.field == "output.rateReplyDetails"

    def test_missing_output_raises(self, transformer, fedex_request):
        with pytest.raises(ResponseParseError):
            transformer.from_rate_response({"transactionId": "x"}, fedex_request)


class TestBookingRequest:
    def test_ship_request_shape(self, transformer, fedex_request):
        wire = transformer.to_booking_request(fedex_request)
        shipment = wire.json["requestedShipment"]

        assert wire.path == "/ship/v1/shipments"
        assert shipment["shipDatestamp"] == "2026-03-10"
        assert shipment["serviceType"] == "INTERNATIONAL_PRIORITY"
        assert shipment["totalPackageCount"] == 3
        items = shipment["requestedPackageLineItems"]
        assert [i["sequenceNumber"] for i in items] == [1, 2, 3]
        assert items[2]["customerReferences"] == [
            {"customerReferenceType": "CUSTOMER_REFERENCE", "value": "ORD-1001"}
        ]
        assert shipment["recipients"][0]["contact"]["personName"] == "Jordan Lee"

    def test_customs_clearance_detail(self, transformer, fedex_request):
        customs = transformer.to_booking_request(fedex_request).json["requestedShipment"]["customsClearanceDetail"]

        assert customs["dutiesPayment"] == {"paymentType": "RECIPIENT"}
        assert customs["commercialInvoice"]["shipmentPurpose"] == "SOLD"
        assert customs["totalCustomsValue"] == {"amount": 360.0, "currency": "USD"}
        commodity = customs["commodities"][0]
        assert commodity["quantity"] == 3
        assert commodity["customsValue"] == {"amount": 360.0, "currency": "USD"}
        assert commodity["harmonizedCode"] == "490199"

    @pytest.mark.parametrize("purpose,expected", [
        (ShipmentPurpose.REPAIR, "REPAIR_AND_RETURN"),
        (ShipmentPurpose.RETURN, "REPAIR_AND_RETURN"),
        (ShipmentPurpose.PERSONAL_EFFECTS, "PERSONAL_EFFECTS"),
        (ShipmentPurpose.NOT_SOLD, "NOT_SOLD"),
    ])
    def test_shipment_purposes(self, transformer, make_request, customs, purpose, expected):
        declaration = CustomsDeclaration(
            lines=customs.lines,
            invoice=customs.invoice,
            declared_value=customs.declared_value,
            duties_payer=DutiesPayer.THIRD_PARTY,
            purpose=purpose,
        )
        request = make_request(customs=declaration)
        detail = transformer.to_booking_request(request).json["requestedShipment"]["customsClearanceDetail"]

        assert detail["commercialInvoice"]["shipmentPurpose"] == expected
        assert detail["dutiesPayment"] == {"paymentType": "THIRD_PARTY"}

    def test_contact_fields_truncated(self, transformer, make_request, new_york_receiver, caplog):
        receiver = ShipmentParty(
            address=new_york_receiver.address,
            contact=Contact(name="N" * 80, company="C" * 50, phone="+1 212 555 0100 ext 42"),
        )
        request = make_request(receiver=receiver)
        with caplog.at_level(logging.WARNING):
            contact = transformer.to_booking_request(request).json["requestedShipment"]["recipients"][0]["contact"]

        assert len(contact["personName"]) == 70
        assert len(contact["companyName"]) == 35
        assert len(contact["phoneNumber"]) == 15
        assert "Truncating person name" in caplog.text


class TestBookingResponse:
    def test_parses_master_and_piece_tracking(self, transformer, fedex_ship_payload):
        result = transformer.from_booking_response(fedex_ship_payload)

        assert result.tracking_number == "794953535000"
        assert result.package_tracking_numbers == ["794953535000", "794953535011", "794953535022"]
        assert result.confirmation_reference == "624deea6-b709-470c-8c39-4b5511281492"
        types = [d.document_type for d in result.documents]
        assert types.count(DocumentType.LABEL) == 3
        assert types[-1] == DocumentType.INVOICE
        assert result.documents[0].content == LABEL_PDF
        assert result.documents[-1].content == INVOICE_PDF

    def test_empty_transaction_shipments_raises(self, transformer):
        with pytest.raises(ResponseParseError):
            transformer.from_booking_response({"output": {"transactionShipments": []}})

    def test_missing_master_tracking_number_raises(self, transformer, fedex_ship_payload):
        del fedex_ship_payload["output"]["transactionShipments"][0]["masterTrackingNumber"]
        with pytest.raises(ResponseParseError) as exc_info:
            transformer.from_booking_response(fedex_ship_payload)
        assert exc_info.value.field.endswith("masterTrackingNumber")

    def test_unknown_content_type_is_waybill(self, transformer, fedex_ship_payload):
        shipment = fedex_ship_payload["output"]["transactionShipments"][0]
        shipment["shipmentDocuments"][0]["contentType"] = "AUXILIARY_LABEL"
        result = transformer.from_booking_response(fedex_ship_payload)
        assert result.documents[-1].document_type == DocumentType.WAYBILL
