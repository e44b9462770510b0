"""
Tests for the DHL Express (MyDHL API) transformer.
"""
import logging
from datetime import datetime, timedelta, timezone

import pytest

from carrier_gateway.core.exceptions import ResponseParseError
from carrier_gateway.models.shipment import (
    Address,
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
from carrier_gateway.modules.shipping.transformers.dhl import DHLTransformer

from tests.conftest import INVOICE_PDF, LABEL_PDF


@pytest.fixture
def transformer() -> DHLTransformer:
    return DHLTransformer(account_number="950000001")


def with_customs(customs, **changes) -> CustomsDeclaration:
    fields = dict(
        lines=customs.lines,
        invoice=customs.invoice,
        declared_value=customs.declared_value,
        duties_payer=customs.duties_payer,
        purpose=customs.purpose,
    )
    fields.update(changes)
    return CustomsDeclaration(**fields)


class TestRateRequest:
    def test_single_package_uses_get_with_query_params(self, transformer, make_request):
        request = make_request(packages=[PackageSpec(Weight(2.0), Dimensions(30, 20, 10))])
        wire = transformer.to_rate_request(request)

        assert wire.method == "GET"
        assert wire.path == "/rates"
        assert wire.json is None
        assert wire.params["accountNumber"] == "950000001"
        assert wire.params["originCountryCode"] == "AE"
        assert wire.params["destinationCountryCode"] == "US"
        assert wire.params["destinationPostalCode"] == "10118"
        assert wire.params["weight"] == 2.0
        assert (wire.params["length"], wire.params["width"], wire.params["height"]) == (30, 20, 10)
        assert wire.params["plannedShippingDate"] == "2026-03-10"
        assert wire.params["isCustomsDeclarable"] == "true"
        assert wire.params["unitOfMeasurement"] == "metric"

    def test_replicated_packages_use_post_body(self, transformer, dhl_request):
        wire = transformer.to_rate_request(dhl_request)

        assert wire.method == "POST"
        assert wire.params is None
        assert len(wire.json["packages"]) == 3
        assert wire.json["plannedShippingDateAndTime"] == "2026-03-10T14:30:00GMT+04:00"
        assert wire.json["isCustomsDeclarable"] is True
        assert wire.json["monetaryAmount"][0] == {
            "typeCode": "declaredValue",
            "value": 360.0,
            "currency": "USD",
        }

    def test_negative_offset_is_formatted(self, transformer, make_request):
        eastern = timezone(timedelta(hours=-5))
        request = make_request(planned_ship_at=datetime(2026, 3, 10, 9, 5, tzinfo=eastern))
        wire = transformer.to_rate_request(request)
        assert wire.json["plannedShippingDateAndTime"] == "2026-03-10T09:05:00GMT-05:00"

    def test_imperial_system_converts_every_package(self, transformer, make_request):
        request = make_request(packages=[
            PackageSpec(Weight(4.0, WeightUnit.LB), Dimensions(12, 10, 4, DimensionUnit.IN)),
            PackageSpec(Weight(1.0, WeightUnit.KG), Dimensions(25.4, 25.4, 25.4, DimensionUnit.CM)),
        ])
        wire = transformer.to_rate_request(request)

        assert wire.json["unitOfMeasurement"] == "imperial"
        second = wire.json["packages"][1]
        assert second["weight"] == pytest.approx(2.205, abs=0.001)
        assert second["dimensions"] == {"length": 10.0, "width": 10.0, "height": 10.0}


class TestRateResponse:
    def test_products_map_to_quotes(self, transformer, dhl_request, dhl_rates_payload):
        quotes = transformer.from_rate_response(dhl_rates_payload, dhl_request)

        assert [q.service_code for q in quotes] == ["P", "Y"]
        express = quotes[0]
        assert express.service_name == "EXPRESS WORLDWIDE"
        assert str(express.total_price.amount) == "512.4"
        assert express.total_price.currency == "AED"
        assert express.estimated_delivery == datetime(2026, 3, 13, 23, 59)
        # No BILLC entry: first priced entry wins
        assert quotes[1].total_price.currency == "USD"

    def test_empty_products_is_no_rates(self, transformer, dhl_request):
        assert transformer.from_rate_response({"products": []}, dhl_request) == []

    def test_missing_products_raises(self, transformer, dhl_request):
        with pytest.raises(ResponseParseError):
            transformer.from_rate_response({"warnings": []}, dhl_request)


class TestBookingRequest:
    def test_replicated_packages_expand_with_references(self, transformer, dhl_request):
        body = transformer.to_booking_request(dhl_request).json

        packages = body["content"]["packages"]
        assert len(packages) == 3
        assert all(p["customerReferences"] == [{"value": "ORD-1001", "typeCode": "CU"}] for p in packages)
        assert body["customerReferences"] == [{"value": "ORD-1001", "typeCode": "CU"}]
        assert body["productCode"] == "P"
        assert body["accounts"] == [{"typeCode": "shipper", "number": "950000001"}]

    def test_parties(self, transformer, dhl_request):
        details = transformer.to_booking_request(dhl_request).json["customerDetails"]

        receiver = details["receiverDetails"]
        assert receiver["postalAddress"]["addressLine1"] == "350 Fifth Avenue"
        assert receiver["postalAddress"]["addressLine2"] == "Suite 2100"
        assert receiver["postalAddress"]["provinceCode"] == "NY"
        # Private receiver: company falls back to the person's name
        assert receiver["contactInformation"]["companyName"] == "Jordan Lee"
        assert details["shipperDetails"]["contactInformation"]["email"] == "shipping@gulfcollectibles.example"

    def test_export_declaration(self, transformer, dhl_request):
        content = transformer.to_booking_request(dhl_request).json["content"]

        declaration = content["exportDeclaration"]
        line = declaration["lineItems"][0]
        assert line["number"] == 1
        assert line["price"] == 120.0
        assert line["quantity"] == {"value": 3, "unitOfMeasurement": "PCS"}
        assert line["commodityCodes"] == [{"typeCode": "outbound", "value": "490199"}]
        assert line["weight"] == {"netValue": 0.9, "grossValue": 1.2}
        assert declaration["invoice"] == {"number": "INV-2026-0042", "date": "2026-03-09"}
        assert declaration["exportReasonType"] == "permanent"
        assert content["incoterm"] == "DAP"
        assert content["declaredValue"] == 360.0

    def test_recipient_pays_has_no_duties_service(self, transformer, dhl_request):
        assert "valueAddedServices" not in transformer.to_booking_request(dhl_request).json

    def test_sender_pays_is_ddp_with_dd_service(self, transformer, make_request, customs):
        request = make_request(customs=with_customs(customs, duties_payer=DutiesPayer.SENDER))
        body = transformer.to_booking_request(request).json

        assert body["content"]["incoterm"] == "DDP"
        assert body["valueAddedServices"] == [{"serviceCode": "DD"}]

    def test_third_party_falls_back_to_dap(self, transformer, make_request, customs, caplog):
        request = make_request(customs=with_customs(customs, duties_payer=DutiesPayer.THIRD_PARTY))
        with caplog.at_level(logging.WARNING):
            body = transformer.to_booking_request(request).json

        assert body["content"]["incoterm"] == "DAP"
        assert "THIRD_PARTY" in caplog.text

    @pytest.mark.parametrize("purpose,expected", [
        (ShipmentPurpose.GIFT, "permanent"),
        (ShipmentPurpose.REPAIR, "temporary"),
        (ShipmentPurpose.RETURN, "return"),
    ])
    def test_export_reason_types(self, transformer, make_request, customs, purpose, expected):
        request = make_request(customs=with_customs(customs, purpose=purpose))
        declaration = transformer.to_booking_request(request).json["content"]["exportDeclaration"]
        assert declaration["exportReasonType"] == expected

    def test_not_sold_falls_back_to_permanent(self, transformer, make_request, customs, caplog):
        request = make_request(customs=with_customs(customs, purpose=ShipmentPurpose.NOT_SOLD))
        with caplog.at_level(logging.WARNING):
            declaration = transformer.to_booking_request(request).json["content"]["exportDeclaration"]

        assert declaration["exportReasonType"] == "permanent"
        assert "NOT_SOLD" in caplog.text

    def test_long_address_lines_are_truncated_and_logged(self, transformer, make_request, new_york_receiver, caplog):
        long_receiver = ShipmentParty(
            address=Address(
                street_lines=["A" * 60, "B", "C", "D"],
                city="New York",
                postal_code="10118",
                country_code="US",
                state_code="NY",
            ),
            contact=new_york_receiver.contact,
        )
        request = make_request(receiver=long_receiver)
        with caplog.at_level(logging.WARNING):
            postal = transformer.to_booking_request(request).json["customerDetails"]["receiverDetails"]["postalAddress"]

        assert postal["addressLine1"] == "A" * 45
        assert postal["addressLine3"] == "C"
        assert "addressLine4" not in postal
        assert "Truncating address line" in caplog.text
        assert "Dropping 1 address line" in caplog.text

    def test_domestic_shipment_without_customs(self, transformer, make_request, dubai_shipper):
        request = make_request(receiver=dubai_shipper, customs=None)
        body = transformer.to_booking_request(request).json

        assert body["productCode"] == "N"
        assert body["content"]["isCustomsDeclarable"] is False
        assert "exportDeclaration" not in body["content"]


class TestBookingResponse:
    def test_parses_tracking_and_documents(self, transformer, dhl_booking_payload):
        result = transformer.from_booking_response(dhl_booking_payload)

        assert result.tracking_number == "1234567890"
        assert result.confirmation_reference == "PRG999126012345"
        assert len(result.package_tracking_numbers) == 3
        assert [d.document_type for d in result.documents] == [DocumentType.LABEL, DocumentType.INVOICE]
        assert result.documents[0].content == LABEL_PDF
        assert result.documents[1].content == INVOICE_PDF
        assert "documents" not in result.raw

    def test_missing_tracking_number_raises(self, transformer, dhl_booking_payload):
        del dhl_booking_payload["shipmentTrackingNumber"]
        with pytest.raises(ResponseParseError) as exc_info:
            transformer.from_booking_response(dhl_booking_payload)
        assert exc_info.value.field == "shipmentTrackingNumber"

    def test_invalid_document_content_raises(self, transformer, dhl_booking_payload):
        dhl_booking_payload["documents"][0]["content"] = "not base64!!"
        with pytest.raises(ResponseParseError):
            transformer.from_booking_response(dhl_booking_payload)
