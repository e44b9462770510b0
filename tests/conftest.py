"""
Pytest configuration and fixtures for carrier gateway tests.
"""
import base64
import os
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DHL_ENABLED"] = "false"
os.environ["FEDEX_ENABLED"] = "false"

from carrier_gateway.models.shipment import (  # noqa: E402
    Address,
    CarrierCode,
    CommodityLine,
    Contact,
    CustomsDeclaration,
    Dimensions,
    DutiesPayer,
    Invoice,
    Money,
    PackageSpec,
    ShipmentParty,
    ShipmentPurpose,
    ShipmentRequest,
    Weight,
)

GST = timezone(timedelta(hours=4))

LABEL_PDF = b"%PDF-1.4 label"
INVOICE_PDF = b"%PDF-1.4 invoice"


def b64(content: bytes) -> str:
    return base64.b64encode(content).decode()


class FakeClock:
    """Injectable clock for credential expiry tests."""

    def __init__(self, start: datetime = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dubai_shipper() -> ShipmentParty:
    return ShipmentParty(
        address=Address(
            street_lines=["Unit 12, Al Quoz Industrial Area 3"],
            city="Dubai",
            postal_code="00000",
            country_code="ae",
        ),
        contact=Contact(
            name="Fatima Al Mansouri",
            company="Gulf Collectibles LLC",
            phone="+97143334444",
            email="shipping@gulfcollectibles.example",
        ),
    )


@pytest.fixture
def new_york_receiver() -> ShipmentParty:
    return ShipmentParty(
        address=Address(
            street_lines=["350 Fifth Avenue", "Suite 2100"],
            city="New York",
            postal_code="10118",
            country_code="US",
            state_code="ny",
        ),
        contact=Contact(name="Jordan Lee", phone="+12125550100"),
    )


@pytest.fixture
def customs() -> CustomsDeclaration:
    return CustomsDeclaration(
        lines=[
            CommodityLine(
                description="Graded comic book in protective slab",
                unit_price=Money(Decimal("120.00"), "USD"),
                quantity=3,
                net_weight=Weight(0.9),
                gross_weight=Weight(1.2),
                country_of_manufacture="US",
                hs_code="490199",
            )
        ],
        invoice=Invoice(number="INV-2026-0042", date=date(2026, 3, 9)),
        declared_value=Money(Decimal("360.00"), "USD"),
        duties_payer=DutiesPayer.RECIPIENT,
        purpose=ShipmentPurpose.SOLD,
    )


@pytest.fixture
def make_request(dubai_shipper, new_york_receiver, customs):
    """Factory for the AE -> US/NY shipment with three identical packages."""

    def _make(carrier: CarrierCode = CarrierCode.DHL_EXPRESS, **overrides) -> ShipmentRequest:
        fields = dict(
            shipper=dubai_shipper,
            receiver=new_york_receiver,
            packages=[
                PackageSpec(
                    weight=Weight(1.5),
                    dimensions=Dimensions(30, 20, 10),
                    replicate_count=3,
                )
            ],
            planned_ship_at=datetime(2026, 3, 10, 14, 30, tzinfo=GST),
            carrier=carrier,
            reference="ORD-1001",
            customs=customs,
            description="Collectible comic books",
        )
        fields.update(overrides)
        return ShipmentRequest(**fields)

    return _make


@pytest.fixture
def dhl_request(make_request) -> ShipmentRequest:
    return make_request(CarrierCode.DHL_EXPRESS)


@pytest.fixture
def fedex_request(make_request) -> ShipmentRequest:
    return make_request(CarrierCode.FEDEX)


# ==================== Carrier payloads ====================


@pytest.fixture
def dhl_rates_payload() -> dict:
    return {
        "products": [
            {
                "productName": "EXPRESS WORLDWIDE",
                "productCode": "P",
                "totalPrice": [
                    {"currencyType": "BILLC", "priceCurrency": "AED", "price": 512.4},
                    {"currencyType": "PULCL", "priceCurrency": "USD", "price": 139.5},
                ],
                "deliveryCapabilities": {"estimatedDeliveryDateAndTime": "2026-03-13T23:59:00"},
            },
            {
                "productName": "EXPRESS 12:00",
                "productCode": "Y",
                "totalPrice": [{"currencyType": "PULCL", "priceCurrency": "USD", "price": 181.0}],
            },
        ]
    }


@pytest.fixture
def dhl_booking_payload() -> dict:
    return {
        "shipmentTrackingNumber": "1234567890",
        "dispatchConfirmationNumber": "PRG999126012345",
        "packages": [
            {"referenceNumber": 1, "trackingNumber": "JD014600003828490001"},
            {"referenceNumber": 2, "trackingNumber": "JD014600003828490002"},
            {"referenceNumber": 3, "trackingNumber": "JD014600003828490003"},
        ],
        "documents": [
            {"imageFormat": "PDF", "content": b64(LABEL_PDF), "typeCode": "label"},
            {"imageFormat": "PDF", "content": b64(INVOICE_PDF), "typeCode": "invoice"},
        ],
    }


@pytest.fixture
def fedex_rates_payload() -> dict:
    return {
        "transactionId": "tx-rate-1",
        "output": {
            "rateReplyDetails": [
                {
                    "serviceType": "INTERNATIONAL_PRIORITY",
                    "serviceName": "FedEx International Priority",
                    "ratedShipmentDetails": [
                        {"rateType": "ACCOUNT", "totalNetCharge": 212.35, "currency": "USD"},
                        {"rateType": "LIST", "totalNetCharge": 260.10, "currency": "USD"},
                    ],
                    "commit": {"dateDetail": {"dayFormat": "2026-03-12T10:30:00"}},
                },
                {
                    "serviceType": "INTERNATIONAL_ECONOMY",
                    "serviceName": "FedEx International Economy",
                    "ratedShipmentDetails": [{"totalNetCharge": 158.0, "currency": "USD"}],
                    "operationalDetail": {"deliveryDate": "2026-03-16T18:00:00"},
                },
            ]
        },
    }


@pytest.fixture
def fedex_ship_payload() -> dict:
    return {
        "transactionId": "624deea6-b709-470c-8c39-4b5511281492",
        "output": {
            "transactionShipments": [
                {
                    "serviceType": "INTERNATIONAL_PRIORITY",
                    "masterTrackingNumber": "794953535000",
                    "pieceResponses": [
                        {
                            "trackingNumber": "794953535000",
                            "packageDocuments": [
                                {"contentType": "LABEL", "docType": "PDF", "encodedLabel": b64(LABEL_PDF)}
                            ],
                        },
                        {
                            "trackingNumber": "794953535011",
                            "packageDocuments": [
                                {"contentType": "LABEL", "docType": "PDF", "encodedLabel": b64(LABEL_PDF)}
                            ],
                        },
                        {
                            "trackingNumber": "794953535022",
                            "packageDocuments": [
                                {"contentType": "LABEL", "docType": "PDF", "encodedLabel": b64(LABEL_PDF)}
                            ],
                        },
                    ],
                    "shipmentDocuments": [
                        {
                            "contentType": "COMMERCIAL_INVOICE",
                            "docType": "PDF",
                            "encodedLabel": b64(INVOICE_PDF),
                        }
                    ],
                }
            ]
        },
    }


@pytest.fixture
def token_payload() -> dict:
    return {"access_token": "eyJhbGciOiJSUzI1NiJ9.test", "token_type": "bearer", "expires_in": 3600}
