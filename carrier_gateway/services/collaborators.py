"""
Collaborator interfaces consumed by the booking workflow.

Order storage, ERP synchronization and metadata catalogs live outside this
package; only these shapes are relied upon.
"""
from typing import Optional, Protocol

from carrier_gateway.models.shipment import BookingResult, ShipmentRequest


class ShipmentRepository(Protocol):
    async def get_shipment_request(self, order_id: str) -> ShipmentRequest:
        """Load the reviewed shipment for an order."""
        ...


class DownstreamSync(Protocol):
    async def sync(self, result: BookingResult, request: ShipmentRequest) -> bool:
        """Push the booking to downstream systems. False means it did not take."""
        ...


class MetadataLookup(Protocol):
    def postal_code_pattern(self, country_code: str) -> Optional[str]:
        ...

    def requires_state(self, country_code: str) -> bool:
        ...

    def is_known_country(self, country_code: str) -> bool:
        ...


class NoopDownstreamSync:
    """Accepts every booking. Used when no downstream system is wired."""

    async def sync(self, result: BookingResult, request: ShipmentRequest) -> bool:
        return True
