"""
Shipment Validation

Rejects a ShipmentRequest before any carrier call when it breaks the target
carrier's field rules. Transformers truncate as a last resort; this is the
place where over-long data is refused with a caller-correctable error.

Every violation is collected so the caller can fix them in one pass.
"""
import logging
import re
from typing import Dict, List, Optional

from carrier_gateway.core.exceptions import ShipmentValidationError
from carrier_gateway.models.shipment import CarrierCode, ShipmentParty, ShipmentRequest
from carrier_gateway.modules.shipping.transformers.base import FieldLimits
from carrier_gateway.modules.shipping.transformers.dhl import DHLTransformer
from carrier_gateway.modules.shipping.transformers.fedex import FedExTransformer
from carrier_gateway.services.collaborators import MetadataLookup

logger = logging.getLogger(__name__)

CARRIER_LIMITS: Dict[CarrierCode, FieldLimits] = {
    DHLTransformer.carrier: DHLTransformer.limits,
    FedExTransformer.carrier: FedExTransformer.limits,
}


class ShipmentValidator:
    def __init__(self, metadata: Optional[MetadataLookup] = None):
        self.metadata = metadata

    def validate(self, request: ShipmentRequest) -> None:
        """Raises ShipmentValidationError listing every violation."""
        errors: List[str] = []
        limits = CARRIER_LIMITS.get(request.carrier)

        if not request.reference or not request.reference.strip():
            errors.append("reference is required")
        elif limits and len(request.reference) > limits.reference:
            errors.append(f"reference exceeds {limits.reference} characters")

        if not request.packages:
            errors.append("at least one package is required")
        for index, package in enumerate(request.packages):
            if package.weight.value <= 0:
                errors.append(f"packages[{index}].weight must be positive")
            dims = package.dimensions
            if dims and min(dims.length, dims.width, dims.height) <= 0:
                errors.append(f"packages[{index}].dimensions must be positive")

        errors.extend(self._party_errors("shipper", request.shipper, limits))
        errors.extend(self._party_errors("receiver", request.receiver, limits))

        if request.is_cross_border:
            if request.customs is None:
                errors.append("customs declaration is required for cross-border shipments")
            elif not request.customs.lines:
                errors.append("customs declaration needs at least one commodity line")
        if request.customs:
            for index, line in enumerate(request.customs.lines):
                if line.quantity < 1:
                    errors.append(f"customs.lines[{index}].quantity must be at least 1")
                if limits and len(line.description) > limits.commodity_description:
                    errors.append(
                        f"customs.lines[{index}].description exceeds "
                        f"{limits.commodity_description} characters"
                    )

        if errors:
            logger.info(f"[VALIDATION] {request.reference}: {len(errors)} error(s)")
            raise ShipmentValidationError(
                f"Shipment {request.reference} failed validation",
                errors=errors,
                carrier=request.carrier.value,
            )

    def _party_errors(self, role: str, party: ShipmentParty, limits: Optional[FieldLimits]) -> List[str]:
        errors = []
        address = party.address
        lines = [line for line in address.street_lines if line and line.strip()]

        if not lines:
            errors.append(f"{role}.address needs at least one street line")
        if limits:
            if len(lines) > limits.address_lines:
                errors.append(f"{role}.address allows at most {limits.address_lines} street lines")
            for index, line in enumerate(lines):
                if len(line) > limits.address_line:
                    errors.append(
                        f"{role}.address.street_lines[{index}] exceeds {limits.address_line} characters"
                    )
            if len(address.city) > limits.city:
                errors.append(f"{role}.address.city exceeds {limits.city} characters")
            if len(party.contact.name) > limits.person_name:
                errors.append(f"{role}.contact.name exceeds {limits.person_name} characters")

        if not address.city.strip():
            errors.append(f"{role}.address.city is required")
        if not party.contact.name.strip():
            errors.append(f"{role}.contact.name is required")

        if self.metadata is None:
            return errors

        country = address.country_code
        if not self.metadata.is_known_country(country):
            errors.append(f"{role}.address.country_code {country!r} is not a known country")
            return errors

        if self.metadata.requires_state(country) and not address.state_code:
            errors.append(f"{role}.address.state_code is required for {country}")

        pattern = self.metadata.postal_code_pattern(country)
        if pattern and not re.fullmatch(pattern, address.postal_code or ""):
            errors.append(f"{role}.address.postal_code {address.postal_code!r} is invalid for {country}")

        return errors
