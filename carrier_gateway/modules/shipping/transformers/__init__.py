from carrier_gateway.modules.shipping.transformers.base import (
    CarrierTransformer,
    FieldLimits,
    WireRequest,
    expand_packages,
)
from carrier_gateway.modules.shipping.transformers.dhl import DHL_LIMITS, DHLTransformer
from carrier_gateway.modules.shipping.transformers.fedex import FEDEX_LIMITS, FedExTransformer

__all__ = [
    "CarrierTransformer",
    "FieldLimits",
    "WireRequest",
    "expand_packages",
    "DHLTransformer",
    "DHL_LIMITS",
    "FedExTransformer",
    "FEDEX_LIMITS",
]
