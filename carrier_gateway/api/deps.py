"""
API dependencies

The registry and orchestrator are built once in the application lifespan
and stored on app.state; routes receive them through these dependencies.
"""
from fastapi import HTTPException, Request, status

from carrier_gateway.modules.shipping.carriers import CarrierRegistry
from carrier_gateway.services.booking_orchestrator import BookingOrchestrator


def get_registry(request: Request) -> CarrierRegistry:
    registry = getattr(request.app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service starting")
    return registry


def get_orchestrator(request: Request) -> BookingOrchestrator:
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service starting")
    return orchestrator
