"""
Carrier Gateway
FastAPI application entry point

- Lifespan is the composition root: it builds the carrier registry and the
  booking orchestrator once and stores them on app.state
- Carrier HTTP clients (and OAuth token clients) are closed on shutdown
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI

from carrier_gateway.api.routes import shipping
from carrier_gateway.core.config import Settings, settings as default_settings
from carrier_gateway.modules.shipping.carriers import build_registry
from carrier_gateway.modules.shipping.validation import ShipmentValidator
from carrier_gateway.services.booking_orchestrator import BookingOrchestrator
from carrier_gateway.services.collaborators import (
    DownstreamSync,
    MetadataLookup,
    NoopDownstreamSync,
    ShipmentRepository,
)

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Optional[Settings] = None,
    downstream: Optional[DownstreamSync] = None,
    metadata: Optional[MetadataLookup] = None,
    repository: Optional[ShipmentRepository] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to a no-op downstream sync and no metadata
    lookups; transport is forwarded to every carrier HTTP client.
    """
    config = app_settings or default_settings

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        registry = build_registry(config, transport=transport)
        if downstream is None:
            logger.warning("No downstream sync configured - bookings complete without ERP sync")
        app.state.registry = registry
        app.state.orchestrator = BookingOrchestrator(
            registry=registry,
            downstream=downstream or NoopDownstreamSync(),
            validator=ShipmentValidator(metadata),
            repository=repository,
        )
        logger.info(f"{config.APP_NAME} started ({config.ENVIRONMENT})")

        yield

        # Close carrier HTTP clients to prevent connection leaks
        await registry.close()
        logger.info("Carrier HTTP clients closed")

    app = FastAPI(
        lifespan=lifespan,
        title=config.APP_NAME,
        description="Carrier abstraction layer: rating and booking across DHL Express and FedEx.",
    )
    app.include_router(shipping.router, prefix="/api", tags=["Shipping"])

    @app.get("/health")
    async def health_check():
        registry = getattr(app.state, "registry", None)
        carriers = sorted(code.value for code in registry.list_supported()) if registry else []
        return {
            "status": "healthy",
            "environment": config.ENVIRONMENT,
            "carriers": carriers,
        }

    return app


app = create_app()
