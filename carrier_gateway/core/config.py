"""
Application configuration

SECURITY: Defaults are fail-safe for production.
- Carriers are disabled until explicitly enabled
- Enabled carriers with blank credentials are rejected in production
- Credentials are never logged; tokens are never persisted
"""
import logging
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# DHL Express MyDHL API
DHL_PRODUCTION_URL = "https://express.api.dhl.com/mydhlapi"
DHL_SANDBOX_URL = "https://express.api.dhl.com/mydhlapi/test"

# FedEx REST API
FEDEX_PRODUCTION_URL = "https://apis.fedex.com"
FEDEX_SANDBOX_URL = "https://apis-sandbox.fedex.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Carrier Gateway"
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # DHL Express (static Basic-Auth credential)
    DHL_ENABLED: bool = False
    DHL_USERNAME: str = ""
    DHL_PASSWORD: str = ""
    DHL_ACCOUNT_NUMBER: str = ""
    DHL_USE_SANDBOX: bool = False
    DHL_BASE_URL: Optional[str] = None  # Overrides sandbox/production selection

    # FedEx (OAuth2 client-credentials)
    FEDEX_ENABLED: bool = False
    FEDEX_CLIENT_ID: str = ""
    FEDEX_CLIENT_SECRET: str = ""
    FEDEX_ACCOUNT_NUMBER: str = ""
    FEDEX_USE_SANDBOX: bool = False
    FEDEX_BASE_URL: Optional[str] = None

    # Timeouts (seconds)
    CARRIER_RATE_TIMEOUT_SECONDS: float = 30.0
    CARRIER_BOOKING_TIMEOUT_SECONDS: float = 60.0
    OAUTH_TOKEN_TIMEOUT_SECONDS: float = 15.0

    # Refresh OAuth tokens this many seconds before they expire
    OAUTH_REFRESH_BUFFER_SECONDS: int = 300

    # Label output
    DHL_LABEL_TEMPLATE: str = "ECOM26_84_001"
    FEDEX_LABEL_STOCK_TYPE: str = "PAPER_85X11_TOP_HALF_LABEL"

    @property
    def dhl_base_url(self) -> str:
        if self.DHL_BASE_URL:
            return self.DHL_BASE_URL.rstrip("/")
        return DHL_SANDBOX_URL if self.DHL_USE_SANDBOX else DHL_PRODUCTION_URL

    @property
    def fedex_base_url(self) -> str:
        if self.FEDEX_BASE_URL:
            return self.FEDEX_BASE_URL.rstrip("/")
        return FEDEX_SANDBOX_URL if self.FEDEX_USE_SANDBOX else FEDEX_PRODUCTION_URL

    @model_validator(mode="after")
    def validate_production_config(self):
        """Runtime validation to catch incomplete production carrier configurations."""
        if self.ENVIRONMENT != "production":
            return self

        errors = []

        if self.DHL_ENABLED:
            for name in ("DHL_USERNAME", "DHL_PASSWORD", "DHL_ACCOUNT_NUMBER"):
                if not getattr(self, name):
                    errors.append(f"{name} is required when DHL_ENABLED=true")
            if self.DHL_USE_SANDBOX:
                errors.append("DHL_USE_SANDBOX=true is forbidden in production")

        if self.FEDEX_ENABLED:
            for name in ("FEDEX_CLIENT_ID", "FEDEX_CLIENT_SECRET", "FEDEX_ACCOUNT_NUMBER"):
                if not getattr(self, name):
                    errors.append(f"{name} is required when FEDEX_ENABLED=true")
            if self.FEDEX_USE_SANDBOX:
                errors.append("FEDEX_USE_SANDBOX=true is forbidden in production")

        if self.CARRIER_RATE_TIMEOUT_SECONDS > self.CARRIER_BOOKING_TIMEOUT_SECONDS:
            logger.warning(
                "CARRIER_RATE_TIMEOUT_SECONDS exceeds CARRIER_BOOKING_TIMEOUT_SECONDS; "
                "booking calls should have the longer bound"
            )

        if errors:
            raise ValueError(
                "PRODUCTION CARRIER CONFIGURATION ERRORS:\n" + "\n".join(f"  - {e}" for e in errors)
            )

        return self


settings = Settings()
