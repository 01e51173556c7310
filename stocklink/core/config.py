# stocklink/core/config.py

import os
from functools import lru_cache
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Shopify API
    SHOPIFY_SHOP_URL: Optional[str] = None
    SHOPIFY_ADMIN_API_ACCESS_TOKEN: Optional[str] = None  # Fallback when the shop record carries no token
    SHOPIFY_API_VERSION: str = "2025-01"
    SHOPIFY_LOCATION_GID: Optional[str] = None  # Only sync levels held at this location when set

    # Etsy OAuth / API
    ETSY_CLIENT_ID: str = ""
    ETSY_REDIRECT_URI: str = ""
    ETSY_TOKEN_REFRESH_MARGIN_MINUTES: int = 10
    ETSY_LISTINGS_PAGE_SIZE: int = 100

    # Bulk export polling (12 x 20s = 4 minute ceiling)
    BULK_POLL_MAX_ATTEMPTS: int = 12
    BULK_POLL_INTERVAL_SECONDS: float = 20.0

    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Reconciliation policy
    ADVANCE_BASELINE_ON_FAILED_WRITE: bool = True

    # Scheduler
    SYNC_INTERVAL_MINUTES: int = 30

    # Basic Auth for the operator API
    BASIC_AUTH_USERNAME: str = "admin"
    BASIC_AUTH_PASSWORD: Optional[str] = None

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore"
    )


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()
