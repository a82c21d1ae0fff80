"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from safewalk.core.config import settings
    print(settings.DEVIATION_THRESHOLD_M)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "SafeWalk Safety Core"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Document store ──
    DOCUMENT_STORE: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "safewalk"

    # ── Monitoring policy ──
    DEVIATION_THRESHOLD_M: float = 500.0
    ALERT_MONITORING_RADIUS_M: float = 300.0  # community alert list
    SAFE_ZONE_RADIUS_M: float = 500.0         # safe-zone circle on trips
    SIMULATED_DEVIATION_M: float = 600.0
    RECENT_ALERTS_LIMIT: int = 5

    # ── Geolocation ──
    GEOLOCATION_TIMEOUT_MS: int = 5000
    GEOLOCATION_HIGH_ACCURACY: bool = True

    # ── Routing ──
    ROUTING_API_URL: str = "https://maps.googleapis.com/maps/api/directions/json"
    ROUTING_API_KEY: Optional[str] = None
    ROUTING_TIMEOUT_SECONDS: float = 15.0

    # ── SMS / voice gateway ──
    SMS_PROVIDER: str = "simulation"  # simulation | relay | twilio
    SMS_RELAY_URL: str = "http://localhost:5000"
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_VOICE_URL: str = "http://demo.twilio.com/docs/voice.xml"
    COUNTRY_PREFIX: str = "+91"
    DISPATCH_TIMEOUT_SECONDS: float = 10.0

    # ── SOS message ──
    MAP_LINK_BASE: str = "https://www.google.com/maps?q="

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
