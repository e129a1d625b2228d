"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development, where the
telephony stack runs in the self-acknowledging simulation profile.

Usage:
    from backend.app.core.config import settings
    print(settings.SMS_ACK_TIMEOUT_SECONDS)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List

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
    APP_NAME: str = "SMS Bridge"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = True  # auto-reload on file changes (dev only)

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Telephony ──
    TELEPHONY_PROFILE: str = "simulation"  # simulation | webhook
    SMS_CHANNELS: List[str] = ["1:SIM 1", "2:SIM 2"]  # "<id>:<label>"
    SMS_DEFAULT_CHANNEL_ID: int = -1  # -1 = no valid default subscription
    SMS_GRANTED_PERMISSIONS: List[str] = ["SEND_SMS", "READ_PHONE_STATE"]

    # ── Send / acknowledgment ──
    SMS_ACK_TIMEOUT_SECONDS: float = 10.0
    SMS_SEGMENT_LIMIT: int = 160  # GSM 7-bit single-part limit
    SMS_SEND_WORKERS: int = 4  # background send threads

    # ── Simulation profile ──
    SIMULATION_RESULT_CODE: int = -1  # RESULT_OK
    SIMULATION_ACK_DELAY_SECONDS: float = 0.2
    SIMULATION_DROP_ACKS: bool = False  # emulate a stalled ack broadcast
    SIMULATION_HISTORY_SIZE: int = 100  # submissions kept for inspection

    # ── Webhook profile ──
    WEBHOOK_OUTBOX_SIZE: int = 100  # uncollected, unacknowledged submissions

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
