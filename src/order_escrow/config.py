"""Application configuration via pydantic-settings.

Reads from .env file or environment variables. All settings are validated
at startup; if a required setting is missing, the app fails fast with a
clear error message.

Usage:
    from order_escrow.config import get_settings
    settings = get_settings()
    print(settings.database_url)
"""

from __future__ import annotations

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the order escrow engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    app_env: Literal["development", "staging", "production", "test"] = "development"
    app_debug: bool = True
    app_log_level: str = "DEBUG"
    app_host: str = "0.0.0.0"
    app_port: int = 8000

    # --- Database (PostgreSQL) ---
    database_url: str = (
        "postgresql+asyncpg://escrow:escrow_dev"
        "@localhost:5432/order_escrow"
    )
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 30
    db_echo_sql: bool = False

    # --- Redis ---
    redis_url: str = "redis://localhost:6379/0"
    sweep_lock_ttl_seconds: int = 300

    # --- Commercial terms ---
    platform_fee_rate: Decimal = Field(default=Decimal("0.10"), ge=0, lt=1)
    default_currency: str = "NGN"
    default_max_revisions: int = 1
    auto_approval_days: int = 7

    # --- Payment gateway (Flutterwave-compatible) ---
    gateway_provider_name: str = "flutterwave"
    gateway_base_url: str = "https://api.flutterwave.com/v3"
    gateway_secret_key: str = ""
    gateway_webhook_secret: str = ""
    gateway_signature_header: str = "verif-hash"
    gateway_simulate: bool = True
    gateway_timeout_seconds: float = 15.0
    payment_redirect_url: str = "http://localhost:3000/payment/callback"

    # --- Administration ---
    admin_api_key: str = ""

    @property
    def is_development(self) -> bool:
        return self.app_env in ("development", "test")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton of the application settings."""
    return Settings()
