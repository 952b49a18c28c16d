"""
Application configuration using pydantic-settings.
Loads from environment variables / .env file.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "ledgerline"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    secret_key: str

    # API Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Postgres
    database_url: str
    db_command_timeout_seconds: float = 5.0
    db_pool_timeout_seconds: float = 5.0

    # Redis (sessions, webhook fast-path dedup, Celery broker)
    redis_url: str = "redis://localhost:6379/0"

    # Admin
    admin_api_key: str = ""

    # Envelope encryption for seller secrets (comma-separated Fernet keys,
    # first key encrypts, all keys decrypt)
    secrets_master_keys: str = ""

    # Webhook dedup ledger
    webhook_retention_days: int = 7

    # Orders
    default_currency: str = "INR"
    invoice_base_url: str = "https://invoices.ledgerline.app"
    verification_reminder_hours: int = 6

    # Meta WhatsApp (outbound notifications)
    meta_access_token: str = ""
    meta_phone_number_id: str = ""

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def master_keys(self) -> List[str]:
        return [k.strip() for k in self.secrets_master_keys.split(",") if k.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
