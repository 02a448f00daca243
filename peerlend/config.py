"""Configuration management using Pydantic Settings"""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Activity store (history entries and notifications)
    database_url: str = "sqlite:///./peerlend.db"

    # External Services
    notifier_webhook_url: Optional[str] = None

    # Service
    service_name: str = "peerlend"
    log_level: str = "INFO"
    seed_demo_users: bool = False

    # Marketplace
    platform_fee_rate: float = 0.015
    schedule_window: int = 6  # Installments shown in a payment schedule projection
    history_limit: int = 10

    # HTTP Client
    http_timeout_seconds: float = 5.0
    webhook_max_retries: int = 5
    webhook_backoff_base: float = 1.0  # Exponential backoff base in seconds


settings = Settings()
