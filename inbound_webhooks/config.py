"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Redis (task wake-up notifications, heartbeats, alert cooldowns)
    redis_url: str = "redis://localhost:6379/0"

    # Sentry
    sentry_dsn: str = ""

    # Alerting
    alert_webhook_url: str = ""  # Discord/Slack webhook URL for critical alerts

    # Ingestion
    max_webhook_body_bytes: int = 1_048_576  # 1 MiB

    # Stripe
    stripe_webhook_secret: str = ""
    stripe_webhook_tolerance_seconds: int = 300

    # Movies provider
    movies_webhook_secret: str = ""
    movies_webhook_tolerance_seconds: int = 300
    movies_webhook_verification: str = "reject_all"  # hmac, accept_all, reject_all

    # Task queue
    task_max_retries: int = 3

    # Workers
    reconciliation_sweeper_enabled: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
