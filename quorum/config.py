"""Application settings, read from the environment (prefix ``QUORUM_``)."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_url: str = "http://localhost:8080"

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    # SMTP
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_from: str | None = None
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False

    # Outbound calls (webhooks and SMTP) share one timeout
    external_timeout_seconds: float = 10.0

    # Notifications
    notification_dedup_minutes: int = 60
    notification_retention_days: int = 30
    notify_workers: int = 4

    email_verification_hours: int = 24

    model_config = SettingsConfigDict(
        env_prefix="QUORUM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_from)


@lru_cache
def get_settings() -> Settings:
    return Settings()
