from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./bakeriq.db"
    secret_key: str = "change-me"
    log_level: str = "INFO"

    # Canonical base URL used to build every link in lifecycle emails
    app_canonical_url: str = "https://bakeriq.app"

    @field_validator("app_canonical_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: object) -> str:
        if value is None:
            return "https://bakeriq.app"
        cleaned = str(value).strip().rstrip("/")
        return cleaned or "https://bakeriq.app"

    # Operator control surface
    operator_api_key: str = ""

    # Lifecycle scheduler
    lifecycle_scheduler_enabled: bool = False
    lifecycle_scheduler_timezone: str = "UTC"

    # Onboarding sequence
    onboarding_emails_enabled: bool = True
    onboarding_interval_seconds: int = 60 * 60
    onboarding_max_age_days: int = 7

    # Retention campaigns
    retention_emails_enabled: bool = True
    retention_initial_delay_seconds: int = 60 * 60
    retention_interval_seconds: int = 7 * 24 * 60 * 60
    retention_send_delay_seconds: float = 0.1
    retention_cooldown_days: int = 7
    retention_onboarding_overlap_hours: int = 48

    # Email delivery
    email_backend: Literal["ses", "smtp", "disabled"] = "disabled"
    email_from_address: str = "noreply@bakeriq.app"
    email_from_name: str = "BakerIQ"
    aws_ses_region: str = "us-east-1"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True

    @field_validator("aws_ses_region", mode="before")
    @classmethod
    def _normalize_ses_region(cls, value: object) -> str:
        # Accept SMTP endpoints such as email-smtp.eu-west-1.amazonaws.com
        if not value:
            return "us-east-1"
        region = str(value).strip()
        if region.startswith("email-smtp."):
            parts = region.split(".")
            return parts[1] if len(parts) > 2 else "us-east-1"
        return region


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
