"""Application configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    openai_api_key: str = Field(..., alias="OPENAI_API_KEY")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        alias="OPENAI_BASE_URL",
    )
    openai_assistants_beta: str = Field(default="assistants=v2", alias="OPENAI_ASSISTANTS_BETA")
    database_path: Path = Field(default=Path("funclink.db"), alias="DATABASE_PATH")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")
    telegram_api_base_url: str = Field(default="https://api.telegram.org", alias="TELEGRAM_API_BASE_URL")
    # Platform-wide mail account, used when an email channel has no SMTP settings of its own.
    smtp_host: str = Field(default="", alias="SMTP_HOST")
    smtp_port: int = Field(default=465, alias="SMTP_PORT")
    smtp_user: str = Field(default="", alias="SMTP_USER")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    smtp_security: str = Field(default="ssl", alias="SMTP_SECURITY")
    smtp_from: str = Field(default="", alias="SMTP_FROM")
    email_sender_name: str = Field(default="funclink", alias="EMAIL_SENDER_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    sync_interval_seconds: float = Field(default=900.0, alias="SYNC_INTERVAL_SECONDS")
    sync_mode: str = Field(default="observe", alias="SYNC_MODE")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()
