from __future__ import annotations

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "StageAsset"
    app_env: str = "development"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./stageasset.db"
    portal_base_url: str = "http://localhost:5173"

    email_backend: str = "console"
    email_from: str = "noreply@stageasset.com"
    email_timeout_sec: int = 30

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True

    sendgrid_api_key: str = ""
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"

    reminder_cooldown_hours: int = 24
    ledger_max_retries: int = 3
    block_archived_event_uploads: bool = True

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("email_backend")
    @classmethod
    def validate_email_backend(cls, value: str) -> str:
        allowed = {"smtp", "sendgrid", "console"}
        if value not in allowed:
            raise ValueError(f"email_backend must be one of {sorted(allowed)}")
        return value

    @field_validator("reminder_cooldown_hours", "ledger_max_retries")
    @classmethod
    def validate_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("value must not be negative")
        return value

    @property
    def portal_root(self) -> str:
        return self.portal_base_url.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
