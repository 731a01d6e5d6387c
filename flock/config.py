from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_SQLITE_PATH = BASE_DIR / "flock.db"
DEFAULT_SQLITE_URL = f"sqlite:///{DEFAULT_SQLITE_PATH}"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=BASE_DIR / ".env", env_prefix="FLOCK_", case_sensitive=False)

    api_token: str = Field(default="dev-token", description="Bearer token required for admin API calls")
    database_url: str = Field(default=DEFAULT_SQLITE_URL, description="SQLAlchemy database URL")
    db_timeout_seconds: float = Field(default=10.0)
    # Comma-separated values or '*' for all
    cors_origins: str = Field(default="*")
    environment: str = Field(default="development", description="development|test|production")
    log_level: str = Field(default="INFO")

    # Public app that hosts the /checkin and /verify pages
    frontend_url: str = Field(default="http://localhost:3000")
    org_name: str = Field(default="Flock Manager")

    # Check-in credentials
    checkin_token_secret: Optional[str] = Field(default=None)
    checkin_token_ttl_hours: float = Field(default=24.0, gt=0)
    checkin_token_storage_limit: int = Field(default=500, gt=0)

    # Passwordless login
    dev_token_ttl_minutes: int = Field(default=15, gt=0)
    identity_provider: str = Field(default="none", description="none|firebase")
    firebase_api_key: Optional[str] = Field(default=None)
    firebase_base_url: str = Field(default="https://identitytoolkit.googleapis.com/v1")

    # Upper bound for every outbound call (identity provider, mail APIs, SMTP)
    external_timeout_seconds: float = Field(default=10.0, gt=0)

    # Mail transports, tried in this order: SendGrid, Resend, SMTP, console
    email_from: str = Field(default="noreply@example.com")
    sendgrid_api_key: Optional[str] = Field(default=None)
    resend_api_key: Optional[str] = Field(default=None)
    smtp_host: Optional[str] = Field(default=None)
    smtp_port: int = Field(default=587)
    smtp_user: Optional[str] = Field(default=None)
    smtp_password: Optional[str] = Field(default=None)
    smtp_use_ssl: bool = Field(default=False)

    # Rate limiting (per route scope + IP per minute)
    rate_limit_enabled: bool = Field(default=False)
    rate_limit_per_minute: int = Field(default=30)

    @model_validator(mode="after")
    def _require_secret_in_production(self) -> "Settings":
        if self.is_production and not self.checkin_token_secret:
            raise ValueError("FLOCK_CHECKIN_TOKEN_SECRET must be set in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def cors_origins_list(self) -> List[str]:
        s = (self.cors_origins or "").strip()
        if not s or s == "*":
            return ["*"]
        return [part.strip() for part in s.split(",") if part.strip()]

    @property
    def frontend_base(self) -> str:
        return self.frontend_url.rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]
