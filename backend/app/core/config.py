"""Application configuration using pydantic-settings.

Every tunable of the tip service is read from the environment (or a local
``.env``) through the ``settings`` object below; nothing else in the code
calls ``os.getenv``.
"""

import warnings
from functools import lru_cache
from typing import List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

INSECURE_SECRET = "change-me-in-production"
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Tip service settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # SQLite for local work, PostgreSQL when deployed
    database_url: str = "sqlite:///./revmanager_tips.db"

    # JWT
    secret_key: str = INSECURE_SECRET
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 240

    # Comma separated, or "*" while developing
    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # Business day boundaries. Order and shift timestamps are stored as naive
    # local time in this zone.
    timezone: str = "UTC"

    # Tip pools
    tip_summary_default_days: int = 30
    lock_finalized_pools: bool = False

    debug: bool = True
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    api_v1_prefix: str = "/api/v1"

    rate_limit_enabled: bool = True
    tip_calculation_rate_limit: str = "10/minute"

    @field_validator("secret_key")
    @classmethod
    def warn_weak_secret(cls, v: str) -> str:
        if v == INSECURE_SECRET or len(v) < MIN_SECRET_LENGTH:
            warnings.warn(
                f"SECRET_KEY is unset or shorter than {MIN_SECRET_LENGTH} characters; "
                "tokens signed with it are easy to forge.",
                UserWarning,
                stacklevel=2,
            )
        return v

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, v: str) -> str:
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @model_validator(mode="after")
    def refuse_weak_secret_in_production(self) -> "Settings":
        if not self.debug and (self.secret_key == INSECURE_SECRET or len(self.secret_key) < MIN_SECRET_LENGTH):
            raise ValueError(
                f"FATAL: DEBUG is off but SECRET_KEY is the default or shorter than "
                f"{MIN_SECRET_LENGTH} characters (length {len(self.secret_key)})."
            )
        return self

    @property
    def cors_origins_list(self) -> List[str]:
        """CORS origins as a list."""
        if self.cors_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def redacted_database_url(self) -> Optional[str]:
        """Database URL with the password masked, for logs."""
        if "@" not in self.database_url or "://" not in self.database_url:
            return self.database_url
        scheme, rest = self.database_url.split("://", 1)
        credentials, host = rest.rsplit("@", 1)
        return f"{scheme}://{credentials.split(':', 1)[0]}:***@{host}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
