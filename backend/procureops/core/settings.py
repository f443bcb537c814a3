# backend/procureops/core/settings.py
"""
ProcureOps - Configuration Management with pydantic-settings

- Loads from environment and root .env
- Validates and normalizes values
- Cached singleton via get_settings()
"""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# backend/procureops/core/settings.py -> <repo>/.env
_ENV_FILE = Path(__file__).resolve().parent.parent.parent.parent / ".env"


class Settings(BaseSettings):
    """
    Application settings with validation.

    Environment variables take precedence over .env file values.
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ===================
    # Application Settings
    # ===================
    PROJECT_NAME: str = "ProcureOps"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Deployment environment")

    # ===================
    # Database Settings
    # ===================
    DB_HOST: str = Field(default="localhost", description="PostgreSQL host")
    DB_PORT: int = Field(default=5432, description="PostgreSQL port")
    DB_NAME: str = Field(default="procureops", description="Database name")
    DB_USER: str = Field(default="postgres", description="Database user")
    DB_PASSWORD: str = Field(default="postgres", description="Database password")
    DATABASE_URL: Optional[str] = Field(
        default=None, description="Full database URL (overrides DB_* settings)"
    )
    DB_POOL_SIZE: int = Field(default=5, ge=1)
    DB_POOL_TIMEOUT: int = Field(
        default=10, ge=1, description="Seconds to wait for a pooled connection"
    )
    DB_STATEMENT_TIMEOUT_MS: int = Field(
        default=5000, ge=0, description="Per-statement timeout (PostgreSQL), 0 disables"
    )
    AUTO_CREATE_TABLES: bool = Field(
        default=True, description="Create missing tables at startup (dev convenience)"
    )

    @property
    def database_url(self) -> str:
        """Build PostgreSQL database URL from components or use explicit URL."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    # ===================
    # Purchasing
    # ===================
    PO_NUMBER_PREFIX: str = Field(default="PO", min_length=1, max_length=10)
    MAX_PO_LINES: int = Field(default=500, ge=1, description="Maximum lines per order")
    DEFAULT_PAGE_LIMIT: int = Field(default=10, ge=1)
    MAX_PAGE_LIMIT: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def check_page_limits(self):
        """Default page size can never exceed the maximum."""
        if self.DEFAULT_PAGE_LIMIT > self.MAX_PAGE_LIMIT:
            self.DEFAULT_PAGE_LIMIT = self.MAX_PAGE_LIMIT
        return self

    # ===================
    # Logging
    # ===================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # json or text
    LOG_FILE: Optional[str] = None

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower().strip()
        if v not in ("json", "text"):
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings loader (cached)."""
    return Settings()
