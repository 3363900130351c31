"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional
from urllib.parse import quote_plus

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

DEFAULT_SENSITIVE_FIELDS = [
    "password",
    "password_confirmation",
    "current_password",
    "new_password",
    "token",
    "access_token",
    "refresh_token",
    "api_key",
    "api_secret",
    "secret",
    "secret_key",
    "private_key",
    "public_key",
    "auth_token",
    "bearer_token",
    "authorization",
    "credit_card",
    "card_number",
    "full_number",
    "cvv",
    "cvc",
    "ssn",
    "social_security",
]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=True)

    # Application
    APP_NAME: str = "Audit Trail Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = ""
    POSTGRES_USER: str = "audit"
    POSTGRES_PASSWORD: str = "audit"
    DATABASE_POOL_SIZE: int = 30
    DATABASE_MAX_OVERFLOW: int = 20

    # Read API tokens
    SECRET_KEY: str = "dev-secret-key-change-in-production-use-openssl-rand-hex-32"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60

    # Audit integrity
    AUDIT_KEY: Optional[str] = None
    AUDIT_DEFAULT_LEVEL: int = Field(default=0, ge=0)
    AUDIT_DEFAULT_EXCLUDE: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["id", "created_at", "updated_at", "deleted_at"]
    )
    AUDIT_DEFAULT_IGNORE_CHANGES: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["updated_at"]
    )
    AUDIT_SENSITIVE_FIELDS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_SENSITIVE_FIELDS)
    )
    AUDIT_REDACTION_MAX_DEPTH: int = 32

    # Correlation
    REFERENCE_ID_HEADER: str = "X-Reference-Id"

    # Inbound request logging
    REQUEST_LOGGING_ENABLED: bool = True
    REQUEST_LOGGING_ONLY_AUTHENTICATED: bool = False
    REQUEST_LOGGING_EXCLUDE_PATHS: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["/health", "/metrics"]
    )
    SESSION_COOKIE_NAME: str = "session"

    # Outgoing request logging
    OUTGOING_REQUEST_LOGGING_ENABLED: bool = True
    OUTGOING_REQUEST_EXCLUDE_URLS: Annotated[List[str], NoDecode] = Field(default_factory=list)

    # Retention (days; unset disables the sweep for that category)
    EVENT_RETENTION_DAYS: Optional[int] = None
    REQUEST_RETENTION_DAYS: Optional[int] = None
    OUTGOING_REQUEST_RETENTION_DAYS: Optional[int] = None
    RETENTION_BATCH_SIZE: int = 1000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    @field_validator(
        "CORS_ORIGINS",
        "AUDIT_DEFAULT_EXCLUDE",
        "AUDIT_DEFAULT_IGNORE_CHANGES",
        "AUDIT_SENSITIVE_FIELDS",
        "REQUEST_LOGGING_EXCLUDE_PATHS",
        "OUTGOING_REQUEST_EXCLUDE_URLS",
        mode="before",
    )
    @classmethod
    def _parse_string_list(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated values from env.

        Examples:
            AUDIT_SENSITIVE_FIELDS=["password","iban"]
            AUDIT_SENSITIVE_FIELDS=password,iban
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

        return [item.strip() for item in raw.split(",") if item.strip()]

    @field_validator(
        "EVENT_RETENTION_DAYS",
        "REQUEST_RETENTION_DAYS",
        "OUTGOING_REQUEST_RETENTION_DAYS",
        mode="before",
    )
    @classmethod
    def _parse_optional_days(cls, value: Any) -> Any:
        """Treat empty or 'null'/'none' env values as a disabled policy."""
        if isinstance(value, str) and value.strip().lower() in {"", "null", "none"}:
            return None
        return value

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "audit.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
          3) Local SQLite file next to the backend directory
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        if self.POSTGRES_DB:
            user = quote_plus(self.POSTGRES_USER)
            password = quote_plus(self.POSTGRES_PASSWORD)
            return (
                f"postgresql://{user}:{password}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )

        return f"sqlite:///{_BASE_DIR / 'audit_trail.db'}"

    def retention_days_for(self, kind: str) -> Optional[int]:
        """Configured retention age for a record kind (None disables it)."""
        return {
            "events": self.EVENT_RETENTION_DAYS,
            "requests": self.REQUEST_RETENTION_DAYS,
            "outgoing_requests": self.OUTGOING_REQUEST_RETENTION_DAYS,
        }.get(kind)

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ValueError: If insecure defaults are detected.
        """
        if self.ENVIRONMENT.lower() != "production":
            return

        insecure_secret_markers = {
            "",
            "dev-secret-key-change-in-production-use-openssl-rand-hex-32",
            "change-me",
        }

        if self.SECRET_KEY in insecure_secret_markers or len(self.SECRET_KEY) < 32:
            raise ValueError(
                "Insecure SECRET_KEY for production. Use a strong key (e.g. `openssl rand -hex 32`)."
            )

        if not self.AUDIT_KEY or len(self.AUDIT_KEY) < 32:
            raise ValueError(
                "AUDIT_KEY must be set to at least 32 characters in production; "
                "audit checksums cannot be computed without it."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
