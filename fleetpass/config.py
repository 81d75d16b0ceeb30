"""
FleetPass - Configuration Management

Centralized configuration using Pydantic Settings.
All secrets and connection strings are loaded from environment variables.

The Settings object is frozen once built. Components that need the signing
secret or the password policy receive it explicitly from the application
factory instead of reading a module global.

Security: No secrets are hardcoded. Use .env for local development.
"""

import logging
import secrets
from functools import lru_cache
from typing import List

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


logger = logging.getLogger(__name__)

MIN_SECRET_KEY_LENGTH = 32


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        DEBUG: Development mode; allows an auto-generated SECRET_KEY
        SECRET_KEY: HS256 signing key for session tokens
        DATABASE_URL: SQLAlchemy URL for the identity store
        BCRYPT_ROUNDS: bcrypt work factor for new password hashes
        EMAIL_CASE_SENSITIVE: Treat "A@x.com" and "a@x.com" as distinct accounts
        FRONTEND_URL: Base URL used for links in outbound notifications
        RATE_LIMIT_ENABLED: Toggle the per-address limiter on public auth routes
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
    )

    # Application
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Security (DEBUG must stay declared above SECRET_KEY for validation)
    SECRET_KEY: str = ""  # Must be set via environment outside DEBUG
    JWT_ALGORITHM: str = "HS256"
    SESSION_TOKEN_EXPIRE_HOURS: int = 24

    # Single-use action tokens
    VERIFICATION_TOKEN_EXPIRE_HOURS: int = 24
    RESET_TOKEN_EXPIRE_HOURS: int = 1
    ACTION_TOKEN_BYTES: int = 32

    # Credentials
    BCRYPT_ROUNDS: int = 12
    PASSWORD_MIN_LENGTH: int = 8
    PASSWORD_REQUIRE_UPPER: bool = True
    PASSWORD_REQUIRE_LOWER: bool = True
    PASSWORD_REQUIRE_DIGIT: bool = True
    PASSWORD_REQUIRE_SPECIAL: bool = True
    PASSWORD_REJECT_COMMON: bool = True
    EMAIL_CASE_SENSITIVE: bool = True

    # Database (PostgreSQL for production, SQLite for development)
    DATABASE_URL: str = "sqlite:///./fleetpass.db"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost"]

    # Notifications
    FRONTEND_URL: str = "http://localhost:3000"

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True

    # Optional bootstrap account, seeded at startup when both are set
    SUPERADMIN_EMAIL: str = ""
    SUPERADMIN_PASSWORD: str = ""

    @field_validator("SECRET_KEY")
    @classmethod
    def secret_key_strength(cls, v: str, info: ValidationInfo) -> str:
        """Generate a throwaway key in DEBUG; refuse to run without one otherwise."""
        if not v:
            if info.data.get("DEBUG"):
                logger.warning("SECRET_KEY not set; generated a random key (DEBUG only)")
                return secrets.token_urlsafe(48)
            raise ValueError("SECRET_KEY must be set outside DEBUG mode")
        if len(v) < MIN_SECRET_KEY_LENGTH:
            raise ValueError(
                f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters"
            )
        return v


@lru_cache()
def get_settings() -> Settings:
    """Build the process-wide settings once."""
    return Settings()
