# runners_awareness/app/core/config.py
"""
Application configuration using pydantic-settings.

Security considerations:
- SECRET_KEY must be set via env in production (startup refuses the dev key)
- CORS_ORIGINS parsed from comma-separated env var, never defaults to "*"
- Database URLs normalized for async drivers automatically
- Notification providers are optional; unset providers log instead of sending
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

INSECURE_DEV_SECRET = "INSECURE_DEV_KEY_CHANGE_IN_PRODUCTION"


class Settings(BaseSettings):
    """
    Strictly typed application settings.

    Priority for loading:
    1. Environment variables (highest priority)
    2. .env file (via pydantic-settings)
    3. Default values (lowest priority, dev-safe only)
    """

    # ─────────────────────────────────────────────────────────────
    # Application metadata
    # ─────────────────────────────────────────────────────────────
    PROJECT_NAME: str = "241 Runners Awareness"
    PROJECT_VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"

    ENVIRONMENT: str = "development"

    # ─────────────────────────────────────────────────────────────
    # Security: JWT Configuration
    # Tokens live for hours, not minutes: the frontend has no refresh flow
    # ─────────────────────────────────────────────────────────────
    SECRET_KEY: str = INSECURE_DEV_SECRET
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24
    JWT_ISSUER: str = "241runners-api"

    # bcrypt cost factor; tests lower it to keep the suite fast
    BCRYPT_ROUNDS: int = 12

    # ─────────────────────────────────────────────────────────────
    # Verification / reset token lifetimes
    # ─────────────────────────────────────────────────────────────
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    PHONE_VERIFICATION_EXPIRE_MINUTES: int = 10
    PASSWORD_RESET_EXPIRE_HOURS: int = 1

    # ─────────────────────────────────────────────────────────────
    # Two-factor authentication
    # ─────────────────────────────────────────────────────────────
    TOTP_ISSUER: str = "241 Runners Awareness"
    BACKUP_CODE_COUNT: int = 10
    BACKUP_CODE_LENGTH: int = 8

    # ─────────────────────────────────────────────────────────────
    # Rate limiting (per client address, slowapi syntax)
    # ─────────────────────────────────────────────────────────────
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_LOGIN: str = "5/5minutes"
    RATE_LIMIT_REGISTER: str = "3/5minutes"
    RATE_LIMIT_VERIFY: str = "10/10minutes"
    RATE_LIMIT_TWO_FACTOR: str = "5/5minutes"

    # ─────────────────────────────────────────────────────────────
    # Google sign-in
    # GOOGLE_CLIENT_ID empty → audience check skipped (dev only)
    # ─────────────────────────────────────────────────────────────
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_TOKENINFO_URL: str = "https://oauth2.googleapis.com/tokeninfo"

    # ─────────────────────────────────────────────────────────────
    # Notification delivery
    # SMTP_HOST empty → emails are logged, not sent
    # SMS_ACCOUNT_SID empty → SMS are logged, not sent
    # ─────────────────────────────────────────────────────────────
    FRONTEND_URL: str = "http://localhost:5500"
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_FROM_EMAIL: str = "noreply@241runnersawareness.org"
    SMTP_FROM_NAME: str = "241 Runners Awareness"
    SMS_API_URL: str = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"
    SMS_ACCOUNT_SID: str = ""
    SMS_AUTH_TOKEN: str = ""
    SMS_FROM_NUMBER: str = ""
    NOTIFICATION_TIMEOUT_SECONDS: float = 10.0

    # ─────────────────────────────────────────────────────────────
    # Logging
    # LOG_DIR empty → console only
    # ─────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # ─────────────────────────────────────────────────────────────
    # Database Configuration
    # Priority: DATABASE_URL env var → SQLite fallback for local dev
    # ─────────────────────────────────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./runners.db"

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def normalize_database_url(cls, v: Optional[str]) -> str:
        """
        Normalize database URLs for async SQLAlchemy compatibility.

        Conversions:
        - postgres://     → postgresql+asyncpg://  (Azure/Render style)
        - postgresql://   → postgresql+asyncpg://  (standard PostgreSQL)
        - sqlite:///      → sqlite+aiosqlite:///   (local development)
        """
        if v is None:
            return "sqlite+aiosqlite:///./runners.db"

        url = v.strip()

        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)

        if url.startswith("postgresql://") and "+asyncpg" not in url:
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)

        if url.startswith("sqlite:///") and "+aiosqlite" not in url:
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)

        return url

    # MUST be False in production to prevent SQL query exposure
    DATABASE_ECHO: bool = False

    # ─────────────────────────────────────────────────────────────
    # CORS Configuration
    # Empty string → empty list (NOT "*" for security)
    # ─────────────────────────────────────────────────────────────
    CORS_ORIGINS: str = "http://localhost:5500,http://127.0.0.1:5500,https://241runnersawareness.org"

    @property
    def BACKEND_CORS_ORIGINS(self) -> List[str]:
        """Parse CORS_ORIGINS into a list of allowed origins."""
        if not self.CORS_ORIGINS or not self.CORS_ORIGINS.strip():
            return []

        return [
            origin.strip()
            for origin in self.CORS_ORIGINS.split(",")
            if origin.strip()
        ]

    @model_validator(mode="after")
    def reject_dev_secret_in_production(self) -> "Settings":
        if self.is_production and self.SECRET_KEY == INSECURE_DEV_SECRET:
            raise ValueError("SECRET_KEY must be set when ENVIRONMENT=production")
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        # Extra fields in .env are ignored (prevents config injection)
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.DATABASE_URL.lower()

    @property
    def access_token_expire_seconds(self) -> int:
        return self.ACCESS_TOKEN_EXPIRE_MINUTES * 60


@lru_cache()
def get_settings() -> Settings:
    """
    Cached settings instance.

    Settings are loaded once so every module sees the same configuration.
    """
    return Settings()


# Module-level alias; most code imports `settings` directly
settings = get_settings()
