"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Antimat"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Database
    # If database_url_override is set (e.g., for a managed instance with SSL), it takes precedence
    database_url_override: str | None = None
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "antimat"
    postgres_password: str = ""
    postgres_db: str = "antimat"
    db_retry_delay_seconds: float = 5.0

    def _with_scheme(self, scheme: str) -> str:
        if not self.database_url_override:
            return (
                f"{scheme}://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )
        url = self.database_url_override
        for prefix in ("postgresql+asyncpg://", "postgresql://", "postgres://"):
            if url.startswith(prefix):
                return scheme + "://" + url[len(prefix):]
        # Non-Postgres URLs (sqlite+aiosqlite in tests) pass through untouched
        return url

    @computed_field
    @property
    def database_url(self) -> str:
        """Async driver URL for the application engine."""
        url = self._with_scheme("postgresql+asyncpg")
        # asyncpg rejects libpq query params; SSL goes through connect_args
        if url.startswith("postgresql+asyncpg://"):
            url = url.split("?", 1)[0]
        return url

    @computed_field
    @property
    def database_requires_ssl(self) -> bool:
        override = self.database_url_override or ""
        return "sslmode=require" in override or "ssl=require" in override

    @computed_field
    @property
    def database_url_sync(self) -> str:
        """psycopg2 URL for Alembic."""
        return self._with_scheme("postgresql")

    # Auth / JWT
    jwt_secret_key: str  # Required - no default, must be set in .env
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 60 * 24 * 30  # 30 days

    # Admin panel. Admin tokens are signed with their own secret so a user
    # token can never be replayed against admin routes.
    admin_password: str | None = None
    admin_jwt_secret_key: str | None = None
    admin_jwt_expire_minutes: int = 60 * 24 * 7  # 7 days

    @computed_field
    @property
    def admin_signing_key(self) -> str:
        """Secret used for admin tokens."""
        return self.admin_jwt_secret_key or f"{self.jwt_secret_key}:admin"

    # CORS
    cors_origins: list[str] = ["*"]

    # Public site (invite links, APK download)
    site_url: str = "https://antimat.reflexai.pro"

    # Firebase Cloud Messaging
    # Either a service-account JSON file, or the individual fields below.
    firebase_credentials_path: str | None = None
    firebase_project_id: str | None = None
    firebase_client_email: str | None = None
    firebase_private_key: str | None = None
    firebase_private_key_id: str | None = None
    firebase_client_id: str | None = None

    # S3-compatible storage for APK releases
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None
    aws_s3_bucket: str = "antimat-releases"
    aws_s3_region: str = "us-east-2"
    aws_s3_endpoint_url: str | None = None  # Set for MinIO/LocalStack (e.g. http://localhost:9000)
    max_apk_size_bytes: int = 500 * 1024 * 1024  # 500MB

    # Chat long-poll
    chat_poll_timeout_ms: int = 30_000
    chat_poll_interval_ms: int = 1_000
    chat_poll_batch: int = 50

    # IANA zone whose midnight starts the "day" stats period
    stats_timezone: str = "UTC"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def sanitize_error(error: Exception, *, generic_message: str = "An internal error occurred.") -> str:
    """
    Return a user-safe error message.

    In development, returns the full exception string for debugging.
    In staging/production, returns a generic message to avoid leaking internals.
    """
    settings = get_settings()
    if settings.environment == "development":
        return str(error)
    return generic_message
