"""Application configuration schema and validation."""

from typing import Literal

from pydantic import Field, PostgresDsn, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    env: Literal["dev", "staging", "prod"] = Field(
        ...,
        description="Application environment",
    )
    db_dsn: PostgresDsn = Field(
        ...,
        description="PostgreSQL connection string of the managed database",
    )
    db_pool_min: int = Field(
        default=1,
        ge=1,
        description="Minimum database connection pool size",
    )
    db_pool_max: int = Field(
        default=5,
        ge=1,
        description="Maximum database connection pool size",
    )
    supabase_url: str = Field(
        default="",
        description="Base URL of the Supabase project (auth and functions)",
    )
    supabase_anon_key: SecretStr = Field(
        default=SecretStr(""),
        description="Supabase anonymous (public) API key",
    )
    supabase_service_role_key: SecretStr = Field(
        default=SecretStr(""),
        description="Supabase service role key used by server-side handlers",
    )
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret API key",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe webhook signing secret",
    )
    functions_url: str = Field(
        default="",
        description="Base URL of the deployed HTTP handlers (defaults to {supabase_url}/functions/v1)",
    )
    default_origin: str = Field(
        default="http://localhost:5173",
        description="Origin used for checkout redirects when the request has none",
    )
    cors_allow_origin: str = Field(
        default="*",
        description="Access-Control-Allow-Origin value for browser-facing handlers",
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=60,
        description="Total timeout for outbound HTTP requests",
    )
    server_host: str = Field(
        default="0.0.0.0",
        description="Bind address for the HTTP server",
    )
    server_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port for the HTTP server",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("db_pool_max")
    @classmethod
    def validate_pool_max(cls, v: int, info) -> int:
        """Ensure pool_max >= pool_min."""
        if "db_pool_min" in info.data and v < info.data["db_pool_min"]:
            raise ValueError("db_pool_max must be >= db_pool_min")
        return v

    @field_validator("supabase_url", "functions_url", "default_origin")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs so paths can be appended directly."""
        return v.rstrip("/")

    def functions_base_url(self) -> str:
        """Base URL that handler paths are appended to."""
        return self.functions_url or f"{self.supabase_url}/functions/v1"


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create the singleton AppConfig instance."""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config
