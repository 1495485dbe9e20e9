"""
User Files Configuration Management Module

This module provides configuration management for the user files service using
Pydantic Settings. It loads and validates the settings required for:
- Application settings (name, environment, logging, server binding)
- AWS S3 credentials, bucket, region and default object ACL
- MongoDB connection used for per-user file metadata records
- Local JWT authentication used by the bundled auth middleware

Explicit keyword arguments take precedence over environment variables, which take
precedence over the defaults below. The three S3 credentials are optional at the
model level so that a missing value can be reported by name through
verify_storage_settings() before any client or middleware is built.
"""

import logging
import os

from functools import lru_cache
from typing import Annotated

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger(__name__)

# Required S3 settings, in the order they are verified, with their env fallbacks
REQUIRED_STORAGE_SETTINGS: tuple[tuple[str, str], ...] = (
    ("aws_access_key_id", "AWS_ACCESS_KEY_ID"),
    ("aws_secret_access_key", "AWS_SECRET_ACCESS_KEY"),
    ("aws_bucket", "AWS_BUCKET"),
)

# Environment variable consulted for each S3 setting when no explicit value is given
STORAGE_ENV_VARS: dict[str, str] = {
    **dict(REQUIRED_STORAGE_SETTINGS),
    "aws_region": "AWS_REGION",
}

DEFAULT_REGION = "us-east-1"
DEFAULT_ACL = "private"
AWS_S3_BASE_URL = "https://s3.amazonaws.com/"


class MissingConfigurationError(ValueError):
    """Raised at setup time when a required storage setting cannot be resolved."""

    def __init__(self, field: str, env_var: str | None = None) -> None:
        self.field = field
        self.env_var = env_var
        message = f"{field} is required."
        if env_var:
            message = f"{message} Pass it explicitly or set the {env_var} environment variable."
        super().__init__(message)


class Settings(BaseSettings):
    """
    Configuration settings for the user files service.

    Configuration Categories:
    - Application: name, environment, logging, host/port, CORS
    - AWS S3: credentials, bucket, region, default ACL and public base URL
    - MongoDB: connection URI and database holding the metadata records
    - Auth: secret key and account href base for the local JWT middleware

    Example usage:
        ```python
        from user_files.config import Settings, verify_storage_settings

        settings = Settings(aws_bucket="my-bucket")
        verify_storage_settings(settings)
        print(f"Storing files in: {settings.aws_bucket}")
        ```
    """

    # =========================================================================
    # Application Settings
    # =========================================================================

    app_name: str = Field(
        default="user-files",
        description="Application name displayed in API documentation and logs",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development, staging, production, testing)",
    )

    log_level: str = Field(
        default="info", description="Logging level (debug, info, warning, error, critical)"
    )

    json_logs: bool = Field(
        default=True, description="Emit structured JSON logs instead of plain text"
    )

    host: str = Field(default="0.0.0.0", description="Host address for the API server to bind to")

    port: int = Field(default=8000, description="Port number for the API server", ge=1, le=65535)

    cors_origins: Annotated[list[str], NoDecode] = Field(
        default=["http://localhost:3000"],
        description="List of allowed CORS origins for frontend access",
    )

    # =========================================================================
    # AWS S3 Configuration
    # =========================================================================

    aws_access_key_id: str | None = Field(
        default=None, description="AWS access key ID (env: AWS_ACCESS_KEY_ID)"
    )

    aws_secret_access_key: str | None = Field(
        default=None, description="AWS secret access key (env: AWS_SECRET_ACCESS_KEY)"
    )

    aws_bucket: str | None = Field(
        default=None, description="S3 bucket holding every user's files (env: AWS_BUCKET)"
    )

    aws_region: str = Field(
        default=DEFAULT_REGION, description="AWS region of the bucket (env: AWS_REGION)"
    )

    default_acl: str = Field(
        default=DEFAULT_ACL, description="Canned ACL applied to uploads that do not set one"
    )

    s3_base_url: str = Field(
        default=AWS_S3_BASE_URL,
        description="Base URL used to build the href stored for each file",
    )

    # =========================================================================
    # MongoDB Configuration
    # =========================================================================

    mongodb_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI (e.g., mongodb://localhost:27017)",
    )

    mongodb_db_name: str = Field(
        default="user_files", description="MongoDB database name for file metadata records"
    )

    mongodb_min_pool_size: int = Field(
        default=10, description="Minimum MongoDB connection pool size", ge=0, le=100
    )

    mongodb_max_pool_size: int = Field(
        default=100, description="Maximum MongoDB connection pool size", ge=1, le=500
    )

    # =========================================================================
    # Auth Configuration
    # =========================================================================

    secret_key: str = Field(
        default="development-secret-key-change-in-production-32chars",
        description="Secret key for local HS256 JWT signing",
        min_length=32,
    )

    jwt_expiration_hours: int = Field(
        default=24, description="JWT token expiration time in hours", ge=1, le=168
    )

    accounts_base_url: str = Field(
        default="https://api.example.com/v1/accounts",
        description="Base of the account href built from a token's subject",
    )

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"debug", "info", "warning", "error", "critical"}
        normalized = v.lower()
        if normalized not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {', '.join(valid_levels)}")
        return normalized

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate that app_env is a valid environment name."""
        valid_envs = {"development", "staging", "production", "testing"}
        normalized = v.lower()
        if normalized not in valid_envs:
            raise ValueError(f"Invalid app_env '{v}'. Must be one of: {', '.join(valid_envs)}")
        return normalized

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string if provided as string."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator(
        "aws_access_key_id", "aws_secret_access_key", "aws_bucket", "aws_region", mode="before"
    )
    @classmethod
    def fall_back_on_empty(cls, v: str | None, info: ValidationInfo) -> str | None:
        """An empty explicit value falls back to the environment, then the default."""
        if v != "":
            return v
        env_value = os.environ.get(STORAGE_ENV_VARS[info.field_name])
        if env_value:
            return env_value
        return DEFAULT_REGION if info.field_name == "aws_region" else None

    @field_validator("s3_base_url")
    @classmethod
    def validate_s3_base_url(cls, v: str) -> str:
        """Keys are appended directly, so the base URL always ends with a slash."""
        return v if v.endswith("/") else f"{v}/"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"


def verify_storage_settings(settings: Settings) -> None:
    """
    Verify that the required S3 settings resolved to non-empty values.

    Each field already holds the explicit value or, failing that, its environment
    fallback. Fields are checked in order: access key, secret key, bucket. The
    first missing one is reported.

    Args:
        settings: Settings instance to verify.

    Raises:
        MissingConfigurationError: Naming the first missing field.
    """
    for field_name, env_var in REQUIRED_STORAGE_SETTINGS:
        if not getattr(settings, field_name):
            logger.error("Missing required storage setting: %s", field_name)
            raise MissingConfigurationError(field_name, env_var)

    logger.debug("Storage settings verified for bucket: %s", settings.aws_bucket)


@lru_cache
def get_settings() -> Settings:
    """
    Get the global Settings instance.

    The @lru_cache decorator ensures that the Settings object is created only
    once on first call, and subsequent calls return the cached instance without
    re-reading environment variables or .env files.

    Returns:
        Settings: The global configuration instance.
    """
    return Settings()
