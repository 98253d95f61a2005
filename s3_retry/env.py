"""Uploader configuration using pydantic-settings."""

from typing import Any, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DEFAULT_BACKOFF_INTERVAL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_WORKERS,
    DEFAULT_REGION,
)
from .exceptions import ConfigurationError
from .models import StorageCredentials


class RetrySettings(BaseSettings):
    """Uploader settings, taken from keyword arguments or S3_RETRY_* environment variables."""

    # Storage credentials and target
    key: str = Field(..., min_length=1, description="Storage access key")
    secret: str = Field(..., min_length=1, description="Storage secret key")
    bucket: str = Field(..., min_length=1, description="Destination bucket name")
    region: str = Field(default=DEFAULT_REGION, description="Storage region")
    endpoint_url: Optional[str] = Field(default=None, description="Custom S3-compatible endpoint URL")

    # Retry configuration
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=1, description="Attempts before an upload fails")
    backoff_interval: float = Field(
        default=DEFAULT_BACKOFF_INTERVAL, gt=0, description="Backoff base unit in milliseconds"
    )

    # Concurrency
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=1, description="Threads for file reads")

    model_config = SettingsConfigDict(
        env_prefix="S3_RETRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        # A shared .env file may hold other applications' variables
        extra="ignore",
    )

    @property
    def credentials(self) -> StorageCredentials:
        """Credentials handed to the storage client factory."""
        return StorageCredentials(
            access_key=self.key,
            secret_key=self.secret,
            bucket=self.bucket,
            region=self.region,
            endpoint_url=self.endpoint_url,
        )


def load_settings(**options: Any) -> RetrySettings:
    """
    Build and validate settings eagerly.

    Args:
        **options: Setting overrides (key, secret, bucket, region, ...)

    Returns:
        RetrySettings: Validated settings

    Raises:
        ConfigurationError: If an option is unknown, a required field is missing or a value is invalid
    """
    unknown = sorted(name for name in options if name not in RetrySettings.model_fields)
    if unknown:
        raise ConfigurationError(f"Invalid uploader configuration: unknown options {', '.join(unknown)}")
    try:
        return RetrySettings(**options)
    except ValidationError as e:
        # Input values stay out of the message (they include the secret)
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigurationError(f"Invalid uploader configuration: {problems}") from e
