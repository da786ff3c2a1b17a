"""
Configuration Management

Centralized configuration using Pydantic Settings.
All settings loaded from environment variables with sensible defaults.
"""
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict, field_validator


# 5 MiB ceiling on object size before content is read into memory
DEFAULT_MAX_FILE_BYTES = 5 * 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Ignore extra environment variables that aren't defined in the model
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ============================================================
    # Deployment
    # ============================================================
    environment: str = Field("production", description="Deployment mode: dev or production")

    # ============================================================
    # Database Configuration
    # ============================================================
    database_url: str = Field(..., description="PostgreSQL connection URL")
    database_pool_size: int = Field(5, description="Connections shared by one batch")
    database_connect_timeout: int = Field(10, description="Connection timeout (seconds)")

    # ============================================================
    # Object Storage
    # ============================================================
    storage_backend: str = Field("s3", description="Content store: s3 or local")
    s3_endpoint: Optional[str] = Field(None, description="S3-compatible endpoint URL (MinIO, R2)")
    s3_region: str = Field("auto", description="S3 region")
    s3_bucket: Optional[str] = Field(None, description="Bucket holding raw site content")
    s3_access_key_id: Optional[str] = Field(None, description="S3 access key")
    s3_secret_access_key: Optional[str] = Field(None, description="S3 secret key")
    s3_force_path_style: bool = Field(False, description="Use path-style addressing (MinIO)")
    local_bucket_path: Optional[str] = Field(None, description="Directory mounted as the bucket root")
    max_file_bytes: int = Field(DEFAULT_MAX_FILE_BYTES, description="Largest object the worker will read")

    # ============================================================
    # Search Index (Typesense)
    # ============================================================
    typesense_host: str = Field("localhost", description="Typesense hostname")
    typesense_port: int = Field(8108, description="Typesense port")
    typesense_protocol: str = Field("http", description="http or https")
    typesense_api_key: Optional[str] = Field(None, description="Typesense admin API key")
    typesense_timeout_seconds: float = Field(2.0, description="Typesense connection timeout")

    # ============================================================
    # Queue
    # ============================================================
    queue_backend: str = Field("sqs", description="Queue platform: sqs or local")
    queue_url: Optional[str] = Field(None, description="SQS queue URL")
    queue_region: Optional[str] = Field(None, description="SQS region (defaults to s3_region)")
    queue_batch_size: int = Field(10, description="Messages per batch (SQS max 10)")
    queue_wait_time_seconds: int = Field(20, description="Long-poll wait time")
    queue_visibility_timeout: int = Field(60, description="Seconds before an un-acked message is redelivered")
    queue_max_receives: int = Field(5, description="Local queue only: deliveries before a message is dropped")

    # ============================================================
    # Processing
    # ============================================================
    reserved_directories: str = Field(
        "_flowershow/",
        description="Comma-separated internal directories whose files are acknowledged without processing"
    )

    # ============================================================
    # Logging Configuration
    # ============================================================
    log_level: str = Field("INFO", description="Logging level (DEBUG/INFO/WARNING/ERROR)")
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log format string"
    )

    @field_validator("environment")
    @classmethod
    def _check_environment(cls, value: str) -> str:
        value = value.lower()
        if value not in ("dev", "production"):
            raise ValueError(f"Invalid environment '{value}'. Must be one of: dev, production")
        return value

    @field_validator("storage_backend")
    @classmethod
    def _check_storage_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("s3", "local"):
            raise ValueError(f"Invalid storage backend '{value}'. Must be one of: s3, local")
        return value

    @field_validator("queue_backend")
    @classmethod
    def _check_queue_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("sqs", "local"):
            raise ValueError(f"Invalid queue backend '{value}'. Must be one of: sqs, local")
        return value

    @property
    def is_dev(self) -> bool:
        return self.environment == "dev"

    @property
    def reserved_directories_list(self) -> List[str]:
        """Parse reserved directories into list."""
        return [d.strip() for d in self.reserved_directories.split(",") if d.strip()]

    @property
    def typesense_url(self) -> str:
        return f"{self.typesense_protocol}://{self.typesense_host}:{self.typesense_port}"


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings (singleton).

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings():
    """Reload settings from environment (useful for testing)."""
    global _settings
    _settings = Settings()
    return _settings
