"""
Shared configuration management for the Premium service.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


StorageKind = Literal["document-db", "local-file"]


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PREMIUM_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    service_name: str = Field(default="premium")


class PremiumConfig(BaseConfig):
    """Premium engine configuration."""

    # Storage
    storage: StorageKind
    local_data_dir: Optional[Path] = Field(default=None)
    postgres_dsn: str = Field(default="postgresql://localhost:5432/premium")
    postgres_command_timeout: float = Field(default=30.0, gt=0)

    # Codes
    code_length: int = Field(default=12, ge=1)
    default_premium_duration: int = Field(default=30, ge=1)
    max_activations_per_code: int = Field(default=1, ge=1)

    # Cache
    preload_tables: bool = Field(default=True)
    cache_ttl: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_storage(self) -> "PremiumConfig":
        if self.storage == "local-file" and self.local_data_dir is None:
            raise ValueError("local_data_dir is required when storage is 'local-file'")
        return self


def get_config(**overrides) -> PremiumConfig:
    """Get configuration, reading PREMIUM_* environment variables."""
    return PremiumConfig(**overrides)
