"""Application configuration via Pydantic Settings."""
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Provider(str, Enum):
    """Storage backend discriminator."""

    REMOTE = "remote"
    LOCAL = "local"


_PROVIDER_ALIASES = {
    "aws": Provider.REMOTE,
    "s3": Provider.REMOTE,
    "remote": Provider.REMOTE,
    "local": Provider.LOCAL,
    "filesystem": Provider.LOCAL,
}


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "s3proxy"
    app_version: str = "0.1.0"
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    admin_prefix: str = "/_s3proxy"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Storage backend
    cloud_provider: Provider = Provider.LOCAL
    cloud_identity: str = ""
    cloud_credential: SecretStr = SecretStr("")
    cloud_region: str = "us-east-1"
    cloud_endpoint: str | None = None
    cloud_addressing_style: Literal["auto", "path", "virtual"] = "path"
    cloud_filesystem_basedir: Path = Field(default=Path("./data/buckets"))

    # Object handling
    default_content_type: str = "application/octet-stream"
    list_max_keys: int = 1000
    chunk_size: int = 1024 * 1024  # 1MB

    @field_validator("cloud_provider", mode="before")
    @classmethod
    def normalize_provider(cls, v: str | Provider) -> Provider:
        """Accept provider aliases (aws, s3, filesystem)."""
        if isinstance(v, Provider):
            return v
        try:
            return _PROVIDER_ALIASES[str(v).strip().lower()]
        except KeyError:
            raise ValueError(
                f"Unknown storage provider '{v}', expected 'remote' or 'local'"
            ) from None

    @field_validator("cloud_endpoint", mode="before")
    @classmethod
    def empty_endpoint_is_none(cls, v: str | None) -> str | None:
        """Treat an empty endpoint as the provider default."""
        if v is None or not str(v).strip():
            return None
        return str(v).strip()

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == Environment.PRODUCTION


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
