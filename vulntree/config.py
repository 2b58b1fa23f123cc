from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings, overridable through VULNTREE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VULNTREE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    registry_url: str = Field(default="https://registry.npmjs.org", description="Packument endpoint base")
    osv_api_url: str = Field(default="https://api.osv.dev/v1", description="OSV API base")
    http_timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")

    packument_ttl_seconds: float = Field(default=300, gt=0)
    packument_stale_seconds: Optional[float] = Field(default=3600, ge=0)
    analysis_ttl_seconds: float = Field(default=3600, gt=0)

    registry_concurrency: int = Field(default=10, ge=1)
    osv_batch_size: int = Field(default=1000, ge=1, le=1000)
    osv_batch_concurrency: int = Field(default=4, ge=1)
    osv_detail_concurrency: int = Field(default=25, ge=1)

    max_depth: Optional[int] = Field(default=None, ge=0)
    include_optional: bool = True
    target_os: str = "linux"
    target_cpu: str = "x64"
    target_libc: str = "glibc"

    log_level: str = Field(default="INFO", description="Root log level")
    log_file: Optional[str] = Field(default=None, description="Write logs here instead of stderr")

    @field_validator("registry_url", "osv_api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
