"""Configuration models for runwatch."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Record store persistence. An empty URL selects the in-memory store."""

    url: str = Field(default="", description="postgresql:// or sqlite+aiosqlite:// URL.")
    echo: bool = Field(default=False)
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    auto_create: bool = Field(default=True, description="Create missing tables on startup.")


class StorageConfig(BaseModel):
    """Durable artifact storage."""

    backend: Literal["local", "s3"] = Field(default="local")
    root: str = Field(default="artifacts", description="Directory for the local backend.")
    prefix: str = Field(default="executions", description="Key prefix for stored artifacts.")
    bucket: str = Field(default="")
    region: str | None = Field(default=None)
    endpoint_url: str | None = Field(default=None)

    @model_validator(mode="after")
    def _require_bucket(self) -> StorageConfig:
        if self.backend == "s3" and not self.bucket.strip():
            raise ValueError("storage.bucket is required for the s3 backend")
        return self


class UploadsConfig(BaseModel):
    """Artifact upload pipeline tuning."""

    workers: int = Field(default=4, ge=1, le=64)
    queue_capacity: int = Field(default=100, ge=1)
    max_attempts: int = Field(default=5, ge=1)
    backoff_base_seconds: float = Field(default=1.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    backoff_max_seconds: float = Field(default=60.0, ge=0.0)
    jitter_ratio: float = Field(default=0.2, ge=0.0, le=1.0)
    shutdown_grace_seconds: float = Field(default=30.0, ge=0.0)
    artifact_suffix: str = Field(default=".mp4")


class ApiConfig(BaseModel):
    """Status API server settings."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1, le=65535)
    log_level: str = Field(default="info")


class TaxonomyConfig(BaseModel):
    """Closed tag vocabulary, one list of allowed values per axis."""

    layer: list[str] = Field(default_factory=lambda: ["UI", "API"])
    priority: list[str] = Field(default_factory=lambda: ["P0", "P1", "P2", "P3"])
    speed: list[str] = Field(default_factory=lambda: ["FAST", "SLOW"])
    feature: list[str] = Field(default_factory=list)
    suite: list[str] = Field(default_factory=list)
    kind: list[str] = Field(default_factory=list)
    env: list[str] = Field(default_factory=list)
    enforce_on_create: bool = Field(
        default=True,
        description="Reject execution records whose tags are outside the vocabulary.",
    )


class CatalogEntryConfig(BaseModel):
    """One known test and its tags."""

    id: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)


class RunwatchConfig(BaseSettings):
    """Root configuration model for runwatch."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    uploads: UploadsConfig = Field(default_factory=UploadsConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    taxonomy: TaxonomyConfig = Field(default_factory=TaxonomyConfig)
    catalog: list[CatalogEntryConfig] = Field(default_factory=list)
    suites: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Suite name -> members ('suite:<name>', 'tags:<expr>' or a test id).",
    )

    model_config = SettingsConfigDict(
        env_prefix="RUNWATCH_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @field_validator("suites")
    @classmethod
    def _strip_suite_names(cls, value: dict[str, list[str]]) -> dict[str, list[str]]:
        cleaned: dict[str, list[str]] = {}
        for name, members in value.items():
            key = name.strip()
            if not key:
                raise ValueError("suite names must be non-empty")
            cleaned[key] = [m.strip() for m in members if m and m.strip()]
        return cleaned
