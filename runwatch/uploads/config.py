"""Upload pipeline configuration and validation helpers."""

from __future__ import annotations

from dataclasses import dataclass

from runwatch.config.models import StorageConfig, UploadsConfig


@dataclass(slots=True)
class UploadPipelineConfig:
    """Upload pipeline runtime configuration."""

    workers: int = 4
    queue_capacity: int = 100
    max_attempts: int = 5
    backoff_base_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    backoff_max_seconds: float = 60.0
    jitter_ratio: float = 0.2
    shutdown_grace_seconds: float = 30.0
    key_prefix: str = "executions"
    artifact_suffix: str = ".mp4"
    finished_history: int = 1000

    @classmethod
    def from_settings(cls, uploads: UploadsConfig, storage: StorageConfig) -> UploadPipelineConfig:
        return cls(
            workers=uploads.workers,
            queue_capacity=uploads.queue_capacity,
            max_attempts=uploads.max_attempts,
            backoff_base_seconds=uploads.backoff_base_seconds,
            backoff_multiplier=uploads.backoff_multiplier,
            backoff_max_seconds=uploads.backoff_max_seconds,
            jitter_ratio=uploads.jitter_ratio,
            shutdown_grace_seconds=uploads.shutdown_grace_seconds,
            key_prefix=storage.prefix,
            artifact_suffix=uploads.artifact_suffix,
        )


def validate_config(config: UploadPipelineConfig) -> list[str]:
    """Validate pipeline configuration and return error messages."""
    errors: list[str] = []

    if config.workers <= 0:
        errors.append("workers must be positive")
    if config.queue_capacity <= 0:
        errors.append("queue_capacity must be positive")
    if config.max_attempts <= 0:
        errors.append("max_attempts must be positive")
    if config.backoff_base_seconds < 0:
        errors.append("backoff_base_seconds must be non-negative")
    if config.backoff_multiplier < 1.0:
        errors.append("backoff_multiplier must be >= 1")
    if config.backoff_max_seconds < config.backoff_base_seconds:
        errors.append("backoff_max_seconds must be >= backoff_base_seconds")
    if not 0.0 <= config.jitter_ratio <= 1.0:
        errors.append("jitter_ratio must be between 0 and 1")
    if config.shutdown_grace_seconds < 0:
        errors.append("shutdown_grace_seconds must be non-negative")
    if config.finished_history < 0:
        errors.append("finished_history must be non-negative")

    return errors
