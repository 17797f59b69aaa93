"""Artifact upload pipeline and durable storage backends."""

from runwatch.uploads.backoff import compute_backoff
from runwatch.uploads.config import UploadPipelineConfig, validate_config
from runwatch.uploads.dependencies import ensure_storage_dependency
from runwatch.uploads.models import ArtifactUploadTask, PipelineStats, UploadTaskState
from runwatch.uploads.pipeline import ArtifactUploadPipeline
from runwatch.uploads.s3 import S3StorageBackend
from runwatch.uploads.storage import (
    LocalStorageBackend,
    StorageBackend,
    StoredObject,
    build_artifact_key,
    file_fingerprint,
)

__all__ = [
    "ArtifactUploadPipeline",
    "ArtifactUploadTask",
    "LocalStorageBackend",
    "PipelineStats",
    "S3StorageBackend",
    "StorageBackend",
    "StoredObject",
    "UploadPipelineConfig",
    "UploadTaskState",
    "build_artifact_key",
    "compute_backoff",
    "ensure_storage_dependency",
    "file_fingerprint",
    "validate_config",
]
