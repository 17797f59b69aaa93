"""Upload task and pipeline counter models."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class UploadTaskState(str, Enum):
    QUEUED = "QUEUED"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED_RETRYABLE = "FAILED_RETRYABLE"
    FAILED_TERMINAL = "FAILED_TERMINAL"

    @property
    def is_final(self) -> bool:
        return self in (UploadTaskState.SUCCEEDED, UploadTaskState.FAILED_TERMINAL)


@dataclass(slots=True)
class ArtifactUploadTask:
    """Unit of work moving one artifact into durable storage.

    ``attempt`` counts failed attempts so far.
    """

    task_id: str
    record_id: str
    source_location: str
    attempt: int = 0
    state: UploadTaskState = UploadTaskState.QUEUED
    last_error: str | None = None
    location: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def snapshot(self) -> ArtifactUploadTask:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "record_id": self.record_id,
            "source_location": self.source_location,
            "attempt": self.attempt,
            "state": self.state.value,
            "last_error": self.last_error,
            "location": self.location,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class PipelineStats:
    """Point-in-time counters for the upload pipeline."""

    submitted: int = 0
    succeeded: int = 0
    failed_terminal: int = 0
    retries: int = 0
    queued: int = 0
    in_flight: int = 0
    waiting_retry: int = 0
    accepting: bool = True
    workers: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "submitted": self.submitted,
            "succeeded": self.succeeded,
            "failed_terminal": self.failed_terminal,
            "retries": self.retries,
            "queued": self.queued,
            "in_flight": self.in_flight,
            "waiting_retry": self.waiting_retry,
            "accepting": self.accepting,
            "workers": self.workers,
        }
