"""Execution record data model: statuses, artifact references, query filters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    """Lifecycle status of one execution."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    PASSED = "PASSED"
    FAILED = "FAILED"
    ERRORED = "ERRORED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[ExecutionStatus] = frozenset(
    {ExecutionStatus.PASSED, ExecutionStatus.FAILED, ExecutionStatus.ERRORED}
)


class ArtifactState(str, Enum):
    """Where an execution's artifact is in its durability lifecycle."""

    PENDING = "pending"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload-failed"

    @property
    def rank(self) -> int:
        if self is ArtifactState.PENDING:
            return 1
        return 2


@dataclass(frozen=True)
class ArtifactRef:
    """Reference to an execution artifact (recorded video)."""

    state: ArtifactState
    source_location: str | None = None
    location: str | None = None
    checksum: str | None = None
    size_bytes: int | None = None
    content_type: str = "video/mp4"
    error: str | None = None

    @classmethod
    def pending(cls, source_location: str) -> ArtifactRef:
        return cls(state=ArtifactState.PENDING, source_location=source_location)

    @classmethod
    def uploaded(
        cls,
        location: str,
        checksum: str,
        *,
        size_bytes: int | None = None,
        content_type: str = "video/mp4",
    ) -> ArtifactRef:
        return cls(
            state=ArtifactState.UPLOADED,
            location=location,
            checksum=checksum,
            size_bytes=size_bytes,
            content_type=content_type,
        )

    @classmethod
    def upload_failed(cls, error: str, source_location: str | None = None) -> ArtifactRef:
        return cls(state=ArtifactState.UPLOAD_FAILED, source_location=source_location, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "source_location": self.source_location,
            "location": self.location,
            "checksum": self.checksum,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> ArtifactRef:
        return cls(
            state=ArtifactState(payload["state"]),
            source_location=payload.get("source_location"),
            location=payload.get("location"),
            checksum=payload.get("checksum"),
            size_bytes=payload.get("size_bytes"),
            content_type=payload.get("content_type") or "video/mp4",
            error=payload.get("error"),
        )


def artifact_rank(ref: ArtifactRef | None) -> int:
    """0 for absent, 1 for pending, 2 for uploaded or upload-failed."""
    if ref is None:
        return 0
    return ref.state.rank


@dataclass(frozen=True)
class ExecutionRecord:
    """Immutable snapshot of one execution's lifecycle state."""

    id: str
    name: str
    tags: frozenset[str]
    status: ExecutionStatus
    started_at: datetime
    updated_at: datetime
    finished_at: datetime | None = None
    artifact_ref: ArtifactRef | None = None
    environment: str | None = None
    suite: str | None = None

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "tags": sorted(self.tags),
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "artifact": self.artifact_ref.to_dict() if self.artifact_ref else None,
            "environment": self.environment,
            "suite": self.suite,
        }


@dataclass
class RecordQueryFilters:
    """Filters for querying execution records. All set filters must match."""

    tags: frozenset[str] = field(default_factory=frozenset)
    statuses: frozenset[ExecutionStatus] = field(default_factory=frozenset)
    started_from: datetime | None = None
    started_to: datetime | None = None
    artifact_state: ArtifactState | None = None
    name_contains: str | None = None
    suite: str | None = None
    environment: str | None = None
    limit: int | None = None
    offset: int | None = None
    order_by: str = "started_at ASC"

    def matches(self, record: ExecutionRecord) -> bool:
        if self.tags and not self.tags <= record.tags:
            return False
        if self.statuses and record.status not in self.statuses:
            return False
        if self.started_from is not None and record.started_at < self.started_from:
            return False
        if self.started_to is not None and record.started_at > self.started_to:
            return False
        if self.artifact_state is not None:
            if record.artifact_ref is None or record.artifact_ref.state is not self.artifact_state:
                return False
        if self.name_contains and self.name_contains.lower() not in record.name.lower():
            return False
        if self.suite is not None and record.suite != self.suite:
            return False
        if self.environment is not None and record.environment != self.environment:
            return False
        return True


@dataclass(frozen=True)
class ExecutionSummary:
    """Aggregated counters over a set of records (dashboard overview)."""

    total: int
    by_status: dict[str, int]
    by_artifact_state: dict[str, int]
    pass_rate: float
    average_duration_seconds: float | None
    active: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "by_artifact_state": dict(self.by_artifact_state),
            "pass_rate": self.pass_rate,
            "average_duration_seconds": self.average_duration_seconds,
            "active": self.active,
        }


def summarize(records: list[ExecutionRecord]) -> ExecutionSummary:
    """Build an :class:`ExecutionSummary`. ERRORED counts against the pass rate."""
    by_status = {status.value: 0 for status in ExecutionStatus}
    by_artifact = {"none": 0, **{state.value: 0 for state in ArtifactState}}
    durations: list[float] = []
    for record in records:
        by_status[record.status.value] += 1
        artifact_key = record.artifact_ref.state.value if record.artifact_ref else "none"
        by_artifact[artifact_key] += 1
        duration = record.duration_seconds
        if duration is not None:
            durations.append(duration)
    finished = sum(by_status[s.value] for s in TERMINAL_STATUSES)
    pass_rate = (by_status[ExecutionStatus.PASSED.value] / finished * 100.0) if finished else 0.0
    return ExecutionSummary(
        total=len(records),
        by_status=by_status,
        by_artifact_state=by_artifact,
        pass_rate=round(pass_rate, 2),
        average_duration_seconds=(sum(durations) / len(durations)) if durations else None,
        active=by_status[ExecutionStatus.RUNNING.value],
    )
