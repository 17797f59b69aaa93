"""Status and artifact transition rules.

Both functions are pure: they decide what a committed update looks like, and the
stores apply the result atomically.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from runwatch.errors import InvalidTransition
from runwatch.records.models import (
    ArtifactRef,
    ExecutionRecord,
    ExecutionStatus,
    artifact_rank,
)

_ALLOWED: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset(
        {
            ExecutionStatus.PENDING,
            ExecutionStatus.RUNNING,
            ExecutionStatus.PASSED,
            ExecutionStatus.FAILED,
            ExecutionStatus.ERRORED,
        }
    ),
    ExecutionStatus.RUNNING: frozenset(
        {
            ExecutionStatus.RUNNING,
            ExecutionStatus.PASSED,
            ExecutionStatus.FAILED,
            ExecutionStatus.ERRORED,
        }
    ),
}


def is_allowed(current: ExecutionStatus, requested: ExecutionStatus) -> bool:
    """Return whether ``current -> requested`` is legal (including idempotent repeats)."""
    if current.is_terminal:
        return requested is current
    return requested in _ALLOWED[current]


def apply_transition(
    record: ExecutionRecord,
    requested: ExecutionStatus,
    now: datetime,
) -> ExecutionRecord:
    """Return the record after moving to ``requested``.

    Repeating the current status returns ``record`` unchanged (same object), which
    callers use to skip the write.

    Raises:
        InvalidTransition: the move is not permitted.
    """
    if not is_allowed(record.status, requested):
        raise InvalidTransition(record.id, record.status.value, requested.value)
    if requested is record.status:
        return record
    finished_at = now if requested.is_terminal else None
    return replace(record, status=requested, finished_at=finished_at, updated_at=now)


def apply_artifact(
    record: ExecutionRecord,
    ref: ArtifactRef,
    now: datetime,
) -> ExecutionRecord:
    """Return the record with ``ref`` attached.

    Artifact references only move forward (absent -> pending -> uploaded |
    upload-failed). Re-attaching an identical reference is a no-op and returns
    ``record`` unchanged.

    Raises:
        InvalidTransition: the reference would move backward or sideways.
    """
    current = record.artifact_ref
    if current == ref:
        return record
    if artifact_rank(ref) <= artifact_rank(current):
        current_label = current.state.value if current is not None else "absent"
        raise InvalidTransition(record.id, f"artifact:{current_label}", f"artifact:{ref.state.value}")
    return replace(record, artifact_ref=ref, updated_at=now)
