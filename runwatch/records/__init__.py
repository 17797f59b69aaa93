"""Execution record store: data model, state machine and store implementations."""

from runwatch.records.models import (
    TERMINAL_STATUSES,
    ArtifactRef,
    ArtifactState,
    ExecutionRecord,
    ExecutionStatus,
    ExecutionSummary,
    RecordQueryFilters,
    artifact_rank,
    summarize,
)
from runwatch.records.state import apply_artifact, apply_transition, is_allowed
from runwatch.records.store import ExecutionRecordStore
from runwatch.records.store_inmemory import InMemoryExecutionStore
from runwatch.records.store_sql import ExecutionRow, ExecutionTagRow, SqlExecutionStore

__all__ = [
    "ArtifactRef",
    "ArtifactState",
    "ExecutionRecord",
    "ExecutionRecordStore",
    "ExecutionRow",
    "ExecutionStatus",
    "ExecutionSummary",
    "ExecutionTagRow",
    "InMemoryExecutionStore",
    "RecordQueryFilters",
    "SqlExecutionStore",
    "TERMINAL_STATUSES",
    "apply_artifact",
    "apply_transition",
    "artifact_rank",
    "is_allowed",
    "summarize",
]
