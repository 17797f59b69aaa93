"""In-memory execution record store for lite mode and tests.

Same public interface as :class:`SqlExecutionStore`. Records are immutable
snapshots kept in a dict; every mutation swaps a whole snapshot under a lock, so
readers never see a half-applied update. Records are lost on process exit.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from threading import Lock

from runwatch.errors import NotFound
from runwatch.records.models import (
    ArtifactRef,
    ExecutionRecord,
    ExecutionStatus,
    ExecutionSummary,
    RecordQueryFilters,
    summarize,
    utc_now,
)
from runwatch.records.state import apply_artifact, apply_transition
from runwatch.records.store import (
    ORDER_DESC,
    normalize_name,
    normalize_optional,
    normalize_tags,
    to_utc,
    validate_filters,
)

logger = logging.getLogger(__name__)


class InMemoryExecutionStore:
    """Lock-protected dict of immutable :class:`ExecutionRecord` snapshots."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._records: dict[str, ExecutionRecord] = {}
        self._lock = Lock()
        self._clock = clock

    async def create(
        self,
        name: str,
        tags: Iterable[str],
        *,
        environment: str | None = None,
        suite: str | None = None,
    ) -> str:
        """Create a PENDING record and return its id."""
        now = self._clock()
        record = ExecutionRecord(
            id=uuid.uuid4().hex,
            name=normalize_name(name),
            tags=normalize_tags(tags),
            status=ExecutionStatus.PENDING,
            started_at=now,
            updated_at=now,
            environment=normalize_optional(environment, "environment"),
            suite=normalize_optional(suite, "suite"),
        )
        with self._lock:
            self._records[record.id] = record
        logger.debug("Created execution %s (%s)", record.id, record.name)
        return record.id

    async def transition(self, record_id: str, new_status: ExecutionStatus) -> ExecutionRecord:
        """Apply a status transition; repeats of the current status are no-ops."""
        return self._mutate(record_id, lambda r, now: apply_transition(r, ExecutionStatus(new_status), now))

    async def attach_artifact(self, record_id: str, artifact_ref: ArtifactRef) -> ExecutionRecord:
        """Attach or advance the record's artifact reference."""
        return self._mutate(record_id, lambda r, now: apply_artifact(r, artifact_ref, now))

    async def get(self, record_id: str) -> ExecutionRecord:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            raise NotFound("execution", record_id)
        return record

    async def query(self, filters: RecordQueryFilters) -> list[ExecutionRecord]:
        """Query records with the same filter semantics as the SQL store."""
        validate_filters(filters)
        if filters.started_from is not None or filters.started_to is not None:
            filters = replace(
                filters,
                started_from=to_utc(filters.started_from) if filters.started_from else None,
                started_to=to_utc(filters.started_to) if filters.started_to else None,
            )
        with self._lock:
            snapshot = list(self._records.values())
        results = [r for r in snapshot if filters.matches(r)]
        results.sort(key=lambda r: r.started_at, reverse=filters.order_by == ORDER_DESC)
        if filters.offset is not None:
            results = results[filters.offset :]
        if filters.limit is not None:
            results = results[: filters.limit]
        return results

    async def summary(self, filters: RecordQueryFilters | None = None) -> ExecutionSummary:
        base = filters or RecordQueryFilters()
        records = await self.query(replace(base, limit=None, offset=None))
        return summarize(records)

    def _mutate(
        self,
        record_id: str,
        change: Callable[[ExecutionRecord, datetime], ExecutionRecord],
    ) -> ExecutionRecord:
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise NotFound("execution", record_id)
            updated = change(current, self._clock())
            if updated is not current:
                self._records[record_id] = updated
        return updated
