"""Execution record store interface and shared input normalisation."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Protocol, runtime_checkable

from runwatch.errors import ValidationError
from runwatch.records.models import (
    ArtifactRef,
    ExecutionRecord,
    ExecutionStatus,
    ExecutionSummary,
    RecordQueryFilters,
)

ORDER_ASC = "started_at ASC"
ORDER_DESC = "started_at DESC"


@runtime_checkable
class ExecutionRecordStore(Protocol):
    """Authoritative store of execution records.

    Implementations apply every mutation atomically per record; readers never
    observe a partially written record.
    """

    async def create(
        self,
        name: str,
        tags: Iterable[str],
        *,
        environment: str | None = None,
        suite: str | None = None,
    ) -> str: ...

    async def transition(self, record_id: str, new_status: ExecutionStatus) -> ExecutionRecord: ...

    async def attach_artifact(self, record_id: str, artifact_ref: ArtifactRef) -> ExecutionRecord: ...

    async def get(self, record_id: str) -> ExecutionRecord: ...

    async def query(self, filters: RecordQueryFilters) -> list[ExecutionRecord]: ...

    async def summary(self, filters: RecordQueryFilters | None = None) -> ExecutionSummary: ...


def normalize_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name must be a non-empty string")
    return name.strip()


def normalize_tags(tags: Iterable[str]) -> frozenset[str]:
    normalized: set[str] = set()
    for tag in tags:
        if not isinstance(tag, str) or not tag.strip():
            raise ValidationError("tags must be non-empty strings")
        normalized.add(tag.strip())
    return frozenset(normalized)


def normalize_optional(value: str | None, field_name: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field_name} must be a string")
    return value.strip() or None


def to_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_filters(filters: RecordQueryFilters) -> None:
    if filters.limit is not None and filters.limit < 0:
        raise ValidationError("limit must be >= 0")
    if filters.offset is not None and filters.offset < 0:
        raise ValidationError("offset must be >= 0")
    if filters.order_by not in (ORDER_ASC, ORDER_DESC):
        raise ValidationError(f"order_by must be {ORDER_ASC!r} or {ORDER_DESC!r}")
    if (
        filters.started_from is not None
        and filters.started_to is not None
        and to_utc(filters.started_from) > to_utc(filters.started_to)
    ):
        raise ValidationError("started_from must not be after started_to")
