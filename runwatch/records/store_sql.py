"""SQL-backed execution record store (PostgreSQL via asyncpg, SQLite via aiosqlite).

Mutations are optimistic compare-and-set updates: the row is read, the pure
transition rules compute the next snapshot, and the ``UPDATE`` only applies when
the row's ``version`` is still the one that was read. The loser of a race re-reads
and re-evaluates, which makes transitions first-writer-wins per record without
any lock spanning different records.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    and_,
    exists,
    func,
    select,
    update,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from runwatch.db import Base, session_scope
from runwatch.errors import NotFound
from runwatch.records.models import (
    ArtifactRef,
    ArtifactState,
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


class ExecutionRow(Base):
    """One test execution (single test or batch run)."""

    __tablename__ = "execution_records"
    __table_args__ = (
        Index("idx_execution_status_started", "status", "started_at"),
        {"comment": "Test execution lifecycle records"},
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    environment: Mapped[str | None] = mapped_column(String(128), nullable=True)
    suite: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    artifact_state: Mapped[str | None] = mapped_column(String(16), nullable=True, index=True)
    artifact_source: Mapped[str | None] = mapped_column(Text, nullable=True)
    artifact_location: Mapped[str | None] = mapped_column(Text, nullable=True)
    artifact_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    artifact_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    artifact_content_type: Mapped[str | None] = mapped_column(String(128), nullable=True)
    artifact_error: Mapped[str | None] = mapped_column(Text, nullable=True)


class ExecutionTagRow(Base):
    """Tag membership of an execution; one row per (execution, tag)."""

    __tablename__ = "execution_tags"

    execution_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("execution_records.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag: Mapped[str] = mapped_column(String(128), primary_key=True, index=True)


def _artifact_columns(ref: ArtifactRef | None) -> dict[str, Any]:
    if ref is None:
        return {
            "artifact_state": None,
            "artifact_source": None,
            "artifact_location": None,
            "artifact_checksum": None,
            "artifact_size_bytes": None,
            "artifact_content_type": None,
            "artifact_error": None,
        }
    return {
        "artifact_state": ref.state.value,
        "artifact_source": ref.source_location,
        "artifact_location": ref.location,
        "artifact_checksum": ref.checksum,
        "artifact_size_bytes": ref.size_bytes,
        "artifact_content_type": ref.content_type,
        "artifact_error": ref.error,
    }


def _to_record(row: ExecutionRow, tags: Iterable[str]) -> ExecutionRecord:
    artifact: ArtifactRef | None = None
    if row.artifact_state is not None:
        artifact = ArtifactRef(
            state=ArtifactState(row.artifact_state),
            source_location=row.artifact_source,
            location=row.artifact_location,
            checksum=row.artifact_checksum,
            size_bytes=row.artifact_size_bytes,
            content_type=row.artifact_content_type or "video/mp4",
            error=row.artifact_error,
        )
    return ExecutionRecord(
        id=row.id,
        name=row.name,
        tags=frozenset(tags),
        status=ExecutionStatus(row.status),
        started_at=to_utc(row.started_at),
        updated_at=to_utc(row.updated_at),
        finished_at=to_utc(row.finished_at) if row.finished_at is not None else None,
        artifact_ref=artifact,
        environment=row.environment,
        suite=row.suite,
    )


class SqlExecutionStore:
    """Execution record store on SQLAlchemy async sessions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    async def create(
        self,
        name: str,
        tags: Iterable[str],
        *,
        environment: str | None = None,
        suite: str | None = None,
    ) -> str:
        """Insert a PENDING record and return its id."""
        clean_name = normalize_name(name)
        clean_tags = normalize_tags(tags)
        now = self._clock()
        record_id = uuid.uuid4().hex
        async with session_scope(self._session_factory) as session:
            session.add(
                ExecutionRow(
                    id=record_id,
                    name=clean_name,
                    status=ExecutionStatus.PENDING.value,
                    environment=normalize_optional(environment, "environment"),
                    suite=normalize_optional(suite, "suite"),
                    started_at=now,
                    updated_at=now,
                    version=1,
                )
            )
            await session.flush()
            session.add_all(ExecutionTagRow(execution_id=record_id, tag=tag) for tag in sorted(clean_tags))
        logger.debug("Created execution %s (%s)", record_id, clean_name)
        return record_id

    async def transition(self, record_id: str, new_status: ExecutionStatus) -> ExecutionRecord:
        """Apply a status transition; repeats of the current status are no-ops."""
        requested = ExecutionStatus(new_status)
        return await self._mutate(record_id, lambda r, now: apply_transition(r, requested, now))

    async def attach_artifact(self, record_id: str, artifact_ref: ArtifactRef) -> ExecutionRecord:
        """Attach or advance the record's artifact reference."""
        return await self._mutate(record_id, lambda r, now: apply_artifact(r, artifact_ref, now))

    async def get(self, record_id: str) -> ExecutionRecord:
        async with self._session_factory() as session:
            row, _ = await self._load(session, record_id)
            tags = await self._load_tags(session, [record_id])
        return _to_record(row, tags.get(record_id, ()))

    async def query(self, filters: RecordQueryFilters) -> list[ExecutionRecord]:
        """Query execution records; all set filters must match."""
        validate_filters(filters)
        stmt = select(ExecutionRow)
        for tag in sorted(filters.tags):
            stmt = stmt.where(
                exists().where(
                    and_(ExecutionTagRow.execution_id == ExecutionRow.id, ExecutionTagRow.tag == tag)
                )
            )
        if filters.statuses:
            stmt = stmt.where(ExecutionRow.status.in_(sorted(s.value for s in filters.statuses)))
        if filters.started_from is not None:
            stmt = stmt.where(ExecutionRow.started_at >= to_utc(filters.started_from))
        if filters.started_to is not None:
            stmt = stmt.where(ExecutionRow.started_at <= to_utc(filters.started_to))
        if filters.artifact_state is not None:
            stmt = stmt.where(ExecutionRow.artifact_state == filters.artifact_state.value)
        if filters.name_contains:
            stmt = stmt.where(
                func.lower(ExecutionRow.name).contains(filters.name_contains.lower(), autoescape=True)
            )
        if filters.suite is not None:
            stmt = stmt.where(ExecutionRow.suite == filters.suite)
        if filters.environment is not None:
            stmt = stmt.where(ExecutionRow.environment == filters.environment)
        if filters.order_by == ORDER_DESC:
            stmt = stmt.order_by(ExecutionRow.started_at.desc(), ExecutionRow.id.desc())
        else:
            stmt = stmt.order_by(ExecutionRow.started_at.asc(), ExecutionRow.id.asc())
        if filters.offset is not None:
            stmt = stmt.offset(filters.offset)
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)
        async with self._session_factory() as session:
            rows = list((await session.execute(stmt)).scalars().all())
            tags = await self._load_tags(session, [row.id for row in rows])
        return [_to_record(row, tags.get(row.id, ())) for row in rows]

    async def summary(self, filters: RecordQueryFilters | None = None) -> ExecutionSummary:
        base = filters or RecordQueryFilters()
        records = await self.query(replace(base, limit=None, offset=None))
        return summarize(records)

    async def _mutate(
        self,
        record_id: str,
        change: Callable[[ExecutionRecord, datetime], ExecutionRecord],
    ) -> ExecutionRecord:
        while True:
            async with self._session_factory() as session:
                row, version = await self._load(session, record_id)
                tags = await self._load_tags(session, [record_id])
                current = _to_record(row, tags.get(record_id, ()))
                updated = change(current, self._clock())
                if updated is current:
                    return current
                values: dict[str, Any] = {
                    "status": updated.status.value,
                    "updated_at": updated.updated_at,
                    "finished_at": updated.finished_at,
                    "version": version + 1,
                }
                values.update(_artifact_columns(updated.artifact_ref))
                result = await session.execute(
                    update(ExecutionRow)
                    .where(ExecutionRow.id == record_id, ExecutionRow.version == version)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    await session.commit()
                    return updated
                await session.rollback()
            logger.debug("Concurrent update on execution %s; re-evaluating", record_id)

    async def _load(self, session: AsyncSession, record_id: str) -> tuple[ExecutionRow, int]:
        row = (
            await session.execute(
                select(ExecutionRow)
                .where(ExecutionRow.id == record_id)
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFound("execution", record_id)
        return row, row.version

    async def _load_tags(self, session: AsyncSession, record_ids: list[str]) -> dict[str, list[str]]:
        if not record_ids:
            return {}
        result = await session.execute(
            select(ExecutionTagRow.execution_id, ExecutionTagRow.tag).where(
                ExecutionTagRow.execution_id.in_(record_ids)
            )
        )
        grouped: dict[str, list[str]] = {}
        for execution_id, tag in result.all():
            grouped.setdefault(execution_id, []).append(tag)
        return grouped
