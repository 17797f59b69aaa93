"""Service facade wiring the record store, upload pipeline and composition graph."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine

from runwatch.composition import CompositionGraph, TagVocabulary, TestCatalog, resolve, select_ordered
from runwatch.config import RunwatchConfig, StorageConfig
from runwatch.db import Base, create_engine, create_session_factory
from runwatch.errors import ValidationError
from runwatch.records import (
    ExecutionRecord,
    ExecutionRecordStore,
    ExecutionStatus,
    ExecutionSummary,
    InMemoryExecutionStore,
    RecordQueryFilters,
    SqlExecutionStore,
)
from runwatch.uploads import (
    ArtifactUploadPipeline,
    LocalStorageBackend,
    S3StorageBackend,
    StorageBackend,
    UploadPipelineConfig,
)

logger = logging.getLogger(__name__)


def create_storage_backend(config: StorageConfig) -> StorageBackend:
    """Instantiate the configured durable storage backend."""
    if config.backend == "s3":
        return S3StorageBackend(config.bucket, region=config.region, endpoint_url=config.endpoint_url)
    return LocalStorageBackend(config.root)


class Runwatch:
    """Runtime container for one monitoring service process."""

    def __init__(
        self,
        *,
        store: ExecutionRecordStore,
        pipeline: ArtifactUploadPipeline,
        graph: CompositionGraph,
        enforce_tags: bool = True,
        engine: AsyncEngine | None = None,
        auto_create: bool = False,
    ) -> None:
        self.store = store
        self.pipeline = pipeline
        self.graph = graph
        self.enforce_tags = enforce_tags
        self._engine = engine
        self._auto_create = auto_create
        self._started = False

    @classmethod
    def from_config(
        cls,
        config: RunwatchConfig,
        *,
        backend: StorageBackend | None = None,
    ) -> Runwatch:
        """Build every component from configuration.

        Raises:
            CompositionError / UnknownTag: the taxonomy, catalog or suites are
                inconsistent. Configuration problems surface here, at startup.
        """
        vocabulary = TagVocabulary.from_config(config.taxonomy)
        catalog = TestCatalog.build(config.catalog, vocabulary)
        graph = CompositionGraph.build(config.suites, catalog)

        engine: AsyncEngine | None = None
        store: ExecutionRecordStore
        if config.database.url.strip():
            engine = create_engine(
                config.database.url,
                pool_size=config.database.pool_size,
                max_overflow=config.database.max_overflow,
                echo=config.database.echo,
            )
            store = SqlExecutionStore(create_session_factory(engine))
        else:
            logger.info("No database URL configured; using in-memory execution store")
            store = InMemoryExecutionStore()

        pipeline = ArtifactUploadPipeline(
            store,
            backend or create_storage_backend(config.storage),
            UploadPipelineConfig.from_settings(config.uploads, config.storage),
        )
        return cls(
            store=store,
            pipeline=pipeline,
            graph=graph,
            enforce_tags=config.taxonomy.enforce_on_create,
            engine=engine,
            auto_create=config.database.auto_create,
        )

    @property
    def vocabulary(self) -> TagVocabulary:
        return self.graph.vocabulary

    async def start(self) -> None:
        """Create tables if requested, start workers, resume parked uploads."""
        if self._started:
            return
        if self._engine is not None and self._auto_create:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        await self.pipeline.start()
        await self.pipeline.recover()
        self._started = True

    async def stop(self, grace_seconds: float | None = None) -> None:
        if self._started:
            await self.pipeline.stop(grace_seconds)
            self._started = False
        if self._engine is not None:
            await self._engine.dispose()

    async def create_execution(
        self,
        name: str,
        tags: Iterable[str],
        *,
        environment: str | None = None,
        suite: str | None = None,
    ) -> ExecutionRecord:
        tag_list = list(tags)
        if self.enforce_tags:
            tag_list = sorted(self.vocabulary.validate(tag_list))
        record_id = await self.store.create(name, tag_list, environment=environment, suite=suite)
        return await self.store.get(record_id)

    async def update_execution(
        self,
        record_id: str,
        *,
        status: ExecutionStatus | None = None,
        source_location: str | None = None,
    ) -> tuple[ExecutionRecord, str | None]:
        """Apply a status report and/or queue an artifact upload.

        The status transition commits before the artifact is submitted, so a
        saturated queue never loses the status report. Returns the record and
        the upload task id (if any).
        """
        if status is None and source_location is None:
            raise ValidationError("status or artifact is required")
        if status is not None:
            record = await self.store.transition(record_id, status)
        else:
            record = await self.store.get(record_id)
        task_id: str | None = None
        if source_location is not None:
            task_id = self.pipeline.submit(record_id, source_location)
        return record, task_id

    async def get_execution(self, record_id: str) -> ExecutionRecord:
        return await self.store.get(record_id)

    async def query_executions(self, filters: RecordQueryFilters) -> list[ExecutionRecord]:
        if filters.tags and self.enforce_tags:
            filters.tags = self.vocabulary.validate(filters.tags)
        return await self.store.query(filters)

    async def summary(self, filters: RecordQueryFilters | None = None) -> ExecutionSummary:
        return await self.store.summary(filters)

    def suite_tests(self, suite_name: str) -> tuple[str, ...]:
        return resolve(self.graph, suite_name)

    def select_tests(self, expression: str) -> tuple[str, ...]:
        return select_ordered(self.graph.catalog, expression)

    async def health(self) -> dict[str, Any]:
        uploads = await self.pipeline.health_check()
        return {
            "status": "ok" if uploads["status"] == "healthy" else "degraded",
            "store": type(self.store).__name__,
            "uploads": uploads,
        }
