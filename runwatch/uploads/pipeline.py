"""Artifact upload pipeline: bounded queue, worker pool, retries and shutdown."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import random
import uuid
from collections import OrderedDict
from pathlib import Path
from typing import Any

from runwatch.errors import (
    ChecksumMismatch,
    InvalidTransition,
    NotFound,
    PipelineClosed,
    QueueSaturated,
    TerminalUploadFailure,
    TransientUploadFailure,
    UploadInFlight,
    ValidationError,
)
from runwatch.records.models import ArtifactRef, ArtifactState, RecordQueryFilters
from runwatch.records.store import ExecutionRecordStore
from runwatch.uploads.backoff import compute_backoff
from runwatch.uploads.config import UploadPipelineConfig, validate_config
from runwatch.uploads.models import ArtifactUploadTask, PipelineStats, UploadTaskState
from runwatch.uploads.storage import StorageBackend, build_artifact_key, file_fingerprint

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"


class ArtifactUploadPipeline:
    """Moves artifacts from runner storage into durable storage off the request path.

    ``submit`` only enqueues. A fixed pool of asyncio workers fingerprints each
    source, writes it to a content-addressed key and attaches the resulting
    reference through the record store, which stays the only writer of records.
    """

    def __init__(
        self,
        store: ExecutionRecordStore,
        backend: StorageBackend,
        config: UploadPipelineConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.config = config or UploadPipelineConfig()
        config_errors = validate_config(self.config)
        if config_errors:
            joined = "; ".join(config_errors)
            raise ValueError(f"Invalid UploadPipelineConfig: {joined}")

        self.store = store
        self.backend = backend
        self._rng = rng or random.Random()
        self._queue: asyncio.Queue[str] = asyncio.Queue(maxsize=self.config.queue_capacity)
        self._tasks: dict[str, ArtifactUploadTask] = {}
        self._by_record: dict[str, str] = {}
        self._finished: OrderedDict[str, ArtifactUploadTask] = OrderedDict()
        self._in_progress: set[str] = set()
        self._workers: list[asyncio.Task[None]] = []
        self._retry_timers: set[asyncio.Task[None]] = set()
        self._accepting = True
        self._stopping = False
        self._idle = asyncio.Event()
        self._idle.set()
        self._no_in_progress = asyncio.Event()
        self._no_in_progress.set()
        self._submitted = 0
        self._succeeded = 0
        self._failed_terminal = 0
        self._retries = 0

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._stopping

    async def start(self) -> None:
        """Start upload workers."""
        if self._workers:
            raise RuntimeError("ArtifactUploadPipeline already running")
        if self._stopping:
            raise RuntimeError("ArtifactUploadPipeline was stopped and cannot be restarted")
        self._workers = [
            asyncio.create_task(self._worker_loop(worker_id=i), name=f"artifact-upload-worker-{i}")
            for i in range(self.config.workers)
        ]
        logger.info(
            "Artifact upload pipeline started (workers=%d, capacity=%d)",
            self.config.workers,
            self.config.queue_capacity,
        )

    def submit(self, record_id: str, source_location: str) -> str:
        """Enqueue an artifact upload and return its task id. Performs no I/O.

        A second submit for a record whose task is still in the working set is
        coalesced when the source matches and rejected otherwise.

        Raises:
            PipelineClosed: shutdown has begun.
            UploadInFlight: another source is already being uploaded for the record.
            QueueSaturated: the submission queue is full.
        """
        if not self._accepting:
            raise PipelineClosed()
        if not isinstance(record_id, str) or not record_id.strip():
            raise ValidationError("record_id must be a non-empty string")
        if not isinstance(source_location, str) or not source_location.strip():
            raise ValidationError("source_location must be a non-empty string")
        source_location = source_location.strip()

        existing_id = self._by_record.get(record_id)
        if existing_id is not None:
            existing = self._tasks[existing_id]
            if existing.source_location == source_location:
                logger.debug("Coalesced upload for %s into task %s", record_id, existing_id)
                return existing_id
            raise UploadInFlight(record_id, existing_id)

        task = ArtifactUploadTask(
            task_id=uuid.uuid4().hex,
            record_id=record_id,
            source_location=source_location,
        )
        try:
            self._queue.put_nowait(task.task_id)
        except asyncio.QueueFull:
            raise QueueSaturated(self.config.queue_capacity) from None
        self._tasks[task.task_id] = task
        self._by_record[record_id] = task.task_id
        self._submitted += 1
        self._idle.clear()
        return task.task_id

    def task(self, task_id: str) -> ArtifactUploadTask:
        """Return a snapshot of a task in the working set or recent history."""
        task = self._tasks.get(task_id) or self._finished.get(task_id)
        if task is None:
            raise NotFound("upload task", task_id)
        return task.snapshot()

    def stats(self) -> PipelineStats:
        states = [t.state for t in self._tasks.values()]
        return PipelineStats(
            submitted=self._submitted,
            succeeded=self._succeeded,
            failed_terminal=self._failed_terminal,
            retries=self._retries,
            queued=states.count(UploadTaskState.QUEUED),
            in_flight=states.count(UploadTaskState.IN_PROGRESS),
            waiting_retry=states.count(UploadTaskState.FAILED_RETRYABLE),
            accepting=self._accepting,
            workers=len([w for w in self._workers if not w.done()]),
        )

    async def health_check(self) -> dict[str, Any]:
        """Return runtime health and basic counters."""
        backend_healthy = await self.backend.health_check()
        return {
            "status": "healthy" if self.running and backend_healthy else "unhealthy",
            "running": self.running,
            "backend_healthy": backend_healthy,
            **self.stats().to_dict(),
        }

    async def join(self, timeout: float | None = None) -> None:
        """Wait until every submitted task reached SUCCEEDED or FAILED_TERMINAL."""
        await asyncio.wait_for(self._idle.wait(), timeout)

    async def recover(self) -> list[str]:
        """Resubmit uploads left pending by an earlier shutdown.

        Returns the task ids submitted. Stops early (leaving the rest pending for
        the next call) when the queue saturates.
        """
        pending = await self.store.query(RecordQueryFilters(artifact_state=ArtifactState.PENDING))
        task_ids: list[str] = []
        for record in pending:
            ref = record.artifact_ref
            if ref is None or not ref.source_location:
                continue
            try:
                task_ids.append(self.submit(record.id, ref.source_location))
            except UploadInFlight:
                continue
            except QueueSaturated:
                logger.warning(
                    "Upload queue saturated during recovery; %d record(s) left pending",
                    len(pending) - len(task_ids),
                )
                break
        if task_ids:
            logger.info("Recovered %d pending artifact upload(s)", len(task_ids))
        return task_ids

    async def stop(self, grace_seconds: float | None = None) -> None:
        """Stop accepting work, drain in-progress uploads, park the rest.

        In-progress uploads get up to ``grace_seconds`` to finish. Everything
        still queued, waiting for a retry or interrupted ends FAILED_RETRYABLE and
        its record keeps a pending reference with the source location, so
        :meth:`recover` resumes it on the next start.
        """
        grace = self.config.shutdown_grace_seconds if grace_seconds is None else grace_seconds
        self._accepting = False
        self._stopping = True

        for timer in list(self._retry_timers):
            timer.cancel()
        if self._retry_timers:
            await asyncio.gather(*self._retry_timers, return_exceptions=True)
        self._retry_timers.clear()

        if self._in_progress:
            try:
                await asyncio.wait_for(self._no_in_progress.wait(), grace)
            except asyncio.TimeoutError:
                logger.warning(
                    "Shutdown grace period (%.1fs) elapsed with %d upload(s) in progress",
                    grace,
                    len(self._in_progress),
                )

        for worker in self._workers:
            worker.cancel()
        if self._workers:
            await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        leftovers = list(self._tasks.values())
        for task in leftovers:
            task.state = UploadTaskState.FAILED_RETRYABLE
            task.last_error = task.last_error or "interrupted by shutdown"
            await self._park_pending(task)
        self._in_progress.clear()
        self._no_in_progress.set()
        if leftovers:
            logger.info("Parked %d unfinished upload(s) for recovery", len(leftovers))
        logger.info("Artifact upload pipeline stopped")

    async def _worker_loop(self, worker_id: int) -> None:
        logger.debug("Upload worker %s started", worker_id)
        try:
            while True:
                task_id = await self._queue.get()
                try:
                    task = self._tasks.get(task_id)
                    if task is None or self._stopping:
                        continue
                    await self._process(task)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Upload worker %s failed to process task %s", worker_id, task_id)
                finally:
                    self._queue.task_done()
                await asyncio.sleep(0)
        finally:
            logger.debug("Upload worker %s stopped", worker_id)

    async def _process(self, task: ArtifactUploadTask) -> None:
        task.state = UploadTaskState.IN_PROGRESS
        self._in_progress.add(task.task_id)
        self._no_in_progress.clear()
        try:
            try:
                ref = await self._upload(task)
            except NotFound as exc:
                await self._fail_terminal(task, str(exc), record_exists=False)
            except InvalidTransition as exc:
                await self._fail_terminal(task, str(exc))
            except TerminalUploadFailure as exc:
                await self._fail_terminal(task, str(exc))
            except TransientUploadFailure as exc:
                await self._fail_retryable(task, str(exc))
            except OSError as exc:
                await self._fail_retryable(task, f"I/O error: {exc}")
            except Exception as exc:
                logger.exception("Unexpected error uploading artifact for %s", task.record_id)
                await self._fail_retryable(task, f"unexpected error: {exc}")
            else:
                task.state = UploadTaskState.SUCCEEDED
                task.location = ref.location
                self._succeeded += 1
                logger.info(
                    "Uploaded artifact for %s to %s (attempts=%d)",
                    task.record_id,
                    ref.location,
                    task.attempt + 1,
                )
                self._finish(task)
        finally:
            self._in_progress.discard(task.task_id)
            if not self._in_progress:
                self._no_in_progress.set()

    async def _upload(self, task: ArtifactUploadTask) -> ArtifactRef:
        await self._mark_pending(task)
        source = Path(task.source_location)
        checksum, size = await asyncio.to_thread(file_fingerprint, source)
        suffix = source.suffix or self.config.artifact_suffix
        key = build_artifact_key(self.config.key_prefix, task.record_id, checksum, suffix)
        stored = await self.backend.put(key, source, checksum)
        actual = await self.backend.checksum(key)
        if actual != checksum:
            raise ChecksumMismatch(key, checksum, actual)
        ref = ArtifactRef.uploaded(
            stored.location,
            checksum,
            size_bytes=size,
            content_type=mimetypes.guess_type(source.name)[0] or DEFAULT_CONTENT_TYPE,
        )
        await self.store.attach_artifact(task.record_id, ref)
        return ref

    async def _mark_pending(self, task: ArtifactUploadTask) -> None:
        record = await self.store.get(task.record_id)
        if record.artifact_ref is not None:
            return
        try:
            await self.store.attach_artifact(task.record_id, ArtifactRef.pending(task.source_location))
        except InvalidTransition:
            logger.debug("Artifact for %s advanced concurrently; keeping it", task.record_id)

    async def _park_pending(self, task: ArtifactUploadTask) -> None:
        try:
            await self._mark_pending(task)
        except NotFound:
            logger.warning("Dropping upload task %s: execution %s no longer exists", task.task_id, task.record_id)
        except Exception:
            logger.exception("Failed to park upload task %s for recovery", task.task_id)

    async def _fail_retryable(self, task: ArtifactUploadTask, error: str) -> None:
        task.attempt += 1
        task.last_error = error
        if task.attempt >= self.config.max_attempts:
            await self._fail_terminal(task, f"gave up after {task.attempt} attempts: {error}")
            return
        task.state = UploadTaskState.FAILED_RETRYABLE
        self._retries += 1
        if self._stopping:
            return
        delay = compute_backoff(task.attempt, self.config, self._rng)
        logger.warning(
            "Upload for %s failed (attempt %d/%d), retrying in %.2fs: %s",
            task.record_id,
            task.attempt,
            self.config.max_attempts,
            delay,
            error,
        )
        timer = asyncio.create_task(self._requeue_after(task, delay), name=f"artifact-upload-retry-{task.task_id}")
        self._retry_timers.add(timer)
        timer.add_done_callback(self._retry_timers.discard)

    async def _requeue_after(self, task: ArtifactUploadTask, delay: float) -> None:
        await asyncio.sleep(delay)
        if self._stopping:
            return
        task.state = UploadTaskState.QUEUED
        await self._queue.put(task.task_id)

    async def _fail_terminal(
        self,
        task: ArtifactUploadTask,
        error: str,
        *,
        record_exists: bool = True,
    ) -> None:
        task.state = UploadTaskState.FAILED_TERMINAL
        task.last_error = error
        self._failed_terminal += 1
        logger.error("Upload for %s failed permanently: %s", task.record_id, error)
        if record_exists:
            marker = ArtifactRef.upload_failed(error, source_location=task.source_location)
            try:
                await self.store.attach_artifact(task.record_id, marker)
            except InvalidTransition:
                logger.info("Execution %s already has a final artifact; not marking upload-failed", task.record_id)
            except NotFound:
                logger.warning("Execution %s disappeared before upload failure was recorded", task.record_id)
        self._finish(task)

    def _finish(self, task: ArtifactUploadTask) -> None:
        self._tasks.pop(task.task_id, None)
        if self._by_record.get(task.record_id) == task.task_id:
            del self._by_record[task.record_id]
        if self.config.finished_history:
            self._finished[task.task_id] = task
            while len(self._finished) > self.config.finished_history:
                self._finished.popitem(last=False)
        if not self._tasks:
            self._idle.set()
