"""In-memory execution record store."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from runwatch.errors import InvalidTransition, NotFound, ValidationError
from runwatch.records import (
    ArtifactRef,
    ArtifactState,
    ExecutionStatus,
    InMemoryExecutionStore,
    RecordQueryFilters,
)


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.mark.asyncio
async def test_create_then_get_is_pending(memory_store: InMemoryExecutionStore) -> None:
    record_id = await memory_store.create("LoginTest", ["UI", "P0"])
    record = await memory_store.get(record_id)
    assert record.status is ExecutionStatus.PENDING
    assert record.tags == frozenset({"UI", "P0"})
    assert record.finished_at is None
    assert record.artifact_ref is None


@pytest.mark.asyncio
async def test_create_rejects_blank_name(memory_store: InMemoryExecutionStore) -> None:
    with pytest.raises(ValidationError):
        await memory_store.create("   ", ["UI"])


@pytest.mark.asyncio
async def test_login_scenario(memory_store: InMemoryExecutionStore) -> None:
    record_id = await memory_store.create("LoginTest", ["UI", "P0"])
    await memory_store.transition(record_id, ExecutionStatus.RUNNING)
    passed = await memory_store.transition(record_id, ExecutionStatus.PASSED)
    assert passed.finished_at is not None
    with pytest.raises(InvalidTransition):
        await memory_store.transition(record_id, ExecutionStatus.FAILED)
    assert (await memory_store.get(record_id)).status is ExecutionStatus.PASSED


@pytest.mark.asyncio
async def test_unknown_id_raises_not_found(memory_store: InMemoryExecutionStore) -> None:
    with pytest.raises(NotFound):
        await memory_store.get("missing")
    with pytest.raises(NotFound):
        await memory_store.transition("missing", ExecutionStatus.RUNNING)


@pytest.mark.asyncio
async def test_concurrent_duplicate_terminal_reports_converge(memory_store: InMemoryExecutionStore) -> None:
    record_id = await memory_store.create("FlakyRunnerTest", [])
    await memory_store.transition(record_id, ExecutionStatus.RUNNING)
    results = await asyncio.gather(
        *(memory_store.transition(record_id, ExecutionStatus.FAILED) for _ in range(20))
    )
    finished = {r.finished_at for r in results}
    assert len(finished) == 1
    assert (await memory_store.get(record_id)).status is ExecutionStatus.FAILED


@pytest.mark.asyncio
async def test_query_filters_combine() -> None:
    store = InMemoryExecutionStore(clock=_Clock())
    login = await store.create("auth.LoginTest", ["UI", "P0"], suite="smoke")
    api = await store.create("auth.LoginApiTest", ["API", "P0"])
    checkout = await store.create("cart.CheckoutTest", ["UI", "P1"])
    await store.transition(login, ExecutionStatus.PASSED)
    await store.transition(checkout, ExecutionStatus.FAILED)
    await store.attach_artifact(checkout, ArtifactRef.pending("/tmp/checkout.mp4"))

    ui = await store.query(RecordQueryFilters(tags=frozenset({"UI"})))
    assert [r.id for r in ui] == [login, checkout]

    ui_p0 = await store.query(RecordQueryFilters(tags=frozenset({"UI", "P0"})))
    assert [r.id for r in ui_p0] == [login]

    finished = await store.query(
        RecordQueryFilters(statuses=frozenset({ExecutionStatus.PASSED, ExecutionStatus.FAILED}))
    )
    assert {r.id for r in finished} == {login, checkout}

    pending_artifacts = await store.query(RecordQueryFilters(artifact_state=ArtifactState.PENDING))
    assert [r.id for r in pending_artifacts] == [checkout]

    by_name = await store.query(RecordQueryFilters(name_contains="loginapi"))
    assert [r.id for r in by_name] == [api]

    by_suite = await store.query(RecordQueryFilters(suite="smoke"))
    assert [r.id for r in by_suite] == [login]

    assert await store.query(RecordQueryFilters(tags=frozenset({"SLOW"}))) == []


@pytest.mark.asyncio
async def test_query_time_range_order_and_paging() -> None:
    clock = _Clock()
    store = InMemoryExecutionStore(clock=clock)
    ids = [await store.create(f"Test{i}", []) for i in range(5)]
    records = [await store.get(i) for i in ids]

    window = await store.query(
        RecordQueryFilters(started_from=records[1].started_at, started_to=records[3].started_at)
    )
    assert [r.id for r in window] == ids[1:4]

    newest_first = await store.query(RecordQueryFilters(order_by="started_at DESC", limit=2))
    assert [r.id for r in newest_first] == [ids[4], ids[3]]

    page = await store.query(RecordQueryFilters(offset=2, limit=2))
    assert [r.id for r in page] == ids[2:4]


@pytest.mark.asyncio
async def test_query_rejects_inverted_range(memory_store: InMemoryExecutionStore) -> None:
    now = datetime.now(timezone.utc)
    with pytest.raises(ValidationError):
        await memory_store.query(RecordQueryFilters(started_from=now, started_to=now - timedelta(hours=1)))


@pytest.mark.asyncio
async def test_summary_counts_statuses_and_artifacts() -> None:
    store = InMemoryExecutionStore(clock=_Clock())
    a = await store.create("A", [])
    b = await store.create("B", [])
    c = await store.create("C", [])
    await store.create("D", [])
    await store.transition(a, ExecutionStatus.PASSED)
    await store.transition(b, ExecutionStatus.FAILED)
    await store.transition(c, ExecutionStatus.RUNNING)
    await store.attach_artifact(a, ArtifactRef.uploaded("/d/a.mp4", "aa"))

    summary = await store.summary()
    assert summary.total == 4
    assert summary.by_status["PASSED"] == 1
    assert summary.by_status["PENDING"] == 1
    assert summary.active == 1
    assert summary.pass_rate == 50.0
    assert summary.by_artifact_state["uploaded"] == 1
    assert summary.by_artifact_state["none"] == 3
    assert summary.average_duration_seconds is not None


@pytest.mark.asyncio
async def test_name_filter_matches_wildcard_characters_literally(memory_store: InMemoryExecutionStore) -> None:
    literal = await memory_store.create("Discount_100%Test", ["UI"])
    await memory_store.create("DiscountX100Test", ["UI"])

    assert [r.id for r in await memory_store.query(RecordQueryFilters(name_contains="discount_"))] == [literal]
    assert [r.id for r in await memory_store.query(RecordQueryFilters(name_contains="100%"))] == [literal]
