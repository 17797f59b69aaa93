"""Execution record endpoints for runners and the dashboard."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Query, Request, Response

from runwatch.api.schemas import CreateExecutionRequest, UpdateExecutionRequest
from runwatch.app import Runwatch
from runwatch.records.models import ArtifactState, ExecutionStatus, RecordQueryFilters
from runwatch.records.store import ORDER_ASC, ORDER_DESC

router = APIRouter(prefix="/executions", tags=["executions"])


def _service(request: Request) -> Runwatch:
    return request.app.state.runwatch


def _filters(
    tag: list[str],
    status: list[ExecutionStatus],
    started_from: datetime | None,
    started_to: datetime | None,
    artifact: ArtifactState | None,
    name: str | None,
    suite: str | None,
    environment: str | None,
    limit: int | None,
    offset: int | None,
    order: Literal["asc", "desc"],
) -> RecordQueryFilters:
    return RecordQueryFilters(
        tags=frozenset(t.strip() for t in tag if t.strip()),
        statuses=frozenset(status),
        started_from=started_from,
        started_to=started_to,
        artifact_state=artifact,
        name_contains=name or None,
        suite=suite,
        environment=environment,
        limit=limit,
        offset=offset,
        order_by=ORDER_DESC if order == "desc" else ORDER_ASC,
    )


@router.post("", status_code=201)
async def create_execution(payload: CreateExecutionRequest, request: Request, response: Response) -> dict[str, Any]:
    record = await _service(request).create_execution(
        payload.name,
        payload.tags,
        environment=payload.environment,
        suite=payload.suite,
    )
    response.headers["Location"] = f"/executions/{record.id}"
    return record.to_dict()


@router.get("")
async def list_executions(
    request: Request,
    tag: list[str] = Query(default=[]),
    status: list[ExecutionStatus] = Query(default=[]),
    started_from: datetime | None = Query(default=None, alias="from"),
    started_to: datetime | None = Query(default=None, alias="to"),
    artifact: ArtifactState | None = Query(default=None),
    name: str | None = Query(default=None),
    suite: str | None = Query(default=None),
    environment: str | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    order: Literal["asc", "desc"] = Query(default="asc"),
) -> list[dict[str, Any]]:
    filters = _filters(
        tag, status, started_from, started_to, artifact, name, suite, environment, limit, offset, order
    )
    records = await _service(request).query_executions(filters)
    return [record.to_dict() for record in records]


@router.get("/summary")
async def executions_summary(
    request: Request,
    tag: list[str] = Query(default=[]),
    started_from: datetime | None = Query(default=None, alias="from"),
    started_to: datetime | None = Query(default=None, alias="to"),
    suite: str | None = Query(default=None),
    environment: str | None = Query(default=None),
) -> dict[str, Any]:
    filters = _filters(
        tag, [], started_from, started_to, None, None, suite, environment, None, None, "asc"
    )
    service = _service(request)
    if filters.tags and service.enforce_tags:
        filters.tags = service.vocabulary.validate(filters.tags)
    summary = await service.summary(filters)
    return summary.to_dict()


@router.get("/{record_id}")
async def get_execution(record_id: str, request: Request) -> dict[str, Any]:
    record = await _service(request).get_execution(record_id)
    return record.to_dict()


@router.patch("/{record_id}")
async def update_execution(record_id: str, payload: UpdateExecutionRequest, request: Request) -> dict[str, Any]:
    record, task_id = await _service(request).update_execution(
        record_id,
        status=payload.status,
        source_location=payload.artifact.source_location if payload.artifact else None,
    )
    body = record.to_dict()
    body["upload_task_id"] = task_id
    return body
