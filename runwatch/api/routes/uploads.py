"""Upload pipeline introspection endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.get("/stats")
async def upload_stats(request: Request) -> dict[str, Any]:
    return request.app.state.runwatch.pipeline.stats().to_dict()


@router.get("/tasks/{task_id}")
async def upload_task(task_id: str, request: Request) -> dict[str, Any]:
    return request.app.state.runwatch.pipeline.task(task_id).to_dict()
