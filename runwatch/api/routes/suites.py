"""Suite resolution and tag selection endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query, Request

router = APIRouter(tags=["composition"])


@router.get("/suites")
async def list_suites(request: Request) -> dict[str, Any]:
    graph = request.app.state.runwatch.graph
    return {
        "suites": [
            {"name": suite.name, "members": [str(m) for m in suite.members]}
            for suite in graph.suites.values()
        ]
    }


@router.get("/suites/{suite_name}/tests")
async def suite_tests(suite_name: str, request: Request) -> dict[str, Any]:
    tests = request.app.state.runwatch.suite_tests(suite_name)
    return {"suite": suite_name, "tests": list(tests), "count": len(tests)}


@router.get("/tests")
async def select_tests(request: Request, tags: str = Query(..., min_length=1)) -> dict[str, Any]:
    tests = request.app.state.runwatch.select_tests(tags)
    return {"expression": tags, "tests": list(tests), "count": len(tests)}
