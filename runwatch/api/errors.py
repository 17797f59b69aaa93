"""Mapping of domain errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from runwatch.errors import ErrorKind, RunwatchError

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.INVALID_TRANSITION: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNKNOWN_TAG: 400,
    ErrorKind.COMPOSITION: 400,
    ErrorKind.QUEUE_SATURATED: 503,
    ErrorKind.UPLOAD_IN_FLIGHT: 409,
    ErrorKind.PIPELINE_CLOSED: 503,
    ErrorKind.TRANSIENT_UPLOAD_FAILURE: 503,
    ErrorKind.TERMINAL_UPLOAD_FAILURE: 500,
    ErrorKind.CONFIGURATION: 500,
    ErrorKind.UNAVAILABLE: 503,
}


def error_body(kind: ErrorKind | str, detail: object) -> dict[str, object]:
    value = kind.value if isinstance(kind, ErrorKind) else kind
    return {"error": value, "detail": detail}


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(RunwatchError)
    async def _runwatch_error(request: Request, exc: RunwatchError) -> JSONResponse:
        status_code = STATUS_BY_KIND.get(exc.kind, 500)
        if status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
        headers = {"Retry-After": "1"} if exc.kind is ErrorKind.QUEUE_SATURATED else None
        return JSONResponse(status_code=status_code, content=error_body(exc.kind, exc.message), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content=error_body(ErrorKind.VALIDATION, jsonable_encoder(exc.errors())),
        )
