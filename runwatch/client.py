"""Runner-side reporting: the reporter protocol and an HTTP client for the Status API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import httpx

from runwatch.errors import ErrorKind, RunwatchError
from runwatch.records.models import ExecutionStatus

if TYPE_CHECKING:
    from runwatch.app import Runwatch

logger = logging.getLogger(__name__)


@runtime_checkable
class ExecutionReporter(Protocol):
    """What a test runner needs: open an execution and report its progress."""

    async def begin(
        self,
        name: str,
        tags: Iterable[str],
        *,
        environment: str | None = None,
        suite: str | None = None,
    ) -> str:
        """Create an execution record and return its id."""

    async def report(
        self,
        record_id: str,
        status: ExecutionStatus | None = None,
        *,
        artifact_location: str | None = None,
    ) -> None:
        """Report a status transition and/or hand over a captured artifact."""


class StatusApiError(RunwatchError):
    """Error response from the Status API, carrying the server's error kind."""

    def __init__(self, kind: ErrorKind | str, message: str, status_code: int) -> None:
        super().__init__(message)
        try:
            self.kind = ErrorKind(kind)
        except ValueError:
            self.kind = ErrorKind.VALIDATION if status_code < 500 else ErrorKind.UNAVAILABLE
        self.status_code = status_code


class StatusClient:
    """Async HTTP client for the Status API.

    Idempotent calls (status reports, reads) are retried on transport errors;
    ``begin`` is not, since a retried create could open two records.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_seconds: float = 0.2,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

    async def __aenter__(self) -> StatusClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def begin(
        self,
        name: str,
        tags: Iterable[str],
        *,
        environment: str | None = None,
        suite: str | None = None,
    ) -> str:
        body: dict[str, Any] = {"name": name, "tags": list(tags)}
        if environment is not None:
            body["environment"] = environment
        if suite is not None:
            body["suite"] = suite
        response = await self._client.post("/executions", json=body)
        return self._payload(response)["id"]

    async def report(
        self,
        record_id: str,
        status: ExecutionStatus | None = None,
        *,
        artifact_location: str | None = None,
    ) -> None:
        await self.update(record_id, status, artifact_location=artifact_location)

    async def update(
        self,
        record_id: str,
        status: ExecutionStatus | None = None,
        *,
        artifact_location: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if status is not None:
            body["status"] = ExecutionStatus(status).value
        if artifact_location is not None:
            body["artifact"] = {"source_location": artifact_location}
        return await self._idempotent("PATCH", f"/executions/{record_id}", json=body)

    async def get(self, record_id: str) -> dict[str, Any]:
        return await self._idempotent("GET", f"/executions/{record_id}")

    async def query(self, **params: Any) -> list[dict[str, Any]]:
        clean = {key: value for key, value in params.items() if value is not None}
        if "started_from" in clean:
            clean["from"] = clean.pop("started_from")
        if "started_to" in clean:
            clean["to"] = clean.pop("started_to")
        return await self._idempotent("GET", "/executions", params=clean)

    async def _idempotent(self, method: str, url: str, **kwargs: Any) -> Any:
        delay = self._backoff_seconds
        last_exception: Exception | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exception = exc
                if attempt == self._max_attempts:
                    break
                logger.warning("%s %s failed (attempt %d): %s", method, url, attempt, exc)
                await asyncio.sleep(delay)
                delay *= 2
                continue
            return self._payload(response)
        raise StatusApiError(
            ErrorKind.UNAVAILABLE,
            f"{method} {url} failed after {self._max_attempts} attempts",
            503,
        ) from last_exception

    @staticmethod
    def _payload(response: httpx.Response) -> Any:
        if response.is_success:
            return response.json()
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        detail = body.get("detail", response.text)
        raise StatusApiError(str(body.get("error", "")), str(detail), response.status_code)


class ServiceReporter:
    """In-process reporter writing straight to a :class:`Runwatch` service."""

    def __init__(self, service: Runwatch) -> None:
        self._service = service

    async def begin(
        self,
        name: str,
        tags: Iterable[str],
        *,
        environment: str | None = None,
        suite: str | None = None,
    ) -> str:
        record = await self._service.create_execution(name, tags, environment=environment, suite=suite)
        return record.id

    async def report(
        self,
        record_id: str,
        status: ExecutionStatus | None = None,
        *,
        artifact_location: str | None = None,
    ) -> None:
        await self._service.update_execution(record_id, status=status, source_location=artifact_location)
