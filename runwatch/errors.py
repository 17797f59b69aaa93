"""Error taxonomy shared by the record store, upload pipeline and composition model.

Every exception carries an :class:`ErrorKind` so API and CLI boundaries can map
failures without inspecting exception types.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Stable error identifiers exposed to callers."""

    VALIDATION = "validation_error"
    INVALID_TRANSITION = "invalid_transition"
    NOT_FOUND = "not_found"
    UNKNOWN_TAG = "unknown_tag"
    COMPOSITION = "composition_error"
    QUEUE_SATURATED = "queue_saturated"
    UPLOAD_IN_FLIGHT = "upload_in_flight"
    PIPELINE_CLOSED = "pipeline_closed"
    TRANSIENT_UPLOAD_FAILURE = "transient_upload_failure"
    TERMINAL_UPLOAD_FAILURE = "terminal_upload_failure"
    CONFIGURATION = "configuration_error"
    UNAVAILABLE = "service_unavailable"


class RunwatchError(Exception):
    """Base exception for all runwatch domain errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(RunwatchError):
    """Raised when caller input is malformed (e.g. empty execution name)."""

    kind = ErrorKind.VALIDATION


class InvalidTransition(RunwatchError):
    """Raised when a status or artifact move is not permitted. The record is unchanged."""

    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, record_id: str, current: str, requested: str) -> None:
        self.record_id = record_id
        self.current = current
        self.requested = requested
        super().__init__(f"Execution {record_id}: cannot move from {current} to {requested}")


class NotFound(RunwatchError):
    """Raised when an execution record (or suite) does not exist."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, what: str, identifier: str) -> None:
        self.what = what
        self.identifier = identifier
        super().__init__(f"{what} not found: {identifier}")


class UnknownTag(RunwatchError):
    """Raised when a tag is not part of the configured vocabulary."""

    kind = ErrorKind.UNKNOWN_TAG

    def __init__(self, tag: str) -> None:
        self.tag = tag
        super().__init__(f"Unknown tag: {tag!r}")


class CompositionError(RunwatchError):
    """Raised for malformed suite graphs, cycles and tag expression syntax errors."""

    kind = ErrorKind.COMPOSITION

    def __init__(self, message: str, cycle: tuple[str, ...] | None = None) -> None:
        self.cycle = cycle
        super().__init__(message)


class QueueSaturated(RunwatchError):
    """Raised by ``submit`` when the bounded upload queue is full."""

    kind = ErrorKind.QUEUE_SATURATED

    def __init__(self, capacity: int) -> None:
        self.capacity = capacity
        super().__init__(f"Upload queue is full (capacity={capacity})")


class UploadInFlight(RunwatchError):
    """Raised when a record already has an upload in flight for a different source."""

    kind = ErrorKind.UPLOAD_IN_FLIGHT

    def __init__(self, record_id: str, task_id: str) -> None:
        self.record_id = record_id
        self.task_id = task_id
        super().__init__(f"Execution {record_id} already has upload task {task_id} in flight")


class PipelineClosed(RunwatchError):
    """Raised by ``submit`` once the pipeline is not accepting work."""

    kind = ErrorKind.PIPELINE_CLOSED

    def __init__(self) -> None:
        super().__init__("Upload pipeline is not accepting submissions")


class TransientUploadFailure(RunwatchError):
    """Upload failed for a reason that a retry may fix (storage unavailable, I/O error)."""

    kind = ErrorKind.TRANSIENT_UPLOAD_FAILURE


class TerminalUploadFailure(RunwatchError):
    """Upload failed for a reason a retry cannot fix."""

    kind = ErrorKind.TERMINAL_UPLOAD_FAILURE


class SourceArtifactMissing(TerminalUploadFailure):
    """The captured artifact no longer exists at its source location."""

    def __init__(self, source_location: str) -> None:
        self.source_location = source_location
        super().__init__(f"Source artifact missing: {source_location}")


class ChecksumMismatch(TerminalUploadFailure):
    """Stored bytes do not match the source fingerprint."""

    def __init__(self, key: str, expected: str, actual: str | None) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(f"Checksum mismatch for {key}: expected {expected}, got {actual}")


class ConfigurationError(RunwatchError):
    """Raised when runtime configuration is invalid or missing."""

    kind = ErrorKind.CONFIGURATION
