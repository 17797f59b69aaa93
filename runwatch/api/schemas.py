"""Request bodies for the Status API."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from runwatch.records.models import ExecutionStatus


class CreateExecutionRequest(BaseModel):
    name: str = Field(min_length=1, max_length=512)
    tags: list[str] = Field(default_factory=list)
    environment: str | None = Field(default=None, max_length=128)
    suite: str | None = Field(default=None, max_length=255)

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()


class ArtifactSubmission(BaseModel):
    source_location: str = Field(min_length=1)

    @field_validator("source_location")
    @classmethod
    def _source_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("source_location must not be blank")
        return value.strip()


class UpdateExecutionRequest(BaseModel):
    status: ExecutionStatus | None = None
    artifact: ArtifactSubmission | None = None
