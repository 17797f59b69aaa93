from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from runwatch.errors import SourceArtifactMissing
from runwatch.uploads import LocalStorageBackend, build_artifact_key, file_fingerprint


def test_file_fingerprint(make_video) -> None:
    payload = b"frame-data" * 100
    video = make_video(payload=payload)
    checksum, size = file_fingerprint(video)
    assert checksum == hashlib.sha256(payload).hexdigest()
    assert size == len(payload)


def test_file_fingerprint_missing(tmp_path: Path) -> None:
    with pytest.raises(SourceArtifactMissing):
        file_fingerprint(tmp_path / "gone.mp4")


def test_build_artifact_key() -> None:
    assert build_artifact_key("executions", "abc", "f00d", ".mp4") == "executions/abc/f00d.mp4"
    assert build_artifact_key("/executions/", "abc", "f00d", ".mp4") == "executions/abc/f00d.mp4"
    assert build_artifact_key("", "abc", "f00d", ".webm") == "abc/f00d.webm"


@pytest.mark.asyncio
async def test_put_writes_and_is_idempotent(durable_backend: LocalStorageBackend, make_video) -> None:
    video = make_video()
    checksum, size = file_fingerprint(video)
    key = build_artifact_key("executions", "rec1", checksum, ".mp4")

    first = await durable_backend.put(key, video, checksum)
    assert first.created is True
    assert first.size_bytes == size
    assert Path(first.location).read_bytes() == video.read_bytes()
    assert await durable_backend.checksum(key) == checksum

    second = await durable_backend.put(key, video, checksum)
    assert second.created is False
    assert second.location == first.location
    assert not list(Path(first.location).parent.glob(".upload-*"))


@pytest.mark.asyncio
async def test_put_missing_source(durable_backend: LocalStorageBackend, tmp_path: Path) -> None:
    with pytest.raises(SourceArtifactMissing):
        await durable_backend.put("executions/rec1/abc.mp4", tmp_path / "missing.mp4", "abc")


@pytest.mark.asyncio
async def test_checksum_absent_and_health(durable_backend: LocalStorageBackend) -> None:
    assert await durable_backend.checksum("executions/none/nothing.mp4") is None
    assert await durable_backend.health_check() is True


def test_keys_cannot_escape_root(durable_backend: LocalStorageBackend) -> None:
    with pytest.raises(ValueError):
        durable_backend._path_for("../outside.mp4")
