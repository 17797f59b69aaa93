"""Durable artifact storage: backend protocol, content addressing, local backend."""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

from runwatch.errors import SourceArtifactMissing, TransientUploadFailure

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


@dataclass(frozen=True, slots=True)
class StoredObject:
    """Result of writing one artifact to durable storage."""

    key: str
    location: str
    checksum: str
    size_bytes: int
    created: bool


@runtime_checkable
class StorageBackend(Protocol):
    """Durable storage destination for artifacts.

    ``put`` must be idempotent: writing bytes whose checksum already exists
    under ``key`` is a successful no-op. Backends raise
    :class:`TransientUploadFailure` for failures a retry may fix.
    """

    async def put(self, key: str, source: Path, checksum: str) -> StoredObject:
        """Store ``source`` under ``key``."""

    async def checksum(self, key: str) -> str | None:
        """Return the SHA-256 of the stored object, or None if absent."""

    async def health_check(self) -> bool:
        """Return whether the destination is reachable and writable."""


def file_fingerprint(path: Path) -> tuple[str, int]:
    """Return ``(sha256 hex digest, size in bytes)`` of a file.

    Raises:
        SourceArtifactMissing: the file does not exist.
    """
    digest = hashlib.sha256()
    size = 0
    try:
        with path.open("rb") as handle:
            for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
                digest.update(chunk)
                size += len(chunk)
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
        raise SourceArtifactMissing(str(path)) from exc
    return digest.hexdigest(), size


def build_artifact_key(prefix: str, record_id: str, checksum: str, suffix: str) -> str:
    """Deterministic destination: ``<prefix>/<record_id>/<sha256><suffix>``."""
    parts = [p.strip("/") for p in (prefix, record_id) if p and p.strip("/")]
    return "/".join([*parts, f"{checksum}{suffix}"])


class LocalStorageBackend:
    """Durable storage on a local (or mounted) filesystem directory.

    Writes go to a temporary file in the destination directory and are moved
    into place with an atomic rename, so a crash never leaves a partial object
    under its final key.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def _path_for(self, key: str) -> Path:
        target = (self.root / key).resolve()
        if self.root != target and self.root not in target.parents:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return target

    async def put(self, key: str, source: Path, checksum: str) -> StoredObject:
        return await asyncio.to_thread(self._put_sync, key, Path(source), checksum)

    async def checksum(self, key: str) -> str | None:
        return await asyncio.to_thread(self._checksum_sync, key)

    async def health_check(self) -> bool:
        return await asyncio.to_thread(self._health_sync)

    def _put_sync(self, key: str, source: Path, checksum: str) -> StoredObject:
        target = self._path_for(key)
        existing = self._checksum_sync(key)
        if existing == checksum:
            logger.debug("Artifact %s already stored; skipping write", key)
            return StoredObject(key, str(target), checksum, target.stat().st_size, created=False)
        if not source.is_file():
            raise SourceArtifactMissing(str(source))
        tmp_name: str | None = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb", dir=target.parent, prefix=".upload-", delete=False
            ) as tmp, source.open("rb") as src:
                tmp_name = tmp.name
                shutil.copyfileobj(src, tmp, _CHUNK_SIZE)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
            tmp_name = None
        except FileNotFoundError as exc:
            if not source.exists():
                raise SourceArtifactMissing(str(source)) from exc
            raise TransientUploadFailure(f"Failed to write {key}: {exc}") from exc
        except OSError as exc:
            raise TransientUploadFailure(f"Failed to write {key}: {exc}") from exc
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
        return StoredObject(key, str(target), checksum, target.stat().st_size, created=True)

    def _checksum_sync(self, key: str) -> str | None:
        target = self._path_for(key)
        if not target.is_file():
            return None
        try:
            digest, _ = file_fingerprint(target)
        except SourceArtifactMissing:
            return None
        return digest

    def _health_sync(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.warning("Storage root %s is not creatable", self.root)
            return False
        return os.access(self.root, os.W_OK)
