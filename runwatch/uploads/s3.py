"""S3-compatible durable storage backend (optional ``aioboto3`` dependency)."""

from __future__ import annotations

import hashlib
import logging
import mimetypes
from pathlib import Path
from typing import Any

from runwatch.errors import SourceArtifactMissing, TransientUploadFailure
from runwatch.uploads.dependencies import ensure_storage_dependency
from runwatch.uploads.storage import StoredObject

logger = logging.getLogger(__name__)

CHECKSUM_METADATA_KEY = "sha256"
_CHUNK_SIZE = 1024 * 1024


class S3StorageBackend:
    """Store artifacts as S3 objects.

    The sender's SHA-256 is recorded in object metadata for cheap idempotency
    checks, but :meth:`checksum` always hashes the bytes S3 actually holds.
    """

    def __init__(
        self,
        bucket: str,
        *,
        region: str | None = None,
        endpoint_url: str | None = None,
        session: Any | None = None,
    ) -> None:
        if not bucket.strip():
            raise ValueError("bucket is required")
        self.bucket = bucket.strip()
        self.region = region
        self.endpoint_url = endpoint_url
        if session is None:
            ensure_storage_dependency("s3")
            import aioboto3

            session = aioboto3.Session()
        self._session = session

    def _client(self) -> Any:
        return self._session.client("s3", region_name=self.region, endpoint_url=self.endpoint_url)

    def location_for(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"

    async def put(self, key: str, source: Path, checksum: str) -> StoredObject:
        head = await self._head(key)
        source = Path(source)
        if head is not None and (head.get("Metadata") or {}).get(CHECKSUM_METADATA_KEY) == checksum:
            logger.debug("Object %s already stored; skipping upload", key)
            return StoredObject(key, self.location_for(key), checksum, int(head.get("ContentLength", 0)), created=False)
        if not source.is_file():
            raise SourceArtifactMissing(str(source))
        content_type = mimetypes.guess_type(source.name)[0] or "application/octet-stream"
        try:
            async with self._client() as client:
                await client.upload_file(
                    str(source),
                    self.bucket,
                    key,
                    ExtraArgs={
                        "Metadata": {CHECKSUM_METADATA_KEY: checksum},
                        "ContentType": content_type,
                        "ChecksumAlgorithm": "SHA256",
                    },
                )
        except FileNotFoundError as exc:
            raise SourceArtifactMissing(str(source)) from exc
        except Exception as exc:
            raise TransientUploadFailure(f"S3 upload of {key} failed: {exc}") from exc
        return StoredObject(key, self.location_for(key), checksum, source.stat().st_size, created=True)

    async def checksum(self, key: str) -> str | None:
        digest = hashlib.sha256()
        try:
            async with self._client() as client:
                response = await client.get_object(Bucket=self.bucket, Key=key)
                body = response["Body"]
                while chunk := await body.read(_CHUNK_SIZE):
                    digest.update(chunk)
        except Exception as exc:
            if _is_not_found(exc):
                return None
            raise TransientUploadFailure(f"S3 read of {key} failed: {exc}") from exc
        return digest.hexdigest()

    async def health_check(self) -> bool:
        try:
            async with self._client() as client:
                await client.head_bucket(Bucket=self.bucket)
        except Exception:
            logger.warning("S3 bucket %s is not reachable", self.bucket, exc_info=True)
            return False
        return True

    async def _head(self, key: str) -> dict[str, Any] | None:
        try:
            async with self._client() as client:
                return await client.head_object(Bucket=self.bucket, Key=key)
        except Exception as exc:
            if _is_not_found(exc):
                return None
            raise TransientUploadFailure(f"S3 head_object for {key} failed: {exc}") from exc


def _is_not_found(exc: Exception) -> bool:
    response = getattr(exc, "response", None)
    if not isinstance(response, dict):
        return False
    code = str(response.get("Error", {}).get("Code", ""))
    return code in {"404", "NoSuchKey", "NotFound"}
