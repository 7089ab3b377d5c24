"""S3-compatible bucket storage (Cloudflare R2, AWS S3, MinIO).

Direct pass-through: one call per operation, no retries. The store is
strongly consistent, so put() returns as soon as the write is acknowledged.
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.exceptions import ClientError

from picx.infrastructure.exceptions import (
    StorageDeleteError,
    StorageDownloadError,
    StorageUploadError,
)
from picx.infrastructure.external.storage._encoding import read_body
from picx.infrastructure.external.storage.protocol import (
    ByteRange,
    StorageBody,
    StorageObject,
    StorageObjectInfo,
    StorageObjectResult,
)
from picx.shared.telemetry.logging import get_logger
from picx.shared.telemetry.tracing import traced
from picx.shared.utils.keys import normalize_key

logger = get_logger(__name__)

_NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


def _is_not_found(e: ClientError) -> bool:
    return e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES


def _status_of(e: ClientError) -> int | None:
    return e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")


def _total_size(resp: dict[str, Any]) -> int:
    """Full object size; ranged reads report it after the slash in ContentRange."""
    content_range = resp.get("ContentRange")
    if content_range and "/" in content_range:
        total = content_range.rsplit("/", 1)[1]
        if total.isdigit():
            return int(total)
    return int(resp.get("ContentLength") or 0)


class BucketStorageService:
    """Bucket store adapter using boto3 (sync) via asyncio.to_thread.

    Keys are stored normalized (no leading slash). Custom metadata goes to
    S3 user metadata; content type to the object's Content-Type.
    """

    def __init__(
        self,
        bucket: str,
        base_url: str,
        region: str = "auto",
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        *,
        client: Any | None = None,
    ) -> None:
        """Initialize the S3 client.

        Args:
            bucket: Bucket name.
            base_url: Public base URL for served images.
            region: Region ("auto" for R2).
            endpoint_url: Custom endpoint (R2 account endpoint, MinIO).
            access_key: Optional; uses env/IAM if not set.
            secret_key: Optional.
            client: Pre-built S3 client (tests or shared sessions).
        """
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        if client is not None:
            self._client = client
        else:
            extra = {} if endpoint_url is None else {"endpoint_url": endpoint_url}
            self._client = boto3.client(
                "s3",
                region_name=region,
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                **extra,
            )

    @traced("storage.bucket.put")
    async def put(
        self,
        key: str,
        body: StorageBody,
        *,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StorageObjectResult:
        """Store body and metadata in one call; size as reported by the store."""
        key = normalize_key(key)
        data = await read_body(body)

        def _put() -> int:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
                Metadata={str(k): str(v) for k, v in (metadata or {}).items()},
            )
            head = self._client.head_object(Bucket=self.bucket, Key=key)
            return int(head["ContentLength"])

        try:
            size = await asyncio.to_thread(_put)
        except Exception as e:
            raise StorageUploadError(key, str(e)) from e
        logger.debug("Stored %s in bucket %s (%d bytes)", key, self.bucket, size)
        return StorageObjectResult(key=key, size=size)

    @traced("storage.bucket.get")
    async def get(
        self,
        key: str,
        *,
        range: ByteRange | None = None,
    ) -> StorageObject | None:
        """Read object (or a byte range of it). None if absent."""
        key = normalize_key(key)

        def _get() -> StorageObject | None:
            params: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
            if range is not None:
                params["Range"] = range.to_header()
            try:
                resp = self._client.get_object(**params)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise StorageDownloadError(key, str(e)) from e
            return StorageObject(
                body=resp["Body"].read(),
                content_type=resp.get("ContentType"),
                size=_total_size(resp),
                metadata=dict(resp.get("Metadata") or {}),
            )

        return await asyncio.to_thread(_get)

    @traced("storage.bucket.head")
    async def head(self, key: str) -> StorageObjectInfo | None:
        """Return size, content type and metadata without the body."""
        key = normalize_key(key)

        def _head() -> StorageObjectInfo | None:
            try:
                resp = self._client.head_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    return None
                raise StorageDownloadError(key, str(e)) from e
            return StorageObjectInfo(
                size=int(resp.get("ContentLength") or 0),
                content_type=resp.get("ContentType"),
                metadata=dict(resp.get("Metadata") or {}),
            )

        return await asyncio.to_thread(_head)

    @traced("storage.bucket.delete")
    async def delete(self, key: str) -> None:
        """Unconditional delete; an absent key is not an error."""
        key = normalize_key(key)

        def _delete() -> None:
            try:
                self._client.delete_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if _is_not_found(e):
                    return
                raise StorageDeleteError(key, "delete", _status_of(e), str(e)) from e

        await asyncio.to_thread(_delete)

    def get_public_url(self, key: str) -> str:
        """Return {base_url}/rest/{key}."""
        return f"{self.base_url}/rest/{normalize_key(key)}"
