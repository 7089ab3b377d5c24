"""Storage provider protocol (DIP) and the data shapes it exchanges.

Implementations: BucketStorageService (S3-compatible, e.g. R2) and
RepoStorageService (version-controlled repository with LFS transfers).
Callers treat both the same way.
"""

from __future__ import annotations

from collections.abc import AsyncIterable
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol, Union

# Anything put() accepts: raw bytes, a readable binary file (sync or async
# read()), or an async stream of chunks (e.g. a request body).
# Length is not known upfront.
StorageBody = Union[bytes, bytearray, memoryview, BinaryIO, AsyncIterable[bytes]]


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte window [offset, offset + length - 1] for partial reads."""

    offset: int
    length: int

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"Range offset must not be negative, got {self.offset}")
        if self.length <= 0:
            raise ValueError(f"Range length must be positive, got {self.length}")

    @property
    def end(self) -> int:
        """Last byte index (inclusive)."""
        return self.offset + self.length - 1

    def to_header(self) -> str:
        """Value for an HTTP Range header."""
        return f"bytes={self.offset}-{self.end}"


def parse_range(header: str | None) -> ByteRange | None:
    """Parse an inbound ``Range: bytes=a-b`` header into a ByteRange.

    Returns None when no header was sent.

    Raises:
        ValueError: Open-ended (``bytes=10-``), suffix (``bytes=-5``) or
            malformed ranges; only explicit start and end are supported.
    """
    if header is None:
        return None
    _, sep, spec = header.partition("bytes=")
    parts = spec.split("-") if sep else []
    if len(parts) != 2 or not parts[0].strip() or not parts[1].strip():
        raise ValueError(
            "Range must specify both the beginning and ending byte (bytes=<start>-<end>)"
        )
    try:
        start, end = int(parts[0]), int(parts[1])
    except ValueError as e:
        raise ValueError(f"Invalid Range header: {header!r}") from e
    return ByteRange(offset=start, length=end + 1 - start)


@dataclass(frozen=True)
class StorageObjectResult:
    """Result of put(): the normalized key and the exact stored byte count."""

    key: str
    size: int


@dataclass(frozen=True)
class StorageObject:
    """Result of get(): content plus what the backend knows about it."""

    body: bytes
    content_type: str | None
    size: int
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StorageObjectInfo:
    """Result of head(): metadata without the body."""

    size: int
    content_type: str | None
    metadata: dict[str, str] = field(default_factory=dict)


class StorageProtocol(Protocol):
    """Protocol for image storage backends (bucket or versioned repository)."""

    async def put(
        self,
        key: str,
        body: StorageBody,
        *,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StorageObjectResult:
        """Store body under key. Returns only once the content is readable."""
        ...

    async def get(
        self,
        key: str,
        *,
        range: ByteRange | None = None,
    ) -> StorageObject | None:
        """Read content (optionally a byte range). None if absent."""
        ...

    async def head(self, key: str) -> StorageObjectInfo | None:
        """Return size/content type without the body. None if absent."""
        ...

    async def delete(self, key: str) -> None:
        """Delete key. Deleting an absent key is not an error."""
        ...

    def get_public_url(self, key: str) -> str:
        """Deterministic public URL for key (no network call)."""
        ...
