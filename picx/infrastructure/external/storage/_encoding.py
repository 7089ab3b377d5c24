"""Body materialization, hashing and base64 helpers for storage uploads."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import inspect
from collections.abc import Iterator

from picx.infrastructure.external.storage.protocol import StorageBody

SAMPLE_SIZE = 512
_READ_CHUNK = 64 * 1024  # 64KB


def _read_file_sync(file_data) -> bytes:
    """Blocking: read a file object to the end (run in thread)."""
    chunks = []
    while chunk := file_data.read(_READ_CHUNK):
        if isinstance(chunk, str):
            raise TypeError("File body must be opened in binary mode")
        if not isinstance(chunk, (bytes, bytearray)):
            raise TypeError(f"File body read() returned {type(chunk).__name__}, expected bytes")
        chunks.append(chunk)
    return b"".join(chunks)


async def read_body(body: StorageBody) -> bytes:
    """Fully materialize body into memory.

    Size and hash must be exact before any transfer decision, so there is
    no streaming path.

    Raises:
        TypeError: Unsupported body type.
    """
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, (bytearray, memoryview)):
        return bytes(body)
    if hasattr(body, "__aiter__"):
        buf = bytearray()
        async for chunk in body:
            buf.extend(chunk)
        return bytes(buf)
    read = getattr(body, "read", None)
    if read is not None:
        # Async file wrappers (e.g. an uploaded form file) read in one await.
        if inspect.iscoroutinefunction(read):
            data = await read()
            if not isinstance(data, (bytes, bytearray)):
                raise TypeError(
                    f"File body read() returned {type(data).__name__}, expected bytes"
                )
            return bytes(data)
        return await asyncio.to_thread(_read_file_sync, body)
    raise TypeError(f"Unsupported storage body type: {type(body).__name__}")


def sha256_hex(data: bytes) -> str:
    """SHA-256 of data, hex-encoded (the LFS oid)."""
    return hashlib.sha256(data).hexdigest()


def b64encode(data: bytes) -> str:
    """Standard base64 as ASCII text."""
    return base64.standard_b64encode(data).decode("ascii")


def sample_b64(data: bytes) -> str:
    """Base64 of the first 512 bytes, sent with upload negotiation."""
    return b64encode(data[:SAMPLE_SIZE])


def iter_chunks(data: bytes, chunk_size: int) -> Iterator[tuple[int, bytes]]:
    """Yield (part_number, slice) pairs in ascending order, 1-based.

    Raises:
        ValueError: chunk_size is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    view = memoryview(data)
    for part_number, start in enumerate(range(0, len(data), chunk_size), start=1):
        yield part_number, bytes(view[start : start + chunk_size])


def unquote_etag(value: str | None) -> str | None:
    """Strip surrounding quotes (and a weak prefix) from an ETag header."""
    if value is None:
        return None
    etag = value.strip()
    if etag.startswith("W/"):
        etag = etag[2:]
    etag = etag.strip('"')
    return etag or None
