"""Versioned-repository storage (Hugging Face Hub dataset repo) behind StorageProtocol.

A put() is a four-stage pipeline, each stage raising on failure so the
remaining stages never run:

1. negotiate: preupload decides inline ("regular") or tracked ("lfs").
2. transfer (tracked only): LFS batch, then a single PUT or sequential
   multipart PUTs to pre-signed URLs, then multipart completion/verify.
3. commit: NDJSON commit linking the path to inline bytes or to the LFS oid.
4. verify: poll the read paths until the commit is visible (eventually
   consistent), bounded by verify_attempts x verify_delay.

Only stage 4 retries. Uploaded-but-uncommitted multipart parts are left to
the remote store's own expiry.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from picx.infrastructure.exceptions import (
    StorageCommitError,
    StorageDeleteError,
    StorageNegotiationError,
    StorageRemoteError,
    StorageTransferError,
    StorageVerificationTimeoutError,
)
from picx.infrastructure.external.storage._encoding import (
    b64encode,
    iter_chunks,
    read_body,
    sample_b64,
    sha256_hex,
    unquote_etag,
)
from picx.infrastructure.external.storage._hub_client import HubRESTClient
from picx.infrastructure.external.storage.protocol import (
    ByteRange,
    StorageBody,
    StorageObject,
    StorageObjectInfo,
    StorageObjectResult,
)
from picx.shared.telemetry.logging import get_logger
from picx.shared.telemetry.tracing import add_span_attributes, add_span_event, traced
from picx.shared.utils.keys import normalize_key

logger = get_logger(__name__)


class TransferMode(str, Enum):
    """How the repository wants a file uploaded; decided by negotiation only."""

    INLINE = "inline"
    TRACKED = "tracked"

    @classmethod
    def from_wire(cls, upload_mode: str | None) -> "TransferMode":
        """Map preupload's uploadMode ("regular" / "lfs")."""
        if upload_mode == "regular":
            return cls.INLINE
        if upload_mode == "lfs":
            return cls.TRACKED
        raise ValueError(f"Unknown uploadMode: {upload_mode!r}")


@dataclass(frozen=True)
class UploadNegotiation:
    """Preupload input: candidate path, exact size, base64 of the first 512 bytes."""

    path: str
    size: int
    sample: str


@dataclass(frozen=True)
class ChunkTicket:
    """One multipart segment: pre-signed target and its 1-based part number."""

    url: str
    headers: dict[str, str]
    chunk_size: int
    part_number: int


@dataclass(frozen=True)
class CommitRecord:
    """What a commit binds to the path: content hash, size, summary line."""

    oid: str
    size: int
    summary: str


@dataclass
class VerificationProbe:
    """Post-commit read-path check state for one put()."""

    path: str
    resolve_url: str
    raw_url: str
    max_attempts: int
    delay_seconds: float
    attempt: int = 0
    statuses: dict[str, int | None] = field(
        default_factory=lambda: {"resolve": None, "raw": None, "paths_info": None}
    )


def _reported_size(resp: httpx.Response) -> int:
    """Full object size from Content-Range, LFS linked size, or Content-Length."""
    content_range = resp.headers.get("content-range")
    if content_range and "/" in content_range:
        total = content_range.rsplit("/", 1)[1]
        if total.isdigit():
            return int(total)
    for name in ("x-linked-size", "content-length"):
        value = resp.headers.get(name)
        if value and value.isdigit():
            return int(value)
    return len(resp.content)


def _json_or_error(
    resp: httpx.Response, error_cls: type[StorageRemoteError], path: str, operation: str
) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise error_cls(path, operation, resp.status_code, f"invalid JSON: {resp.text}") from e


class RepoStorageService:
    """Image storage in a version-controlled, content-addressed repository.

    Same contract as BucketStorageService; the multi-step protocol stays
    internal. Bodies are buffered in full: negotiation needs the exact size
    and a content sample, and LFS needs the SHA-256 oid, before any byte is
    sent. Multipart parts go up one at a time in ascending order.

    Repositories have no per-object custom metadata: put() accepts it for
    contract compatibility and get()/head() return an empty dict.
    """

    def __init__(
        self,
        token: str,
        repo: str,
        base_url: str,
        *,
        repo_type: str = "datasets",
        revision: str = "main",
        endpoint: str = "https://huggingface.co",
        timeout: float = 60.0,
        verify_attempts: int = 10,
        verify_delay: float = 1.0,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize repository storage.

        Args:
            token: Bearer credential for the repository.
            repo: Repository id ("owner/name").
            base_url: Public base URL for served images.
            repo_type: "datasets", "models" or "spaces".
            revision: Branch commits go to.
            endpoint: Hub endpoint.
            timeout: Per-request timeout when we create the HTTP client.
            verify_attempts: Post-commit probe attempts.
            verify_delay: Seconds between probe attempts.
            http_client: Optional shared httpx.AsyncClient (not closed by aclose).
            sleep: Delay coroutine between probe attempts.

        Raises:
            ValueError: verify_attempts below 1 or negative verify_delay.
        """
        if verify_attempts < 1:
            raise ValueError(f"verify_attempts must be at least 1, got {verify_attempts}")
        if verify_delay < 0:
            raise ValueError(f"verify_delay must not be negative, got {verify_delay}")
        self.base_url = base_url.rstrip("/")
        self.verify_attempts = verify_attempts
        self.verify_delay = verify_delay
        self._sleep = sleep
        self._hub = HubRESTClient(
            token,
            repo,
            repo_type=repo_type,
            revision=revision,
            endpoint=endpoint,
            timeout=timeout,
            http_client=http_client,
        )

    async def aclose(self) -> None:
        """Close the HTTP client if this provider created it."""
        await self._hub.aclose()

    async def _call(
        self,
        error_cls: type[StorageRemoteError],
        path: str,
        operation: str,
        request: Awaitable[httpx.Response],
        extra: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Await one protocol request; any non-2xx or transport error aborts put()."""
        try:
            resp = await request
        except httpx.HTTPError as e:
            logger.warning("%s for %s failed: %s", operation, path, e)
            raise error_cls(path, operation, None, f"{type(e).__name__}: {e}", extra) from e
        if not resp.is_success:
            logger.warning("%s for %s returned %s", operation, path, resp.status_code)
            raise error_cls(path, operation, resp.status_code, resp.text, extra)
        return resp

    # --- put pipeline ---

    @traced("storage.repo.put")
    async def put(
        self,
        key: str,
        body: StorageBody,
        *,
        content_type: str,
        metadata: dict[str, str] | None = None,
    ) -> StorageObjectResult:
        """Upload, commit and wait until the file is readable.

        Raises:
            StorageNegotiationError: preupload or LFS batch failed.
            StorageTransferError: a PUT, completion or LFS verify failed,
                or a part response had no ETag.
            StorageCommitError: the commit was rejected.
            StorageVerificationTimeoutError: never became resolvable.
        """
        path = normalize_key(key)
        data = await read_body(body)
        size = len(data)
        oid = sha256_hex(data)
        add_span_attributes(**{"storage.size": size, "storage.oid": oid})

        mode = await self._negotiate(
            UploadNegotiation(path=path, size=size, sample=sample_b64(data))
        )
        record = CommitRecord(oid=oid, size=size, summary=f"Upload {path}")
        if mode is TransferMode.INLINE:
            operation = {
                "key": "file",
                "value": {"content": b64encode(data), "path": path, "encoding": "base64"},
            }
        else:
            await self._transfer(path, oid, data)
            operation = {
                "key": "lfsFile",
                "value": {"path": path, "algo": "sha256", "oid": oid, "size": size},
            }
        await self._commit(path, record, operation)
        await self._verify(
            VerificationProbe(
                path=path,
                resolve_url=self._hub.resolve_url(path),
                raw_url=self._hub.raw_url(path),
                max_attempts=self.verify_attempts,
                delay_seconds=self.verify_delay,
            )
        )
        logger.info("Stored %s in %s (%d bytes, %s)", path, self._hub.repo, size, mode.value)
        return StorageObjectResult(key=path, size=size)

    async def _negotiate(self, negotiation: UploadNegotiation) -> TransferMode:
        path = negotiation.path
        resp = await self._call(
            StorageNegotiationError,
            path,
            "preupload",
            self._hub.preupload(path, negotiation.size, negotiation.sample),
        )
        payload = _json_or_error(resp, StorageNegotiationError, path, "preupload")
        files = payload.get("files") if isinstance(payload, dict) else None
        entry = next((f for f in files or [] if f.get("path") == path), None)
        if entry is None:
            raise StorageNegotiationError(
                path, "preupload", resp.status_code, f"no upload mode returned: {resp.text}"
            )
        if entry.get("shouldIgnore"):
            raise StorageNegotiationError(
                path, "preupload", resp.status_code, "path is ignored by the repository"
            )
        try:
            mode = TransferMode.from_wire(entry.get("uploadMode"))
        except ValueError as e:
            raise StorageNegotiationError(path, "preupload", resp.status_code, str(e)) from e
        logger.debug("Negotiated %s for %s (%d bytes)", mode.value, path, negotiation.size)
        add_span_event("negotiated", {"mode": mode.value})
        return mode

    async def _transfer(self, path: str, oid: str, data: bytes) -> None:
        size = len(data)
        resp = await self._call(
            StorageNegotiationError, path, "batch", self._hub.lfs_batch(oid, size)
        )
        payload = _json_or_error(resp, StorageNegotiationError, path, "batch")
        objects = payload.get("objects") if isinstance(payload, dict) else None
        if not objects:
            raise StorageNegotiationError(
                path, "batch", resp.status_code, f"no objects in batch response: {resp.text}"
            )
        obj = objects[0]
        if obj.get("error"):
            err = obj["error"]
            raise StorageNegotiationError(
                path,
                "batch",
                err.get("code", resp.status_code),
                str(err.get("message", "")),
                {"oid": oid},
            )
        actions = obj.get("actions") or {}
        upload = actions.get("upload")
        if upload is None:
            logger.debug("LFS object %s already present, skipping transfer", oid)
            add_span_event("transfer_skipped")
            return

        header = {str(k): str(v) for k, v in (upload.get("header") or {}).items()}
        chunk_size = header.pop("chunk_size", None)
        if chunk_size is not None:
            tickets = self._chunk_tickets(path, oid, header, int(chunk_size), size)
            await self._upload_multipart(path, oid, data, upload["href"], tickets)
        else:
            await self._call(
                StorageTransferError,
                path,
                "upload",
                self._hub.put_presigned(upload["href"], data, header),
                {"oid": oid},
            )
        add_span_event("transferred")

        verify = actions.get("verify")
        if verify:
            await self._call(
                StorageTransferError,
                path,
                "verify_object",
                self._hub.verify_object(verify["href"], oid, size, verify.get("header")),
                {"oid": oid},
            )

    def _chunk_tickets(
        self, path: str, oid: str, header: dict[str, str], chunk_size: int, size: int
    ) -> list[ChunkTicket]:
        """One ticket per part; part URLs are the numeric keys of the action header."""
        part_urls = {int(k): v for k, v in header.items() if k.isdigit()}
        required = {k: v for k, v in header.items() if not k.isdigit()}
        expected = math.ceil(size / chunk_size) if chunk_size > 0 else 0
        if chunk_size <= 0 or sorted(part_urls) != list(range(1, expected + 1)):
            raise StorageTransferError(
                path,
                "upload_part",
                None,
                f"expected {expected} part URLs for chunk_size {chunk_size}, got {len(part_urls)}",
                {"oid": oid},
            )
        return [
            ChunkTicket(
                url=part_urls[n], headers=required, chunk_size=chunk_size, part_number=n
            )
            for n in range(1, expected + 1)
        ]

    async def _upload_multipart(
        self,
        path: str,
        oid: str,
        data: bytes,
        completion_url: str,
        tickets: list[ChunkTicket],
    ) -> None:
        """PUT parts sequentially in ascending order, then complete with their ETags."""
        parts: list[dict[str, Any]] = []
        chunk_size = tickets[0].chunk_size if tickets else 1
        for ticket, (part_number, chunk) in zip(tickets, iter_chunks(data, chunk_size)):
            extra = {"oid": oid, "part_number": part_number}
            resp = await self._call(
                StorageTransferError,
                path,
                "upload_part",
                self._hub.put_presigned(ticket.url, chunk, ticket.headers),
                extra,
            )
            etag = unquote_etag(resp.headers.get("etag"))
            if not etag:
                raise StorageTransferError(
                    path,
                    "upload_part",
                    resp.status_code,
                    f"missing ETag for part {part_number}",
                    extra,
                )
            parts.append({"partNumber": part_number, "etag": etag})
        logger.debug("Uploaded %d parts for %s", len(parts), path)
        await self._call(
            StorageTransferError,
            path,
            "complete_multipart",
            self._hub.complete_multipart(completion_url, oid, parts),
            {"oid": oid},
        )

    async def _commit(self, path: str, record: CommitRecord, operation: dict[str, Any]) -> None:
        resp = await self._call(
            StorageCommitError,
            path,
            "commit",
            self._hub.commit(record.summary, [operation]),
            {"oid": record.oid},
        )
        logger.debug(
            "Committed %s (%s) at %s",
            path,
            operation["key"],
            resp.headers.get("x-commit-oid") or record.oid,
        )
        add_span_event("committed")

    async def _verify(self, probe: VerificationProbe) -> None:
        """Poll resolve, raw, then paths-info until one sees the file."""
        while probe.attempt < probe.max_attempts:
            probe.attempt += 1
            if await self._probe_once(probe):
                add_span_event("verified", {"attempt": probe.attempt})
                return
            if probe.attempt < probe.max_attempts:
                await self._sleep(probe.delay_seconds)
        logger.warning(
            "%s not resolvable after %d attempts: %s", probe.path, probe.attempt, probe.statuses
        )
        raise StorageVerificationTimeoutError(probe.path, probe.attempt, probe.statuses)

    async def _probe_once(self, probe: VerificationProbe) -> bool:
        for name, url in (("resolve", probe.resolve_url), ("raw", probe.raw_url)):
            try:
                resp = await self._hub.fetch("HEAD", url)
            except httpx.HTTPError as e:
                logger.debug("%s probe for %s failed: %s", name, probe.path, e)
                probe.statuses[name] = None
                continue
            probe.statuses[name] = resp.status_code
            if resp.is_success:
                return True
        try:
            resp = await self._hub.paths_info(probe.path)
        except httpx.HTTPError as e:
            logger.debug("paths_info probe for %s failed: %s", probe.path, e)
            probe.statuses["paths_info"] = None
            return False
        probe.statuses["paths_info"] = resp.status_code
        if not resp.is_success:
            return False
        try:
            entries = resp.json()
        except ValueError:
            return False
        return isinstance(entries, list) and any(
            isinstance(e, dict) and e.get("path") == probe.path for e in entries
        )

    # --- reads and delete ---

    async def _read(
        self, method: str, path: str, headers: dict[str, str] | None = None
    ) -> httpx.Response | None:
        """Try resolve, then raw. None when neither answers 2xx."""
        for url in (self._hub.resolve_url(path), self._hub.raw_url(path)):
            try:
                resp = await self._hub.fetch(method, url, headers)
            except httpx.HTTPError as e:
                logger.warning("%s %s failed: %s", method, path, e)
                continue
            if resp.is_success:
                return resp
            logger.debug("%s %s returned %s", method, url, resp.status_code)
        return None

    @traced("storage.repo.get")
    async def get(
        self,
        key: str,
        *,
        range: ByteRange | None = None,
    ) -> StorageObject | None:
        """Read file content (optionally a byte range). None if absent."""
        path = normalize_key(key)
        headers = {"Range": range.to_header()} if range is not None else None
        resp = await self._read("GET", path, headers)
        if resp is None:
            return None
        return StorageObject(
            body=resp.content,
            content_type=resp.headers.get("content-type"),
            size=_reported_size(resp),
            metadata={},
        )

    @traced("storage.repo.head")
    async def head(self, key: str) -> StorageObjectInfo | None:
        """Size and content type via HEAD. None if absent."""
        resp = await self._read("HEAD", normalize_key(key))
        if resp is None:
            return None
        return StorageObjectInfo(
            size=_reported_size(resp),
            content_type=resp.headers.get("content-type"),
            metadata={},
        )

    @traced("storage.repo.delete")
    async def delete(self, key: str) -> None:
        """Delete path from the repository; 404 counts as already deleted.

        Raises:
            StorageDeleteError: Any other non-2xx or transport failure.
        """
        path = normalize_key(key)
        try:
            resp = await self._hub.delete(path)
        except httpx.HTTPError as e:
            raise StorageDeleteError(path, "delete", None, f"{type(e).__name__}: {e}") from e
        if resp.status_code == 404:
            logger.debug("Delete of missing %s treated as done", path)
            return
        if not resp.is_success:
            raise StorageDeleteError(path, "delete", resp.status_code, resp.text)

    def get_public_url(self, key: str) -> str:
        """Return {base_url}/rest/{key}; images are served through the app."""
        return f"{self.base_url}/rest/{normalize_key(key)}"
