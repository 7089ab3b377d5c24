"""Thin REST client for a Hugging Face Hub style repository.

Builds the URLs and request bodies of the Hub upload protocol (preupload,
LFS batch, multipart completion, NDJSON commit) and its read paths
(resolve, raw, paths-info). Returns raw httpx responses; deciding what a
status means is left to RepoStorageService.

All HTTP calls use httpx.AsyncClient so they do not block the event loop.
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote

import httpx

_LFS_HEADERS = {
    "Accept": "application/vnd.git-lfs+json",
    "Content-Type": "application/vnd.git-lfs+json",
}
_NDJSON = "application/x-ndjson"


def encode_commit(summary: str, operations: list[dict[str, Any]]) -> bytes:
    """NDJSON commit payload: one header record, then one record per file."""
    records = [{"key": "header", "value": {"summary": summary, "description": ""}}]
    records.extend(operations)
    return b"".join(
        json.dumps(record, separators=(",", ":")).encode() + b"\n" for record in records
    )


class HubRESTClient:
    """Repository-scoped Hub client (one repo, one revision, one token).

    Configuration is fixed at construction; instances hold no other state
    and may be shared by concurrent requests.
    """

    def __init__(
        self,
        token: str,
        repo: str,
        *,
        repo_type: str = "datasets",
        revision: str = "main",
        endpoint: str = "https://huggingface.co",
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._token = token
        self.repo = repo.strip("/")
        self.repo_type = repo_type
        self.revision = revision
        self.endpoint = endpoint.rstrip("/")
        self._http = (
            http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)
        )
        self._owns_http = http_client is None
        # Git-facing URLs prefix non-model repos with their type ("datasets/owner/name").
        prefix = "" if repo_type == "models" else f"{repo_type}/"
        self._api = f"{self.endpoint}/api/{repo_type}/{self.repo}"
        self._web = f"{self.endpoint}/{prefix}{self.repo}"
        self._rev = quote(revision, safe="")

    async def aclose(self) -> None:
        """Close the HTTP client only if we created it (do not close injected client)."""
        if self._owns_http:
            await self._http.aclose()

    def _auth(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {self._token}"}
        if extra:
            headers.update(extra)
        return headers

    # --- URLs ---

    def resolve_url(self, path: str) -> str:
        """Primary read path (redirects to the LFS CDN for tracked files)."""
        return f"{self._web}/resolve/{self._rev}/{quote(path)}"

    def raw_url(self, path: str) -> str:
        """Secondary read path (raw git blob)."""
        return f"{self._web}/raw/{self._rev}/{quote(path)}"

    @property
    def preupload_url(self) -> str:
        return f"{self._api}/preupload/{self._rev}"

    @property
    def commit_url(self) -> str:
        return f"{self._api}/commit/{self._rev}"

    @property
    def paths_info_url(self) -> str:
        return f"{self._api}/paths-info/{self._rev}"

    @property
    def lfs_batch_url(self) -> str:
        return f"{self._web}.git/info/lfs/objects/batch"

    def delete_url(self, path: str) -> str:
        return f"{self._api}/delete/{self._rev}/{quote(path)}"

    # --- upload protocol ---

    async def preupload(self, path: str, size: int, sample: str) -> httpx.Response:
        """Ask the repository how a file should be uploaded (regular vs lfs)."""
        return await self._http.post(
            self.preupload_url,
            headers=self._auth(),
            json={"files": [{"path": path, "size": size, "sample": sample}]},
        )

    async def lfs_batch(self, oid: str, size: int) -> httpx.Response:
        """LFS batch API: request upload actions for one object."""
        return await self._http.post(
            self.lfs_batch_url,
            headers=self._auth(_LFS_HEADERS),
            json={
                "operation": "upload",
                "transfers": ["basic", "multipart"],
                "hash_algo": "sha_256",
                "ref": {"name": self.revision},
                "objects": [{"oid": oid, "size": size}],
            },
        )

    async def put_presigned(
        self, url: str, data: bytes, headers: dict[str, str] | None = None
    ) -> httpx.Response:
        """PUT bytes to a pre-signed URL.

        The URL carries its own signature; a bearer header would be
        rejected by the object store.
        """
        return await self._http.put(url, content=data, headers=headers or {})

    async def complete_multipart(
        self, url: str, oid: str, parts: list[dict[str, Any]]
    ) -> httpx.Response:
        """Finish a multipart upload with the collected part ETags."""
        return await self._http.post(
            url,
            headers=self._auth(_LFS_HEADERS),
            json={"oid": oid, "parts": parts},
        )

    async def verify_object(
        self, url: str, oid: str, size: int, headers: dict[str, str] | None = None
    ) -> httpx.Response:
        """LFS verify action: confirm the store received the object."""
        return await self._http.post(
            url,
            headers=self._auth({**_LFS_HEADERS, **(headers or {})}),
            json={"oid": oid, "size": size},
        )

    async def commit(self, summary: str, operations: list[dict[str, Any]]) -> httpx.Response:
        """Create a commit on the configured revision."""
        return await self._http.post(
            self.commit_url,
            headers=self._auth({"Content-Type": _NDJSON}),
            content=encode_commit(summary, operations),
        )

    async def delete(self, path: str) -> httpx.Response:
        return await self._http.post(self.delete_url(path), headers=self._auth())

    # --- read paths ---

    async def fetch(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """GET or HEAD a read-path URL, following CDN redirects."""
        return await self._http.request(
            method, url, headers=self._auth(headers), follow_redirects=True
        )

    async def paths_info(self, path: str) -> httpx.Response:
        """Query whether path exists at the revision."""
        return await self._http.post(
            self.paths_info_url, headers=self._auth(), json={"paths": [path]}
        )
