"""Test doubles for storage providers.

FakeHub is an in-memory model of the Hub upload protocol and its
pre-signed object store, served through httpx.MockTransport. It records
every request so tests can assert on call counts and order.
"""

from __future__ import annotations

import base64
import json
import math
from collections.abc import Callable
from typing import Any

import httpx
from botocore.exceptions import ClientError

HUB = "https://hub.test"
STORE = "s3.test"
REPO = "owner/images"
TOKEN = "hf_test_token"
BASE_URL = "https://img.example.com"
API = f"/api/datasets/{REPO}"
WEB = f"/datasets/{REPO}"


def _content_type(path: str) -> str:
    return "image/png" if path.endswith(".png") else "application/octet-stream"


class FakeHub:
    """In-memory Hub + pre-signed object store.

    Args:
        inline_threshold: Files smaller than this negotiate "regular".
        chunk_size: When set, LFS uploads are multipart with this part size.
        hidden_reads: Resolve requests answered 404 after each commit
            before the file becomes visible (eventual consistency).
        missing_etag_part: Part number whose PUT response omits ETag.
        with_verify: Batch responses include an LFS verify action.
    """

    def __init__(
        self,
        *,
        inline_threshold: int = 10 * 1024 * 1024,
        chunk_size: int | None = None,
        hidden_reads: int = 0,
        missing_etag_part: int | None = None,
        with_verify: bool = False,
    ) -> None:
        self.inline_threshold = inline_threshold
        self.chunk_size = chunk_size
        self.hidden_reads = hidden_reads
        self.missing_etag_part = missing_etag_part
        self.with_verify = with_verify
        self.files: dict[str, bytes] = {}
        self.lfs: dict[str, bytes] = {}
        self.commits: list[list[dict]] = []
        self.requests: list[httpx.Request] = []
        # (method, url path) -> canned response, checked before normal routing
        self.overrides: dict[tuple[str, str], httpx.Response] = {}
        self._parts: dict[str, dict[int, bytes]] = {}
        self._hidden: dict[str, int] = {}

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))

    def calls(self, method: str, path_prefix: str, host: str = "hub.test") -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and r.url.host == host and r.url.path.startswith(path_prefix)
        ]

    # --- routing ---

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        override = self.overrides.get((request.method, request.url.path))
        if override is not None:
            return override
        if request.url.host == STORE:
            return self._store(request)
        path = request.url.path
        routes: dict[tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {
            ("POST", f"{API}/preupload/main"): self._preupload,
            ("POST", f"{WEB}.git/info/lfs/objects/batch"): self._batch,
            ("POST", f"{API}/commit/main"): self._commit,
            ("POST", f"{API}/paths-info/main"): self._paths_info,
            ("POST", "/lfs/verify"): self._lfs_verify,
        }
        handler = routes.get((request.method, path))
        if handler is not None:
            return handler(request)
        if request.method == "POST" and path.startswith("/lfs/complete/"):
            return self._complete(request, path.rsplit("/", 1)[1])
        if request.method == "POST" and path.startswith(f"{API}/delete/main/"):
            return self._delete(path[len(f"{API}/delete/main/"):])
        for shape in ("resolve", "raw"):
            prefix = f"{WEB}/{shape}/main/"
            if request.method in ("GET", "HEAD") and path.startswith(prefix):
                return self._read(request, path[len(prefix):], shape)
        return httpx.Response(404, text="no route")

    # --- upload protocol ---

    def _preupload(self, request: httpx.Request) -> httpx.Response:
        files = json.loads(request.content)["files"]
        return httpx.Response(
            200,
            json={
                "files": [
                    {
                        "path": f["path"],
                        "uploadMode": "regular" if f["size"] < self.inline_threshold else "lfs",
                        "shouldIgnore": False,
                    }
                    for f in files
                ]
            },
        )

    def _batch(self, request: httpx.Request) -> httpx.Response:
        obj = json.loads(request.content)["objects"][0]
        oid, size = obj["oid"], obj["size"]
        entry: dict = {"oid": oid, "size": size}
        if oid not in self.lfs:
            if self.chunk_size:
                parts = math.ceil(size / self.chunk_size)
                header = {"chunk_size": str(self.chunk_size)}
                header.update(
                    {f"{n:05d}": f"https://{STORE}/parts/{oid}/{n}" for n in range(1, parts + 1)}
                )
                upload = {"href": f"{HUB}/lfs/complete/{oid}", "header": header}
            else:
                upload = {
                    "href": f"https://{STORE}/objects/{oid}",
                    "header": {"x-amz-checksum": oid},
                }
            entry["actions"] = {"upload": upload}
            if self.with_verify:
                entry["actions"]["verify"] = {"href": f"{HUB}/lfs/verify", "header": {}}
        return httpx.Response(200, json={"transfer": "basic", "objects": [entry]})

    def _store(self, request: httpx.Request) -> httpx.Response:
        segments = request.url.path.strip("/").split("/")
        if request.method != "PUT":
            return httpx.Response(405)
        if segments[0] == "objects":
            self.lfs[segments[1]] = request.content
            return httpx.Response(200)
        if segments[0] == "parts":
            oid, part_number = segments[1], int(segments[2])
            self._parts.setdefault(oid, {})[part_number] = request.content
            if part_number == self.missing_etag_part:
                return httpx.Response(200)
            return httpx.Response(200, headers={"ETag": f'"etag-{part_number}"'})
        return httpx.Response(404)

    def _complete(self, request: httpx.Request, oid: str) -> httpx.Response:
        payload = json.loads(request.content)
        stored = self._parts.get(oid, {})
        numbers = [p["partNumber"] for p in payload["parts"]]
        if payload["oid"] != oid or sorted(numbers) != sorted(stored):
            return httpx.Response(400, text="parts mismatch")
        if any(p["etag"] != f"etag-{p['partNumber']}" for p in payload["parts"]):
            return httpx.Response(400, text="bad etag")
        self.lfs[oid] = b"".join(stored[n] for n in sorted(numbers))
        return httpx.Response(200, json={"success": True})

    def _lfs_verify(self, request: httpx.Request) -> httpx.Response:
        oid = json.loads(request.content)["oid"]
        return httpx.Response(200 if oid in self.lfs else 404)

    def _commit(self, request: httpx.Request) -> httpx.Response:
        records = [json.loads(line) for line in request.content.splitlines() if line]
        self.commits.append(records)
        for record in records[1:]:
            value = record["value"]
            if record["key"] == "file":
                self.files[value["path"]] = base64.b64decode(value["content"])
            elif record["key"] == "lfsFile":
                if value["oid"] not in self.lfs:
                    return httpx.Response(422, text="unknown lfs object")
                self.files[value["path"]] = self.lfs[value["oid"]]
            self._hidden[value["path"]] = self.hidden_reads
        return httpx.Response(200, json={"success": True, "commitOid": "c0ffee"})

    def _delete(self, path: str) -> httpx.Response:
        if path not in self.files:
            return httpx.Response(404, text="Entry not found")
        del self.files[path]
        return httpx.Response(200)

    # --- read paths ---

    def _visible(self, path: str, shape: str) -> bool:
        if path not in self.files:
            return False
        if self._hidden.get(path, 0) > 0:
            if shape == "resolve":
                self._hidden[path] -= 1
            return False
        return True

    def _read(self, request: httpx.Request, path: str, shape: str) -> httpx.Response:
        if not self._visible(path, shape):
            return httpx.Response(404)
        data = self.files[path]
        headers = {"content-type": _content_type(path)}
        status = 200
        range_header = request.headers.get("range")
        if range_header:
            start, end = (int(x) for x in range_header.removeprefix("bytes=").split("-"))
            headers["content-range"] = f"bytes {start}-{end}/{len(data)}"
            data = data[start : end + 1]
            status = 206
        if request.method == "HEAD":
            headers["content-length"] = str(len(data))
            return httpx.Response(status, headers=headers)
        return httpx.Response(status, headers=headers, content=data)

    def _paths_info(self, request: httpx.Request) -> httpx.Response:
        paths = json.loads(request.content)["paths"]
        found = [
            {"type": "file", "path": p, "size": len(self.files[p])}
            for p in paths
            if p in self.files and self._hidden.get(p, 0) == 0
        ]
        return httpx.Response(200, json=found)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)



class _Body:
    def __init__(self, data: bytes) -> None:
        self._data = data

    def read(self) -> bytes:
        return self._data


def _client_error(code: str, status: int, operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": code}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


class FakeS3Client:
    """Dict-backed stand-in for a boto3 S3 client (the calls bucket storage makes)."""

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.fail_delete_with: ClientError | None = None

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", kwargs))
        self.objects[kwargs["Key"]] = {
            "Body": bytes(kwargs["Body"]),
            "ContentType": kwargs.get("ContentType"),
            "Metadata": dict(kwargs.get("Metadata") or {}),
        }
        return {"ETag": '"abc"'}

    def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("head_object", kwargs))
        obj = self.objects.get(kwargs["Key"])
        if obj is None:
            raise _client_error("404", 404, "HeadObject")
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "Metadata": obj["Metadata"],
        }

    def get_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_object", kwargs))
        obj = self.objects.get(kwargs["Key"])
        if obj is None:
            raise _client_error("NoSuchKey", 404, "GetObject")
        data = obj["Body"]
        resp: dict[str, Any] = {"ContentType": obj["ContentType"], "Metadata": obj["Metadata"]}
        if "Range" in kwargs:
            start, end = (int(x) for x in kwargs["Range"].removeprefix("bytes=").split("-"))
            resp["ContentRange"] = f"bytes {start}-{end}/{len(data)}"
            data = data[start : end + 1]
        resp["ContentLength"] = len(data)
        resp["Body"] = _Body(data)
        return resp

    def delete_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_object", kwargs))
        if self.fail_delete_with is not None:
            raise self.fail_delete_with
        self.objects.pop(kwargs["Key"], None)
        return {}


def access_denied(operation: str) -> ClientError:
    return _client_error("AccessDenied", 403, operation)
