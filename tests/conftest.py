"""
Pytest configuration and fixtures for bitarchive tests.

Two remote doubles are provided:

- FakeRemote: an in-memory stand-in for GitHubClient used by the uploader
  and listing unit tests (per-item delays and failures, call log).
- GitHubStub: an httpx.MockTransport handler emulating the GitHub REST
  endpoints the client talks to, used with a real GitHubClient.
"""

import asyncio
import base64
import hashlib
import io
import json
from collections.abc import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from PIL import Image

from bitarchive.config import ArchiveConfig
from bitarchive.errors import CacheIOError, ConflictError, NotFoundError
from bitarchive.models.remote import BlobContent, BlobRef, RemoteEntry
from bitarchive.services.backends import MemoryBackend
from bitarchive.services.cache import LocalCacheStore
from bitarchive.utils.naming import content_hash


def make_image_bytes(image_format: str = "PNG", color: tuple[int, int, int] = (255, 0, 0)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (2, 2), color).save(buffer, format=image_format)
    return buffer.getvalue()


def git_sha(data: bytes) -> str:
    return hashlib.sha1(b"blob %d\0" % len(data) + data).hexdigest()


@pytest.fixture
def png_bytes() -> bytes:
    return make_image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image_bytes("JPEG", (0, 128, 255))


@pytest.fixture
def archive_config() -> ArchiveConfig:
    return ArchiveConfig(token="ghp_testtoken", repo="octo/bit-archive", branch="main")


@pytest.fixture
def memory_cache() -> LocalCacheStore:
    return LocalCacheStore.in_memory()


@pytest.fixture
def disk_cache(tmp_path) -> LocalCacheStore:
    return LocalCacheStore.on_disk(tmp_path / "cdn_cache")


class ReadOnlyBackend(MemoryBackend):
    """Memory backend whose writes fail like a full or read-only disk."""

    def put(self, key: str, data: bytes) -> str:
        raise CacheIOError(f"No space left writing {key}", code="cache_write_failed")


@pytest.fixture
def readonly_cache() -> LocalCacheStore:
    return LocalCacheStore(ReadOnlyBackend())


class FakeRemote:
    """In-memory blob store with the GitHubClient blob and listing methods."""

    def __init__(self) -> None:
        self.blobs: dict[str, tuple[bytes, str]] = {}
        self.extra_entries: list[RemoteEntry] = []
        self.calls: list[tuple[str, str]] = []
        self.get_delays: dict[str, float] = {}
        self.get_failures: dict[str, Exception] = {}
        self.put_failure: Exception | None = None
        self.directory_missing = False

    def add(self, name: str, data: bytes, version_token: str | None = None) -> str:
        token = version_token or f"sha-{content_hash(data)}"
        self.blobs[name] = (data, token)
        return token

    def count(self, method: str) -> int:
        return sum(1 for called, _ in self.calls if called == method)

    async def put_blob(self, name: str, content_base64: str, message: str, version_token=None) -> BlobRef:
        self.calls.append(("put", name))
        await asyncio.sleep(0)
        if self.put_failure is not None:
            raise self.put_failure
        if name in self.blobs and not version_token:
            raise ConflictError(f"{name} exists", version_token=self.blobs[name][1])
        data = base64.b64decode(content_base64)
        token = self.add(name, data)
        return BlobRef(name=name, version_token=token, size_bytes=len(data))

    async def get_blob(self, name: str) -> BlobContent:
        self.calls.append(("get", name))
        await asyncio.sleep(self.get_delays.get(name, 0))
        if name in self.get_failures:
            raise self.get_failures[name]
        if name not in self.blobs:
            raise NotFoundError(f"{name} not found")
        data, token = self.blobs[name]
        return BlobContent(data=data, version_token=token, size_bytes=len(data))

    async def stat_blob(self, name: str) -> BlobRef | None:
        self.calls.append(("stat", name))
        if name not in self.blobs:
            return None
        data, token = self.blobs[name]
        return BlobRef(name=name, version_token=token, size_bytes=len(data))

    async def delete_blob(self, name: str, version_token: str, message: str) -> None:
        self.calls.append(("delete", name))
        if name not in self.blobs:
            raise NotFoundError(f"{name} not found")
        del self.blobs[name]

    async def list_directory(self, path: str = "public") -> list[RemoteEntry]:
        self.calls.append(("list", path))
        await asyncio.sleep(0)
        if self.directory_missing:
            raise NotFoundError(f"{path} not found")
        entries = [
            RemoteEntry(name=name, size_bytes=len(data), version_token=token)
            for name, (data, token) in self.blobs.items()
        ]
        return entries + list(self.extra_entries)

    async def close(self) -> None:
        pass


@pytest.fixture
def fake_remote() -> FakeRemote:
    return FakeRemote()


class GitHubStub:
    """
    Minimal GitHub REST API emulation for httpx.MockTransport.

    Files are kept per repository path (e.g. ``public/abc.jpg``). Creating an
    existing file without a sha answers 422, as GitHub does.
    """

    def __init__(self, owner: str = "octo", repo: str = "bit-archive", default_branch: str = "main"):
        self.owner = owner
        self.repos: dict[str, dict] = {
            f"{owner}/{repo}": {"full_name": f"{owner}/{repo}", "default_branch": default_branch, "private": True}
        }
        self.files: dict[str, tuple[bytes, str]] = {}
        self.requests: list[httpx.Request] = []
        self.rate_limit_remaining = "4999"
        self.overrides: dict[tuple[str, str], httpx.Response] = {}

    def add_file(self, path: str, data: bytes) -> str:
        sha = git_sha(data)
        self.files[path] = (data, sha)
        return sha

    def count(self, method: str, suffix: str = "") -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path.endswith(suffix))

    def _json(self, status: int, payload) -> httpx.Response:
        return httpx.Response(status, json=payload, headers={"x-ratelimit-remaining": self.rate_limit_remaining})

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        override = self.overrides.get((request.method, path))
        if override is not None:
            return override

        if path == "/user" and request.method == "GET":
            return self._json(200, {"login": self.owner})
        if path == "/user/repos" and request.method == "POST":
            body = json.loads(request.content)
            full_name = f"{self.owner}/{body['name']}"
            self.repos[full_name] = {"full_name": full_name, "default_branch": "main", "private": body["private"]}
            return self._json(201, self.repos[full_name])
        if path == "/rate_limit":
            return self._json(200, {"resources": {"core": {"limit": 5000, "remaining": int(self.rate_limit_remaining)}}})

        for full_name in list(self.repos):
            prefix = f"/repos/{full_name}"
            if path == prefix:
                if request.method == "DELETE":
                    del self.repos[full_name]
                    return httpx.Response(204)
                return self._json(200, self.repos[full_name])
            if path.startswith(f"{prefix}/contents"):
                return self._contents(request, path[len(f"{prefix}/contents") :].strip("/"))
        return self._json(404, {"message": "Not Found"})

    def _file_json(self, file_path: str) -> dict:
        data, sha = self.files[file_path]
        return {
            "name": file_path.rsplit("/", 1)[-1],
            "path": file_path,
            "sha": sha,
            "size": len(data),
            "type": "file",
            "encoding": "base64",
            "content": base64.b64encode(data).decode("ascii"),
        }

    def _contents(self, request: httpx.Request, file_path: str) -> httpx.Response:
        if request.method == "GET":
            if file_path in self.files:
                if request.headers.get("accept") == "application/vnd.github.raw":
                    return httpx.Response(200, content=self.files[file_path][0])
                return self._json(200, self._file_json(file_path))
            children = [
                {k: v for k, v in self._file_json(p).items() if k not in ("content", "encoding")}
                for p in self.files
                if p.rpartition("/")[0] == file_path
            ]
            if children:
                return self._json(200, children)
            return self._json(404, {"message": "Not Found"})

        body = json.loads(request.content) if request.content else {}
        if request.method == "PUT":
            if file_path in self.files and "sha" not in body:
                return self._json(422, {"message": "Invalid request.\n\n\"sha\" wasn't supplied."})
            sha = self.add_file(file_path, base64.b64decode(body["content"]))
            return self._json(201, {"content": {"name": file_path.rsplit("/", 1)[-1], "sha": sha, "size": len(self.files[file_path][0])}})
        if request.method == "DELETE":
            if file_path not in self.files:
                return self._json(404, {"message": "Not Found"})
            if body.get("sha") != self.files[file_path][1]:
                return self._json(409, {"message": "sha mismatch"})
            del self.files[file_path]
            return self._json(200, {"commit": {}})
        return self._json(405, {"message": "Method not allowed"})


@pytest.fixture
def github_stub() -> GitHubStub:
    return GitHubStub()


@pytest_asyncio.fixture
async def stub_http_client(github_stub) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(github_stub)) as client:
        yield client
