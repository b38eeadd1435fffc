"""
GitHub repository client used as the archive's blob store.

Images live as files under the repository's ``public/`` directory and are
read and written through the contents API. Every call is scoped to the
repository and branch of the ArchiveConfig the client was built with.

Status codes map to the archive error taxonomy:

- 401 -> AuthError
- 403 with an exhausted rate limit, or 429 -> RateLimitedError
- 404 -> NotFoundError
- any other non-2xx -> RemoteError
- transport failures -> NetworkError

Nothing is retried here; callers decide.
"""

import base64
from typing import Any
from urllib.parse import quote

import httpx

from ..config import ArchiveConfig
from ..errors import AuthError, ConflictError, NetworkError, NotFoundError, RateLimitedError, RemoteError
from ..logging_config import get_logger
from ..models.remote import BlobContent, BlobRef, RemoteEntry
from ..utils.naming import PUBLIC_DIR

logger = get_logger(__name__)

GITHUB_API = "https://api.github.com"
JSON_MEDIA_TYPE = "application/vnd.github+json"
RAW_MEDIA_TYPE = "application/vnd.github.raw"
RATE_LIMIT_HEADER = "x-ratelimit-remaining"

# The contents API stops returning directory entries past this count.
CONTENTS_LISTING_CAP = 1000


class GitHubClient:
    """
    Async client for the repository contents, git trees, user and repos APIs.

    Usage:
        async with GitHubClient(config) as github:
            ref = await github.put_blob("abc123.jpg", encoded, "Add abc123.jpg")
    """

    def __init__(
        self,
        config: ArchiveConfig,
        client: httpx.AsyncClient | None = None,
        api_base: str = GITHUB_API,
        timeout: float = 30.0,
    ):
        self.config = config
        self.api_base = api_base.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "GitHubClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _headers(self, accept: str = JSON_MEDIA_TYPE) -> dict[str, str]:
        headers = {"Accept": accept, "X-GitHub-Api-Version": "2022-11-28"}
        if self.config.token:
            headers["Authorization"] = f"token {self.config.token}"
        return headers

    def _repo_path(self, suffix: str = "") -> str:
        return f"/repos/{quote(self.config.owner)}/{quote(self.config.name)}{suffix}"

    def _contents_path(self, path: str) -> str:
        return self._repo_path(f"/contents/{quote(path.strip('/'))}")

    def _blob_path(self, name: str) -> str:
        return self._contents_path(f"{PUBLIC_DIR}/{name}")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        accept: str = JSON_MEDIA_TYPE,
        allow_status: tuple[int, ...] = (),
    ) -> httpx.Response:
        """
        Send one request and map failures to archive errors.

        Responses whose status is listed in allow_status are returned to the
        caller instead of raising.
        """
        try:
            response = await self._client.request(
                method,
                f"{self.api_base}{path}",
                params=params,
                json=json,
                headers=self._headers(accept),
            )
        except httpx.TransportError as e:
            raise NetworkError(
                f"{method} {path} failed: {e}",
                details={"method": method, "path": path},
                original_exception=e,
            ) from e

        logger.debug("github_response", method=method, path=path, status=response.status_code)

        exhausted = response.headers.get(RATE_LIMIT_HEADER) == "0"
        reset = response.headers.get("x-ratelimit-reset")

        # A request that spent the last unit of quota still took effect.
        if response.is_success or response.status_code in allow_status:
            if exhausted:
                logger.warning("rate_limit_exhausted", method=method, path=path, reset=reset)
            return response

        if exhausted and response.status_code in (403, 429):
            raise RateLimitedError(
                f"Rate limit exhausted on {method} {path}",
                details={"method": method, "path": path, "reset": reset},
            )

        raise self._error_for(method, path, response)

    def _error_for(self, method: str, path: str, response: httpx.Response) -> Exception:
        status = response.status_code
        details = {"method": method, "path": path, "status": status}
        if status == 401:
            return AuthError(f"{method} {path} unauthorized", details=details)
        if status == 429:
            return RateLimitedError(f"{method} {path} throttled", details=details)
        if status == 404:
            return NotFoundError(f"{method} {path} not found", details=details)
        return RemoteError(
            f"{method} {path} returned {status}: {_remote_message(response)}",
            status_code=status,
            details=details,
        )

    async def put_blob(
        self,
        name: str,
        content_base64: str,
        message: str,
        version_token: str | None = None,
    ) -> BlobRef:
        """
        Create (or, with version_token, replace) public/<name>.

        Raises:
            ConflictError: If the path already holds a blob. Detected from a
                409, or from a 422 on a create that a metadata probe confirms
                was rejected because the file exists.
        """
        body: dict[str, Any] = {"message": message, "content": content_base64, "branch": self.config.branch}
        if version_token:
            body["sha"] = version_token

        path = self._blob_path(name)
        response = await self._request("PUT", path, json=body, allow_status=(409, 422))

        if response.status_code in (409, 422):
            existing = await self.stat_blob(name) if not version_token or response.status_code == 409 else None
            if existing is not None or response.status_code == 409:
                raise ConflictError(
                    f"{name} already exists in the archive",
                    version_token=existing.version_token if existing else None,
                    details={"name": name, "status": response.status_code},
                )
            raise RemoteError(
                f"PUT {path} returned {response.status_code}: {_remote_message(response)}",
                status_code=response.status_code,
                details={"name": name, "status": response.status_code},
            )

        content = response.json().get("content") or {}
        ref = BlobRef.from_content({"name": name, **content})
        logger.info("blob_written", name=name, version_token=ref.version_token, size=ref.size_bytes)
        return ref

    async def stat_blob(self, name: str) -> BlobRef | None:
        """Metadata for public/<name>, or None when it does not exist."""
        response = await self._request(
            "GET", self._blob_path(name), params={"ref": self.config.branch}, allow_status=(404,)
        )
        if response.status_code == 404:
            return None
        data = response.json()
        if not isinstance(data, dict) or "sha" not in data:
            raise RemoteError(f"public/{name} is not a file", details={"name": name})
        return BlobRef.from_content(data)

    async def get_blob(self, name: str) -> BlobContent:
        """
        Download public/<name>.

        Small files come back inline with their metadata; larger ones report
        encoding "none" and are fetched again as raw bytes.

        Raises:
            NotFoundError: If the blob does not exist
        """
        path = self._blob_path(name)
        response = await self._request("GET", path, params={"ref": self.config.branch})
        meta = response.json()
        if not isinstance(meta, dict) or "sha" not in meta:
            raise RemoteError(f"public/{name} is not a file", details={"name": name})

        if meta.get("encoding") == "base64" and meta.get("content"):
            data = base64.b64decode(meta["content"])
        else:
            raw = await self._request("GET", path, params={"ref": self.config.branch}, accept=RAW_MEDIA_TYPE)
            data = raw.content

        return BlobContent(data=data, version_token=meta["sha"], size_bytes=int(meta.get("size") or len(data)))

    async def delete_blob(self, name: str, version_token: str, message: str) -> None:
        """Remove public/<name>; the version token must match the current blob."""
        body = {"message": message, "sha": version_token, "branch": self.config.branch}
        await self._request("DELETE", self._blob_path(name), json=body)
        logger.info("blob_deleted", name=name, version_token=version_token)

    async def list_directory(self, path: str = PUBLIC_DIR) -> list[RemoteEntry]:
        """
        Entries of a repository directory.

        Raises:
            NotFoundError: If the directory does not exist
        """
        response = await self._request("GET", self._contents_path(path), params={"ref": self.config.branch})
        items = response.json()
        if not isinstance(items, list):
            raise RemoteError(f"{path} is not a directory", details={"path": path})

        if len(items) >= CONTENTS_LISTING_CAP:
            logger.info("listing_cap_reached", path=path, count=len(items))
            return await self._list_tree(path)

        return [
            RemoteEntry(
                name=item.get("name", ""),
                size_bytes=int(item.get("size") or 0),
                version_token=item.get("sha", ""),
                entry_type=item.get("type", "file"),
            )
            for item in items
        ]

    async def _list_tree(self, path: str) -> list[RemoteEntry]:
        """Full listing through the git trees API, which has no 1000-entry cap."""
        parent, _, directory = path.strip("/").rpartition("/")
        parent_path = self._contents_path(parent) if parent else self._repo_path("/contents")
        response = await self._request("GET", parent_path, params={"ref": self.config.branch})

        tree_sha = next(
            (item.get("sha") for item in response.json() if item.get("name") == directory and item.get("type") == "dir"),
            None,
        )
        if not tree_sha:
            raise NotFoundError(f"{path} not found in parent listing", details={"path": path})

        tree = (await self._request("GET", self._repo_path(f"/git/trees/{tree_sha}"))).json()
        if tree.get("truncated"):
            logger.warning("tree_listing_truncated", path=path, count=len(tree.get("tree", [])))

        return [
            RemoteEntry(
                name=item.get("path", ""),
                size_bytes=int(item.get("size") or 0),
                version_token=item.get("sha", ""),
                entry_type=item.get("type", "blob"),
            )
            for item in tree.get("tree", [])
        ]

    async def get_user(self) -> dict[str, Any]:
        return (await self._request("GET", "/user")).json()

    async def get_repository(self, repo: str | None = None) -> dict[str, Any]:
        """Repository metadata; defaults to the configured repository."""
        path = f"/repos/{repo}" if repo else self._repo_path()
        return (await self._request("GET", path)).json()

    async def create_repository(self, name: str, description: str = "", private: bool = True) -> dict[str, Any]:
        body = {"name": name, "description": description, "private": private, "auto_init": True}
        data = (await self._request("POST", "/user/repos", json=body)).json()
        logger.info("repository_created", repo=data.get("full_name"), private=private)
        return data

    async def delete_repository(self) -> None:
        """
        Delete the configured repository.

        Raises:
            AuthError: If the token lacks the delete_repo scope
        """
        response = await self._request("DELETE", self._repo_path(), allow_status=(403,))
        if response.status_code == 403:
            raise AuthError(
                f"Deleting {self.config.repo} was refused",
                code="missing_delete_scope",
                user_message="Delete failed. Your token needs the delete_repo scope.",
                details={"repo": self.config.repo},
            )
        logger.info("repository_deleted", repo=self.config.repo)

    async def rate_limit(self) -> dict[str, Any]:
        """Core rate limit bucket (limit, remaining, reset)."""
        data = (await self._request("GET", "/rate_limit")).json()
        return data.get("resources", {}).get("core", data.get("rate", {}))


def _remote_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict):
        return str(data.get("message", ""))
    return ""
