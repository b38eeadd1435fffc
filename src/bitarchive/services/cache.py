"""
Local cache store for archived images.

Maps (name, version token) to a locator on a storage backend. Writes are
idempotent by key: if the key already exists the write is skipped, which
makes concurrent writers of the same content harmless without locking.
Every backend call runs in a worker thread so the event loop suspends on
disk I/O.
"""

import asyncio
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from ..errors import CacheIOError
from ..logging_config import get_logger
from ..utils.naming import split_name, to_data_uri
from .backends import FileSystemBackend, MemoryBackend, StorageBackend

logger = get_logger(__name__)

# Extensions removed by "clear local cache", wider than the upload set so
# leftovers from pickers and share intents are swept as well.
CLEARABLE_EXTENSIONS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "bmp", "svg"})

_UNSAFE_KEY_CHARS = re.compile(r"[^a-z0-9._-]", re.IGNORECASE)


@dataclass(frozen=True)
class CacheUsage:
    """Storage accounting for the cache directory."""

    files: int
    total_bytes: int

    @property
    def total_megabytes(self) -> float:
        return self.total_bytes / (1024 * 1024)


def _sanitize(value: str) -> str:
    return _UNSAFE_KEY_CHARS.sub("_", value)


def cache_key(name: str, version: str | None = None) -> str:
    """
    Deterministic cache key for a name and optional version token.

    ``abc123.jpg`` with version ``v1`` maps to ``abc123.v1.jpg``; without a
    version the sanitized name itself is the key.
    """
    stem, extension = split_name(_sanitize(name))
    if not version:
        return f"{stem}.{extension}" if extension else stem
    suffix = f".{extension}" if extension else ""
    return f"{stem}.{_sanitize(version)}{suffix}"


def _belongs_to(key: str, name: str) -> bool:
    """True if key is an entry (any version) for name."""
    stem, extension = split_name(_sanitize(name))
    if key == cache_key(name):
        return True
    if not key.startswith(f"{stem}."):
        return False
    return extension is None or key.endswith(f".{extension}")


def extension_predicate(extensions: frozenset[str] = CLEARABLE_EXTENSIONS) -> Callable[[str], bool]:
    """Predicate matching cache keys by file extension."""

    def _matches(key: str) -> bool:
        _, dot, ext = key.rpartition(".")
        return bool(dot) and ext.lower() in extensions

    return _matches


class LocalCacheStore:
    """Idempotent cache of image bytes keyed by archive name and version."""

    def __init__(self, backend: StorageBackend) -> None:
        self.backend = backend

    @classmethod
    def on_disk(cls, root: str | Path, mark_no_media: bool = True) -> "LocalCacheStore":
        return cls(FileSystemBackend(root, mark_no_media=mark_no_media))

    @classmethod
    def in_memory(cls) -> "LocalCacheStore":
        return cls(MemoryBackend())

    async def prepare(self) -> None:
        """Create the backing directory and media-scanner marker where applicable."""
        if isinstance(self.backend, FileSystemBackend):
            await asyncio.to_thread(self.backend.ensure_directory)

    async def resolve(self, name: str, version_hint: str | None = None) -> str | None:
        """
        Return a cached locator for name without fetching anything.

        With a version hint only that exact version matches, so a changed
        remote blob is a miss. Without one, the unversioned entry wins,
        then any cached version of the name.
        """
        if version_hint:
            return await asyncio.to_thread(self.backend.get, cache_key(name, version_hint))

        locator = await asyncio.to_thread(self.backend.get, cache_key(name))
        if locator is not None:
            return locator

        for key in await self._keys_for(name):
            locator = await asyncio.to_thread(self.backend.get, key)
            if locator is not None:
                return locator
        return None

    async def put(self, data: bytes, name: str, version: str | None = None) -> str:
        """
        Store bytes for name/version and return the locator.

        Skips the write when the key already exists. Storing a versioned
        entry prunes other cached versions of the same name.

        Raises:
            CacheIOError: On disk faults
        """
        key = cache_key(name, version)
        existing = await asyncio.to_thread(self.backend.get, key)
        if existing is not None:
            logger.debug("cache_write_skipped", name=name, key=key)
            return existing

        locator = await asyncio.to_thread(self.backend.put, key, data)
        logger.debug("cache_entry_written", name=name, key=key, size=len(data))

        if version:
            await self._prune_versions(name, keep=key)
        return locator

    async def put_or_inline(self, data: bytes, name: str, version: str | None = None) -> str:
        """
        Store bytes like put(), degrading to a data: URI on a disk fault.

        The bytes are already in hand, so a failed write still leaves the
        caller with something displayable; the next lookup simply misses.
        """
        try:
            return await self.put(data, name, version)
        except CacheIOError as e:
            logger.warning("cache_write_degraded", name=name, code=e.code, error=str(e))
            return to_data_uri(data, split_name(name)[1])

    async def read(self, name: str, version_hint: str | None = None) -> bytes | None:
        """Cached bytes for name, following the same lookup order as resolve()."""
        keys = [cache_key(name, version_hint)] if version_hint else [cache_key(name), *await self._keys_for(name)]
        for key in keys:
            data = await asyncio.to_thread(self.backend.read, key)
            if data is not None:
                return data
        return None

    async def evict_name(self, name: str) -> int:
        """Remove every cached version of name; returns the number removed."""
        return await self._delete_keys(await self._keys_for(name, include_plain=True))

    async def evict_all(self, predicate: Callable[[str], bool] | None = None) -> int:
        """
        Best-effort bulk deletion of cache entries whose key matches predicate.

        Defaults to image files by extension. A failure to delete one entry
        is logged and skipped.

        Returns:
            int: Number of entries removed
        """
        predicate = predicate or extension_predicate()
        keys = [key for key in await asyncio.to_thread(self.backend.keys) if predicate(key)]
        removed = await self._delete_keys(keys)
        logger.info("cache_cleared", removed=removed, candidates=len(keys))
        return removed

    async def usage(self) -> CacheUsage:
        def _measure() -> CacheUsage:
            keys = self.backend.keys()
            return CacheUsage(files=len(keys), total_bytes=sum(self.backend.size(key) for key in keys))

        return await asyncio.to_thread(_measure)

    async def _keys_for(self, name: str, include_plain: bool = False) -> list[str]:
        plain = cache_key(name)
        keys = await asyncio.to_thread(self.backend.keys)
        return [key for key in keys if _belongs_to(key, name) and (include_plain or key != plain)]

    async def _prune_versions(self, name: str, keep: str) -> None:
        stale = [key for key in await self._keys_for(name, include_plain=True) if key != keep]
        if stale:
            removed = await self._delete_keys(stale)
            logger.debug("cache_stale_versions_pruned", name=name, removed=removed)

    async def _delete_keys(self, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            try:
                await asyncio.to_thread(self.backend.delete, key)
                removed += 1
            except CacheIOError as e:
                logger.warning("cache_entry_delete_failed", key=key, error=str(e))
        return removed

