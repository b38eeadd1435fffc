"""
Storage backends for the local image cache.

A backend is a flat key -> bytes store exposing get/put/delete plus key
enumeration. get() and put() return a locator the caller can display: a
filesystem path for FileSystemBackend, a data: URI for MemoryBackend (the
browser-style target with no writable filesystem).
"""

import os
import tempfile
from pathlib import Path
from typing import Protocol

from ..errors import CacheIOError
from ..logging_config import get_logger
from ..utils.naming import split_name, to_data_uri

logger = get_logger(__name__)

NO_MEDIA_MARKER = ".nomedia"
_TMP_PREFIX = ".tmp-"


class StorageBackend(Protocol):
    """Capability interface every cache backend implements."""

    def get(self, key: str) -> str | None: ...

    def put(self, key: str, data: bytes) -> str: ...

    def read(self, key: str) -> bytes | None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    def size(self, key: str) -> int: ...


class FileSystemBackend:
    """Cache backend writing one file per key under a root directory."""

    def __init__(self, root: str | Path, mark_no_media: bool = True) -> None:
        self.root = Path(root)
        self.mark_no_media = mark_no_media
        self._prepared = False

    def ensure_directory(self) -> Path:
        """
        Create the cache directory and, if enabled, its .nomedia marker.

        Idempotent; the filesystem is only consulted on the first call.

        Raises:
            CacheIOError: If the directory or marker cannot be created
        """
        if self._prepared:
            return self.root
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if self.mark_no_media:
                marker = self.root / NO_MEDIA_MARKER
                if not marker.exists():
                    marker.touch()
                    logger.info("cache_no_media_marker_created", path=str(marker))
        except OSError as e:
            raise CacheIOError(
                f"Failed to prepare cache directory {self.root}: {e}",
                code="cache_dir_failed",
                details={"path": str(self.root)},
                original_exception=e,
            ) from e
        self._prepared = True
        return self.root

    def path_for(self, key: str) -> Path:
        # Keys are produced by LocalCacheStore and never contain separators.
        return self.root / Path(key).name

    def get(self, key: str) -> str | None:
        path = self.path_for(key)
        return str(path) if path.is_file() else None

    def put(self, key: str, data: bytes) -> str:
        """Write bytes with an atomic rename; an existing file is left untouched."""
        self.ensure_directory()
        dest = self.path_for(key)
        if dest.exists():
            return str(dest)

        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=f"{_TMP_PREFIX}{dest.name}.", dir=str(self.root))
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, dest)
            tmp_path = None
        except OSError as e:
            raise CacheIOError(
                f"Failed to write cache file {dest}: {e}",
                code="cache_write_failed",
                details={"path": str(dest)},
                original_exception=e,
            ) from e
        finally:
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    logger.warning("cache_tmp_cleanup_failed", path=tmp_path)

        return str(dest)

    def read(self, key: str) -> bytes | None:
        path = self.path_for(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError(
                f"Failed to read cache file {path}: {e}",
                code="cache_read_failed",
                details={"path": str(path)},
                original_exception=e,
            ) from e

    def delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as e:
            raise CacheIOError(
                f"Failed to delete cache file {key}: {e}",
                code="cache_delete_failed",
                details={"key": key},
                original_exception=e,
            ) from e

    def keys(self) -> list[str]:
        if not self.root.is_dir():
            return []
        try:
            return sorted(
                entry.name
                for entry in self.root.iterdir()
                if entry.is_file() and entry.name != NO_MEDIA_MARKER and not entry.name.startswith(_TMP_PREFIX)
            )
        except OSError as e:
            raise CacheIOError(
                f"Failed to list cache directory {self.root}: {e}",
                code="cache_list_failed",
                details={"path": str(self.root)},
                original_exception=e,
            ) from e

    def size(self, key: str) -> int:
        try:
            return self.path_for(key).stat().st_size
        except FileNotFoundError:
            return 0
        except OSError as e:
            raise CacheIOError(
                f"Failed to stat cache file {key}: {e}",
                code="cache_stat_failed",
                details={"key": key},
                original_exception=e,
            ) from e


class MemoryBackend:
    """In-process backend whose locators are data: URIs."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    def _locator(self, key: str) -> str:
        _, extension = split_name(key)
        return to_data_uri(self._blobs[key], extension)

    def get(self, key: str) -> str | None:
        if key not in self._blobs:
            return None
        return self._locator(key)

    def put(self, key: str, data: bytes) -> str:
        self._blobs.setdefault(key, bytes(data))
        return self._locator(key)

    def read(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    def delete(self, key: str) -> None:
        self._blobs.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._blobs)

    def size(self, key: str) -> int:
        return len(self._blobs.get(key, b""))
