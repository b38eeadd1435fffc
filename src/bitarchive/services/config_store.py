"""
Persisted archive configuration.

The configuration is one JSON object stored under CONFIG_KEY in a small
key-value store. The JSON file backend is the default; the DuckDB backend
shares the settings table with other tools on the same machine.
"""

import json
import os
from pathlib import Path
from typing import Protocol

from ..config import CONFIG_KEY, ArchiveConfig, get_config_backend, get_config_path
from ..errors import CacheIOError, ConfigurationError
from ..logging_config import get_logger
from ..models.database import KeyValueDatabase

logger = get_logger(__name__)


class KeyValueBackend(Protocol):
    """Minimal string key-value store."""

    def get(self, key: str) -> str | None: ...

    def put(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueBackend:
    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def put(self, key: str, value: str) -> None:
        self._values[key] = value

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileKeyValueBackend:
    """JSON object on disk, readable only by the owner since it holds a token."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as e:
            raise CacheIOError(
                f"Failed to read settings file {self.path}: {e}",
                code="settings_read_failed",
                details={"path": str(self.path)},
                original_exception=e,
            ) from e
        try:
            data = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Settings file {self.path} is not valid JSON: {e}",
                code="invalid_settings_file",
                details={"path": str(self.path)},
                original_exception=e,
            ) from e
        return data if isinstance(data, dict) else {}

    def _store(self, data: dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise CacheIOError(
                f"Failed to write settings file {self.path}: {e}",
                code="settings_write_failed",
                details={"path": str(self.path)},
                original_exception=e,
            ) from e

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def put(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._store(data)

    def delete(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._store(data)


class DuckDBKeyValueBackend:
    def __init__(self, database: KeyValueDatabase) -> None:
        self.database = database

    def get(self, key: str) -> str | None:
        return self.database.get(key)

    def put(self, key: str, value: str) -> None:
        self.database.put(key, value)

    def delete(self, key: str) -> None:
        self.database.delete(key)


class ConfigStore:
    """Loads and saves the ArchiveConfig under a fixed key."""

    def __init__(self, backend: KeyValueBackend, key: str = CONFIG_KEY) -> None:
        self.backend = backend
        self.key = key

    def load_config(self) -> ArchiveConfig | None:
        """
        Return the saved configuration, or None when nothing is saved.

        A saved value that cannot be parsed is treated as absent and logged,
        so a corrupt entry sends the user back to setup instead of crashing.
        """
        raw = self.backend.get(self.key)
        if not raw:
            return None
        try:
            return ArchiveConfig.from_json(raw)
        except ConfigurationError:
            logger.warning("saved_config_unreadable", key=self.key)
            return None

    def save_config(self, config: ArchiveConfig) -> ArchiveConfig:
        self.backend.put(self.key, config.to_json())
        logger.info("config_saved", repo=config.repo, branch=config.branch)
        return config

    def clear_config(self) -> None:
        self.backend.delete(self.key)
        logger.info("config_cleared", key=self.key)


def create_config_store(backend: str | None = None, path: str | Path | None = None) -> ConfigStore:
    """
    Build a ConfigStore from process settings.

    Args:
        backend: "file", "duckdb" or "memory"; defaults to BITARCHIVE_CONFIG_BACKEND
        path: Storage location; defaults to BITARCHIVE_CONFIG_PATH
    """
    backend = (backend or get_config_backend()).lower()
    location = Path(path) if path else get_config_path()

    if backend == "file":
        return ConfigStore(FileKeyValueBackend(location))
    if backend == "duckdb":
        db_path = location if location.suffix == ".duckdb" else location.with_suffix(".duckdb")
        return ConfigStore(DuckDBKeyValueBackend(KeyValueDatabase(str(db_path))))
    if backend == "memory":
        return ConfigStore(MemoryKeyValueBackend())

    raise ConfigurationError(
        f"Unknown config backend: {backend!r}",
        code="unknown_config_backend",
        details={"backend": backend},
    )
