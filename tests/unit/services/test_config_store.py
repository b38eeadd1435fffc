"""
Unit tests for persisted archive configuration.
"""

import os
import stat

import pytest

from bitarchive.config import CONFIG_KEY, ArchiveConfig
from bitarchive.errors import ConfigurationError
from bitarchive.services.config_store import (
    ConfigStore,
    DuckDBKeyValueBackend,
    FileKeyValueBackend,
    MemoryKeyValueBackend,
    create_config_store,
)


@pytest.fixture
def config() -> ArchiveConfig:
    return ArchiveConfig(token="ghp_abc", repo="octo/bit-archive", branch="main", base_url="https://cdn.example.com")


class TestConfigStore:
    """Test cases for ConfigStore over each backend."""

    def test_load_without_saved_config(self):
        assert ConfigStore(MemoryKeyValueBackend()).load_config() is None

    def test_save_and_load(self, config):
        store = ConfigStore(MemoryKeyValueBackend())
        store.save_config(config)
        assert store.load_config() == config

    def test_saved_under_fixed_key_in_camel_case(self, config):
        backend = MemoryKeyValueBackend()
        ConfigStore(backend).save_config(config)

        raw = backend.get(CONFIG_KEY)
        assert '"baseUrl": "https://cdn.example.com"' in raw
        assert '"safetyBlur": true' in raw

    def test_clear(self, config):
        store = ConfigStore(MemoryKeyValueBackend())
        store.save_config(config)
        store.clear_config()
        assert store.load_config() is None

    def test_corrupt_value_is_treated_as_absent(self):
        backend = MemoryKeyValueBackend()
        backend.put(CONFIG_KEY, "{not json")
        assert ConfigStore(backend).load_config() is None

    def test_file_backend_round_trip_and_permissions(self, tmp_path, config):
        path = tmp_path / "conf" / "config.json"
        store = ConfigStore(FileKeyValueBackend(path))
        store.save_config(config)

        assert ConfigStore(FileKeyValueBackend(path)).load_config() == config
        if os.name == "posix":
            assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_file_backend_rejects_invalid_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[[[")
        with pytest.raises(ConfigurationError):
            FileKeyValueBackend(path).get(CONFIG_KEY)

    def test_duckdb_backend(self, tmp_path, config):
        store = create_config_store("duckdb", tmp_path / "settings.json")
        assert isinstance(store.backend, DuckDBKeyValueBackend)
        assert store.backend.database.db_path.endswith("settings.duckdb")

        store.save_config(config)
        assert store.load_config() == config
        store.backend.database.close()

    def test_factory_defaults_to_file(self, tmp_path, monkeypatch):
        from bitarchive.config import get_config

        monkeypatch.setenv("BITARCHIVE_CONFIG_PATH", str(tmp_path / "c.json"))
        monkeypatch.delenv("BITARCHIVE_CONFIG_BACKEND", raising=False)
        get_config().clear_cache()
        try:
            store = create_config_store()
            assert isinstance(store.backend, FileKeyValueBackend)
            assert store.backend.path == tmp_path / "c.json"
        finally:
            get_config().clear_cache()

    def test_unknown_backend(self):
        with pytest.raises(ConfigurationError):
            create_config_store("redis")
