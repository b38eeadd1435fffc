"""
Unit tests for configuration management.
"""

from unittest.mock import patch

import pytest

from bitarchive.config import (
    ArchiveConfig,
    Config,
    get_cache_dir,
    get_config,
    get_list_concurrency,
)
from bitarchive.errors import ConfigurationError


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    get_config().clear_cache()
    yield
    get_config().clear_cache()


class TestConfig:
    """Test cases for the environment Config layer."""

    def test_get_with_cast(self):
        config = Config()
        with patch.dict("os.environ", {"N": "7", "FLAG": "yes"}):
            assert config.get("N", cast_type=int) == 7
            assert config.get("FLAG", cast_type=bool) is True

    def test_bad_cast_falls_back_to_default(self):
        with patch.dict("os.environ", {"N": "seven"}):
            assert Config().get("N", 3, int) == 3

    def test_required_missing(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ConfigurationError):
                Config().get_required("BITARCHIVE_TOKEN")

    def test_is_development(self):
        with patch.dict("os.environ", {"ENVIRONMENT": "production"}):
            assert Config().is_development() is False

    def test_process_settings(self, tmp_path):
        with patch.dict("os.environ", {"BITARCHIVE_CACHE_DIR": str(tmp_path), "BITARCHIVE_LIST_CONCURRENCY": "0"}):
            assert get_cache_dir() == tmp_path
            assert get_list_concurrency() == 1


class TestArchiveConfig:
    """Test cases for ArchiveConfig."""

    def test_owner_and_name(self):
        config = ArchiveConfig(token="t", repo="octo/bit-archive")
        assert config.owner == "octo"
        assert config.name == "bit-archive"

    def test_invalid_repo_property(self):
        with pytest.raises(ConfigurationError):
            _ = ArchiveConfig(token="t", repo="octo").owner

    def test_validation_errors(self):
        errors = ArchiveConfig(token=" ", repo="octo", base_url="cdn.example.com").validation_errors()
        assert set(errors) == {"token", "repo", "base_url"}

    def test_validate_returns_self(self):
        config = ArchiveConfig(token="t", repo="a/b")
        assert config.validate() is config

    def test_public_base_url(self):
        assert ArchiveConfig(token="t", repo="a/b", branch="main").public_base_url() == (
            "https://raw.githubusercontent.com/a/b/main/public/"
        )

    def test_with_branch_keeps_current_when_none(self):
        config = ArchiveConfig(token="t", repo="a/b", branch="dev")
        assert config.with_branch(None).branch == "dev"
        assert config.with_branch("main").branch == "main"

    def test_json_round_trip_uses_camel_case(self):
        config = ArchiveConfig(token="t", repo="a/b", base_url="https://x", safety_blur=False)
        data = config.to_dict()

        assert data["baseUrl"] == "https://x"
        assert data["safetyBlur"] is False
        assert ArchiveConfig.from_json(config.to_json()) == config

    def test_from_dict_accepts_snake_case(self):
        config = ArchiveConfig.from_dict({"token": "t", "repo": "a/b", "base_url": "https://x"})
        assert config.base_url == "https://x"
        assert config.branch == "main"

    @pytest.mark.parametrize("raw", ["{broken", "[1, 2]"])
    def test_from_json_invalid(self, raw):
        with pytest.raises(ConfigurationError) as exc_info:
            ArchiveConfig.from_json(raw)
        assert exc_info.value.user_message == "Invalid configuration JSON."

    def test_merged(self):
        config = ArchiveConfig(token="t", repo="a/b").merged({"branch": "dev", "token": None})
        assert config.branch == "dev"
        assert config.token == "t"

    def test_redacted(self):
        assert ArchiveConfig(token="ghp_secret", repo="a/b").redacted()["token"] == "ghp_..."

    def test_from_env(self):
        env = {"BITARCHIVE_TOKEN": "ghp_env", "BITARCHIVE_REPO": "octo/bit-archive", "BITARCHIVE_BRANCH": "dev"}
        with patch.dict("os.environ", env):
            config = ArchiveConfig.from_env()
        assert config == ArchiveConfig(token="ghp_env", repo="octo/bit-archive", branch="dev")
