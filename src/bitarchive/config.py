"""Configuration management for bitarchive.

Two layers live here:

- Config: process settings read from environment variables with type
  casting and caching (log level, cache directory, worker counts).
- ArchiveConfig: the repository coordinates and credentials of one archive.
  It is an explicit value passed to every component that talks to the
  remote or derives URLs; nothing holds it in module state.
"""

import json
import os
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any

from .errors import ConfigurationError
from .logging_config import get_logger
from .utils.naming import build_base_url, split_repo

logger = get_logger(__name__)

DEFAULT_BRANCH = "main"
DEFAULT_REPO_NAME = "bit-archive"
DEFAULT_LIST_CONCURRENCY = 4
CONFIG_KEY = "cdn_config_v1"


class Config:
    """Centralized process configuration using environment variables."""

    def __init__(self):
        """Initialize configuration."""
        self._cache = {}

    def get(self, key: str, default: Any = None, cast_type: type = str) -> Any:
        """Get configuration value from environment variables.

        Args:
            key: Configuration key
            default: Default value if not found
            cast_type: Type to cast the value to (str, int, bool, float)

        Returns:
            Configuration value cast to the specified type
        """
        cache_key = f"{key}:{cast_type.__name__}"
        if cache_key in self._cache:
            return self._cache[cache_key]

        value = os.getenv(key)

        if value is None:
            value = default

        if value is not None:
            try:
                if cast_type is bool:
                    if isinstance(value, str):
                        value = value.lower() in ("true", "1", "yes", "on")  # type: ignore[assignment]
                    else:
                        value = bool(value)  # type: ignore[assignment]
                elif cast_type is not str:
                    value = cast_type(value)
            except (ValueError, TypeError) as e:
                logger.warning(f"Failed to cast config value '{key}' to {cast_type.__name__}: {e}")
                value = default

        self._cache[cache_key] = value
        return value

    def get_required(self, key: str, cast_type: type = str) -> Any:
        """Get required configuration value.

        Raises:
            ConfigurationError: If the required configuration is not found
        """
        value = self.get(key, cast_type=cast_type)
        if value is None or value == "":
            raise ConfigurationError(
                f"Required configuration '{key}' not found",
                code="missing_setting",
                details={"key": key},
            )
        return value

    def is_development(self) -> bool:
        """Check if running in development mode."""
        environment = self.get("ENVIRONMENT", "development").lower()
        return environment in ["development", "dev", "local"]

    def clear_cache(self):
        """Clear configuration cache."""
        self._cache.clear()


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def get_env(key: str, default: Any = None, cast_type: type = str) -> Any:
    """Get environment variable with type casting."""
    return get_config().get(key, default, cast_type)


def get_required_env(key: str, cast_type: type = str) -> Any:
    """Get required environment variable."""
    return get_config().get_required(key, cast_type)


def is_development() -> bool:
    """Check if running in development mode."""
    return get_config().is_development()


def get_cache_dir() -> Path:
    """Directory holding downloaded and uploaded image copies."""
    default = Path.home() / ".cache" / "bitarchive" / "cdn_cache"
    return Path(get_env("BITARCHIVE_CACHE_DIR", str(default))).expanduser()


def get_list_concurrency() -> int:
    """Worker count for gallery refresh downloads."""
    return max(1, int(get_env("BITARCHIVE_LIST_CONCURRENCY", DEFAULT_LIST_CONCURRENCY, int)))


def get_mark_no_media() -> bool:
    """Whether the cache directory gets a .nomedia marker for media scanners."""
    return bool(get_env("BITARCHIVE_MARK_NO_MEDIA", True, bool))


def get_config_path() -> Path:
    """Location of the persisted archive configuration store."""
    default = Path.home() / ".config" / "bitarchive" / "config.json"
    return Path(get_env("BITARCHIVE_CONFIG_PATH", str(default))).expanduser()


def get_config_backend() -> str:
    """Persisted configuration backend: 'file' or 'duckdb'."""
    return str(get_env("BITARCHIVE_CONFIG_BACKEND", "file")).lower()


@dataclass(frozen=True)
class ArchiveConfig:
    """Repository coordinates and credentials for one archive."""

    token: str
    repo: str
    branch: str = DEFAULT_BRANCH
    base_url: str = ""
    safety_blur: bool = True

    @property
    def owner(self) -> str:
        return self._repo_parts()[0]

    @property
    def name(self) -> str:
        return self._repo_parts()[1]

    def _repo_parts(self) -> tuple[str, str]:
        parts = split_repo(self.repo)
        if not parts:
            raise ConfigurationError(
                f"Invalid repo format: {self.repo!r}",
                code="invalid_repo",
                user_message="Invalid repo format. Use username/repo.",
                details={"repo": self.repo},
            )
        return parts

    def validation_errors(self) -> dict[str, str]:
        """Field -> message for every problem found; empty when valid."""
        errors: dict[str, str] = {}
        if not self.token.strip():
            errors["token"] = "Token is required."
        if not self.repo.strip():
            errors["repo"] = "Repository is required."
        elif not split_repo(self.repo):
            errors["repo"] = "Use username/repo format."
        if self.base_url and not self.base_url.startswith("http"):
            errors["base_url"] = "Base URL must start with http(s)."
        return errors

    def validate(self) -> "ArchiveConfig":
        errors = self.validation_errors()
        if errors:
            raise ConfigurationError(
                f"Invalid archive configuration: {', '.join(sorted(errors))}",
                user_message=" ".join(errors.values()),
                details={"fields": sorted(errors)},
            )
        return self

    def public_base_url(self) -> str:
        return build_base_url(self.repo, self.branch, self.base_url or None)

    def with_branch(self, branch: str | None) -> "ArchiveConfig":
        return replace(self, branch=branch or self.branch or DEFAULT_BRANCH)

    def redacted(self) -> dict[str, Any]:
        """Dictionary suitable for display, with the token masked."""
        data = self.to_dict()
        data["token"] = (self.token[:4] + "...") if self.token else ""
        return data

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["baseUrl"] = data.pop("base_url")
        data["safetyBlur"] = data.pop("safety_blur")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ArchiveConfig":
        """Accepts both camelCase keys (persisted format) and snake_case keys."""
        return cls(
            token=str(data.get("token") or "").strip(),
            repo=str(data.get("repo") or "").strip(),
            branch=str(data.get("branch") or DEFAULT_BRANCH).strip(),
            base_url=str(data.get("baseUrl", data.get("base_url")) or "").strip(),
            safety_blur=bool(data.get("safetyBlur", data.get("safety_blur", True))),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, raw: str) -> "ArchiveConfig":
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid configuration JSON: {e}",
                code="invalid_config_json",
                user_message="Invalid configuration JSON.",
                original_exception=e,
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                "Configuration JSON must be an object",
                code="invalid_config_json",
                user_message="Invalid configuration JSON.",
            )
        return cls.from_dict(data)

    def merged(self, overrides: dict[str, Any]) -> "ArchiveConfig":
        """Copy with fields from an imported configuration object applied on top."""
        combined = self.to_dict()
        combined.update({key: value for key, value in overrides.items() if value is not None})
        return ArchiveConfig.from_dict(combined)

    @classmethod
    def from_env(cls) -> "ArchiveConfig":
        """Build from BITARCHIVE_* environment variables."""
        return cls(
            token=str(get_required_env("BITARCHIVE_TOKEN")),
            repo=str(get_required_env("BITARCHIVE_REPO")),
            branch=str(get_env("BITARCHIVE_BRANCH", DEFAULT_BRANCH)),
            base_url=str(get_env("BITARCHIVE_BASE_URL", "")),
        ).validate()
