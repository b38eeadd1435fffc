"""
Health checks for a bitarchive installation.

Checks the persisted configuration, the local cache directory and the
remote repository (reachability and remaining API quota).
"""

import os
import sys
import time
from pathlib import Path
from typing import Any

import httpx

from . import __version__
from .config import ArchiveConfig, get_cache_dir
from .errors import BitArchiveError
from .logging_config import get_logger
from .services.github import GITHUB_API, GitHubClient

logger = get_logger(__name__)

# Below this many remaining core requests a full refresh may not finish.
LOW_QUOTA_THRESHOLD = 50


def check_config_health(config: ArchiveConfig | None) -> dict[str, Any]:
    """Check that an archive configuration exists and is well formed."""
    if config is None:
        return {"status": "unhealthy", "message": "No archive configured. Run setup first.", "timestamp": time.time()}

    errors = config.validation_errors()
    if errors:
        return {
            "status": "unhealthy",
            "message": f"Invalid configuration: {', '.join(sorted(errors))}",
            "timestamp": time.time(),
            "fields": errors,
        }

    return {
        "status": "healthy",
        "message": "Configuration is valid",
        "timestamp": time.time(),
        "config": config.redacted(),
    }


def check_cache_health(cache_dir: str | Path | None = None) -> dict[str, Any]:
    """Check that the cache directory exists (or can be created) and is writable."""
    directory = Path(cache_dir) if cache_dir else get_cache_dir()
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("cache_health_check_failed", path=str(directory), error=str(e))
        return {"status": "unhealthy", "message": f"Cache directory unavailable: {e}", "timestamp": time.time()}

    if not os.access(directory, os.W_OK):
        return {"status": "unhealthy", "message": f"Cache directory {directory} is not writable", "timestamp": time.time()}

    return {"status": "healthy", "message": "Cache directory is writable", "timestamp": time.time(), "path": str(directory)}


async def check_remote_health(
    config: ArchiveConfig,
    http_client: httpx.AsyncClient | None = None,
    api_base: str = GITHUB_API,
) -> dict[str, Any]:
    """Check that the repository is reachable and report the remaining quota."""
    try:
        async with GitHubClient(config, client=http_client, api_base=api_base) as github:
            repo = await github.get_repository()
            quota = await github.rate_limit()
    except BitArchiveError as e:
        logger.error("remote_health_check_failed", code=e.code)
        return {"status": "unhealthy", "message": e.user_message, "timestamp": time.time(), "code": e.code}

    remaining = int(quota.get("remaining", 0))
    result = {
        "status": "healthy",
        "message": f"Repository {repo.get('full_name', config.repo)} is reachable",
        "timestamp": time.time(),
        "private": repo.get("private"),
        "default_branch": repo.get("default_branch"),
        "rate_limit_remaining": remaining,
    }
    if remaining < LOW_QUOTA_THRESHOLD:
        result["status"] = "degraded"
        result["message"] = f"Only {remaining} API requests left until the quota resets"
    return result


def get_application_info() -> dict[str, Any]:
    return {
        "name": "bitarchive",
        "version": __version__,
        "environment": os.getenv("ENVIRONMENT", "unknown"),
        "timestamp": time.time(),
        "python_version": sys.version.split()[0],
        "platform": os.name,
    }


async def perform_health_check(
    config: ArchiveConfig | None,
    cache_dir: str | Path | None = None,
    http_client: httpx.AsyncClient | None = None,
    api_base: str = GITHUB_API,
) -> dict[str, Any]:
    """Run every check and summarize; the remote is skipped without a valid config."""
    logger.info("health_check_started")
    start_time = time.time()

    checks = {
        "config": check_config_health(config),
        "cache": check_cache_health(cache_dir),
    }
    if config is not None and checks["config"]["status"] == "healthy":
        checks["remote"] = await check_remote_health(config, http_client, api_base)

    unhealthy_services = [service for service, result in checks.items() if result["status"] == "unhealthy"]
    degraded_services = [service for service, result in checks.items() if result["status"] == "degraded"]

    if unhealthy_services:
        overall_status = "unhealthy"
    elif degraded_services:
        overall_status = "degraded"
    else:
        overall_status = "healthy"

    health_response = {
        "status": overall_status,
        "timestamp": time.time(),
        "duration_ms": round((time.time() - start_time) * 1000, 2),
        "application": get_application_info(),
        "checks": checks,
    }
    if unhealthy_services:
        health_response["unhealthy_services"] = unhealthy_services

    logger.info(
        "health_check_completed",
        status=overall_status,
        duration_ms=health_response["duration_ms"],
        unhealthy_services=unhealthy_services,
    )
    return health_response
