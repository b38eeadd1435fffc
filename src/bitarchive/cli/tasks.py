import asyncio
import json
import os

import structlog
from dotenv import load_dotenv
from invoke import Collection, Context, Program, task

from bitarchive import __version__
from bitarchive.archive import ImageArchive
from bitarchive.config import ArchiveConfig
from bitarchive.errors import BitArchiveError, ConfigurationError
from bitarchive.health import perform_health_check
from bitarchive.logging_config import configure_structured_logging
from bitarchive.models.image import ImageRecord
from bitarchive.services.config_store import create_config_store
from bitarchive.services.payloads import collect_image_paths, payload_from_path, payload_from_url
from bitarchive.services.setup import SetupService

logger = structlog.get_logger()


def _load_env(env_file: str) -> None:
    if os.path.exists(env_file):
        logger.info("env_file_loaded", path=env_file)
        load_dotenv(dotenv_path=env_file)
    else:
        logger.debug("env_file_missing", path=env_file)
    configure_structured_logging()


def _saved_config() -> ArchiveConfig:
    """Persisted config, falling back to BITARCHIVE_* variables."""
    config = create_config_store().load_config()
    if config is not None:
        return config.validate()
    return ArchiveConfig.from_env()


def _run(coro):
    try:
        return asyncio.run(coro)
    except BitArchiveError as e:
        print(f"Error: {e.user_message}")
        raise SystemExit(1) from e


@task
def setup(c: Context, token: str = "", repo: str = "", branch: str = "", base_url: str = "", env_file: str = ".env"):
    """
    Configure the archive.

    With only a token, creates (or reuses) a private <login>/bit-archive
    repository. With --repo, verifies and saves that repository instead.
    """
    _load_env(env_file)
    token = token or os.getenv("BITARCHIVE_TOKEN", "")
    service = SetupService(create_config_store())

    if repo:
        config = ArchiveConfig(token=token, repo=repo, branch=branch or "main", base_url=base_url)
        saved = _run(service.advanced_setup(config))
    else:
        saved = _run(service.quick_setup(token))
    print(f"Archive ready: {saved.repo} ({saved.branch})")


@task
def refresh(c: Context, env_file: str = ".env", as_json: bool = False):
    """List the archive and download every image into the local cache."""
    _load_env(env_file)

    async def _refresh():
        async with ImageArchive.create(_saved_config()) as archive:
            return await archive.refresh_images()

    images = _run(_refresh())
    if as_json:
        print(json.dumps([image.to_dict() for image in images], indent=2))
        return
    for image in images:
        status = f"FAILED ({image.error})" if image.is_placeholder else image.local_path
        print(f"{image.name}\t{image.size_bytes}\t{status}")
    print(f"\n{len(images)} image(s)")


@task(iterable=["url"])
def upload(c: Context, directory: str = "", url=None, recursive: bool = False, dry_run: bool = False, env_file: str = ".env"):
    """
    Upload images from a local directory and/or remote URLs.

    Args:
        c (Context): Invoke context.
        directory (str): Directory containing images.
        url (list): Image URLs to download and upload; repeat the flag for several.
        recursive (bool): Search subdirectories as well.
        dry_run (bool): List the files that would be uploaded and stop.
    """
    _load_env(env_file)
    urls = url or []

    if directory and not os.path.isdir(directory):
        print(f"Directory not found: {directory}")
        raise SystemExit(1)

    paths = collect_image_paths(directory, recursive=recursive) if directory else []
    if not paths and not urls:
        print("No image files found to process.")
        return

    if dry_run:
        print("\n--- Dry Run Mode: Files to be processed ---")
        for path in paths:
            print(f"- {path}")
        for item in urls:
            print(f"- {item}")
        print("--- End of Dry Run ---")
        return

    async def _upload():
        payloads = []
        for path in paths:
            try:
                payloads.append(payload_from_path(path))
            except BitArchiveError as e:
                print(f"Skipping {path}: {e.user_message}")
        for item in urls:
            try:
                payloads.append(await payload_from_url(item))
            except BitArchiveError as e:
                print(f"Skipping {item}: {e.user_message}")
        async with ImageArchive.create(_saved_config()) as archive:
            return await archive.upload_payloads(payloads)

    result = _run(_upload())
    for item in result.items:
        if item.success:
            marker = "exists" if item.result.existed else "added"
            print(f"[{marker}] {item.source} -> {item.result.image.name}")
        else:
            print(f"[failed] {item.source}: {item.error}")
    print(f"\n{result.summary_message()}")


@task
def delete(c: Context, name: str, env_file: str = ".env"):
    """Delete one archived image (by archive name) remotely and locally."""
    _load_env(env_file)

    async def _delete():
        async with ImageArchive.create(_saved_config()) as archive:
            ref = await archive.client.stat_blob(name)
            if ref is None:
                print(f"{name} is not in the archive; clearing any local copy.")
            await archive.delete_image(
                ImageRecord.from_name(name, ref.size_bytes if ref else 0, remote_ref=ref.version_token if ref else None)
            )

    _run(_delete())
    print(f"Deleted {name}")


@task(name="clear-cache")
def clear_cache(c: Context, env_file: str = ".env"):
    """Remove cached image files from this device."""
    _load_env(env_file)

    async def _clear():
        async with ImageArchive.create(_saved_config()) as archive:
            return await archive.clear_cache()

    removed = _run(_clear())
    print(f"Cleared {removed} file(s).")


@task
def usage(c: Context, env_file: str = ".env"):
    """Show how much space the local cache uses."""
    _load_env(env_file)

    async def _usage():
        async with ImageArchive.create(_saved_config()) as archive:
            return await archive.cache_usage()

    result = _run(_usage())
    print(f"{result.files} file(s), {result.total_megabytes:.2f} MB")


@task
def health(c: Context, env_file: str = ".env"):
    """Check configuration, cache directory and repository access."""
    _load_env(env_file)
    try:
        config = create_config_store().load_config() or ArchiveConfig.from_env()
    except ConfigurationError:
        config = None
    report = asyncio.run(perform_health_check(config))
    print(json.dumps(report, indent=2, default=str))
    if report["status"] == "unhealthy":
        raise SystemExit(1)


@task
def logout(c: Context, delete_repo: bool = False, env_file: str = ".env"):
    """Forget the saved configuration; --delete-repo also deletes the repository."""
    _load_env(env_file)
    service = SetupService(create_config_store())
    if delete_repo:
        async def _delete_repo():
            await service.delete_repository(_saved_config())

        _run(_delete_repo())
        print("Repository deleted.")
    else:
        service.logout()
    print("Logged out.")


ns = Collection(setup, refresh, upload, delete, clear_cache, usage, health, logout)

program = Program(namespace=ns, version=__version__, name="bitarchive", binary="bitarchive")
