"""
ImageArchive: the single entry point the gallery and upload screens use.

Wires one ArchiveConfig into a GitHubClient, a LocalCacheStore, a
ListingEngine and an Uploader, and keeps the most recent index of images.
"""

from dataclasses import replace
from pathlib import Path
from typing import Any

import httpx

from .config import ArchiveConfig, get_cache_dir, get_list_concurrency, get_mark_no_media
from .errors import NotFoundError
from .logging_config import log_context
from .models.image import BatchUploadResult, ImageRecord, UploadPayload
from .services.cache import CacheUsage, LocalCacheStore
from .services.github import GITHUB_API, GitHubClient
from .services.listing import ListingEngine
from .services.uploader import Uploader
from .utils.cancellation import CancellationToken
from .utils.naming import public_url


class ImageArchive:
    """
    Facade over listing, upload, delete and cache operations for one archive.

    Usage:
        async with ImageArchive.create(config) as archive:
            images = await archive.refresh_images()
    """

    def __init__(
        self,
        config: ArchiveConfig,
        client: GitHubClient,
        cache: LocalCacheStore,
        concurrency: int | None = None,
    ):
        self.config = config
        self.client = client
        self.cache = cache
        self.listing = ListingEngine(client, cache, config, concurrency or get_list_concurrency())
        self.uploader = Uploader(client, cache, config, listing=self.listing)
        self.images: list[ImageRecord] = []

    @classmethod
    def create(
        cls,
        config: ArchiveConfig,
        cache_dir: str | Path | None = None,
        in_memory_cache: bool = False,
        http_client: httpx.AsyncClient | None = None,
        api_base: str = GITHUB_API,
    ) -> "ImageArchive":
        """Build an archive from process settings for everything not given explicitly."""
        config.validate()
        if in_memory_cache:
            cache = LocalCacheStore.in_memory()
        else:
            cache = LocalCacheStore.on_disk(cache_dir or get_cache_dir(), mark_no_media=get_mark_no_media())
        return cls(config, GitHubClient(config, client=http_client, api_base=api_base), cache)

    async def __aenter__(self) -> "ImageArchive":
        await self.cache.prepare()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    async def refresh_images(self, token: CancellationToken | None = None) -> list[ImageRecord]:
        """Re-list the archive and materialize every image locally."""
        self.images = await self.listing.refresh(token)
        return self.images

    async def upload_payloads(
        self,
        payloads: list[UploadPayload],
        token: CancellationToken | None = None,
    ) -> BatchUploadResult:
        """Upload payloads in order and put the resulting images at the front of the index."""
        result = await self.uploader.upload_batch(payloads, token)
        for image in result.images:
            self._remember(image)
        return result

    async def delete_image(self, record: ImageRecord) -> None:
        """
        Delete an image from the remote and from every local cache entry.

        The cache is only touched once the remote delete has succeeded, so a
        failed delete leaves the image fully present. An image that is
        already gone remotely is still evicted locally.
        """
        with log_context(operation="delete_image", name=record.name) as log:
            version_token = record.remote_ref
            if not version_token:
                ref = await self.client.stat_blob(record.name)
                version_token = ref.version_token if ref else None

            if version_token:
                try:
                    await self.client.delete_blob(record.name, version_token, f"Delete {record.name}")
                except NotFoundError:
                    log.info("delete_remote_already_gone")

            evicted = await self.cache.evict_name(record.name)
            self.images = [image for image in self.images if image.name != record.name]
            log.info("image_deleted", evicted=evicted)

    async def ensure_local_uri(self, record: ImageRecord) -> str:
        """Locator of a local copy of the image, downloading it if needed."""
        local_path = await self.listing.ensure_cached(record.name, record.remote_ref)
        if record.local_path != local_path:
            self._replace(record.with_local_path(local_path))
        return local_path

    async def clear_cache(self) -> int:
        """Remove cached image files; returns how many were removed."""
        removed = await self.cache.evict_all()
        self.images = [
            replace(image, local_path=None, url=self.public_url(image)) if image.is_cached else image
            for image in self.images
        ]
        return removed

    async def cache_usage(self) -> CacheUsage:
        return await self.cache.usage()

    def public_url(self, record: ImageRecord) -> str:
        return public_url(self.config, record.name)

    def _remember(self, image: ImageRecord) -> None:
        self.images = [image, *(existing for existing in self.images if existing.name != image.name)]

    def _replace(self, image: ImageRecord) -> None:
        self.images = [image if existing.name == image.name else existing for existing in self.images]
