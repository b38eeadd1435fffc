"""
Gallery refresh: list the remote public directory and materialize every
image into the local cache with a bounded number of concurrent downloads.
"""

import asyncio

from ..config import DEFAULT_LIST_CONCURRENCY, ArchiveConfig
from ..errors import BitArchiveError, CacheIOError, NotFoundError, OperationCancelledError
from ..logging_config import PerformanceTimer, get_logger
from ..models.image import ImageRecord
from ..models.remote import RemoteEntry
from ..utils.cancellation import CancellationToken, check_cancelled
from ..utils.naming import PUBLIC_DIR, is_supported_extension, split_name
from .cache import LocalCacheStore
from .github import GitHubClient

logger = get_logger(__name__)


class ListingEngine:
    """
    Builds the archive index from the remote listing.

    Results are returned in listing order regardless of which downloads
    finish first. A refresh requested while another is running joins the
    running one instead of starting a second listing.
    """

    def __init__(
        self,
        client: GitHubClient,
        cache: LocalCacheStore,
        config: ArchiveConfig,
        concurrency: int = DEFAULT_LIST_CONCURRENCY,
    ):
        self.client = client
        self.cache = cache
        self.config = config
        self.concurrency = max(1, concurrency)
        self._inflight: asyncio.Task | None = None

    async def refresh(self, token: CancellationToken | None = None) -> list[ImageRecord]:
        """
        Return the current index of archived images.

        A missing public directory is an empty archive. Items that fail to
        materialize come back as placeholder records (error set, no local
        path) in their listing position.

        Args:
            token: Cancellation token of the refresh. A caller joining a
                refresh already in flight shares that refresh's token.

        Raises:
            OperationCancelledError: If the token is cancelled before completion
            AuthError: If the token is rejected by the remote
            RateLimitedError: If the listing call itself is rate limited
        """
        if self._inflight is not None and not self._inflight.done():
            logger.debug("listing_refresh_joined")
            return await asyncio.shield(self._inflight)

        task = asyncio.create_task(self._refresh(token))
        task.add_done_callback(self._refresh_done)
        self._inflight = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._inflight is task and task.done():
                self._inflight = None

    def _refresh_done(self, task: asyncio.Task) -> None:
        # Outcome of a refresh nobody may be awaiting any more.
        if self._inflight is task:
            self._inflight = None
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("listing_refresh_failed", error_type=type(error).__name__, error=str(error))

    async def _refresh(self, token: CancellationToken | None) -> list[ImageRecord]:
        check_cancelled(token)
        with PerformanceTimer("listing_refresh", repo=self.config.repo):
            try:
                entries = await self.client.list_directory(PUBLIC_DIR)
            except NotFoundError:
                logger.info("listing_directory_missing", repo=self.config.repo)
                return []

            images = [entry for entry in entries if entry.is_file and is_supported_extension(split_name(entry.name)[1])]
            semaphore = asyncio.Semaphore(self.concurrency)

            async def worker(entry: RemoteEntry) -> ImageRecord:
                async with semaphore:
                    check_cancelled(token)
                    return await self._materialize(entry, token)

            results = await asyncio.gather(*(worker(entry) for entry in images), return_exceptions=True)

        for result in results:
            if isinstance(result, OperationCancelledError):
                raise result
        for result in results:
            if isinstance(result, BaseException):
                raise result

        records: list[ImageRecord] = list(results)  # type: ignore[arg-type]
        failed = sum(1 for record in records if record.is_placeholder)
        logger.info(
            "listing_refresh_completed",
            repo=self.config.repo,
            listed=len(entries),
            images=len(records),
            failed=failed,
        )
        return records

    async def _materialize(self, entry: RemoteEntry, token: CancellationToken | None) -> ImageRecord:
        record = ImageRecord.from_name(entry.name, entry.size_bytes, remote_ref=entry.version_token)
        try:
            local_path = await self.ensure_cached(entry.name, entry.version_token)
        except OperationCancelledError:
            raise
        except BitArchiveError as e:
            if not e.recoverable:
                raise
            logger.warning("listing_item_failed", name=entry.name, code=e.code)
            return record.as_failed(e.user_message)
        check_cancelled(token)
        return record.with_local_path(local_path)

    async def ensure_cached(self, name: str, version_token: str | None = None) -> str:
        """
        Local locator for an archived image, downloading it on a cache miss.

        With a version token only that version counts as a hit, so a blob
        that changed remotely is fetched again. A local disk fault falls back
        to the remote copy, returned inline when it cannot be stored.
        """
        try:
            cached = await self.cache.resolve(name, version_token)
        except CacheIOError as e:
            logger.warning("cache_lookup_failed", name=name, code=e.code)
            cached = None
        if cached is not None:
            return cached

        blob = await self.client.get_blob(name)
        logger.debug("listing_item_downloaded", name=name, size=blob.size_bytes)
        return await self.cache.put_or_inline(blob.data, name, blob.version_token or version_token)
