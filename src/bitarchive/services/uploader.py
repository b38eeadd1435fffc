"""
Upload orchestration.

One upload walks FINGERPRINTING -> WRITING -> ACCEPTED, or
FINGERPRINTING -> WRITING -> CONFLICT_DETECTED -> RECONCILED when the
remote already holds the same content. The remote has no "create if
absent" call, so a conflicting write is how duplicate content is detected:
identical bytes always produce the same name, and a conflict on that name
means the image is already archived.
"""

import base64

from ..config import ArchiveConfig
from ..errors import BitArchiveError, ConflictError, OperationCancelledError, ValidationError
from ..logging_config import get_logger
from ..models.image import BatchItemResult, BatchUploadResult, ImageRecord, UploadPayload, UploadResult, UploadState
from ..utils.cancellation import CancellationToken, check_cancelled
from ..utils.naming import MAX_BYTES, fingerprint_name
from .cache import LocalCacheStore
from .github import GitHubClient
from .listing import ListingEngine

logger = get_logger(__name__)


class Uploader:
    """Uploads payloads to the archive and mirrors them into the local cache."""

    def __init__(
        self,
        client: GitHubClient,
        cache: LocalCacheStore,
        config: ArchiveConfig,
        listing: ListingEngine | None = None,
    ):
        self.client = client
        self.cache = cache
        self.config = config
        self.listing = listing or ListingEngine(client, cache, config)

    def _transition(self, state: UploadState, name: str | None, **context) -> None:
        logger.debug("upload_state", state=state.value, name=name, **context)

    def validate(self, payload: UploadPayload) -> str:
        """
        Check size and extension and return the archive name.

        Raises:
            ValidationError: If the payload is empty, too large or of an
                unsupported type
        """
        if payload.size_bytes == 0:
            raise ValidationError(
                f"Empty payload from {payload.source or 'unknown source'}",
                code="empty_payload",
                user_message="The selected file is empty.",
                details={"source": payload.source},
            )
        if payload.size_bytes > MAX_BYTES:
            raise ValidationError(
                f"Payload of {payload.size_bytes} bytes exceeds {MAX_BYTES}",
                code="file_too_large",
                user_message="File too large for GitHub API upload (max ~24 MB).",
                details={"size": payload.size_bytes, "limit": MAX_BYTES, "source": payload.source},
            )
        return fingerprint_name(payload.data, payload.extension)

    async def upload(self, payload: UploadPayload, token: CancellationToken | None = None) -> UploadResult:
        """
        Upload one payload.

        Returns:
            UploadResult: The archived image; existed is True when the same
            content was already in the archive

        Raises:
            ValidationError: Before any network call, for rejected payloads
            OperationCancelledError: If cancelled before the write starts
            BitArchiveError: Remote and cache failures other than conflicts
        """
        self._transition(UploadState.FINGERPRINTING, None, source=payload.source)
        try:
            name = self.validate(payload)
        except ValidationError:
            self._transition(UploadState.FAILED, None, source=payload.source)
            raise

        check_cancelled(token)
        self._transition(UploadState.WRITING, name, size=payload.size_bytes)
        encoded = base64.b64encode(payload.data).decode("ascii")

        try:
            ref = await self.client.put_blob(name, encoded, f"Add {name}")
        except ConflictError as conflict:
            self._transition(UploadState.CONFLICT_DETECTED, name, version_token=conflict.version_token)
            return await self._reconcile(name, payload, conflict.version_token)
        except BitArchiveError:
            self._transition(UploadState.FAILED, name)
            raise

        self._transition(UploadState.ACCEPTED, name, version_token=ref.version_token)
        local_path = await self.cache.put_or_inline(payload.data, name, ref.version_token)
        logger.info("upload_accepted", name=name, size=payload.size_bytes, version_token=ref.version_token)
        return UploadResult(image=self._record(name, payload, ref.version_token, local_path), existed=False)

    async def _reconcile(self, name: str, payload: UploadPayload, version_token: str | None) -> UploadResult:
        """
        Resolve a conflicting write against the copy the remote already holds.

        Reuses any cached copy, otherwise downloads it. If that fails, a
        metadata lookup recovers the current version and the fetch is retried
        once against it.
        """
        try:
            local_path = await self.listing.ensure_cached(name, version_token)
        except OperationCancelledError:
            raise
        except BitArchiveError as first_error:
            logger.warning("upload_reconcile_fetch_failed", name=name, code=first_error.code)
            ref = await self.client.stat_blob(name)
            if ref is None:
                self._transition(UploadState.FAILED, name)
                raise
            version_token = ref.version_token
            local_path = await self.listing.ensure_cached(name, version_token)

        self._transition(UploadState.RECONCILED, name, version_token=version_token)
        logger.info("upload_deduplicated", name=name, version_token=version_token)
        return UploadResult(image=self._record(name, payload, version_token, local_path), existed=True)

    def _record(self, name: str, payload: UploadPayload, version_token: str | None, local_path: str) -> ImageRecord:
        return ImageRecord.from_name(name, payload.size_bytes, remote_ref=version_token, local_path=local_path)

    async def upload_batch(
        self,
        payloads: list[UploadPayload],
        token: CancellationToken | None = None,
    ) -> BatchUploadResult:
        """
        Upload payloads one at a time, in order.

        A failing item is recorded and the batch moves on. Cancellation stops
        before the next item and raises; items already uploaded stay uploaded.
        """
        batch = BatchUploadResult()
        for index, payload in enumerate(payloads):
            check_cancelled(token)
            source = payload.source or f"item-{index + 1}"
            try:
                result = await self.upload(payload, token)
            except OperationCancelledError:
                raise
            except BitArchiveError as e:
                batch.items.append(BatchItemResult(source=source, error=e.user_message, error_code=e.code))
                continue
            batch.items.append(BatchItemResult(source=source, result=result))

        logger.info(
            "upload_batch_completed",
            total=batch.total,
            uploaded=batch.uploaded,
            existed=batch.existed,
            failed=batch.failed,
        )
        return batch
