"""
Image record model for bitarchive.

ImageRecord describes one archived image. Records are immutable: the
upload orchestrator and the listing engine build new records, and callers
derive updated copies with dataclasses.replace().
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from ..utils.naming import content_hash, split_name


@dataclass(frozen=True)
class ImageRecord:
    """
    Represents one image stored in the archive.

    name is the content-derived filename and the unique key. local_path is
    owned by the cache store (a filesystem path or a data: URI depending on
    the backend) and is None when the image has not been materialized.
    """

    name: str
    content_hash: str
    extension: str
    size_bytes: int
    remote_ref: str | None = None
    local_path: str | None = None
    url: str | None = None
    error: str | None = None

    @classmethod
    def from_name(
        cls,
        name: str,
        size_bytes: int,
        remote_ref: str | None = None,
        local_path: str | None = None,
        url: str | None = None,
    ) -> "ImageRecord":
        """
        Build a record from an archive filename.

        The content hash is the filename stem, which for names produced by
        fingerprint_name() is the digest prefix of the payload.
        """
        stem, extension = split_name(name)
        return cls(
            name=name,
            content_hash=stem,
            extension=extension or "",
            size_bytes=size_bytes,
            remote_ref=remote_ref,
            local_path=local_path,
            url=url if url is not None else local_path,
        )

    @property
    def is_cached(self) -> bool:
        return self.local_path is not None

    @property
    def is_placeholder(self) -> bool:
        """True for listing entries whose materialization failed."""
        return self.error is not None

    def with_local_path(self, local_path: str) -> "ImageRecord":
        return replace(self, local_path=local_path, url=local_path, error=None)

    def as_failed(self, message: str) -> "ImageRecord":
        return replace(self, local_path=None, url=None, error=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "content_hash": self.content_hash,
            "extension": self.extension,
            "size_bytes": self.size_bytes,
            "remote_ref": self.remote_ref,
            "local_path": self.local_path,
            "url": self.url,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ImageRecord":
        return cls(
            name=data["name"],
            content_hash=data["content_hash"],
            extension=data["extension"],
            size_bytes=int(data["size_bytes"]),
            remote_ref=data.get("remote_ref"),
            local_path=data.get("local_path"),
            url=data.get("url"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class UploadPayload:
    """Raw image bytes plus the declared extension, ready for upload."""

    data: bytes
    extension: str
    source: str = ""

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def content_hash(self) -> str:
        return content_hash(self.data)


class UploadState(Enum):
    """States of the upload state machine."""

    FINGERPRINTING = "fingerprinting"
    WRITING = "writing"
    ACCEPTED = "accepted"
    CONFLICT_DETECTED = "conflict_detected"
    RECONCILED = "reconciled"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadResult:
    """Outcome of one successful upload; existed is True for duplicate content."""

    image: ImageRecord
    existed: bool


@dataclass(frozen=True)
class BatchItemResult:
    """Per-item entry of a batch upload."""

    source: str
    result: UploadResult | None = None
    error: str | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.result is not None


@dataclass
class BatchUploadResult:
    """Aggregated counts of a sequential batch upload."""

    items: list[BatchItemResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.items)

    @property
    def uploaded(self) -> int:
        """Items that resolved to an archived image, new or pre-existing."""
        return sum(1 for item in self.items if item.success)

    @property
    def existed(self) -> int:
        return sum(1 for item in self.items if item.result is not None and item.result.existed)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.success)

    @property
    def images(self) -> list[ImageRecord]:
        return [item.result.image for item in self.items if item.result is not None]

    def summary_message(self) -> str:
        """Short message in the style of the upload screen notifications."""
        if self.total == 0:
            return "No images to upload."
        if self.uploaded == 1 and self.total == 1:
            return "Already uploaded. Loaded from cache." if self.existed else "Upload complete."
        message = f"Uploaded {self.uploaded}."
        if self.existed:
            message += f" {self.existed} already existed."
        if self.failed:
            message += f" {self.failed} failed."
        return message

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "uploaded": self.uploaded,
            "existed": self.existed,
            "failed": self.failed,
            "message": self.summary_message(),
        }
