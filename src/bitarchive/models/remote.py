"""Value types returned by the remote blob client."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class BlobRef:
    """A named blob and the version token the remote assigned to it."""

    name: str
    version_token: str
    size_bytes: int = 0

    @classmethod
    def from_content(cls, data: dict[str, Any]) -> "BlobRef":
        """Build from a contents API ``content`` object."""
        return cls(
            name=data.get("name", ""),
            version_token=data["sha"],
            size_bytes=int(data.get("size") or 0),
        )


@dataclass(frozen=True)
class BlobContent:
    """Downloaded blob bytes with the version token they correspond to."""

    data: bytes
    version_token: str | None
    size_bytes: int


@dataclass(frozen=True)
class RemoteEntry:
    """One entry of a remote directory listing."""

    name: str
    size_bytes: int
    version_token: str
    entry_type: str = "file"

    @property
    def is_file(self) -> bool:
        return self.entry_type in ("file", "blob")
