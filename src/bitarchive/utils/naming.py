"""
Content-addressed naming for archived images.

Every stored image is named after the SHA-256 of its raw bytes, truncated to
FINGERPRINT_LENGTH hex characters, plus its normalized extension. At 12 hex
characters (48 bits) the birthday bound for a 1% collision chance is roughly
2.4 million images, far beyond a personal archive.
"""

import base64
import hashlib
import re
from urllib.parse import quote, urlparse

from ..errors import ValidationError

SUPPORTED_EXTENSIONS: tuple[str, ...] = ("jpg", "png", "gif", "webp")
EXTENSION_SYNONYMS = {"jpeg": "jpg"}
FINGERPRINT_LENGTH = 12
MAX_BYTES = 24 * 1024 * 1024

PUBLIC_DIR = "public"
RAW_CONTENT_HOST = "https://raw.githubusercontent.com"

_EXTENSION_RE = re.compile(r"\.([a-z0-9]+)$")


def normalize_extension(extension: str | None) -> str | None:
    """Lowercase an extension, drop a leading dot and fold synonyms (jpeg -> jpg)."""
    if not extension:
        return None
    lower = extension.strip().lower().lstrip(".")
    if not lower:
        return None
    return EXTENSION_SYNONYMS.get(lower, lower)


def is_supported_extension(extension: str | None) -> bool:
    return normalize_extension(extension) in SUPPORTED_EXTENSIONS


def require_supported_extension(extension: str | None) -> str:
    """Return the normalized extension or raise ValidationError."""
    normalized = normalize_extension(extension)
    if normalized not in SUPPORTED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported file type: {extension!r}",
            code="unsupported_extension",
            user_message="Unsupported file type.",
            details={"extension": extension, "supported": list(SUPPORTED_EXTENSIONS)},
        )
    return normalized


def content_hash(data: bytes, length: int = FINGERPRINT_LENGTH) -> str:
    """Hex prefix of the SHA-256 digest of the raw payload."""
    return hashlib.sha256(data).hexdigest()[:length]


def fingerprint_name(data: bytes, extension: str | None) -> str:
    """
    Derive the canonical archive filename for a payload.

    Args:
        data: Raw image bytes (not the base64 transport encoding)
        extension: File extension in any case, with or without a dot

    Returns:
        str: ``<12 hex chars>.<extension>``

    Raises:
        ValidationError: If the extension is not supported
    """
    normalized = require_supported_extension(extension)
    return f"{content_hash(data)}.{normalized}"


def split_name(name: str) -> tuple[str, str | None]:
    """Split ``abc123.jpg`` into ``("abc123", "jpg")``."""
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem:
        return name, None
    return stem, normalize_extension(ext)


def extension_from_uri(uri: str | None) -> str | None:
    """Extension of the last path segment of a URI or path, ignoring query and fragment."""
    if not uri:
        return None
    segment = urlparse(uri).path.rsplit("/", 1)[-1]
    match = _EXTENSION_RE.search(segment.lower())
    if not match:
        return None
    return match.group(1)


def extension_from_mime(mime_type: str | None) -> str | None:
    """Extension implied by a MIME type such as ``image/jpeg``."""
    if not mime_type:
        return None
    parts = mime_type.split(";")[0].strip().split("/")
    if len(parts) != 2 or parts[1] in ("", "*"):
        return None
    return normalize_extension(parts[1])


def mime_from_extension(extension: str | None) -> str:
    normalized = normalize_extension(extension)
    if not normalized:
        return "image/*"
    if normalized == "jpg":
        return "image/jpeg"
    return f"image/{normalized}"


def to_data_uri(data: bytes, extension: str | None) -> str:
    encoded = base64.b64encode(data).decode("ascii")
    return f"data:{mime_from_extension(extension)};base64,{encoded}"


def split_repo(repo: str | None) -> tuple[str, str] | None:
    """Parse ``owner/name``; returns None when either part is missing."""
    if not repo:
        return None
    parts = [part.strip() for part in repo.split("/")]
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return None
    return parts[0], parts[1]


def build_base_url(repo: str, branch: str, base_url: str | None = None) -> str:
    """
    Public serving prefix for archived images, always ending in ``/``.

    A configured custom base URL wins; otherwise the raw-content URL of the
    repository's public directory on the configured branch.
    """
    if base_url:
        return base_url.rstrip("/") + "/"
    parts = split_repo(repo)
    if not parts:
        return ""
    owner, name = parts
    return f"{RAW_CONTENT_HOST}/{owner}/{name}/{quote(branch, safe='')}/{PUBLIC_DIR}/"


def public_url(config, name: str) -> str:
    """Public serving URL of an archived image for an ArchiveConfig-like value."""
    base = config.public_base_url()
    return f"{base}{quote(name)}" if base else ""
