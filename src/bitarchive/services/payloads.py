"""Building upload payloads from files, raw bytes and remote URLs."""

import io
from pathlib import Path
from urllib.parse import urlparse

import httpx
from PIL import Image, UnidentifiedImageError

from ..errors import NetworkError, RemoteError, ValidationError
from ..logging_config import get_logger
from ..models.image import UploadPayload
from ..utils.naming import MAX_BYTES, extension_from_mime, extension_from_uri, normalize_extension

logger = get_logger(__name__)

# Pillow format names -> archive extensions
PIL_FORMAT_EXTENSIONS = {"JPEG": "jpg", "MPO": "jpg", "PNG": "png", "GIF": "gif", "WEBP": "webp"}


def sniff_extension(data: bytes) -> str | None:
    """Extension implied by the image header, or None when Pillow can't identify it."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError):
        return None
    return PIL_FORMAT_EXTENSIONS.get(image_format or "", normalize_extension(image_format))


def infer_extension(uri: str | None = None, mime_type: str | None = None, data: bytes | None = None) -> str | None:
    """
    Work out a payload's extension from what the picker reported.

    The path or URI wins, then the MIME type. Any other ``image/*`` MIME
    falls back to jpg unless the bytes say otherwise.
    """
    is_image_mime = bool(mime_type) and mime_type.lower().startswith("image/")
    extension = extension_from_uri(uri) or (extension_from_mime(mime_type) if is_image_mime else None)
    if extension:
        return normalize_extension(extension)

    sniffed = sniff_extension(data) if data else None
    if sniffed:
        return sniffed
    if is_image_mime:
        return "jpg"
    return None


def _require_extension(extension: str | None, source: str) -> str:
    if not extension:
        raise ValidationError(
            f"Could not determine image type for {source}",
            code="unknown_image_type",
            user_message="Unsupported file type.",
            details={"source": source},
        )
    return extension


def payload_from_bytes(data: bytes, mime_type: str | None = None, source: str = "") -> UploadPayload:
    extension = infer_extension(source or None, mime_type, data)
    return UploadPayload(data=data, extension=_require_extension(extension, source or "bytes"), source=source)


def payload_from_path(path: str | Path) -> UploadPayload:
    """
    Read a local image file into a payload.

    Raises:
        ValidationError: If the file is missing, too large, or not an image
    """
    file_path = Path(path)
    try:
        size = file_path.stat().st_size
    except OSError as e:
        raise ValidationError(
            f"Cannot read {file_path}: {e}",
            code="file_unreadable",
            user_message="The selected file can't be read.",
            details={"path": str(file_path)},
            original_exception=e,
        ) from e

    # Checked before reading so oversized files never load into memory.
    if size > MAX_BYTES:
        raise ValidationError(
            f"{file_path} is {size} bytes, limit is {MAX_BYTES}",
            code="file_too_large",
            user_message="File too large for GitHub API upload (max ~24 MB).",
            details={"path": str(file_path), "size": size, "limit": MAX_BYTES},
        )

    data = file_path.read_bytes()
    extension = infer_extension(str(file_path), None, data)
    return UploadPayload(data=data, extension=_require_extension(extension, str(file_path)), source=str(file_path))


def collect_image_paths(directory: str | Path, recursive: bool = False) -> list[Path]:
    """Files under directory whose suffix looks like an image, sorted by path."""
    root = Path(directory)
    pattern = "**/*" if recursive else "*"
    return sorted(
        candidate
        for candidate in root.glob(pattern)
        if candidate.is_file() and extension_from_uri(candidate.name) in ("jpg", "jpeg", "png", "gif", "webp")
    )


async def payload_from_url(url: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> UploadPayload:
    """
    Download a shared image URL into a payload.

    The body is streamed and abandoned as soon as it passes the size limit.

    Raises:
        ValidationError: If the download exceeds the size limit or isn't an image
        NetworkError: On transport failures
        RemoteError: On a non-success response
    """
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)
    try:
        async with http.stream("GET", url) as response:
            if not response.is_success:
                raise RemoteError(
                    f"Download of {url} returned {response.status_code}",
                    status_code=response.status_code,
                    user_message="Couldn't download the shared image.",
                    details={"url": url, "status": response.status_code},
                )
            chunks = bytearray()
            async for chunk in response.aiter_bytes():
                chunks.extend(chunk)
                if len(chunks) > MAX_BYTES:
                    raise ValidationError(
                        f"Download of {url} exceeds {MAX_BYTES} bytes",
                        code="file_too_large",
                        user_message="File too large for GitHub API upload (max ~24 MB).",
                        details={"url": url, "limit": MAX_BYTES},
                    )
            mime_type = response.headers.get("content-type")
    except httpx.TransportError as e:
        raise NetworkError(
            f"Download of {url} failed: {e}",
            details={"url": url},
            original_exception=e,
        ) from e
    finally:
        if owns_client:
            await http.aclose()

    data = bytes(chunks)
    extension = infer_extension(urlparse(url).path, mime_type, data)
    logger.debug("payload_downloaded", url=url, size=len(data), extension=extension)
    return UploadPayload(data=data, extension=_require_extension(extension, url), source=url)
