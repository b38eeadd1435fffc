"""
Utilities module for bitarchive.

- naming: content-hash filenames, extension and MIME helpers, URL building
- cancellation: cooperative cancellation tokens for long operations
"""

from .cancellation import CancellationToken
from .naming import (
    MAX_BYTES,
    SUPPORTED_EXTENSIONS,
    content_hash,
    fingerprint_name,
    normalize_extension,
)

__all__ = [
    "CancellationToken",
    "MAX_BYTES",
    "SUPPORTED_EXTENSIONS",
    "content_hash",
    "fingerprint_name",
    "normalize_extension",
]
