"""
Models module for bitarchive.

This module contains data models:
- ImageRecord: one archived image
- UploadPayload / UploadResult / BatchUploadResult: upload pipeline values
- BlobRef / BlobContent / RemoteEntry: remote blob client values
- KeyValueDatabase: DuckDB-backed key-value table for persisted settings
"""

from .database import KeyValueDatabase
from .image import BatchItemResult, BatchUploadResult, ImageRecord, UploadPayload, UploadResult, UploadState
from .remote import BlobContent, BlobRef, RemoteEntry

__all__ = [
    "ImageRecord",
    "UploadPayload",
    "UploadResult",
    "UploadState",
    "BatchItemResult",
    "BatchUploadResult",
    "BlobRef",
    "BlobContent",
    "RemoteEntry",
    "KeyValueDatabase",
]
