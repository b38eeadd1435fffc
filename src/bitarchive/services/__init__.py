"""
Services module for bitarchive.

This module contains the service classes that handle archive logic:
- LocalCacheStore: idempotent local copies of archived images
- GitHubClient: repository contents API used as the blob store
- Uploader: content-addressed uploads with conflict reconciliation
- ListingEngine: bounded-concurrency gallery refresh
- ConfigStore: persisted archive configuration
- SetupService: repository provisioning and teardown
"""

from .backends import FileSystemBackend, MemoryBackend, StorageBackend
from .cache import CacheUsage, LocalCacheStore, cache_key
from .config_store import ConfigStore, create_config_store
from .github import GitHubClient
from .listing import ListingEngine
from .payloads import payload_from_bytes, payload_from_path, payload_from_url
from .setup import SetupService
from .uploader import Uploader

__all__ = [
    "StorageBackend",
    "FileSystemBackend",
    "MemoryBackend",
    "LocalCacheStore",
    "CacheUsage",
    "cache_key",
    "ConfigStore",
    "create_config_store",
    "GitHubClient",
    "ListingEngine",
    "Uploader",
    "SetupService",
    "payload_from_bytes",
    "payload_from_path",
    "payload_from_url",
]
