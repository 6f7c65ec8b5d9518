"""Filesystem-backed blob cache.

Key components:
- FileCache: Read/write/copy blobs and garbage-collect the cache directory
- CacheConfig: Configuration management
- validation: Digest and size helpers
"""

from blobcache.cache.config import CacheConfig, get_global_config, set_global_config
from blobcache.cache.manager import (
    CacheError,
    EntryInfo,
    FileCache,
    InvalidWhitelistError,
)

__all__ = [
    "FileCache",
    "CacheConfig",
    "CacheError",
    "EntryInfo",
    "InvalidWhitelistError",
    "get_global_config",
    "set_global_config",
]
