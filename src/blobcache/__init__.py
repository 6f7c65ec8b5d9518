"""blobcache: Filesystem-backed content cache with TTL and size-based garbage collection."""

__version__ = "0.1.0"

from blobcache.cache import CacheConfig, CacheError, FileCache
from blobcache.io import ConsoleIO, IOInterface, LoggingIO, NullIO

__all__ = [
    "FileCache",
    "CacheConfig",
    "CacheError",
    "IOInterface",
    "LoggingIO",
    "NullIO",
    "ConsoleIO",
    "__version__",
]
