"""File cache reading and writing named blobs under a root directory."""

import logging
import os
import random
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple, Union

from typing_extensions import TypedDict

from blobcache.cache.validation import compute_checksum, expiry_cutoff
from blobcache.io import IOInterface, LoggingIO
from blobcache.storage.filesystem import Filesystem

if TYPE_CHECKING:
    from blobcache.cache.config import CacheConfig

logger = logging.getLogger(__name__)

DEFAULT_WHITELIST = "a-z0-9."
FILLER = "-"

# gc_is_necessary() answers True roughly once per this many calls
GC_PROBABILITY_DIVISOR = 50


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class InvalidWhitelistError(CacheError, ValueError):
    """Raised when a filename whitelist is malformed or admits path separators."""

    pass


class EntryInfo(TypedDict):
    """Snapshot of a single cache entry."""

    name: str  # Path relative to the cache root
    path: str
    size_bytes: int
    modified: str  # ISO 8601 timestamp
    accessed: str  # ISO 8601 timestamp


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, timezone.utc).isoformat()


class FileCache:
    """Reads and writes blobs in a directory, one file per key.

    Keys are sanitized into filenames by replacing every character outside
    the whitelist with ``-``. The file system is the only index: nothing is
    kept in memory besides the root, the whitelist and the enabled flag.

    If the root directory cannot be created the cache is disabled for its
    whole lifetime. A disabled cache never raises; reads answer ``None`` and
    every other operation answers ``False``.

    Ordinary I/O failures (missing files, permission errors, disk full) are
    reported through return values as well, so callers can always fall back
    to the primary source.

    Examples:
        >>> cache = FileCache(cache_dir="/tmp/blobs")
        >>> cache.write("https://example.org/pkg.zip", b"...")
        True
        >>> cache.read("https://example.org/pkg.zip")
        b'...'
        >>> cache.gc(ttl=86400, max_size=10 * 1024 * 1024)
        True
    """

    def __init__(
        self,
        io: Optional[IOInterface] = None,
        cache_dir: Union[str, Path] = "",
        whitelist: str = DEFAULT_WHITELIST,
        filesystem: Optional[Filesystem] = None,
    ):
        """Initialize the cache.

        Args:
            io: Receiver for debug traces (defaults to LoggingIO)
            cache_dir: Root directory of the cache; created if missing
            whitelist: Allowed filename characters, as the body of a regex
                character class (e.g. ``'a-z0-9.'``). Matching is
                case-insensitive.
            filesystem: Filesystem helper (defaults to Filesystem())

        Raises:
            InvalidWhitelistError: If the whitelist is not a valid character
                class or lets a path separator through
        """
        if not str(cache_dir):
            raise ValueError("cache_dir must not be empty")

        self.io = io or LoggingIO()
        self.filesystem = filesystem or Filesystem()
        self.whitelist = whitelist
        self._disallowed = self._compile_whitelist(whitelist)

        root = os.path.abspath(os.path.expanduser(str(cache_dir)))
        self.root = root.rstrip("/\\") + os.sep
        self.root_path = Path(self.root)

        self.enabled = True
        if not self.root_path.is_dir():
            try:
                self.filesystem.ensure_directory_exists(self.root_path)
            except OSError as e:
                logger.warning(
                    f"Cache directory {self.root} unavailable, disabling cache: {e}"
                )
                self.enabled = False

    @classmethod
    def from_config(
        cls, config: "CacheConfig", io: Optional[IOInterface] = None
    ) -> "FileCache":
        """Create a cache from a CacheConfig."""
        return cls(io=io, cache_dir=config.cache_dir, whitelist=config.whitelist)

    @staticmethod
    def _compile_whitelist(whitelist: str) -> "re.Pattern[str]":
        try:
            pattern = re.compile(f"[^{whitelist}]", re.IGNORECASE | re.ASCII)
        except re.error as e:
            raise InvalidWhitelistError(f"Invalid whitelist {whitelist!r}: {e}") from e

        for separator in {"/", "\\", os.sep, os.altsep or "/"}:
            if not pattern.match(separator):
                raise InvalidWhitelistError(
                    f"Whitelist {whitelist!r} allows path separator {separator!r}"
                )
        return pattern

    def is_enabled(self) -> bool:
        return self.enabled

    def get_root(self) -> str:
        return self.root

    def sanitize(self, key: str) -> str:
        """Map a cache key to the filename it is stored under.

        Keys differing only in disallowed characters map to the same name.

        Examples:
            >>> FileCache(cache_dir="/tmp/blobs").sanitize("vendor/pkg@1.0")
            'vendor-pkg-1.0'
        """
        return self._disallowed.sub(FILLER, key)

    def _entry_path(self, key: str) -> Path:
        return self.root_path / self.sanitize(key)

    def _trace(self, message: str) -> None:
        if self.io.is_debug():
            self.io.write(message)

    # =========================================================================
    # Read / write
    # =========================================================================

    def read(self, key: str) -> Optional[bytes]:
        """Return the cached bytes for ``key``, or None if not cached.

        An empty entry returns ``b''``, which is distinct from a miss.
        Reading refreshes the entry's access time.
        """
        if not self.enabled:
            return None

        path = self._entry_path(key)
        if not path.is_file():
            return None

        self._trace(f"Reading {path} from cache")
        try:
            contents = path.read_bytes()
            stat = path.stat()
            os.utime(path, ns=(time.time_ns(), stat.st_mtime_ns))
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Error reading cache entry {path}: {e}")
            return None

        return contents

    def write(self, key: str, contents: Union[bytes, str]) -> bool:
        """Create or overwrite the entry for ``key``.

        Args:
            key: Cache key
            contents: Bytes to store; str is encoded as UTF-8

        Returns:
            True on success, False if disabled or the write failed
        """
        if not self.enabled:
            return False

        if isinstance(contents, str):
            contents = contents.encode("utf-8")

        path = self._entry_path(key)
        self._trace(f"Writing {path} into cache")
        try:
            path.write_bytes(contents)
        except OSError as e:
            logger.warning(f"Error writing cache entry {path}: {e}")
            return False

        return True

    def copy_from(self, key: str, source: Union[str, Path]) -> bool:
        """Copy a file into the cache."""
        if not self.enabled:
            return False

        path = self._entry_path(key)
        try:
            self.filesystem.ensure_directory_exists(path.parent)
            self._trace(f"Writing {path} into cache")
            self.filesystem.copy(source, path)
        except OSError as e:
            logger.warning(f"Error copying {source} into cache: {e}")
            return False

        return True

    def copy_to(self, key: str, target: Union[str, Path]) -> bool:
        """Copy a file out of the cache.

        The entry is touched first, which marks it as recently used and
        protects it from size-based eviction in ``gc``.
        """
        if not self.enabled:
            return False

        path = self._entry_path(key)
        if not path.is_file():
            return False

        try:
            os.utime(path, None)
            self._trace(f"Reading {path} from cache")
            self.filesystem.copy(path, target)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Error copying {path} out of cache: {e}")
            return False

        return True

    def remove(self, key: str) -> bool:
        if not self.enabled:
            return False

        path = self._entry_path(key)
        if not path.is_file():
            return False

        return self.filesystem.unlink(path)

    def clear(self) -> bool:
        """Delete every entry, keeping the root directory."""
        if not self.enabled:
            return False

        try:
            self.filesystem.empty_directory(self.root_path)
        except OSError as e:
            logger.warning(f"Error clearing cache {self.root}: {e}")
            return False

        return True

    # =========================================================================
    # Hashing
    # =========================================================================

    def _digest(self, key: str, algorithm: str) -> Optional[str]:
        if not self.enabled:
            return None

        path = self._entry_path(key)
        if not path.is_file():
            return None

        try:
            return compute_checksum(path, algorithm)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Error hashing cache entry {path}: {e}")
            return None

    def sha1(self, key: str) -> Optional[str]:
        """Hex SHA-1 of the entry's contents, or None if not cached."""
        return self._digest(key, "sha1")

    def sha256(self, key: str) -> Optional[str]:
        """Hex SHA-256 of the entry's contents, or None if not cached."""
        return self._digest(key, "sha256")

    # =========================================================================
    # Garbage collection
    # =========================================================================

    def gc_is_necessary(self) -> bool:
        """Randomly decide whether a caller should run ``gc`` now.

        Lets frequent cache users amortize collection instead of sweeping on
        every use.
        """
        return self.enabled and random.randint(0, GC_PROBABILITY_DIVISOR) == 0

    def gc(self, ttl: float, max_size: float) -> bool:
        """Expire old entries, then evict least recently accessed ones.

        1. Every file whose modification time is at or before ``now - ttl`` is
           deleted, regardless of when it was last accessed.
        2. If the remaining files exceed ``max_size`` bytes, files are deleted
           in order of ascending access time until the total fits.

        Both passes work on snapshots of the directory. Files that vanish or
        cannot be deleted are skipped; the sweep always continues.

        Args:
            ttl: Maximum age in seconds (``float('inf')`` disables expiry)
            max_size: Size budget in bytes (``float('inf')`` disables eviction)

        Returns:
            Always True
        """
        if not self.enabled:
            return True

        cutoff = expiry_cutoff(ttl)
        for path in self.filesystem.list_files(self.root_path):
            stat = self.filesystem.stat(path)
            if stat is None:
                continue
            if stat.st_mtime <= cutoff:
                self.filesystem.unlink(path)

        total_size = self.filesystem.size(self.root_path)
        if total_size > max_size:
            for path, size in self._files_by_access_time():
                if total_size <= max_size:
                    break
                self.filesystem.unlink(path)
                if not path.exists():
                    total_size -= size

        return True

    def _files_by_access_time(self) -> List[Tuple[Path, int]]:
        """Snapshot of (path, size) pairs, least recently accessed first."""
        stats = []
        for path in self.filesystem.list_files(self.root_path):
            stat = self.filesystem.stat(path)
            if stat is None:
                continue
            stats.append((stat.st_atime, str(path), path, stat.st_size))

        stats.sort(key=lambda item: (item[0], item[1]))
        return [(path, size) for _atime, _name, path, size in stats]

    # =========================================================================
    # Inspection
    # =========================================================================

    def total_size(self) -> int:
        """Total bytes stored under the root (0 when disabled)."""
        if not self.enabled:
            return 0
        return self.filesystem.size(self.root_path)

    def entries(self) -> List[EntryInfo]:
        """List current entries, sorted by name."""
        if not self.enabled:
            return []

        entries: List[EntryInfo] = []
        for path in self.filesystem.list_files(self.root_path):
            stat = self.filesystem.stat(path)
            if stat is None:
                continue
            entries.append(
                {
                    "name": path.relative_to(self.root_path).as_posix(),
                    "path": str(path),
                    "size_bytes": stat.st_size,
                    "modified": _iso(stat.st_mtime),
                    "accessed": _iso(stat.st_atime),
                }
            )

        entries.sort(key=lambda entry: entry["name"])
        return entries
