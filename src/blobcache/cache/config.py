"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from blobcache.cache.validation import parse_size


def config_home() -> Path:
    """Directory holding the config file and the default cache root."""
    return Path.home() / ".blobcache"


def default_config_path() -> Path:
    return config_home() / "config.json"


def default_cache_dir() -> Path:
    # Must not contain config.json: every file under the root is an entry
    return config_home() / "files"


@dataclass
class CacheConfig:
    """Configuration for a file cache.

    Attributes:
        cache_dir: Root directory for cache storage (default ~/.blobcache/files)
        whitelist: Characters allowed in entry filenames, as the body of a
            regex character class. Anything else is replaced with ``-``.
        ttl: Entries whose modification time is older than this many seconds
            are expired by ``gc`` (six months)
        max_size: Total size budget in bytes enforced by ``gc``. Strings such
            as ``"300MiB"`` are parsed on construction.
    """

    cache_dir: Optional[Path] = None
    whitelist: str = "a-z0-9."
    ttl: int = 15552000  # 6 months
    max_size: Union[int, float, str] = 300 * 1024 * 1024  # 300 MiB

    def __post_init__(self):
        """Normalize cache_dir to an expanded Path and max_size to bytes."""
        if self.cache_dir is None:
            self.cache_dir = default_cache_dir()
        self.cache_dir = Path(self.cache_dir).expanduser()
        self.max_size = parse_size(self.max_size)
        self.ttl = int(self.ttl)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses ~/.blobcache/config.json.

        Returns:
            CacheConfig instance (defaults if the file does not exist)
        """
        if config_path is None:
            config_path = default_config_path()

        if not Path(config_path).exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses ~/.blobcache/config.json.
        """
        if config_path is None:
            config_path = default_config_path()

        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "whitelist": self.whitelist,
            "ttl": self.ttl,
            "max_size": self.max_size,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            BLOBCACHE_DIR: Cache directory path
            BLOBCACHE_WHITELIST: Allowed filename characters
            BLOBCACHE_TTL: TTL in seconds
            BLOBCACHE_MAX_SIZE: Size budget (bytes or e.g. "300MiB")

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("BLOBCACHE_DIR"):
            config.cache_dir = Path(os.getenv("BLOBCACHE_DIR")).expanduser()

        if os.getenv("BLOBCACHE_WHITELIST"):
            config.whitelist = os.getenv("BLOBCACHE_WHITELIST")

        if os.getenv("BLOBCACHE_TTL"):
            config.ttl = int(os.getenv("BLOBCACHE_TTL"))

        if os.getenv("BLOBCACHE_MAX_SIZE"):
            config.max_size = parse_size(os.getenv("BLOBCACHE_MAX_SIZE"))

        return config


# Global cache configuration instance
_global_config: Optional[CacheConfig] = None


def get_global_config() -> CacheConfig:
    """Get global cache configuration.

    Returns:
        Global CacheConfig instance
    """
    global _global_config
    if _global_config is None:
        # Config file if present, otherwise environment over defaults
        if default_config_path().exists():
            try:
                _global_config = CacheConfig.load()
            except (OSError, ValueError, TypeError):
                _global_config = CacheConfig.from_env()
        else:
            _global_config = CacheConfig.from_env()
    return _global_config


def set_global_config(config: Optional[CacheConfig]) -> None:
    """Set global cache configuration.

    Args:
        config: CacheConfig instance to use globally (None resets it)
    """
    global _global_config
    _global_config = config
