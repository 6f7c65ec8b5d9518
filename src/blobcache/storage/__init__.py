"""Storage primitives for blobcache."""

from blobcache.storage.filesystem import Filesystem

__all__ = ["Filesystem"]
