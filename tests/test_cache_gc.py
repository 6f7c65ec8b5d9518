"""Tests for file cache garbage collection (expiry and size eviction)."""

import os
import time
from pathlib import Path

import pytest

from blobcache.cache.manager import FileCache
from blobcache.io import NullIO
from blobcache.storage.filesystem import Filesystem

INF = float("inf")


@pytest.fixture
def cache(tmp_path):
    """Create test cache."""
    return FileCache(NullIO(), tmp_path / "cache")


def put(cache, key, size, mtime=None, atime=None):
    """Write an entry of ``size`` bytes and set its timestamps."""
    cache.write(key, b"x" * size)
    path = Path(cache.get_root()) / cache.sanitize(key)
    now = time.time()
    os.utime(path, (atime if atime is not None else now, mtime if mtime is not None else now))
    return path


class TestExpiry:
    """Test the age-based expiry pass."""

    def test_only_old_file_expires(self, cache):
        """Test that files older than the TTL are removed, fresh ones kept."""
        ttl = 3600
        now = time.time()
        old = put(cache, "old", 5, mtime=now - 2 * ttl)
        fresh = put(cache, "fresh", 5, mtime=now)

        assert cache.gc(ttl, INF) is True

        assert not old.exists()
        assert fresh.exists()

    def test_expiry_ignores_recent_access(self, cache):
        """Test that TTL applies even to recently accessed entries."""
        now = time.time()
        path = put(cache, "old", 5, mtime=now - 7200, atime=now)

        cache.gc(3600, INF)

        assert not path.exists()

    def test_expiry_runs_under_budget(self, cache):
        """Test that expiry happens even when the cache is tiny."""
        path = put(cache, "old", 1, mtime=time.time() - 7200)

        cache.gc(3600, 10**9)

        assert not path.exists()

    def test_zero_ttl_expires_everything(self, cache):
        """Test ttl=0 removes every file modified up to now."""
        put(cache, "a", 5, mtime=time.time() - 1)
        put(cache, "b", 5, mtime=time.time() - 1)

        cache.gc(0, INF)

        assert cache.entries() == []

    def test_infinite_ttl_expires_nothing(self, cache):
        """Test ttl=inf disables expiry."""
        path = put(cache, "ancient", 5, mtime=1)

        cache.gc(INF, INF)

        assert path.exists()

    def test_expiry_is_recursive(self, cache, tmp_path):
        """Test files in subdirectories of the root are expired too."""
        sub = Path(cache.get_root()) / "sub"
        sub.mkdir()
        nested = sub / "nested"
        nested.write_bytes(b"data")
        os.utime(nested, (1, 1))

        cache.gc(3600, INF)

        assert not nested.exists()


class TestSizeEviction:
    """Test the size-based eviction pass."""

    def test_least_recently_accessed_evicted_first(self, cache):
        """Test 10/20/30 byte files with max 30 leave only the newest."""
        now = time.time()
        a = put(cache, "a", 10, atime=now - 300)
        b = put(cache, "b", 20, atime=now - 200)
        c = put(cache, "c", 30, atime=now - 100)

        assert cache.gc(INF, 30) is True

        assert not a.exists()
        assert not b.exists()
        assert c.exists()

    def test_newest_evicted_when_alone_over_budget(self, cache):
        """Test eviction keeps going while the remaining total is over budget."""
        now = time.time()
        put(cache, "a", 10, atime=now - 300)
        put(cache, "b", 20, atime=now - 200)
        put(cache, "c", 30, atime=now - 100)

        assert cache.gc(INF, 25) is True

        assert cache.entries() == []

    def test_stops_once_within_budget(self, cache):
        """Test eviction stops as soon as the total fits."""
        now = time.time()
        a = put(cache, "a", 10, atime=now - 300)
        b = put(cache, "b", 20, atime=now - 200)
        c = put(cache, "c", 30, atime=now - 100)

        cache.gc(INF, 50)

        assert not a.exists()
        assert b.exists()
        assert c.exists()
        assert cache.total_size() == 50

    def test_access_order_not_name_or_size(self, cache):
        """Test ordering is by access time, not by name or size."""
        now = time.time()
        big_old = put(cache, "z-big", 30, atime=now - 500)
        small_new = put(cache, "a-small", 10, atime=now - 10)

        cache.gc(INF, 10)

        assert not big_old.exists()
        assert small_new.exists()

    def test_under_budget_untouched(self, cache):
        """Test nothing is evicted when the total fits."""
        put(cache, "a", 10)
        put(cache, "b", 10)

        cache.gc(INF, 20)

        assert len(cache.entries()) == 2

    def test_zero_max_size_evicts_everything(self, cache):
        """Test max_size=0 removes all remaining files."""
        put(cache, "a", 10)
        put(cache, "b", 1)

        cache.gc(INF, 0)

        assert cache.entries() == []

    def test_empty_files_survive_zero_budget(self, cache):
        """Test that eviction stops once the total reaches zero."""
        big = put(cache, "big", 10, atime=time.time() - 100)
        empty = put(cache, "empty", 0, atime=time.time())

        cache.gc(INF, 0)

        assert not big.exists()
        assert empty.exists()

    def test_expiry_runs_before_eviction(self, cache):
        """Test expired files do not count against the budget."""
        now = time.time()
        expired = put(cache, "expired", 30, mtime=now - 7200, atime=now)
        old_access = put(cache, "cold", 10, atime=now - 500)
        recent = put(cache, "hot", 10, atime=now - 10)

        cache.gc(3600, 20)

        assert not expired.exists()
        assert old_access.exists()
        assert recent.exists()

    def test_copy_to_protects_entry(self, cache, tmp_path):
        """Test copy_to marks an entry as recently used."""
        now = time.time()
        first = put(cache, "first", 10, atime=now - 300, mtime=now - 300)
        second = put(cache, "second", 10, atime=now - 200, mtime=now - 200)

        assert cache.copy_to("first", tmp_path / "out") is True
        cache.gc(INF, 10)

        assert first.exists()
        assert not second.exists()

    def test_read_protects_entry(self, cache):
        """Test read marks an entry as recently used."""
        now = time.time()
        first = put(cache, "first", 10, atime=now - 300)
        second = put(cache, "second", 10, atime=now - 200)

        assert cache.read("first") == b"x" * 10
        cache.gc(INF, 10)

        assert first.exists()
        assert not second.exists()


class TestGcRobustness:
    """Test best-effort behaviour of gc."""

    def test_missing_root_is_noop(self, tmp_path):
        """Test gc when the root vanished after construction."""
        cache = FileCache(NullIO(), tmp_path / "cache")
        Path(cache.get_root()).rmdir()

        assert cache.gc(0, 0) is True

    def test_empty_root_is_noop(self, cache):
        """Test gc on an empty cache."""
        assert cache.gc(0, 0) is True

    def test_vanished_file_does_not_abort_sweep(self, tmp_path):
        """Test a file deleted by someone else mid-sweep is skipped."""

        class RacingFilesystem(Filesystem):
            """Deletes the first file behind gc's back before unlinking."""

            raced = False

            def unlink(self, path):
                if not self.raced:
                    self.raced = True
                    Path(path).unlink()
                return super().unlink(path)

        cache = FileCache(NullIO(), tmp_path / "cache", filesystem=RacingFilesystem())
        now = time.time()
        put(cache, "a", 10, atime=now - 300)
        b = put(cache, "b", 10, atime=now - 200)
        c = put(cache, "c", 10, atime=now - 100)

        assert cache.gc(INF, 10) is True

        assert not b.exists()
        assert c.exists()

    def test_failed_deletion_continues(self, tmp_path):
        """Test an undeletable file is skipped and the next one is tried."""

        class StubbornFilesystem(Filesystem):
            """Refuses to delete one file."""

            def __init__(self, protected):
                self.protected = protected

            def unlink(self, path):
                if Path(path).name == self.protected:
                    return False
                return super().unlink(path)

        cache = FileCache(
            NullIO(), tmp_path / "cache", filesystem=StubbornFilesystem("a")
        )
        now = time.time()
        a = put(cache, "a", 10, atime=now - 300)
        b = put(cache, "b", 10, atime=now - 200)
        c = put(cache, "c", 10, atime=now - 100)

        assert cache.gc(INF, 10) is True

        assert a.exists()
        assert not b.exists()
        assert not c.exists()

    def test_unstatable_file_does_not_abort_sweep(self, tmp_path):
        """Test a listed path that fails to stat is skipped by every pass."""
        loop = tmp_path / "loop"
        os.symlink(tmp_path / "loop-target", loop)
        os.symlink(loop, tmp_path / "loop-target")

        class LoopingFilesystem(Filesystem):
            """Lists a symlink loop alongside the real entries."""

            def list_files(self, path):
                return [loop] + super().list_files(path)

        cache = FileCache(NullIO(), tmp_path / "cache", filesystem=LoopingFilesystem())
        now = time.time()
        a = put(cache, "a", 10, atime=now - 300)
        b = put(cache, "b", 10, atime=now - 100)

        assert cache.gc(3600, 10) is True

        assert not a.exists()
        assert b.exists()
        assert cache.total_size() == 10
        assert [entry["name"] for entry in cache.entries()] == ["b"]
