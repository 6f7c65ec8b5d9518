"""Filesystem primitives used by the file cache.

Wraps the handful of local file system operations the cache needs beyond
plain reads and writes: recursive directory creation, recursive size
computation and snapshotting the files under a directory.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import List, Optional, Union

logger = logging.getLogger(__name__)


class Filesystem:
    """Local file system helpers.

    Listing, sizing and deleting tolerate files disappearing underneath them:
    a path that vanishes or cannot be stat-ed after listing is skipped.

    Examples:
        >>> fs = Filesystem()
        >>> fs.ensure_directory_exists('/tmp/cache/sub')
        >>> fs.size('/tmp/cache')
        0
    """

    def ensure_directory_exists(self, path: Union[str, Path]) -> None:
        """Create a directory and its parents if needed.

        Args:
            path: Directory path to create

        Raises:
            OSError: If the directory cannot be created, or a non-directory
                already exists at ``path``
        """
        path = Path(path)
        if path.is_dir():
            return
        path.mkdir(parents=True, exist_ok=True)

    def list_files(self, path: Union[str, Path]) -> List[Path]:
        """Return every regular file below ``path``, recursively.

        The result is a snapshot; changes made afterwards are not reflected.
        A missing directory yields an empty list.
        """
        root = Path(path)
        if not root.is_dir():
            return []

        files = []
        for dirpath, _dirnames, filenames in os.walk(root):
            for filename in filenames:
                file_path = Path(dirpath) / filename
                if file_path.is_file():
                    files.append(file_path)
        return files

    def size(self, path: Union[str, Path]) -> int:
        """Return the size in bytes of a file, or of every file below a directory.

        Args:
            path: File or directory

        Returns:
            Total size in bytes, 0 if ``path`` does not exist
        """
        path = Path(path)
        if not path.is_dir():
            stat = self.stat(path)
            return stat.st_size if stat is not None else 0

        total = 0
        for file_path in self.list_files(path):
            stat = self.stat(file_path)
            if stat is not None:
                total += stat.st_size
        return total

    def stat(self, path: Union[str, Path]) -> Optional[os.stat_result]:
        """Stat a file, returning None instead of raising if it fails.

        A file that is already gone is not logged.
        """
        try:
            return Path(path).stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Could not stat {path}: {e}")
            return None

    def copy(self, source: Union[str, Path], target: Union[str, Path]) -> None:
        """Copy file contents from ``source`` to ``target``.

        Raises:
            OSError: If either side cannot be accessed
        """
        shutil.copyfile(source, target)

    def empty_directory(self, path: Union[str, Path]) -> None:
        """Delete everything inside ``path`` but keep the directory itself.

        Raises:
            OSError: If a child cannot be removed
        """
        root = Path(path)
        if not root.is_dir():
            return

        for child in root.iterdir():
            try:
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            except FileNotFoundError:
                continue

    def unlink(self, path: Union[str, Path]) -> bool:
        """Delete a file, returning False instead of raising if it fails.

        A file that is already gone is not logged.
        """
        try:
            Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Could not delete {path}: {e}")
            return False
        return True
