"""Validation and bookkeeping of watched root folders."""

import os
import threading
from pathlib import Path
from typing import FrozenSet, Set, Union

from .exceptions import (
    RootNotDirectoryError,
    RootNotFoundError,
    RootNotReadableError,
    RootOverlapError,
)


class RootManager:
    """
    Thread-safe set of root folders being watched.

    Every root is resolved to an absolute path and checked when it is added:
    it must exist, be a directory, be listable, and must not sit inside (or
    contain) another root, since a recursive watch on both would report each
    change twice.
    """

    def __init__(self):
        self._roots: Set[Path] = set()
        self._lock = threading.RLock()

    def add_root(self, path: Union[str, Path]) -> Path:
        """
        Validate and add a root folder.

        Args:
            path: Path to the root folder

        Returns:
            The resolved root path

        Raises:
            RootNotFoundError: If the path doesn't exist
            RootNotDirectoryError: If the path is not a directory
            RootNotReadableError: If the directory cannot be listed
            RootOverlapError: If the root is, contains, or is inside a watched root
        """
        path = Path(path).expanduser().resolve()

        if not path.exists():
            raise RootNotFoundError(f"Root folder does not exist: {path}")
        if not path.is_dir():
            raise RootNotDirectoryError(f"Root is not a directory: {path}")
        if not os.access(path, os.R_OK | os.X_OK):
            raise RootNotReadableError(f"Root folder is not readable: {path}")
        try:
            with os.scandir(path):
                pass
        except OSError as e:
            raise RootNotReadableError(f"Root folder is not readable: {path}: {e}") from e

        with self._lock:
            for existing in self._roots:
                if path == existing:
                    raise RootOverlapError(
                        f"Root already being watched: {path}",
                        str(existing), str(path), "duplicate",
                    )
                if _is_relative_to(path, existing):
                    raise RootOverlapError(
                        f"'{path}' is already inside watched root '{existing}'",
                        str(existing), str(path), "child",
                    )
                if _is_relative_to(existing, path):
                    raise RootOverlapError(
                        f"'{path}' contains already-watched root '{existing}'",
                        str(existing), str(path), "parent",
                    )

            self._roots.add(path)
            return path

    def get_roots(self) -> FrozenSet[Path]:
        """
        Get the current set of root folders.

        Returns:
            Frozen set of root paths
        """
        with self._lock:
            return frozenset(self._roots)

    def clear(self) -> int:
        """
        Remove all roots.

        Returns:
            Number of roots removed
        """
        with self._lock:
            count = len(self._roots)
            self._roots.clear()
            return count

    def __len__(self) -> int:
        """Return the number of watched roots."""
        with self._lock:
            return len(self._roots)


def _is_relative_to(path: Path, other: Path) -> bool:
    try:
        path.relative_to(other)
        return True
    except ValueError:
        return False
