"""Filesystem access used as ground truth during path reconstruction."""
from __future__ import annotations

import os
from typing import Protocol

from todohub.errors import SourceReadError


class FilesystemOracle(Protocol):
    def list_dir(self, path: str) -> list[str]:
        """Return child names of ``path``. Raises SourceReadError when unlistable."""
        ...

    def exists(self, path: str) -> bool:
        ...


class LocalFilesystemOracle:
    """Oracle backed by the live local filesystem.

    Listings are sorted so that "first entry encountered" is stable across runs.
    """

    def list_dir(self, path: str) -> list[str]:
        try:
            return sorted(os.listdir(path))
        except OSError as e:
            raise SourceReadError(path, e) from e

    def exists(self, path: str) -> bool:
        if not path:
            return False
        try:
            return os.path.exists(path)
        except (OSError, ValueError):
            return False
