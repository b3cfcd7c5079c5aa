"""Directory-backed cache store — persists build paths across builds.

Storage layout mirrors the build directory: ``{cache_root}/{relative_path}``.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class CacheStore(Protocol):
    """What the pipeline needs from cross-build blob storage."""

    def load(self, path: str) -> None: ...

    def store(self, path: str) -> None: ...

    def clear(self, path: str) -> None: ...

    def exists(self, path: str) -> bool: ...


class DirectoryCacheStore:
    """Copies relative paths between the build directory and a cache directory.

    Parameters
    ----------
    build_dir:
        The build workspace paths are relative to.
    cache_dir:
        Durable directory that survives across builds.
    """

    def __init__(self, build_dir: Path, cache_dir: Path) -> None:
        self._build = Path(build_dir)
        self._cache = Path(cache_dir)
        self._cache.mkdir(parents=True, exist_ok=True)

    def load(self, path: str) -> None:
        """Copy ``cache/path`` into ``build/path``, merging over what exists."""
        _copy(self._cache / path, self._build / path)

    def store(self, path: str) -> None:
        """Replace ``cache/path`` with the current ``build/path``."""
        source = self._build / path
        self.clear(path)
        if source.exists() or source.is_symlink():
            _copy(source, self._cache / path)

    def clear(self, path: str) -> None:
        _remove(self._cache / path)

    def exists(self, path: str) -> bool:
        return (self._cache / path).exists()


def _copy(source: Path, dest: Path) -> None:
    if source.is_dir() and not source.is_symlink():
        shutil.copytree(source, dest, symlinks=True, dirs_exist_ok=True)
    elif source.exists() or source.is_symlink():
        dest.parent.mkdir(parents=True, exist_ok=True)
        _remove(dest)
        shutil.copy2(source, dest, follow_symlinks=False)


def _remove(path: Path) -> None:
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.is_dir():
        shutil.rmtree(path)
