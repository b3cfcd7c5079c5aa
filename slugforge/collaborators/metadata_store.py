"""Build metadata store — small key/value files under ``vendor/heroku``.

Keys that participate in cache-validity decisions (``touches_fingerprint``)
are held in memory until :meth:`save`, so a build that fails before saving
never persists them. Informational keys are written through immediately.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

from slugforge.collaborators.cache_store import CacheStore

logger = logging.getLogger(__name__)


class MetadataStore(Protocol):
    """What the pipeline needs from durable key/value metadata."""

    def read(self, key: str) -> bytes: ...

    def write(self, key: str, data: bytes | str, touches_fingerprint: bool = False) -> None: ...

    def exists(self, key: str) -> bool: ...

    def save(self) -> None: ...


class DirectoryMetadataStore:
    """Metadata files in ``{build_dir}/{folder}``, persisted through a cache store.

    Parameters
    ----------
    build_dir:
        The build workspace.
    cache_store:
        Where the metadata folder is persisted between builds.
    folder:
        Relative folder holding one file per key. Its presence after
        :meth:`load` marks an app that has been built before.
    """

    def __init__(
        self,
        build_dir: Path,
        cache_store: CacheStore,
        folder: str = "vendor/heroku",
    ) -> None:
        self._folder = folder
        self._dir = Path(build_dir) / folder
        self._cache = cache_store
        self._pending: dict[str, bytes] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    def load(self) -> None:
        """Pull the metadata folder from the cache into the build."""
        self._cache.load(self._folder)

    def read(self, key: str) -> bytes:
        if key in self._pending:
            return self._pending[key]
        path = self._dir / key
        if not path.exists():
            raise KeyError(key)
        return path.read_bytes()

    def read_text(self, key: str) -> str:
        return self.read(key).decode("utf-8").strip()

    def write(
        self, key: str, data: bytes | str, touches_fingerprint: bool = False
    ) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        if touches_fingerprint:
            self._pending[key] = payload
            return
        self._write_file(key, payload)
        self._cache.store(self._folder)

    def exists(self, key: str) -> bool:
        return key in self._pending or (self._dir / key).exists()

    def save(self) -> None:
        """Flush pending keys and persist the folder."""
        for key, payload in self._pending.items():
            self._write_file(key, payload)
        self._pending.clear()
        self._dir.mkdir(parents=True, exist_ok=True)
        self._cache.store(self._folder)
        logger.debug("Saved build metadata to %s", self._folder)

    def _write_file(self, key: str, payload: bytes) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        (self._dir / key).write_bytes(payload)
