"""Artifact fetching — download named tarballs from a base URL and unpack them.

Failures are reported to the caller as ``None``/``False`` so each call site
decides which fatal error (and remediation) applies.
"""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class Fetcher(Protocol):
    """What the pipeline needs from an artifact source."""

    def fetch(self, name: str) -> bytes | None:
        """Return the artifact bytes, or ``None`` on failure."""
        ...

    def fetch_and_unpack(self, name: str, dest: Path) -> bool:
        """Download a tarball and unpack it into *dest*; ``True`` on success."""
        ...


class HttpFetcher:
    """httpx-backed :class:`Fetcher` rooted at *base_url*.

    Parameters
    ----------
    base_url:
        Artifact names are appended to this URL.
    timeout:
        Per-request timeout in seconds.
    client:
        Optional pre-configured client (tests inject a mock transport).
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 120.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(
            follow_redirects=True, timeout=httpx.Timeout(timeout)
        )

    def url_for(self, name: str) -> str:
        return f"{self.base_url}/{name}"

    def fetch(self, name: str) -> bytes | None:
        url = self.url_for(name)
        try:
            response = self._client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Fetch failed for %s: %s", url, exc)
            return None
        return response.content

    def fetch_and_unpack(self, name: str, dest: Path) -> bool:
        payload = self.fetch(name)
        if payload is None:
            return False
        dest = Path(dest)
        dest.mkdir(parents=True, exist_ok=True)
        try:
            with tarfile.open(fileobj=io.BytesIO(payload), mode="r:*") as archive:
                archive.extractall(dest, filter="data")
        except (tarfile.TarError, OSError) as exc:
            logger.warning("Unpack failed for %s into %s: %s", name, dest, exc)
            return False
        return True

    @property
    def closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpFetcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
