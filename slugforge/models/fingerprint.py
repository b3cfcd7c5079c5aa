"""Cache fingerprint model — the signature that decides cache validity."""

from __future__ import annotations

import yaml
from pydantic import BaseModel, ConfigDict, Field


class CacheFingerprint(BaseModel):
    """Observed runtime and gem-manager versions for one build.

    ``runtimes`` maps the literal ``ruby -v`` output of every installed
    runtime to the ``gem -v`` output of its bundled gem manager. Only the
    key set participates in the purge decision.
    """

    model_config = ConfigDict(frozen=True)

    runtimes: dict[str, str] = Field(default_factory=dict)
    pipeline_version: str = ""
    bundler_version: str = ""

    @property
    def runtime_keys(self) -> frozenset[str]:
        return frozenset(self.runtimes)

    def same_runtimes(self, other: CacheFingerprint) -> bool:
        """Compare runtime identifiers as a set, ignoring order and values."""
        return self.runtime_keys == other.runtime_keys

    def runtimes_yaml(self) -> bytes:
        """Serialize the runtime mapping for the metadata store."""
        return yaml.safe_dump(self.runtimes, default_flow_style=False).encode("utf-8")

    @staticmethod
    def parse_runtimes(data: bytes) -> dict[str, str]:
        """Read a runtime mapping written by :meth:`runtimes_yaml`.

        Older builds may have stored a plain list of runtime identifiers;
        those load with empty gem-manager versions.
        """
        loaded = yaml.safe_load(data.decode("utf-8")) or {}
        if isinstance(loaded, list):
            return {str(item): "" for item in loaded}
        if not isinstance(loaded, dict):
            raise ValueError(f"Unreadable runtime fingerprint: {loaded!r}")
        return {str(k): str(v) for k, v in loaded.items()}
