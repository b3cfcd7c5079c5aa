"""Cache lifecycle and fingerprint-driven invalidation.

One build walks ``NEW -> LOADED -> VALIDATED -> {PURGED | KEPT} -> PERSISTED``.
The fingerprint is observed by running each installed interpreter and its gem
manager. The bundler cache is purged, whole, when the set of observed
runtimes differs from the set recorded by the last successful build, or
when a bundler cache exists that predates bundler version tracking.

Persistence only happens after dependencies installed successfully; a
failed build leaves metadata and the cache store as loaded (or as purged).
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from slugforge.collaborators.cache_store import CacheStore
from slugforge.collaborators.metadata_store import MetadataStore
from slugforge.collaborators.shell import ProcessRunner
from slugforge.core.errors import BuildError, CacheFingerprintMismatch
from slugforge.core.stage_machine import InvalidTransitionError
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment
from slugforge.models.fingerprint import CacheFingerprint
from slugforge.models.stages import CACHE_TRANSITIONS, CacheState
from slugforge.models.versioning import RuntimeVersion

logger = logging.getLogger(__name__)

RUBY_VERSION_INFO_KEY = "ruby_version_info"
PIPELINE_VERSION_KEY = "buildpack_version"
BUNDLER_VERSION_KEY = "bundler_version"


class CacheDecision(BaseModel):
    """Outcome of validating the loaded cache against this build."""

    model_config = ConfigDict(frozen=True)

    fingerprint: CacheFingerprint
    previous: CacheFingerprint | None = None
    purge: bool = False
    reason: str = ""


class CacheManager:
    """Owns the bundler cache and the fingerprint metadata for one build.

    Parameters
    ----------
    build_dir:
        The application checkout.
    cache_store:
        Durable cross-build storage.
    metadata:
        Durable key/value metadata (already loaded).
    runner:
        Used to observe installed runtime versions.
    config:
        Pinned pipeline versions and slug layout.
    """

    def __init__(
        self,
        build_dir: Path,
        cache_store: CacheStore,
        metadata: MetadataStore,
        runner: ProcessRunner,
        config: PipelineConfig | None = None,
    ) -> None:
        self._build_dir = Path(build_dir)
        self._cache = cache_store
        self._metadata = metadata
        self._runner = runner
        self._config = config or PipelineConfig()
        self._state = CacheState.NEW
        self._previous: CacheFingerprint | None = None
        self._decision: CacheDecision | None = None
        self.mismatch: CacheFingerprintMismatch | None = None

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def decision(self) -> CacheDecision | None:
        return self._decision

    # ------------------------------------------------------------------
    # Loaded
    # ------------------------------------------------------------------

    def load(self) -> CacheFingerprint | None:
        """Pull cached vendor contents into the build and read the prior fingerprint."""
        self._advance(CacheState.LOADED)
        self._cache.load(self._config.vendor_dir)
        self._previous = self.read_persisted()
        return self._previous

    def read_persisted(self) -> CacheFingerprint | None:
        """The fingerprint recorded by the last successful build, if any."""
        if not self._metadata.exists(RUBY_VERSION_INFO_KEY):
            return None
        runtimes = CacheFingerprint.parse_runtimes(
            self._metadata.read(RUBY_VERSION_INFO_KEY)
        )
        return CacheFingerprint(
            runtimes=runtimes,
            pipeline_version=self._read_tag(PIPELINE_VERSION_KEY),
            bundler_version=self._read_tag(BUNDLER_VERSION_KEY),
        )

    def _read_tag(self, key: str) -> str:
        if not self._metadata.exists(key):
            return ""
        return self._metadata.read(key).decode("utf-8").strip()

    # ------------------------------------------------------------------
    # Validated
    # ------------------------------------------------------------------

    def observe(
        self, runtimes: Sequence[tuple[RuntimeVersion, BuildEnvironment]]
    ) -> CacheFingerprint:
        """Run ``ruby -v`` and ``gem -v`` under each runtime's environment."""
        observed: dict[str, str] = {}
        for version, env in runtimes:
            ruby = self._runner.run(["ruby", "-v"], env=env, cwd=self._build_dir)
            gem = self._runner.run(["gem", "-v"], env=env, cwd=self._build_dir)
            if not ruby.success or not gem.success:
                raise BuildError(
                    f"Installed runtime {version} did not report its version.",
                    remediation="Retry the build; if it persists, the runtime artifact is broken.",
                )
            observed[ruby.stripped] = gem.stripped
        return CacheFingerprint(
            runtimes=observed,
            pipeline_version=self._config.pipeline_version,
            bundler_version=self._config.bundler_version,
        )

    def validate(
        self, runtimes: Sequence[tuple[RuntimeVersion, BuildEnvironment]]
    ) -> CacheDecision:
        """Compute the current fingerprint and decide whether to purge."""
        self._advance(CacheState.VALIDATED)
        current = self.observe(runtimes)
        previous = self._previous
        bundler_cache_present = (self._build_dir / self._config.bundler_cache).exists()

        reason = ""
        if previous is not None and not current.same_runtimes(previous):
            reason = "Ruby version change detected. Clearing bundler cache."
        elif bundler_cache_present and not self._metadata.exists(BUNDLER_VERSION_KEY):
            reason = "Old bundler cache detected. Clearing bundler cache."

        if reason:
            self.mismatch = CacheFingerprintMismatch(
                previous.runtime_keys if previous else (),
                current.runtime_keys,
                reason,
            )
            logger.info("%s", self.mismatch)

        self._decision = CacheDecision(
            fingerprint=current,
            previous=previous,
            purge=bool(reason),
            reason=reason,
        )
        return self._decision

    # ------------------------------------------------------------------
    # Purged / Kept
    # ------------------------------------------------------------------

    def purge(
        self,
        versions: Sequence[RuntimeVersion],
        reinstall: Callable[[RuntimeVersion], None],
    ) -> None:
        """Remove the whole bundler cache, then reinstall managed gems per runtime."""
        self._advance(CacheState.PURGED)
        bundler_cache = self._build_dir / self._config.bundler_cache
        if bundler_cache.exists():
            shutil.rmtree(bundler_cache)
        self._cache.clear(self._config.bundler_cache)
        for version in versions:
            reinstall(version)

    def keep(self) -> None:
        self._advance(CacheState.KEPT)

    def reconcile(
        self,
        versions: Sequence[RuntimeVersion],
        runtimes: Sequence[tuple[RuntimeVersion, BuildEnvironment]],
        reinstall: Callable[[RuntimeVersion], None],
    ) -> CacheDecision:
        """Validate, then purge or keep as decided."""
        decision = self.validate(runtimes)
        if decision.purge:
            self.purge(versions, reinstall)
        else:
            self.keep()
        return decision

    # ------------------------------------------------------------------
    # Persisted
    # ------------------------------------------------------------------

    def persist(self) -> CacheFingerprint:
        """Record the fingerprint and store the bundler cache.

        Only call after dependency installation succeeded.
        """
        if self._decision is None:
            raise InvalidTransitionError("Cannot persist a cache that was never validated")
        self._advance(CacheState.PERSISTED)
        fingerprint = self._decision.fingerprint

        self._metadata.write(
            RUBY_VERSION_INFO_KEY, fingerprint.runtimes_yaml(), touches_fingerprint=True
        )
        self._metadata.write(
            PIPELINE_VERSION_KEY, fingerprint.pipeline_version, touches_fingerprint=True
        )
        self._metadata.write(
            BUNDLER_VERSION_KEY, fingerprint.bundler_version, touches_fingerprint=True
        )
        self._metadata.save()

        self._cache.store(self._config.bundle_config_dir)
        self._cache.store(self._config.bundler_cache)
        return fingerprint

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _advance(self, target: CacheState) -> None:
        allowed = CACHE_TRANSITIONS.get(self._state, set())
        if target not in allowed:
            raise InvalidTransitionError(
                f"Cannot move cache from {self._state.value} to {target.value}"
            )
        logger.debug("cache %s -> %s", self._state.value, target.value)
        self._state = target
