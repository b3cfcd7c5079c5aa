"""Stage 3 — Load Cache.

Loads the cache, observes the installed runtimes, and purges the bundler
cache when the fingerprint no longer matches.
"""

from __future__ import annotations

from slugforge.models.versioning import RuntimeVersion
from slugforge.stages.base import BaseStage, BuildContext


class LoadCacheStage(BaseStage):
    """Stage 3: cache load and validation."""

    @property
    def stage_id(self) -> str:
        return "s3_load_cache"

    @property
    def display_name(self) -> str:
        return "Load Cache"

    def execute(self, context: BuildContext) -> BuildContext:
        manager = self.services.cache_manager
        installer = self.services.dependency_installer

        def reinstall(version: RuntimeVersion) -> None:
            installer.install_managed_gems(version, context.vendor_bases[version.identifier])

        manager.load()
        decision = manager.reconcile(context.versions, context.runtime_pairs(), reinstall)
        return context.evolve(cache_decision=decision)
