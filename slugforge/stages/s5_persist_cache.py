"""Stage 5 — Persist Cache.

Reached only after every dependency install succeeded.
"""

from __future__ import annotations

from slugforge.stages.base import BaseStage, BuildContext


class PersistCacheStage(BaseStage):
    """Stage 5: record the fingerprint and store the bundler cache."""

    @property
    def stage_id(self) -> str:
        return "s5_persist_cache"

    @property
    def display_name(self) -> str:
        return "Persist Cache"

    def execute(self, context: BuildContext) -> BuildContext:
        fingerprint = self.services.cache_manager.persist()
        return context.evolve(fingerprint=fingerprint)
