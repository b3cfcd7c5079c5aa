"""Stage 0 — Resolve Runtime Version.

Checks the Gemfile.lock precondition before anything is fetched, drops a
checked-in ``vendor/bundle``, then resolves and validates the runtime
version and decides the artifact plan.
"""

from __future__ import annotations

import logging

from slugforge.stages.base import BaseStage, BuildContext

logger = logging.getLogger(__name__)


class ResolveVersionStage(BaseStage):
    """Stage 0: determine which runtime(s) this build uses."""

    @property
    def stage_id(self) -> str:
        return "s0_resolve_version"

    @property
    def display_name(self) -> str:
        return "Resolve Runtime Version"

    def execute(self, context: BuildContext) -> BuildContext:
        lockfile = self.services.dependency_installer.require_manifest()
        self.services.artifact_installer().remove_vendor_bundle()

        resolver = self.services.version_resolver(context.env, lockfile)
        resolved = resolver.resolve()
        logger.info(
            "Resolved %s from %s", ", ".join(resolved.identifiers), resolved.source.value
        )
        return context.evolve(lockfile=lockfile, resolved=resolved)
