"""Stage 1 — Install Runtime.

Walks the artifact plan decided in Stage 0 in order: the JVM when a runtime
needs one, bootstrap toolchains, the runtimes themselves, then helper
binaries. Managed gems are left to the dependency stages.
"""

from __future__ import annotations

import logging

from slugforge.models.versioning import InstallRule, RuntimeVersion
from slugforge.stages.base import BaseStage, BuildContext

logger = logging.getLogger(__name__)


class InstallRuntimeStage(BaseStage):
    """Stage 1: materialize runtimes and helper binaries."""

    @property
    def stage_id(self) -> str:
        return "s1_install_runtime"

    @property
    def display_name(self) -> str:
        return "Install Runtime"

    def execute(self, context: BuildContext) -> BuildContext:
        resolved = context.require_resolved()
        installer = self.services.artifact_installer(resolved.catalog)
        by_id: dict[str, RuntimeVersion] = {v.identifier: v for v in resolved.versions}

        fetched: list[str] = []
        binaries: list[str] = []
        for rule in resolved.artifacts:
            if rule.install_rule == InstallRule.SECONDARY_VM:
                if installer.install_secondary_vm(resolved.versions):
                    fetched.append(rule.artifact_name)
            elif rule.install_rule == InstallRule.BOOTSTRAP_RUNTIME:
                if installer.install_bootstrap_runtime(by_id[rule.runtime]):
                    fetched.append(rule.artifact_name)
            elif rule.install_rule == InstallRule.RUNTIME:
                if installer.install_runtime(by_id[rule.runtime]):
                    fetched.append(rule.artifact_name)
            elif rule.install_rule == InstallRule.BINARY:
                binaries.append(rule.artifact_name)

        if binaries:
            installer.install_binaries(binaries)
            fetched.extend(binaries)

        install_bins = {
            v.identifier: installer.install_bin_path(v) for v in resolved.versions
        }
        return context.evolve(
            install_bins=install_bins,
            fetched=context.fetched + tuple(fetched),
        )
