"""Stage 4 — Install Dependencies.

Makes sure the managed gems are present, then runs Bundler for every active
runtime, followed by ``rake assets:precompile`` when the app defines it.
The first failure aborts the build. Apps with a ``config/`` directory get
a database config that reads ``DATABASE_URL`` at boot.
"""

from __future__ import annotations

from slugforge.core.database_config import write_database_yml
from slugforge.core.dependency_installer import DependencyInstallResult
from slugforge.stages.base import BaseStage, BuildContext


class InstallDependenciesStage(BaseStage):
    """Stage 4: ``bundle install`` and asset precompilation."""

    @property
    def stage_id(self) -> str:
        return "s4_install_dependencies"

    @property
    def display_name(self) -> str:
        return "Install Dependencies"

    def execute(self, context: BuildContext) -> BuildContext:
        installer = self.services.dependency_installer
        rake = self.services.rake_tasks

        results: list[DependencyInstallResult] = []
        precompiled: list[str] = []
        for version, env in context.runtime_pairs():
            vendor_base = context.vendor_bases[version.identifier]
            if not installer.managed_gems_installed(vendor_base):
                installer.install_managed_gems(version, vendor_base)
            results.append(installer.install(version, env, vendor_base))
            if rake.precompile_assets(env):
                precompiled.append(version.identifier)

        write_database_yml(context.build_dir, self.services.settings.database_yml_template)
        return context.evolve(
            dependencies=context.dependencies + tuple(results),
            assets_precompiled=context.assets_precompiled + tuple(precompiled),
        )
