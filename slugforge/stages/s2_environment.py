"""Stage 2 — Build Environment.

Derives each runtime's build environment and writes its profile.d script.
"""

from __future__ import annotations

from slugforge.models.environment import BuildEnvironment
from slugforge.stages.base import BaseStage, BuildContext


class EnvironmentStage(BaseStage):
    """Stage 2: environment variables for the build and for the deployed app."""

    @property
    def stage_id(self) -> str:
        return "s2_environment"

    @property
    def display_name(self) -> str:
        return "Build Environment"

    def execute(self, context: BuildContext) -> BuildContext:
        builder = self.services.environment_builder

        runtime_envs: dict[str, BuildEnvironment] = {}
        vendor_bases: dict[str, str] = {}
        scripts: list[str] = []
        for version in context.versions:
            install_bin = context.install_bins[version.identifier]
            install_env = builder.install_env(version, context.env, install_bin)
            vendor_base = builder.slug_vendor_base(version, install_env)

            runtime_envs[version.identifier] = builder.build_process_env(
                version, context.env, install_bin
            )
            vendor_bases[version.identifier] = vendor_base

            script = builder.build_profile_script(version, vendor_base)
            builder.write_profile_script(script)
            scripts.append(script.filename)

        return context.evolve(
            runtime_envs=runtime_envs,
            vendor_bases=vendor_bases,
            profile_scripts=tuple(scripts),
        )
