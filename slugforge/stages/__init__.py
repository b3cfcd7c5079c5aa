"""Provisioning stages — registry mapping stage_id to stage class.

Usage::

    from slugforge.stages import STAGE_ORDER, STAGE_REGISTRY

    stage = STAGE_REGISTRY["s0_resolve_version"](services)
    context, output_hash = stage.run_stage(context)
"""

from __future__ import annotations

from slugforge.stages.base import BaseStage, BuildContext, StageExecutionError
from slugforge.stages.s0_resolve_version import ResolveVersionStage
from slugforge.stages.s1_install_runtime import InstallRuntimeStage
from slugforge.stages.s2_environment import EnvironmentStage
from slugforge.stages.s3_load_cache import LoadCacheStage
from slugforge.stages.s4_install_dependencies import InstallDependenciesStage
from slugforge.stages.s5_persist_cache import PersistCacheStage

# ---------------------------------------------------------------------------
# Stage registry: stage_id -> stage class
# ---------------------------------------------------------------------------

STAGE_REGISTRY: dict[str, type[BaseStage]] = {
    "s0_resolve_version": ResolveVersionStage,
    "s1_install_runtime": InstallRuntimeStage,
    "s2_environment": EnvironmentStage,
    "s3_load_cache": LoadCacheStage,
    "s4_install_dependencies": InstallDependenciesStage,
    "s5_persist_cache": PersistCacheStage,
}

# Execution order.
STAGE_ORDER: list[str] = [
    "s0_resolve_version",
    "s1_install_runtime",
    "s2_environment",
    "s3_load_cache",
    "s4_install_dependencies",
    "s5_persist_cache",
]

__all__ = [
    "BaseStage",
    "BuildContext",
    "StageExecutionError",
    "STAGE_REGISTRY",
    "STAGE_ORDER",
    "ResolveVersionStage",
    "InstallRuntimeStage",
    "EnvironmentStage",
    "LoadCacheStage",
    "InstallDependenciesStage",
    "PersistCacheStage",
]
