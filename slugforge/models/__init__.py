"""Slugforge data models — all Pydantic v2, all frozen (immutable)."""

from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment, ProfileEntry, ProfileScript
from slugforge.models.fingerprint import CacheFingerprint
from slugforge.models.stages import (
    CACHE_TRANSITIONS,
    DEFAULT_STAGE_DEFINITIONS,
    VALID_TRANSITIONS,
    CacheState,
    StageDefinition,
    StageState,
    StageTransition,
)
from slugforge.models.versioning import (
    ArtifactRule,
    InstallRule,
    ResolvedVersions,
    RuntimeVersion,
    VersionSource,
)

__all__ = [
    # config
    "PipelineConfig",
    # environment
    "BuildEnvironment",
    "ProfileEntry",
    "ProfileScript",
    # fingerprint
    "CacheFingerprint",
    # stages
    "StageState",
    "StageDefinition",
    "StageTransition",
    "CacheState",
    "VALID_TRANSITIONS",
    "CACHE_TRANSITIONS",
    "DEFAULT_STAGE_DEFINITIONS",
    # versioning
    "RuntimeVersion",
    "VersionSource",
    "InstallRule",
    "ArtifactRule",
    "ResolvedVersions",
]
