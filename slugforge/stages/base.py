"""Abstract base stage with enforced lifecycle.

Every concrete stage inherits from BaseStage and implements only ``execute()``.
The ``run_stage()`` wrapper is **not overridable** — it enforces the canonical
lifecycle ordering:

    log start -> execute -> compute_output_hash -> log result

Stages never mutate the context they are given. ``execute()`` returns an
updated copy of the frozen :class:`BuildContext`.
"""

from __future__ import annotations

import abc
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, final

from pydantic import BaseModel, ConfigDict

from slugforge.core.cache_manager import CacheDecision
from slugforge.core.dependency_installer import DependencyInstallResult
from slugforge.core.errors import BuildError
from slugforge.core.hasher import compute_output_hash, fingerprint_digest
from slugforge.core.lockfile import Lockfile
from slugforge.models.environment import BuildEnvironment
from slugforge.models.fingerprint import CacheFingerprint
from slugforge.models.versioning import ResolvedVersions, RuntimeVersion

if TYPE_CHECKING:
    from slugforge.core.services import BuildServices

logger = logging.getLogger(__name__)


class StageExecutionError(RuntimeError):
    """Raised when a stage fails with something other than a BuildError."""


class BuildContext(BaseModel):
    """Everything one stage hands to the next."""

    model_config = ConfigDict(frozen=True)

    build_dir: Path
    env: BuildEnvironment
    lockfile: Lockfile | None = None
    resolved: ResolvedVersions | None = None
    install_bins: dict[str, str] = {}
    vendor_bases: dict[str, str] = {}
    runtime_envs: dict[str, BuildEnvironment] = {}
    profile_scripts: tuple[str, ...] = ()
    fetched: tuple[str, ...] = ()
    cache_decision: CacheDecision | None = None
    dependencies: tuple[DependencyInstallResult, ...] = ()
    assets_precompiled: tuple[str, ...] = ()
    fingerprint: CacheFingerprint | None = None

    def evolve(self, **changes: Any) -> BuildContext:
        """Return a copy with *changes* applied."""
        return self.model_copy(update=changes)

    def require_resolved(self) -> ResolvedVersions:
        if self.resolved is None:
            raise StageExecutionError("Runtime versions have not been resolved")
        return self.resolved

    @property
    def versions(self) -> tuple[RuntimeVersion, ...]:
        return self.require_resolved().versions

    def runtime_pairs(self) -> list[tuple[RuntimeVersion, BuildEnvironment]]:
        """Each active runtime with its build environment, in resolution order."""
        return [(v, self.runtime_envs[v.identifier]) for v in self.versions]

    def summary(self) -> dict[str, Any]:
        """Deterministic view of the context used for stage output hashes."""
        resolved = self.resolved
        return {
            "versions": resolved.identifiers if resolved else [],
            "source": resolved.source.value if resolved else None,
            "artifacts": [a.artifact_name for a in resolved.artifacts] if resolved else [],
            "vendor_bases": self.vendor_bases,
            "profile_scripts": list(self.profile_scripts),
            "purge": self.cache_decision.purge if self.cache_decision else None,
            "dependencies": [d.runtime for d in self.dependencies],
            "fingerprint": fingerprint_digest(self.fingerprint) if self.fingerprint else None,
        }


class BaseStage(abc.ABC):
    """Abstract base for all provisioning stages.

    Subclasses **must** implement:
        * ``stage_id``   — unique identifier (e.g. ``"s0_resolve_version"``).
        * ``display_name`` — human-readable name shown in build output.
        * ``execute(context)`` — the stage's core logic.

    Subclasses **must not** override ``run_stage()``.
    """

    def __init__(self, services: BuildServices) -> None:
        self.services = services

    # ------------------------------------------------------------------
    # Abstract interface: subclasses implement these
    # ------------------------------------------------------------------

    @property
    @abc.abstractmethod
    def stage_id(self) -> str:
        """Unique stage identifier (e.g. ``'s0_resolve_version'``)."""
        ...

    @property
    @abc.abstractmethod
    def display_name(self) -> str:
        """Human-readable display name."""
        ...

    @abc.abstractmethod
    def execute(self, context: BuildContext) -> BuildContext:
        """Run the stage and return the updated context."""
        ...

    # ------------------------------------------------------------------
    # Lifecycle (not overridable)
    # ------------------------------------------------------------------

    @final
    def run_stage(self, context: BuildContext) -> tuple[BuildContext, str]:
        """Execute the stage.  **Do not override.**

        Returns the updated context and its output hash. ``BuildError``
        propagates unchanged so the user sees its remediation; anything
        else is wrapped in ``StageExecutionError``.
        """
        logger.info("%s [%s] starting", self.display_name, self.stage_id)

        try:
            result = self.execute(context)
        except BuildError as exc:
            logger.error(
                "%s [%s] failed: %s", self.display_name, self.stage_id, exc.message
            )
            raise
        except Exception as exc:
            logger.error(
                "%s [%s] execution failed: %s", self.display_name, self.stage_id, exc
            )
            raise StageExecutionError(f"Stage {self.stage_id} failed: {exc}") from exc

        output_hash = compute_output_hash(self.stage_id, result.summary())
        logger.info(
            "%s [%s] done output_hash=%s",
            self.display_name,
            self.stage_id,
            output_hash[:12],
        )
        return result, output_hash

    def __repr__(self) -> str:
        return f"<{type(self).__name__} stage_id={self.stage_id!r}>"
