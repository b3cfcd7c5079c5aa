"""Runtime version models — parsed identifiers, resolution sources, artifact rules."""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict

# Families whose runtime cannot compile native extensions on the build stack
# and needs a separately fetched build toolchain.
_BUILD_RUBY_PATTERN = re.compile(r"^ruby-(1\.8\.7|1\.9\.2)")
_PATCHLEVEL_PATTERN = re.compile(r"^p\d+$")


class VersionSource(str, Enum):
    """Where the resolved runtime version came from, highest precedence first."""

    ENVIRONMENT_OVERRIDE = "environment-override"
    EXPLICIT_DECLARATION = "explicit-declaration"
    LEGACY_FILE = "legacy-file"
    DEFAULT = "default"


class RuntimeVersion(BaseModel):
    """A runtime release identifier such as ``ruby-2.0.0`` or
    ``ruby-1.9.3-jruby-1.7.4``.

    Immutable once resolved for a build.
    """

    model_config = ConfigDict(frozen=True)

    family: str
    version: str
    engine: str | None = None
    engine_version: str | None = None

    @classmethod
    def parse(cls, identifier: str) -> RuntimeVersion:
        """Parse ``<family>-<version>[-p<NNN>][-<engine>-<engine_version>]``."""
        parts = identifier.strip().split("-")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            raise ValueError(f"Malformed runtime identifier: {identifier!r}")
        family, version, rest = parts[0], parts[1], parts[2:]
        if rest and _PATCHLEVEL_PATTERN.match(rest[0]):
            version = f"{version}-{rest[0]}"
            rest = rest[1:]
        if not rest:
            return cls(family=family, version=version)
        if len(rest) != 2:
            raise ValueError(f"Malformed runtime identifier: {identifier!r}")
        return cls(
            family=family,
            version=version,
            engine=rest[0],
            engine_version=rest[1],
        )

    @property
    def identifier(self) -> str:
        base = f"{self.family}-{self.version}"
        if self.engine:
            return f"{base}-{self.engine}-{self.engine_version}"
        return base

    @property
    def is_jruby(self) -> bool:
        return self.engine == "jruby" or self.family == "jruby"

    @property
    def is_rbx(self) -> bool:
        return self.engine == "rbx" or self.family == "rbx"

    @property
    def needs_build_ruby(self) -> bool:
        """Whether native extensions require the separate build toolchain."""
        return bool(_BUILD_RUBY_PATTERN.match(self.identifier))

    @property
    def build_artifact_name(self) -> str:
        """Artifact name of the build toolchain, e.g. ``ruby-build-1.9.2.tgz``."""
        vm = "rbx" if self.is_rbx else "ruby"
        return f"{self.identifier.replace(vm, f'{vm}-build', 1)}.tgz"

    @property
    def gemfile_declaration(self) -> str:
        """The Gemfile line that would declare this version."""
        if self.engine:
            return (
                f"ruby '{self.version}', :engine => '{self.engine}', "
                f":engine_version => '{self.engine_version}'"
            )
        return f"ruby '{self.version}'"

    def __str__(self) -> str:
        return self.identifier


class InstallRule(str, Enum):
    """How an artifact gets materialized into the build."""

    RUNTIME = "runtime"
    BOOTSTRAP_RUNTIME = "bootstrap-runtime"
    SECONDARY_VM = "secondary-vm"
    BINARY = "binary"
    MANAGED_GEM = "managed-gem"


class ArtifactRule(BaseModel):
    """One artifact to install, decided once during version resolution."""

    model_config = ConfigDict(frozen=True)

    artifact_name: str
    install_rule: InstallRule
    runtime: str | None = None  # runtime identifier the artifact belongs to


class ResolvedVersions(BaseModel):
    """Result of version resolution for one build."""

    model_config = ConfigDict(frozen=True)

    versions: tuple[RuntimeVersion, ...]
    source: VersionSource
    artifacts: tuple[ArtifactRule, ...] = ()
    catalog: tuple[str, ...] = ()
    new_app: bool = False
    notices: tuple[str, ...] = ()

    @property
    def primary(self) -> RuntimeVersion:
        return self.versions[0]

    @property
    def identifiers(self) -> list[str]:
        return [v.identifier for v in self.versions]

    @property
    def uses_jruby(self) -> bool:
        return any(v.is_jruby for v in self.versions)

    def rules_for(self, rule: InstallRule) -> list[ArtifactRule]:
        """Artifact rules of one kind, in install order."""
        return [a for a in self.artifacts if a.install_rule == rule]
