"""Build environment models — immutable env values and profile.d scripts.

Stages never mutate ``os.environ``. They thread a frozen
:class:`BuildEnvironment` through the pipeline and hand subprocesses an
environment constructed from it.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field


class BuildEnvironment(BaseModel):
    """An immutable snapshot of environment variables for the build."""

    model_config = ConfigDict(frozen=True)

    variables: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_process(cls, environ: Mapping[str, str] | None = None) -> BuildEnvironment:
        """Snapshot the current process environment (or *environ*)."""
        source = os.environ if environ is None else environ
        return cls(variables=dict(source))

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.variables.get(name, default)

    def __contains__(self, name: object) -> bool:
        return name in self.variables

    def with_vars(self, values: Mapping[str, str]) -> BuildEnvironment:
        """Return a copy with *values* set, replacing existing entries."""
        merged = dict(self.variables)
        merged.update(values)
        return BuildEnvironment(variables=merged)

    def with_defaults(self, values: Mapping[str, str]) -> BuildEnvironment:
        """Return a copy with *values* set only where not already present."""
        merged = dict(values)
        merged.update(self.variables)
        return BuildEnvironment(variables=merged)

    def without(self, *names: str) -> BuildEnvironment:
        return BuildEnvironment(
            variables={k: v for k, v in self.variables.items() if k not in names}
        )

    def prepend_path(self, *entries: str, name: str = "PATH") -> BuildEnvironment:
        """Return a copy with *entries* placed ahead of the existing search path."""
        parts = [e for e in entries if e]
        existing = self.variables.get(name, "")
        if existing:
            parts.append(existing)
        return self.with_vars({name: ":".join(parts)})

    def as_process_env(self) -> dict[str, str]:
        """A plain dict suitable for ``subprocess`` ``env=``."""
        return dict(self.variables)


class ProfileEntry(BaseModel):
    """One exported variable in a profile.d script.

    ``override`` entries are always applied at dyno start; default entries
    only when the application has not set the variable itself.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    override: bool = True

    def render(self) -> str:
        if self.override:
            return f'export {self.name}="{self.value}"'
        return f'export {self.name}=${{{self.name}:-{shlex.quote(self.value)}}}'


class ProfileScript(BaseModel):
    """An ordered set of profile entries written to ``.profile.d/<name>``."""

    model_config = ConfigDict(frozen=True)

    filename: str
    entries: tuple[ProfileEntry, ...] = ()

    def get(self, name: str) -> ProfileEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def render(self) -> str:
        return "".join(f"{entry.render()}\n" for entry in self.entries)
