"""Gemfile.lock and Gemfile reading.

Only what the pipeline needs is extracted: the locked gem names, the
platforms the lock was generated for, and any declared Ruby version.
Resolution itself is Bundler's job.
"""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict

LOCKFILE_NAME = "Gemfile.lock"
GEMFILE_NAME = "Gemfile"

# Platforms whose native gems cannot be installed on the build stack
INCOMPATIBLE_PLATFORM_PATTERN = re.compile(r"mingw|mswin")

_SPEC_LINE = re.compile(r"^    (?P<name>[^\s(]+)(?: \((?P<version>[^)]+)\))?$")
_RUBY_VERSION_LINE = re.compile(
    r"^\s+ruby (?P<version>\d+(?:\.\d+)*)(?:p-?\d+)?"
    r"(?: \((?P<engine>\w+) (?P<engine_version>[\w.]+)\))?\s*$"
)
_GEMFILE_RUBY = re.compile(
    r"""^\s*ruby\s*\(?\s*['"](?P<version>[\d.]+)['"]"""
    r"""(?:\s*,\s*(?::engine\s*=>|engine:)\s*['"](?P<engine>\w+)['"]"""
    r"""\s*,\s*(?::engine_version\s*=>|engine_version:)\s*['"](?P<engine_version>[\w.]+)['"])?""",
    re.MULTILINE,
)


class Lockfile(BaseModel):
    """The parts of a Gemfile.lock the pipeline reads."""

    model_config = ConfigDict(frozen=True)

    specs: dict[str, str] = {}
    platforms: tuple[str, ...] = ()
    ruby_version: str | None = None  # identifier, e.g. "ruby-2.0.0"
    bundled_with: str | None = None

    @property
    def has_incompatible_platform(self) -> bool:
        """Whether the lock was generated on Windows."""
        return any(INCOMPATIBLE_PLATFORM_PATTERN.search(p) for p in self.platforms)

    def has_gem(self, name: str) -> bool:
        return name in self.specs


def _declared_identifier(version: str, engine: str | None, engine_version: str | None) -> str:
    if engine and engine != "ruby":
        return f"ruby-{version}-{engine}-{engine_version}"
    return f"ruby-{version}"


def parse_lockfile(text: str) -> Lockfile:
    """Parse Gemfile.lock *text* section by section."""
    specs: dict[str, str] = {}
    platforms: list[str] = []
    ruby_version: str | None = None
    bundled_with: str | None = None

    section = ""
    for raw in text.splitlines():
        line = raw.rstrip()
        if not line:
            continue
        if not line.startswith(" "):
            section = line.strip()
            continue
        if section in ("GEM", "GIT", "PATH"):
            match = _SPEC_LINE.match(line)
            if match:
                specs[match.group("name")] = match.group("version") or ""
        elif section == "PLATFORMS":
            platforms.append(line.strip())
        elif section == "RUBY VERSION":
            match = _RUBY_VERSION_LINE.match(line)
            if match:
                ruby_version = _declared_identifier(
                    match.group("version"),
                    match.group("engine"),
                    match.group("engine_version"),
                )
        elif section == "BUNDLED WITH":
            bundled_with = line.strip()

    return Lockfile(
        specs=specs,
        platforms=tuple(platforms),
        ruby_version=ruby_version,
        bundled_with=bundled_with,
    )


def read_lockfile(build_dir: Path) -> Lockfile | None:
    """Parse ``Gemfile.lock`` in *build_dir*, or ``None`` when absent."""
    path = Path(build_dir) / LOCKFILE_NAME
    if not path.exists():
        return None
    return parse_lockfile(path.read_text(encoding="utf-8"))


def read_gemfile_ruby(build_dir: Path) -> str | None:
    """Return the identifier declared by a Gemfile ``ruby`` directive, if any."""
    path = Path(build_dir) / GEMFILE_NAME
    if not path.exists():
        return None
    match = _GEMFILE_RUBY.search(path.read_text(encoding="utf-8"))
    if not match:
        return None
    return _declared_identifier(
        match.group("version"), match.group("engine"), match.group("engine_version")
    )
