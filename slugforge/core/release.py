"""Release metadata for a compiled slug: addons, config vars, process types."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from slugforge.collaborators.shell import ProcessRunner
from slugforge.core.environment_builder import EnvironmentBuilder
from slugforge.core.lockfile import GEMFILE_NAME, read_lockfile
from slugforge.core.version_resolver import LEGACY_VERSION_KEY
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment
from slugforge.models.versioning import RuntimeVersion

DEFAULT_PROCESS_TYPES: dict[str, str] = {
    "rake": "bundle exec rake",
    "console": "bundle exec irb",
}


def detect(build_dir: Path) -> bool:
    """Whether *build_dir* holds a Ruby application."""
    return (Path(build_dir) / GEMFILE_NAME).exists()


def default_addons(build_dir: Path) -> list[str]:
    """Addons provisioned for a new app: a dev database when ``pg`` is bundled."""
    lockfile = read_lockfile(build_dir)
    if lockfile is not None and lockfile.has_gem("pg"):
        return ["heroku-postgresql:dev"]
    return []


def compiled_version(build_dir: Path, config: PipelineConfig | None = None) -> RuntimeVersion:
    """The runtime a previous compile recorded in the slug's metadata."""
    config = config or PipelineConfig()
    path = Path(build_dir) / config.metadata_dir / LEGACY_VERSION_KEY
    if not path.exists():
        return RuntimeVersion.parse(config.default_ruby_version)
    return RuntimeVersion.parse(path.read_text(encoding="utf-8").strip())


def describe_release(
    build_dir: Path,
    runner: ProcessRunner,
    env: BuildEnvironment | None = None,
    config: PipelineConfig | None = None,
) -> dict[str, Any]:
    """Release description in the shape the platform reads from ``bin/release``."""
    config = config or PipelineConfig()
    build_dir = Path(build_dir)
    version = compiled_version(build_dir, config)
    builder = EnvironmentBuilder(build_dir, runner, config)
    install_env = builder.install_env(
        version,
        env or BuildEnvironment.from_process(),
        f"{config.vendor_ruby(version.identifier)}/bin",
    )
    vendor_base = builder.slug_vendor_base(version, install_env)
    return {
        "addons": default_addons(build_dir),
        "config_vars": builder.default_config_vars(version, vendor_base),
        "default_process_types": dict(DEFAULT_PROCESS_TYPES),
    }
