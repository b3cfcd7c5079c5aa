"""Bundler invocation with cache-aware flags.

Handles the Gemfile.lock precondition, Windows-generated locks, the scoped
libyaml compile environment, the scoped removal of ``GIT_DIR``, and failure
classification.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from slugforge.collaborators.cache_store import CacheStore
from slugforge.collaborators.fetcher import Fetcher
from slugforge.collaborators.shell import CommandResult, ProcessRunner
from slugforge.core.errors import (
    ArtifactFetchError,
    BuildError,
    DependencyInstallError,
    MissingManifestError,
)
from slugforge.core.lockfile import LOCKFILE_NAME, Lockfile, read_lockfile
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment
from slugforge.models.versioning import RuntimeVersion

logger = logging.getLogger(__name__)

GIT_DIR_VAR = "GIT_DIR"

WINDOWS_LOCKFILE_WARNING = (
    "Removing `Gemfile.lock` because it was generated on Windows.\n"
    "Bundler will do a full resolve so native gems are handled properly.\n"
    "This may result in unexpected gem versions being used in your app."
)

SQLITE3_FAILURE = re.compile(
    r"Installing sqlite3 \([\w.]+\)( with native extensions)?\s+"
    r"Gem::Installer::ExtensionBuildError: ERROR: Failed to build gem native extension."
)
SQLITE3_HINT = (
    "Detected sqlite3 gem which is not supported on Heroku.\n"
    "https://devcenter.heroku.com/articles/sqlite3"
)


class DependencyInstallResult(BaseModel):
    """What a successful install did."""

    model_config = ConfigDict(frozen=True)

    runtime: str
    deployment: bool
    lockfile_removed: bool
    bundler_version: str
    output: str


@contextmanager
def allow_git(name: str = GIT_DIR_VAR) -> Iterator[None]:
    """Remove *name* from the process environment for the duration of the block.

    The previous value is restored on every exit path.
    """
    saved = os.environ.pop(name, None)
    try:
        yield
    finally:
        if saved is not None:
            os.environ[name] = saved


def _version_tuple(text: str) -> tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", text)[:3])


class DependencyInstaller:
    """Runs ``bundle install`` for one runtime at a time.

    Parameters
    ----------
    build_dir:
        The application checkout.
    fetcher:
        Source of libyaml and the managed gems.
    runner:
        Process executor.
    cache_store:
        Holds the previous ``.bundle`` configuration.
    syck_hack_path:
        Ruby shim preloaded for runtimes older than 1.9.3.
    config:
        Pinned pipeline versions and slug layout.
    """

    def __init__(
        self,
        build_dir: Path,
        fetcher: Fetcher,
        runner: ProcessRunner,
        cache_store: CacheStore,
        *,
        syck_hack_path: Path | None = None,
        config: PipelineConfig | None = None,
    ) -> None:
        self._build_dir = Path(build_dir)
        self._fetcher = fetcher
        self._runner = runner
        self._cache = cache_store
        self._syck_hack_path = syck_hack_path
        self._config = config or PipelineConfig()

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def require_manifest(self) -> Lockfile:
        """Parse Gemfile.lock or fail the build."""
        lockfile = read_lockfile(self._build_dir)
        if lockfile is None:
            raise MissingManifestError()
        return lockfile

    # ------------------------------------------------------------------
    # Managed gems
    # ------------------------------------------------------------------

    def managed_gems_installed(self, vendor_base: str) -> bool:
        gem_dir = self._build_dir / vendor_base / "gems" / self._config.bundler_gem
        return gem_dir.exists()

    def install_managed_gems(self, version: RuntimeVersion, vendor_base: str) -> None:
        """Unpack the pipeline's own gems into the runtime's gem directory."""
        target = self._build_dir / vendor_base
        target.mkdir(parents=True, exist_ok=True)
        artifact = f"{self._config.bundler_gem}.tgz"
        if not self._fetcher.fetch_and_unpack(artifact, target):
            raise ArtifactFetchError(artifact)
        bin_dir = target / "bin"
        if bin_dir.is_dir():
            for path in bin_dir.iterdir():
                if path.is_file():
                    path.chmod(0o755)
        logger.info("Installed %s for %s", self._config.bundler_gem, version)

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def bundle_command(self, version: RuntimeVersion, env: BuildEnvironment) -> list[str]:
        cfg = self._config
        without = env.get("BUNDLE_WITHOUT") or cfg.default_bundle_without
        return [
            "bundle", "install",
            "--without", without,
            "--path", cfg.bundler_cache,
            "--binstubs", cfg.binstubs_path(version.identifier),
        ]

    def install(
        self,
        version: RuntimeVersion,
        env: BuildEnvironment,
        vendor_base: str,
    ) -> DependencyInstallResult:
        """Install the application's gems for *version*.

        Raises :class:`MissingManifestError` without a Gemfile.lock and
        :class:`DependencyInstallError` when Bundler fails.
        """
        lockfile = self.require_manifest()
        command = self.bundle_command(version, env)

        lockfile_removed = False
        if lockfile.has_incompatible_platform:
            logger.warning(WINDOWS_LOCKFILE_WARNING)
            (self._build_dir / LOCKFILE_NAME).unlink()
            lockfile_removed = True
        else:
            command.append("--deployment")
            self._cache.load(self._config.bundle_config_dir)

        bundler_version = self._runner.run(
            ["bundle", "version"], env=env, cwd=self._build_dir
        ).stripped
        logger.info("Installing dependencies using %s", bundler_version)

        command.append("--no-clean")
        with tempfile.TemporaryDirectory(prefix="libyaml-") as tmpdir:
            libyaml_dir = Path(tmpdir) / self._config.libyaml_artifact
            self._install_libyaml(libyaml_dir)
            install_env = self.compile_env(version, env, libyaml_dir, vendor_base)
            logger.info("Running: %s", " ".join(command))
            with allow_git():
                result = self._runner.run_streaming(
                    command, env=install_env.without(GIT_DIR_VAR), cwd=self._build_dir
                )

        if not result.success:
            raise self._failure(result)

        logger.info("Cleaning up the bundler cache.")
        self._runner.run(["bundle", "clean"], env=env, cwd=self._build_dir)
        self._trim(vendor_base)

        return DependencyInstallResult(
            runtime=version.identifier,
            deployment=not lockfile_removed,
            lockfile_removed=lockfile_removed,
            bundler_version=bundler_version,
            output=result.output,
        )

    def compile_env(
        self,
        version: RuntimeVersion,
        env: BuildEnvironment,
        libyaml_dir: Path,
        vendor_base: str,
    ) -> BuildEnvironment:
        """Environment for ``bundle install`` with libyaml on the compiler paths."""
        include = str((libyaml_dir / "include").resolve())
        lib = str((libyaml_dir / "lib").resolve())
        values = {
            "BUNDLE_GEMFILE": str(self._build_dir / "Gemfile"),
            "BUNDLE_CONFIG": str(self._build_dir / self._config.bundle_config_dir / "config"),
            "CPATH": _join(include, env.get("CPATH")),
            "CPPATH": _join(include, env.get("CPPATH")),
            "LIBRARY_PATH": _join(lib, env.get("LIBRARY_PATH")),
            "RUBYOPT": self.syck_hack(env),
        }
        if version.identifier.startswith("ruby-1.8.7"):
            values["BUNDLER_LIB_PATH"] = str(
                self._build_dir / vendor_base / "gems" / self._config.bundler_gem / "lib"
            )
        return env.with_vars(values)

    def syck_hack(self, env: BuildEnvironment) -> str:
        """``RUBYOPT`` preloading the syck shim for rubies before 1.9.3."""
        if self._syck_hack_path is None:
            return ""
        result = self._runner.run(
            ["ruby", "-e", "puts RUBY_VERSION"], env=env, cwd=self._build_dir
        )
        if result.success and _version_tuple(result.stripped) < (1, 9, 3):
            return f"-r{self._syck_hack_path.with_suffix('')}"
        return ""

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _install_libyaml(self, dest: Path) -> None:
        dest.mkdir(parents=True, exist_ok=True)
        artifact = f"{self._config.libyaml_artifact}.tgz"
        if not self._fetcher.fetch_and_unpack(artifact, dest):
            raise ArtifactFetchError(artifact)

    def _trim(self, vendor_base: str) -> None:
        """Keep the downloaded .gem cache out of the slug."""
        cache_dir = self._build_dir / vendor_base / "cache"
        if cache_dir.exists():
            shutil.rmtree(cache_dir)

    def _failure(self, result: CommandResult) -> BuildError:
        hint = SQLITE3_HINT if SQLITE3_FAILURE.search(result.output) else ""
        return DependencyInstallError(result.output, hint=hint)


def _join(first: str, rest: str | None) -> str:
    return f"{first}:{rest}" if rest else first
