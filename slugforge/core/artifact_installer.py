"""Runtime, bootstrap runtime, JVM, and helper binary installation.

Each artifact unpacks into its own directory; convenience symlinks go into
the shared ``bin/`` directory. Links are replaced in install order, so the
last runtime installed owns a shared name. Regular files in ``bin/`` belong
to the application and are never replaced.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from collections.abc import Sequence
from pathlib import Path

from slugforge.collaborators.fetcher import Fetcher
from slugforge.core.errors import ArtifactFetchError
from slugforge.models.config import PipelineConfig
from slugforge.models.versioning import RuntimeVersion

logger = logging.getLogger(__name__)

VENDOR_BUNDLE_WARNING = (
    "Removing `vendor/bundle`.\n"
    "Checking in `vendor/bundle` is not supported. Please remove this directory\n"
    "and add it to your .gitignore. To vendor your gems with Bundler, use\n"
    "`bundle pack` instead."
)


class ArtifactInstaller:
    """Materializes prebuilt artifacts into the build directory.

    Parameters
    ----------
    build_dir:
        The application checkout the slug is built in.
    fetcher:
        Source of runtimes, build rubies, and helper binaries.
    jvm_fetcher:
        Source of the JVM, a different artifact host.
    build_ruby_root:
        Where bootstrap runtimes unpack (outside the slug).
    valid_versions:
        Catalog listed in the error when a runtime fetch fails.
    """

    def __init__(
        self,
        build_dir: Path,
        fetcher: Fetcher,
        jvm_fetcher: Fetcher,
        *,
        build_ruby_root: Path = Path("/tmp"),
        valid_versions: Sequence[str] = (),
        config: PipelineConfig | None = None,
    ) -> None:
        self._build_dir = Path(build_dir)
        self._fetcher = fetcher
        self._jvm_fetcher = jvm_fetcher
        self._build_ruby_root = Path(build_ruby_root)
        self._valid_versions = list(valid_versions)
        self._config = config or PipelineConfig()

    @property
    def bin_dir(self) -> Path:
        return self._build_dir / self._config.bin_dir

    def runtime_dir(self, version: RuntimeVersion) -> Path:
        return self._build_dir / self._config.vendor_ruby(version.identifier)

    def bootstrap_dir(self, version: RuntimeVersion) -> Path:
        return self._build_ruby_root / version.identifier

    def install_bin_path(self, version: RuntimeVersion) -> str:
        """Directory whose ``ruby`` the build itself runs."""
        if version.needs_build_ruby:
            return str(self.bootstrap_dir(version) / "bin")
        return f"{self._config.vendor_ruby(version.identifier)}/bin"

    # ------------------------------------------------------------------
    # Runtimes
    # ------------------------------------------------------------------

    def install_runtime(self, version: RuntimeVersion) -> bool:
        """Install ``vendor/<identifier>`` and link its binaries into ``bin/``.

        Returns ``False`` when the runtime was already present and no fetch
        happened.
        """
        dest = self.runtime_dir(version)
        if (dest / "bin" / "ruby").exists():
            logger.info("Ruby %s already installed, skipping fetch", version)
            fetched = False
        else:
            dest.mkdir(parents=True, exist_ok=True)
            if not self._fetcher.fetch_and_unpack(f"{version.identifier}.tgz", dest):
                raise ArtifactFetchError(
                    f"{version.identifier}.tgz", version.identifier, self._valid_versions
                )
            fetched = True

        relative = Path(self._config.vendor_ruby(version.identifier)) / "bin"
        self._link_all(relative)
        self._link(relative / "ruby", self.bin_dir / version.identifier)
        return fetched

    def install_bootstrap_runtime(self, version: RuntimeVersion) -> bool:
        """Install the build toolchain for families that need one.

        No-op (``False``) for runtimes that compile their own extensions.
        """
        if not version.needs_build_ruby:
            return False
        dest = self.bootstrap_dir(version)
        if (dest / "bin" / "ruby").exists():
            return False
        dest.mkdir(parents=True, exist_ok=True)
        artifact = version.build_artifact_name
        if not self._fetcher.fetch_and_unpack(artifact, dest):
            raise ArtifactFetchError(artifact, version.identifier, self._valid_versions)
        logger.info("Installed build Ruby %s into %s", version, dest)
        return True

    def install_secondary_vm(self, versions: Sequence[RuntimeVersion]) -> bool:
        """Install the JVM when any runtime runs on it."""
        if not any(v.is_jruby for v in versions):
            return False
        cfg = self._config
        dest = self._build_dir / cfg.jvm_dir
        if (dest / "bin" / "java").exists():
            return False
        logger.info("Installing JVM: %s", cfg.jvm_version)
        dest.mkdir(parents=True, exist_ok=True)
        artifact = f"{cfg.jvm_version}.tar.gz"
        if not self._jvm_fetcher.fetch_and_unpack(artifact, dest):
            raise ArtifactFetchError(artifact)
        self._link_all(Path(cfg.jvm_dir) / "bin")
        return True

    # ------------------------------------------------------------------
    # Helper binaries
    # ------------------------------------------------------------------

    def install_binaries(self, names: Sequence[str]) -> None:
        """Unpack helper binary tarballs straight into ``bin/``."""
        self.bin_dir.mkdir(parents=True, exist_ok=True)
        for name in names:
            artifact = name if name.endswith(".tgz") else f"{name}.tgz"
            if not self._fetcher.fetch_and_unpack(artifact, self.bin_dir):
                raise ArtifactFetchError(artifact)
        for path in self.bin_dir.iterdir():
            if path.is_file() and not path.is_symlink():
                path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def uninstall_binary(self, name: str) -> None:
        (self.bin_dir / Path(name).name).unlink(missing_ok=True)

    def remove_vendor_bundle(self) -> bool:
        """Drop a ``vendor/bundle`` checked into the application."""
        path = self._build_dir / self._config.bundler_cache
        if not path.exists():
            return False
        logger.warning(VENDOR_BUNDLE_WARNING)
        shutil.rmtree(path)
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _link_all(self, relative_bin: Path) -> None:
        source_dir = self._build_dir / relative_bin
        if not source_dir.is_dir():
            return
        for binary in sorted(source_dir.iterdir()):
            self._link(relative_bin / binary.name, self.bin_dir / binary.name)

    def _link(self, target_from_root: Path, link: Path) -> None:
        """Point *link* at ``../<target_from_root>`` unless an app file is in the way."""
        link.parent.mkdir(parents=True, exist_ok=True)
        if link.is_symlink():
            link.unlink()
        elif link.exists():
            logger.warning("Not replacing %s: file is not a symlink", link)
            return
        os.symlink(Path("..") / target_from_root, link)
