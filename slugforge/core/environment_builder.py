"""Build-time environment and deploy-time profile.d construction."""

from __future__ import annotations

import logging
from pathlib import Path

from slugforge.collaborators.shell import ProcessRunner
from slugforge.core.errors import BuildError
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment, ProfileEntry, ProfileScript
from slugforge.models.versioning import RuntimeVersion

logger = logging.getLogger(__name__)

SYSTEM_PATH = "/usr/local/bin:/usr/bin:/bin"

# Prints the gem directory relative to the slug for the running interpreter
VENDOR_BASE_PROBE = (
    "require 'rbconfig';"
    "puts \"vendor/bundle/#{RUBY_ENGINE}/#{RbConfig::CONFIG['ruby_version']}\""
)


class EnvironmentBuilder:
    """Derives environment variables for one runtime.

    Parameters
    ----------
    build_dir:
        The application checkout.
    runner:
        Used to ask the installed interpreter for its gem directory.
    config:
        Pinned pipeline versions and slug layout.
    """

    def __init__(
        self,
        build_dir: Path,
        runner: ProcessRunner,
        config: PipelineConfig | None = None,
    ) -> None:
        self._build_dir = Path(build_dir)
        self._runner = runner
        self._config = config or PipelineConfig()
        self._vendor_bases: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def slug_vendor_base(
        self, version: RuntimeVersion, install_env: BuildEnvironment
    ) -> str:
        """Gem directory relative to the slug, e.g. ``vendor/bundle/ruby/2.0.0``.

        Asked of the interpreter itself; the nominal version string does not
        reliably predict the ABI directory.
        """
        if version.identifier in self._vendor_bases:
            return self._vendor_bases[version.identifier]
        if version.identifier.startswith("ruby-1.8.7"):
            base = f"{self._config.bundler_cache}/1.8"
        else:
            result = self._runner.run(
                ["ruby", "-e", VENDOR_BASE_PROBE], env=install_env, cwd=self._build_dir
            )
            if not result.success or not result.stripped:
                raise BuildError(
                    f"Could not determine the gem directory for {version}.",
                    remediation="Retry the build; if it persists, the runtime artifact is broken.",
                )
            base = result.stripped
        self._vendor_bases[version.identifier] = base
        return base

    def default_path(self, version: RuntimeVersion) -> str:
        cfg = self._config
        parts = [
            cfg.bin_dir,
            cfg.binstubs_path(version.identifier),
            cfg.jvm_dir + "/bin" if version.is_jruby else None,
            SYSTEM_PATH,
        ]
        return ":".join(p for p in parts if p)

    # ------------------------------------------------------------------
    # Process environment
    # ------------------------------------------------------------------

    def install_env(
        self, version: RuntimeVersion, base: BuildEnvironment, install_bin_path: str
    ) -> BuildEnvironment:
        """Environment able to run the freshly installed interpreter."""
        env = base.prepend_path(self._absolute(install_bin_path))
        if version.is_jruby:
            env = env.with_vars({"JAVA_OPTS": self._config.java_opts})
        return env

    def build_process_env(
        self, version: RuntimeVersion, base: BuildEnvironment, install_bin_path: str
    ) -> BuildEnvironment:
        """Environment for the remaining build stages.

        PATH order: binstubs, gem bin dir, JVM bin (JRuby only), interpreter
        bin, slug ``bin``, then whatever PATH the build started with.
        """
        cfg = self._config
        install_env = self.install_env(version, base, install_bin_path)
        vendor_base = self.slug_vendor_base(version, install_env)

        env = base.with_defaults(self.jvm_vars(version))
        env = env.with_defaults({"LANG": cfg.locale})
        env = env.with_vars({
            "GEM_HOME": self._absolute(vendor_base),
            "GEM_PATH": self._absolute(vendor_base),
        })
        return env.prepend_path(
            self._absolute(cfg.binstubs_path(version.identifier)),
            self._absolute(f"{vendor_base}/bin"),
            self._absolute(f"{cfg.jvm_dir}/bin") if version.is_jruby else "",
            self._absolute(install_bin_path),
            self._absolute(cfg.bin_dir),
        )

    def jvm_vars(self, version: RuntimeVersion) -> dict[str, str]:
        """JVM tuning variables; empty for runtimes that are not on the JVM."""
        if not version.is_jruby:
            return {}
        cfg = self._config
        return {
            "JAVA_OPTS": cfg.java_opts,
            "JRUBY_OPTS": cfg.jruby_opts,
            "JAVA_TOOL_OPTIONS": cfg.java_tool_options,
        }

    def default_config_vars(self, version: RuntimeVersion, vendor_base: str) -> dict[str, str]:
        """Config vars the platform sets for a new app on release."""
        vars_ = {
            "LANG": self._config.locale,
            "PATH": self.default_path(version),
            "GEM_PATH": vendor_base,
        }
        vars_.update(self.jvm_vars(version))
        return vars_

    # ------------------------------------------------------------------
    # profile.d
    # ------------------------------------------------------------------

    def build_profile_script(self, version: RuntimeVersion, vendor_base: str) -> ProfileScript:
        """Variables applied when the deployed application starts."""
        cfg = self._config
        path = [
            f"$HOME/{vendor_base}/bin",
            f"$HOME/{cfg.vendor_ruby(version.identifier)}/bin",
            f"$HOME/{cfg.jvm_dir}/bin" if version.is_jruby else None,
            "$PATH",
        ]
        entries = [
            ProfileEntry(name="GEM_PATH", value=f"$HOME/{vendor_base}:$GEM_PATH"),
            ProfileEntry(name="LANG", value=cfg.locale, override=False),
            ProfileEntry(name="PATH", value=":".join(p for p in path if p)),
        ]
        entries.extend(
            ProfileEntry(name=name, value=value, override=False)
            for name, value in self.jvm_vars(version).items()
        )
        return ProfileScript(filename=f"{version.identifier}.sh", entries=tuple(entries))

    def write_profile_script(self, script: ProfileScript) -> Path:
        target = self._build_dir / self._config.profile_dir / script.filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(script.render(), encoding="utf-8")
        logger.debug("Wrote %s", target)
        return target

    def _absolute(self, path: str) -> str:
        if not path:
            return ""
        return str(self._build_dir / path)
