"""Runtime version resolution with precedence and catalog validation.

Precedence, highest first:

1. ``RUBY_VERSION`` in the build environment (deprecated).
2. A declaration in Gemfile.lock ``RUBY VERSION`` or the Gemfile ``ruby`` directive.
3. The version a previous build recorded in metadata.
4. The pipeline default.

The resolved identifier is checked against the fetched version catalog and
recorded back into metadata. The ordered artifact list for the build is
decided here, once.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from slugforge.collaborators.fetcher import Fetcher
from slugforge.collaborators.metadata_store import MetadataStore
from slugforge.core.errors import ArtifactFetchError, InvalidVersionError
from slugforge.core.lockfile import Lockfile, read_gemfile_ruby
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment
from slugforge.models.versioning import (
    ArtifactRule,
    InstallRule,
    ResolvedVersions,
    RuntimeVersion,
    VersionSource,
)

logger = logging.getLogger(__name__)

ENV_OVERRIDE_VAR = "RUBY_VERSION"
LEGACY_VERSION_KEY = "buildpack_ruby_version"

DEPRECATION_NOTICE = (
    "Using RUBY_VERSION: {version}\n"
    "RUBY_VERSION support has been deprecated and will be removed entirely "
    "on August 1, 2012.\n"
    "See https://devcenter.heroku.com/articles/ruby-versions#selecting_a_version_of_ruby "
    "for more information."
)
UNDECLARED_NOTICE = (
    "You have not declared a Ruby version in your Gemfile.\n"
    "To set your Ruby version add this line to your Gemfile:\n"
    "{declaration}\n"
    "# See https://devcenter.heroku.com/articles/ruby-versions for more information."
)


class VersionResolver:
    """Decides which runtime(s) a build uses.

    Parameters
    ----------
    build_dir:
        The application checkout.
    env:
        Build environment; consulted only for the deprecated override.
    metadata:
        Metadata store, already loaded from cache.
    fetcher:
        Source of the version catalog.
    lockfile:
        Parsed Gemfile.lock.
    config:
        Pinned pipeline versions.
    """

    def __init__(
        self,
        build_dir: Path,
        env: BuildEnvironment,
        metadata: MetadataStore,
        fetcher: Fetcher,
        lockfile: Lockfile,
        config: PipelineConfig | None = None,
    ) -> None:
        self._build_dir = Path(build_dir)
        self._env = env
        self._metadata = metadata
        self._fetcher = fetcher
        self._lockfile = lockfile
        self._config = config or PipelineConfig()
        self._catalog: list[str] | None = None

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def is_new_app(self) -> bool:
        """No metadata folder means this app has never been built."""
        return not (self._build_dir / self._config.metadata_dir).exists()

    def resolve(self) -> ResolvedVersions:
        """Resolve, validate, and record the runtime version."""
        new_app = self.is_new_app()
        identifier, source = self._select()

        catalog = self.catalog()
        if identifier not in catalog:
            raise InvalidVersionError(identifier, catalog)
        version = RuntimeVersion.parse(identifier)

        notices: list[str] = []
        if source == VersionSource.ENVIRONMENT_OVERRIDE:
            notices.append(DEPRECATION_NOTICE.format(version=identifier))
        else:
            logger.info("Using Ruby version: %s", identifier)
            if source == VersionSource.DEFAULT and not new_app:
                notices.append(
                    UNDECLARED_NOTICE.format(declaration=version.gemfile_declaration)
                )
        for notice in notices:
            logger.warning(notice)

        self._metadata.write(LEGACY_VERSION_KEY, identifier, touches_fingerprint=False)

        versions = (version,)
        return ResolvedVersions(
            versions=versions,
            source=source,
            artifacts=tuple(self._artifact_rules(versions)),
            catalog=tuple(catalog),
            new_app=new_app,
            notices=tuple(notices),
        )

    def _select(self) -> tuple[str, VersionSource]:
        override = self._env.get(ENV_OVERRIDE_VAR)
        if override:
            return override.strip(), VersionSource.ENVIRONMENT_OVERRIDE

        declared = self._lockfile.ruby_version or read_gemfile_ruby(self._build_dir)
        if declared:
            return declared, VersionSource.EXPLICIT_DECLARATION

        if self._metadata.exists(LEGACY_VERSION_KEY):
            legacy = self._metadata.read(LEGACY_VERSION_KEY).decode("utf-8").strip()
            if legacy:
                return legacy, VersionSource.LEGACY_FILE

        return self._config.default_ruby_version, VersionSource.DEFAULT

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def catalog(self) -> list[str]:
        """The list of valid runtime identifiers (fetched once)."""
        if self._catalog is None:
            payload = self._fetcher.fetch(self._config.version_catalog)
            if payload is None:
                raise ArtifactFetchError(self._config.version_catalog)
            loaded = yaml.safe_load(payload.decode("utf-8")) or []
            if not isinstance(loaded, list):
                raise ArtifactFetchError(self._config.version_catalog)
            self._catalog = [str(item) for item in loaded]
        return self._catalog

    # ------------------------------------------------------------------
    # Artifact plan
    # ------------------------------------------------------------------

    def _artifact_rules(self, versions: tuple[RuntimeVersion, ...]) -> list[ArtifactRule]:
        """Ordered install plan: secondary VM, runtimes, binaries, managed gems."""
        cfg = self._config
        rules: list[ArtifactRule] = []

        if any(v.is_jruby for v in versions):
            rules.append(ArtifactRule(
                artifact_name=f"{cfg.jvm_version}.tar.gz",
                install_rule=InstallRule.SECONDARY_VM,
            ))

        for v in versions:
            if v.needs_build_ruby:
                rules.append(ArtifactRule(
                    artifact_name=v.build_artifact_name,
                    install_rule=InstallRule.BOOTSTRAP_RUNTIME,
                    runtime=v.identifier,
                ))
            rules.append(ArtifactRule(
                artifact_name=f"{v.identifier}.tgz",
                install_rule=InstallRule.RUNTIME,
                runtime=v.identifier,
            ))

        # execjs fails at boot without a JavaScript runtime
        if self._lockfile.has_gem("execjs"):
            rules.append(ArtifactRule(
                artifact_name=f"{cfg.node_binary}.tgz",
                install_rule=InstallRule.BINARY,
            ))

        for v in versions:
            rules.append(ArtifactRule(
                artifact_name=f"{cfg.bundler_gem}.tgz",
                install_rule=InstallRule.MANAGED_GEM,
                runtime=v.identifier,
            ))
        return rules
