"""Wiring of collaborators and components shared by every stage."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from slugforge.collaborators.cache_store import CacheStore
from slugforge.collaborators.fetcher import Fetcher
from slugforge.collaborators.metadata_store import DirectoryMetadataStore
from slugforge.collaborators.shell import ProcessRunner
from slugforge.config import BuildSettings
from slugforge.core.artifact_installer import ArtifactInstaller
from slugforge.core.cache_manager import CacheManager
from slugforge.core.dependency_installer import DependencyInstaller
from slugforge.core.environment_builder import EnvironmentBuilder
from slugforge.core.lockfile import Lockfile
from slugforge.core.rake_tasks import RakeTasks
from slugforge.core.version_resolver import VersionResolver
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment


class BuildServices:
    """Components for one build, constructed once and shared by the stages."""

    def __init__(
        self,
        *,
        build_dir: Path,
        config: PipelineConfig,
        settings: BuildSettings,
        fetcher: Fetcher,
        jvm_fetcher: Fetcher,
        runner: ProcessRunner,
        cache_store: CacheStore,
        metadata: DirectoryMetadataStore,
    ) -> None:
        self.build_dir = Path(build_dir)
        self.config = config
        self.settings = settings
        self.fetcher = fetcher
        self.jvm_fetcher = jvm_fetcher
        self.runner = runner
        self.cache_store = cache_store
        self.metadata = metadata

        self.environment_builder = EnvironmentBuilder(self.build_dir, runner, config)
        self.cache_manager = CacheManager(
            self.build_dir, cache_store, metadata, runner, config
        )
        self.dependency_installer = DependencyInstaller(
            self.build_dir,
            fetcher,
            runner,
            cache_store,
            syck_hack_path=settings.syck_hack_path,
            config=config,
        )
        self.rake_tasks = RakeTasks(self.build_dir, runner)

    def version_resolver(self, env: BuildEnvironment, lockfile: Lockfile) -> VersionResolver:
        return VersionResolver(
            self.build_dir, env, self.metadata, self.fetcher, lockfile, self.config
        )

    def artifact_installer(self, valid_versions: Sequence[str] = ()) -> ArtifactInstaller:
        return ArtifactInstaller(
            self.build_dir,
            self.fetcher,
            self.jvm_fetcher,
            build_ruby_root=self.settings.build_ruby_root,
            valid_versions=valid_versions,
            config=self.config,
        )
