"""Build pipeline — the central coordinator for a slug compile.

The Pipeline wires together the collaborators, the StageMachine, and the
provisioning stages into one sequential, fail-fast run:

    resolve version -> install runtime -> environment
        -> load cache -> install dependencies -> persist cache

The first fatal error marks its stage FAILED, blocks every later stage,
and propagates to the caller. Nothing is persisted for a failed build.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from slugforge.collaborators.cache_store import CacheStore, DirectoryCacheStore
from slugforge.collaborators.fetcher import Fetcher, HttpFetcher
from slugforge.collaborators.metadata_store import DirectoryMetadataStore
from slugforge.collaborators.shell import ProcessRunner, ShellRunner
from slugforge.config import BuildSettings
from slugforge.core.services import BuildServices
from slugforge.core.stage_machine import StageMachine
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment
from slugforge.models.stages import DEFAULT_STAGE_DEFINITIONS, StageState, StageTransition
from slugforge.stages import STAGE_ORDER, STAGE_REGISTRY, BaseStage, BuildContext

logger = logging.getLogger(__name__)


class BuildResult(BaseModel):
    """Final context and stage history of a successful build."""

    model_config = ConfigDict(frozen=True)

    context: BuildContext
    history: tuple[StageTransition, ...]
    states: dict[str, StageState]


class Pipeline:
    """Runs every provisioning stage in order for one build.

    Parameters
    ----------
    build_dir:
        Application checkout the slug is built in.
    cache_dir:
        Durable directory that survives across builds.
    config:
        Pinned pipeline versions. Uses defaults if not provided.
    settings:
        Host settings. Read from the environment if not provided.
    fetcher, jvm_fetcher, runner, cache_store:
        Collaborators; default to the network/subprocess/directory
        implementations.
    env:
        Starting build environment. Snapshots ``os.environ`` if not provided.
    """

    def __init__(
        self,
        build_dir: Path,
        cache_dir: Path,
        *,
        config: PipelineConfig | None = None,
        settings: BuildSettings | None = None,
        fetcher: Fetcher | None = None,
        jvm_fetcher: Fetcher | None = None,
        runner: ProcessRunner | None = None,
        cache_store: CacheStore | None = None,
        env: BuildEnvironment | None = None,
    ) -> None:
        self.build_dir = Path(build_dir)
        self.cache_dir = Path(cache_dir)
        self.config = config or PipelineConfig()
        self.settings = settings or BuildSettings()
        self.env = env or BuildEnvironment.from_process()

        # HTTP clients created here are closed when the run finishes.
        self._owned_fetchers: list[HttpFetcher] = []
        if fetcher is None:
            fetcher = self._own_fetcher(self.settings.buildpack_base_url)
        if jvm_fetcher is None:
            jvm_fetcher = self._own_fetcher(self.settings.jvm_base_url)

        cache_store = cache_store or DirectoryCacheStore(self.build_dir, self.cache_dir)
        self.metadata = DirectoryMetadataStore(
            self.build_dir, cache_store, self.config.metadata_dir
        )
        self.services = BuildServices(
            build_dir=self.build_dir,
            config=self.config,
            settings=self.settings,
            fetcher=fetcher,
            jvm_fetcher=jvm_fetcher,
            runner=runner or ShellRunner(),
            cache_store=cache_store,
            metadata=self.metadata,
        )
        self.stage_machine = StageMachine(DEFAULT_STAGE_DEFINITIONS)
        self.stages: list[BaseStage] = [
            STAGE_REGISTRY[stage_id](self.services) for stage_id in STAGE_ORDER
        ]

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> BuildResult:
        """Compile the slug. Raises the first fatal error encountered."""
        logger.info("Compiling Ruby app in %s", self.build_dir)
        try:
            return self._run_stages()
        finally:
            self.close()

    def _run_stages(self) -> BuildResult:
        self.metadata.load()
        context = BuildContext(build_dir=self.build_dir, env=self.env)

        for stage in self.stages:
            self.stage_machine.transition(stage.stage_id, StageState.RUNNING)
            try:
                context, output_hash = stage.run_stage(context)
            except Exception as exc:
                self.stage_machine.transition(
                    stage.stage_id, StageState.FAILED, block_reason=str(exc)
                )
                raise
            self.stage_machine.transition(
                stage.stage_id, StageState.PASSED, output_hash=output_hash
            )

        return BuildResult(
            context=context,
            history=tuple(self.stage_machine.history),
            states=self.stage_machine.get_all_states(),
        )

    def close(self) -> None:
        """Close the HTTP clients this pipeline created."""
        for fetcher in self._owned_fetchers:
            fetcher.close()
        self._owned_fetchers.clear()

    def _own_fetcher(self, base_url: str) -> HttpFetcher:
        fetcher = HttpFetcher(base_url, timeout=self.settings.fetch_timeout_seconds)
        self._owned_fetchers.append(fetcher)
        return fetcher

    # ------------------------------------------------------------------
    # Query methods
    # ------------------------------------------------------------------

    def get_states(self) -> dict[str, StageState]:
        """Return current state of all stages."""
        return self.stage_machine.get_all_states()

    def get_stage_state(self, stage_id: str) -> StageState:
        return self.stage_machine.get_current_state(stage_id)
