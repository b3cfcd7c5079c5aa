"""Rake tasks the build runs inside the app's bundle.

Only ``assets:precompile`` is run today. A task is run when the app's
Rakefile defines it; an app without a Rakefile, or without rake in its
bundle, simply has no tasks.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from slugforge.collaborators.shell import ProcessRunner
from slugforge.core.errors import RakeTaskError
from slugforge.models.environment import BuildEnvironment

logger = logging.getLogger(__name__)

ASSETS_PRECOMPILE = "assets:precompile"

TASK_DEFINED_SCRIPT = "Rake.application.load_rakefile; Rake::Task.task_defined?(ARGV[0])"

# Output of the task check that means "the app has no such task".
NO_RAKE_MARKERS = (
    "No Rakefile found",
    "rake is not part of the bundle.",
    "no such file to load -- rake",
)


class RakeTasks:
    """Checks for and runs rake tasks through ``bundle exec``."""

    def __init__(self, build_dir: Path, runner: ProcessRunner) -> None:
        self._build_dir = Path(build_dir)
        self._runner = runner

    def task_defined(self, task: str, env: BuildEnvironment) -> bool:
        """Whether the app's Rakefile defines *task*.

        Raises
        ------
        RakeTaskError
            If loading the Rakefile fails for any other reason.
        """
        command = ["bundle", "exec", "ruby", "-S", "rake", "-p", TASK_DEFINED_SCRIPT, task]
        result = self._runner.run(
            command, env=env, cwd=self._build_dir, merge_stderr=True
        )
        if result.success:
            lines = result.stripped.splitlines()
            return bool(lines) and lines[-1] == "true"
        if any(marker in result.output for marker in NO_RAKE_MARKERS):
            logger.debug("No rake tasks available: %s", result.stripped)
            return False
        raise RakeTaskError(task, result.output)

    def precompile_assets(self, env: BuildEnvironment) -> bool:
        """Run ``rake assets:precompile`` if the app defines it.

        Returns True when the task ran and succeeded. A failing precompile
        is logged and does not stop the build.
        """
        if not self.task_defined(ASSETS_PRECOMPILE, env):
            return False

        logger.info("Running: rake %s", ASSETS_PRECOMPILE)
        started = time.monotonic()
        result = self._runner.run_streaming(
            ["bundle", "exec", "rake", ASSETS_PRECOMPILE], env=env, cwd=self._build_dir
        )
        if not result.success:
            logger.warning(
                "rake %s exited with status %d", ASSETS_PRECOMPILE, result.exit_code
            )
            return False
        logger.info("Asset precompilation completed (%.2fs)", time.monotonic() - started)
        return True
