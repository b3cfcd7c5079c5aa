"""Process execution — explicit results, explicit environments.

Callers always receive a :class:`CommandResult`; there is no ambient
"last exit status" to inspect.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import IO, Protocol

from pydantic import BaseModel, ConfigDict

from slugforge.models.environment import BuildEnvironment

logger = logging.getLogger(__name__)


class CommandResult(BaseModel):
    """Exit code and captured output of one command."""

    model_config = ConfigDict(frozen=True)

    command: tuple[str, ...]
    exit_code: int
    output: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def stripped(self) -> str:
        return self.output.strip()


class ProcessRunner(Protocol):
    """What the pipeline needs from a process executor."""

    def run(
        self,
        command: Sequence[str],
        *,
        env: BuildEnvironment,
        cwd: Path,
        merge_stderr: bool = False,
    ) -> CommandResult:
        """Run to completion, capturing stdout (and stderr if *merge_stderr*)."""
        ...

    def run_streaming(
        self, command: Sequence[str], *, env: BuildEnvironment, cwd: Path
    ) -> CommandResult:
        """Run while echoing combined stdout/stderr to the build log."""
        ...


class ShellRunner:
    """``subprocess``-backed :class:`ProcessRunner`.

    Commands are argv sequences; nothing goes through a shell. The child
    environment is exactly ``env.as_process_env()``.
    """

    def __init__(self, stream: IO[str] | None = None) -> None:
        self._stream = stream or sys.stdout

    def run(
        self,
        command: Sequence[str],
        *,
        env: BuildEnvironment,
        cwd: Path,
        merge_stderr: bool = False,
    ) -> CommandResult:
        argv = tuple(command)
        logger.debug("run: %s", " ".join(argv))
        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                env=env.as_process_env(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.DEVNULL,
                text=True,
                check=False,
            )
        except OSError as exc:
            logger.warning("Could not execute %s: %s", argv[0], exc)
            return CommandResult(command=argv, exit_code=127, output=str(exc))
        return CommandResult(
            command=argv, exit_code=completed.returncode, output=completed.stdout
        )

    def run_streaming(
        self, command: Sequence[str], *, env: BuildEnvironment, cwd: Path
    ) -> CommandResult:
        argv = tuple(command)
        logger.debug("pipe: %s", " ".join(argv))
        chunks: list[str] = []
        try:
            with subprocess.Popen(
                argv,
                cwd=cwd,
                env=env.as_process_env(),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            ) as proc:
                assert proc.stdout is not None
                for line in proc.stdout:
                    chunks.append(line)
                    self._stream.write(f"       {line}")
                    self._stream.flush()
                exit_code = proc.wait()
        except OSError as exc:
            logger.warning("Could not execute %s: %s", argv[0], exc)
            return CommandResult(command=argv, exit_code=127, output=str(exc))
        return CommandResult(command=argv, exit_code=exit_code, output="".join(chunks))
