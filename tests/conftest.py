"""Shared test fixtures for Slugforge.

Network and process collaborators are replaced by in-memory fakes: the
fetcher materializes small directory trees that look like the real
artifacts, and the runner answers the handful of commands the pipeline
issues based on the runtime found on the environment's PATH.
"""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Collection, Sequence
from pathlib import Path
from typing import Any

import pytest
import yaml

from slugforge.collaborators.cache_store import DirectoryCacheStore
from slugforge.collaborators.metadata_store import DirectoryMetadataStore
from slugforge.collaborators.shell import CommandResult
from slugforge.config import BuildSettings
from slugforge.core.environment_builder import VENDOR_BASE_PROBE
from slugforge.core.pipeline import Pipeline
from slugforge.models.config import PipelineConfig
from slugforge.models.environment import BuildEnvironment

CATALOG = [
    "ruby-1.8.7",
    "ruby-1.9.2",
    "ruby-1.9.3",
    "ruby-2.0.0",
    "ruby-1.9.3-jruby-1.7.4",
]

LOCKFILE = """\
GEM
  remote: https://rubygems.org/
  specs:
    rack (1.5.2)
    sinatra (1.4.3)
      rack (~> 1.4)

PLATFORMS
  ruby

DEPENDENCIES
  sinatra
"""

GEMFILE = """\
source 'https://rubygems.org'
gem 'sinatra'
"""

_RUNTIME_ON_PATH = re.compile(r"/((?:ruby|jruby|rbx)-[\w.\-]+?)/bin$")
_VERSION_DIGITS = re.compile(r"\d+\.\d+\.\d+")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeFetcher:
    """Records every artifact requested and unpacks a plausible tree for it."""

    def __init__(self, catalog: Sequence[str] = CATALOG, fail: Sequence[str] = ()) -> None:
        self.catalog = list(catalog)
        self.fail = set(fail)
        self.calls: list[str] = []

    def fetch(self, name: str) -> bytes | None:
        self.calls.append(name)
        if name in self.fail:
            return None
        if name == "ruby_versions.yml":
            return yaml.safe_dump(self.catalog).encode("utf-8")
        return b""

    def fetch_and_unpack(self, name: str, dest: Path) -> bool:
        self.calls.append(name)
        if name in self.fail:
            return False
        dest = Path(dest)
        if name.startswith("ruby-") or name.startswith("rbx-"):
            _touch(dest / "bin" / "ruby", dest / "bin" / "gem", dest / "bin" / "irb")
        elif name.startswith("openjdk"):
            _touch(dest / "bin" / "java")
        elif name.startswith("libyaml-"):
            _touch(dest / "include" / "yaml.h", dest / "lib" / "libyaml.a")
        elif name.startswith("bundler-"):
            gem = name.removesuffix(".tgz")
            _touch(dest / "gems" / gem / "lib" / "bundler.rb", dest / "bin" / "bundle")
        else:
            _touch(dest / name.removesuffix(".tgz").split("-")[0])
        return True

    def unpacked(self, name: str) -> bool:
        return name in self.calls


class FakeRunner:
    """Answers the commands the pipeline runs, keyed on argv.

    ``bundle install`` succeeds unless ``install_exit_code`` is set;
    ``on_install`` runs after a successful install with the build dir.
    Rake tasks listed in ``rake_tasks`` are reported as defined when the
    build dir has a Rakefile; ``rake_check_output`` forces a failed check.
    """

    def __init__(
        self,
        *,
        gem_version: str = "2.0.3",
        install_exit_code: int = 0,
        install_output: str = "Your bundle is complete!\n",
        on_install: Callable[[Path], None] | None = None,
        rake_tasks: Collection[str] = (),
        rake_check_output: str | None = None,
        precompile_exit_code: int = 0,
    ) -> None:
        self.gem_version = gem_version
        self.install_exit_code = install_exit_code
        self.install_output = install_output
        self.on_install = on_install
        self.rake_tasks = set(rake_tasks)
        self.rake_check_output = rake_check_output
        self.precompile_exit_code = precompile_exit_code
        self.calls: list[tuple[tuple[str, ...], BuildEnvironment]] = []
        self.git_dir_during_install: list[str | None] = []

    def commands(self) -> list[tuple[str, ...]]:
        return [command for command, _ in self.calls]

    def run(
        self,
        command: Sequence[str],
        *,
        env: BuildEnvironment,
        cwd: Path,
        merge_stderr: bool = False,
    ) -> CommandResult:
        argv = tuple(command)
        self.calls.append((argv, env))
        runtime = _runtime_on_path(env)

        if argv[:2] == ("ruby", "-v"):
            if runtime is None:
                return CommandResult(command=argv, exit_code=127)
            return CommandResult(command=argv, exit_code=0, output=f"{runtime} (fake)\n")
        if argv[:2] == ("gem", "-v"):
            return CommandResult(command=argv, exit_code=0, output=f"{self.gem_version}\n")
        if argv[:2] == ("ruby", "-e") and argv[2] == VENDOR_BASE_PROBE:
            return CommandResult(
                command=argv, exit_code=0, output=f"vendor/bundle/ruby/{_digits(runtime)}\n"
            )
        if argv[:2] == ("ruby", "-e"):
            return CommandResult(command=argv, exit_code=0, output=f"{_digits(runtime)}\n")
        if argv[:2] == ("bundle", "version"):
            return CommandResult(command=argv, exit_code=0, output="Bundler version 1.3.2\n")
        if argv[:5] == ("bundle", "exec", "ruby", "-S", "rake"):
            return self._rake_check(argv, Path(cwd), merge_stderr)
        return CommandResult(command=argv, exit_code=0)

    def run_streaming(
        self, command: Sequence[str], *, env: BuildEnvironment, cwd: Path
    ) -> CommandResult:
        argv = tuple(command)
        self.calls.append((argv, env))
        if argv[:3] == ("bundle", "exec", "rake"):
            return CommandResult(command=argv, exit_code=self.precompile_exit_code)
        self.git_dir_during_install.append(os.environ.get("GIT_DIR"))
        if self.install_exit_code != 0:
            return CommandResult(
                command=argv, exit_code=self.install_exit_code, output=self.install_output
            )
        gem_home = env.get("GEM_HOME")
        if gem_home:
            _touch(Path(gem_home) / "gems" / "rack-1.5.2" / "lib" / "rack.rb")
            _touch(Path(gem_home) / "cache" / "rack-1.5.2.gem")
        if self.on_install is not None:
            self.on_install(Path(cwd))
        return CommandResult(command=argv, exit_code=0, output=self.install_output)

    def _rake_check(
        self, argv: tuple[str, ...], cwd: Path, merge_stderr: bool
    ) -> CommandResult:
        if self.rake_check_output is not None:
            return CommandResult(command=argv, exit_code=1, output=self.rake_check_output)
        # rake reports a missing Rakefile on stderr
        if not (cwd / "Rakefile").exists():
            return CommandResult(
                command=argv,
                exit_code=1,
                output=(
                    "rake aborted!\nNo Rakefile found (looking for: rakefile, Rakefile)\n"
                    if merge_stderr
                    else ""
                ),
            )
        defined = "true" if argv[-1] in self.rake_tasks else "false"
        return CommandResult(command=argv, exit_code=0, output=f"{defined}\n")


def _touch(*paths: Path) -> None:
    for path in paths:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("#!/bin/sh\n", encoding="utf-8")


def _runtime_on_path(env: BuildEnvironment) -> str | None:
    for entry in (env.get("PATH") or "").split(":"):
        match = _RUNTIME_ON_PATH.search(entry)
        if match:
            return match.group(1)
    return None


def _digits(runtime: str | None) -> str:
    match = _VERSION_DIGITS.search(runtime or "")
    return match.group(0) if match else "2.0.0"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig()


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
    """An application checkout with a Gemfile and a Gemfile.lock."""
    path = tmp_path / "build"
    path.mkdir()
    (path / "Gemfile").write_text(GEMFILE, encoding="utf-8")
    (path / "Gemfile.lock").write_text(LOCKFILE, encoding="utf-8")
    return path


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def make_fetcher() -> Callable[..., FakeFetcher]:
    """Factory fixture: a FakeFetcher with a custom catalog or failing artifacts."""
    return FakeFetcher


@pytest.fixture
def make_runner() -> Callable[..., FakeRunner]:
    """Factory fixture: a FakeRunner with custom install behavior."""
    return FakeRunner


@pytest.fixture
def base_env() -> BuildEnvironment:
    return BuildEnvironment(variables={"PATH": "/usr/local/bin:/usr/bin:/bin", "HOME": "/app"})


@pytest.fixture
def cache_store(build_dir: Path, cache_dir: Path) -> DirectoryCacheStore:
    return DirectoryCacheStore(build_dir, cache_dir)


@pytest.fixture
def metadata(build_dir: Path, cache_store: DirectoryCacheStore) -> DirectoryMetadataStore:
    return DirectoryMetadataStore(build_dir, cache_store)


@pytest.fixture
def settings(tmp_path: Path) -> BuildSettings:
    """Settings whose bootstrap runtimes unpack inside the test's tmp dir."""
    return BuildSettings(build_ruby_root=tmp_path / "build-rubies")


@pytest.fixture
def make_pipeline(
    build_dir: Path,
    cache_dir: Path,
    settings: BuildSettings,
    base_env: BuildEnvironment,
) -> Callable[..., Pipeline]:
    """Factory fixture: a Pipeline over the test checkout with fake collaborators."""

    def _factory(
        fetcher: FakeFetcher | None = None,
        runner: FakeRunner | None = None,
        env: BuildEnvironment | None = None,
        **overrides: Any,
    ) -> Pipeline:
        fetcher = fetcher or FakeFetcher()
        return Pipeline(
            overrides.pop("build_dir", build_dir),
            overrides.pop("cache_dir", cache_dir),
            settings=settings,
            fetcher=fetcher,
            jvm_fetcher=overrides.pop("jvm_fetcher", fetcher),
            runner=runner or FakeRunner(),
            env=env or base_env,
            **overrides,
        )

    return _factory
