"""Unit tests for DependencyInstaller — manifest handling, flags, env, failures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from slugforge.core.dependency_installer import (
    SQLITE3_HINT,
    DependencyInstaller,
    allow_git,
)
from slugforge.core.environment_builder import EnvironmentBuilder
from slugforge.core.errors import DependencyInstallError, MissingManifestError
from slugforge.models.versioning import RuntimeVersion

RUBY_200 = RuntimeVersion.parse("ruby-2.0.0")
RUBY_187 = RuntimeVersion.parse("ruby-1.8.7")
VENDOR_BASE = "vendor/bundle/ruby/2.0.0"

WINDOWS_LOCK = """\
GEM
  remote: https://rubygems.org/
  specs:
    rack (1.5.2)

PLATFORMS
  x86-mingw32
"""

SQLITE_OUTPUT = (
    "Installing sqlite3 (1.3.7) with native extensions \n"
    "Gem::Installer::ExtensionBuildError: ERROR: Failed to build gem native extension.\n"
)


@pytest.fixture
def make_installer(build_dir, fetcher, cache_store, tmp_path):
    syck = tmp_path / "syck_hack.rb"
    syck.write_text("# shim\n", encoding="utf-8")

    def _factory(runner):
        return DependencyInstaller(
            build_dir, fetcher, runner, cache_store, syck_hack_path=syck
        )

    return _factory


@pytest.fixture
def process_env(build_dir, runner, base_env):
    builder = EnvironmentBuilder(build_dir, runner)
    return builder.build_process_env(RUBY_200, base_env, "vendor/ruby-2.0.0/bin")


def _install_calls(runner):
    return [c for c in runner.commands() if c[:2] == ("bundle", "install")]


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


class TestManifest:
    def test_missing_manifest(self, build_dir, make_installer, runner):
        (build_dir / "Gemfile.lock").unlink()
        with pytest.raises(MissingManifestError) as exc_info:
            make_installer(runner).require_manifest()
        assert "Gemfile.lock is required." in str(exc_info.value)
        assert "bundle install" in exc_info.value.remediation

    def test_deployment_mode_with_platform_lock(
        self, make_installer, runner, process_env
    ):
        result = make_installer(runner).install(RUBY_200, process_env, VENDOR_BASE)
        assert result.deployment
        assert not result.lockfile_removed
        command = _install_calls(runner)[0]
        assert command == (
            "bundle", "install",
            "--without", "development:test",
            "--path", "vendor/bundle",
            "--binstubs", "vendor/bundle/ruby-2.0.0/bin",
            "--deployment",
            "--no-clean",
        )

    def test_windows_lock_removed(self, build_dir, make_installer, runner, process_env):
        (build_dir / "Gemfile.lock").write_text(WINDOWS_LOCK, encoding="utf-8")
        result = make_installer(runner).install(RUBY_200, process_env, VENDOR_BASE)
        assert result.lockfile_removed
        assert not result.deployment
        assert not (build_dir / "Gemfile.lock").exists()
        assert "--deployment" not in _install_calls(runner)[0]

    def test_bundle_without_from_env(self, make_installer, runner, process_env):
        env = process_env.with_vars({"BUNDLE_WITHOUT": "development"})
        make_installer(runner).install(RUBY_200, env, VENDOR_BASE)
        command = _install_calls(runner)[0]
        assert command[command.index("--without") + 1] == "development"


# ---------------------------------------------------------------------------
# Install environment
# ---------------------------------------------------------------------------


class TestInstallEnv:
    def test_libyaml_on_compiler_paths(self, make_installer, runner, process_env, fetcher):
        make_installer(runner).install(RUBY_200, process_env, VENDOR_BASE)
        env = next(e for c, e in runner.calls if c[:2] == ("bundle", "install"))
        assert env.get("CPATH").endswith("libyaml-0.1.4/include")
        assert env.get("LIBRARY_PATH").endswith("libyaml-0.1.4/lib")
        assert env.get("BUNDLE_GEMFILE").endswith("Gemfile")
        assert env.get("RUBYOPT") == ""
        assert "libyaml-0.1.4.tgz" in fetcher.calls

    def test_git_dir_removed_and_restored(
        self, make_installer, runner, process_env, monkeypatch
    ):
        monkeypatch.setenv("GIT_DIR", "/repo/.git")
        make_installer(runner).install(
            RUBY_200, process_env.with_vars({"GIT_DIR": "/repo/.git"}), VENDOR_BASE
        )
        env = next(e for c, e in runner.calls if c[:2] == ("bundle", "install"))
        assert "GIT_DIR" not in env
        assert runner.git_dir_during_install == [None]
        assert os.environ["GIT_DIR"] == "/repo/.git"

    def test_git_dir_restored_on_failure(
        self, make_installer, make_runner, process_env, monkeypatch
    ):
        monkeypatch.setenv("GIT_DIR", "/repo/.git")
        runner = make_runner(install_exit_code=1, install_output="boom")
        with pytest.raises(DependencyInstallError):
            make_installer(runner).install(RUBY_200, process_env, VENDOR_BASE)
        assert runner.git_dir_during_install == [None]
        assert os.environ["GIT_DIR"] == "/repo/.git"

    def test_allow_git_without_git_dir(self, monkeypatch):
        monkeypatch.delenv("GIT_DIR", raising=False)
        with allow_git():
            assert "GIT_DIR" not in os.environ
        assert "GIT_DIR" not in os.environ

    def test_syck_hack_for_old_rubies(self, build_dir, make_installer, runner, base_env, tmp_path):
        builder = EnvironmentBuilder(build_dir, runner)
        env = builder.build_process_env(RUBY_187, base_env, "vendor/ruby-1.8.7/bin")
        make_installer(runner).install(RUBY_187, env, "vendor/bundle/1.8")
        install_env = next(e for c, e in runner.calls if c[:2] == ("bundle", "install"))
        assert install_env.get("RUBYOPT") == f"-r{tmp_path / 'syck_hack'}"
        assert install_env.get("BUNDLER_LIB_PATH") == str(
            build_dir / "vendor/bundle/1.8/gems/bundler-1.3.2/lib"
        )


# ---------------------------------------------------------------------------
# Results and failures
# ---------------------------------------------------------------------------


class TestOutcome:
    def test_success_cleans_up(self, build_dir, make_installer, runner, process_env):
        result = make_installer(runner).install(RUBY_200, process_env, VENDOR_BASE)
        assert result.bundler_version == "Bundler version 1.3.2"
        assert ("bundle", "clean") in runner.commands()
        assert (build_dir / VENDOR_BASE / "gems" / "rack-1.5.2").exists()
        assert not (build_dir / VENDOR_BASE / "cache").exists()

    def test_failure_carries_output(self, make_installer, make_runner, process_env):
        runner = make_runner(install_exit_code=5, install_output="Could not find gem 'nope'")
        with pytest.raises(DependencyInstallError) as exc_info:
            make_installer(runner).install(RUBY_200, process_env, VENDOR_BASE)
        assert exc_info.value.message == "Failed to install gems via Bundler."
        assert "Could not find gem 'nope'" in exc_info.value.remediation
        assert exc_info.value.hint == ""
        assert ("bundle", "clean") not in runner.commands()

    def test_sqlite3_failure_hint(self, make_installer, make_runner, process_env):
        runner = make_runner(install_exit_code=1, install_output=SQLITE_OUTPUT)
        with pytest.raises(DependencyInstallError) as exc_info:
            make_installer(runner).install(RUBY_200, process_env, VENDOR_BASE)
        rendered = exc_info.value.render()
        assert SQLITE_OUTPUT in rendered
        assert SQLITE3_HINT in rendered


class TestManagedGems:
    def test_install_managed_gems(self, build_dir, make_installer, runner, fetcher):
        installer = make_installer(runner)
        assert not installer.managed_gems_installed(VENDOR_BASE)
        installer.install_managed_gems(RUBY_200, VENDOR_BASE)
        assert installer.managed_gems_installed(VENDOR_BASE)
        assert os.access(build_dir / VENDOR_BASE / "bin" / "bundle", os.X_OK)
        assert fetcher.calls == ["bundler-1.3.2.tgz"]
