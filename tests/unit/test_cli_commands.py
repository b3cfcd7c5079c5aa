"""Unit tests for the CLI — Typer command registration and basic behavior."""

from __future__ import annotations

from pathlib import Path

import yaml
from typer.testing import CliRunner

from slugforge.cli.app import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# Test: CLI help and registration
# ---------------------------------------------------------------------------


class TestCliApp:
    """The CLI must register all expected commands and show help."""

    def test_no_args_shows_help(self):
        result = runner.invoke(app, [])
        # Typer's no_args_is_help may exit with 0 or 2 depending on version
        assert result.exit_code in (0, 2)
        assert "usage" in result.output.lower()

    def test_help_lists_commands(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("detect", "compile", "release", "fingerprint"):
            assert command in result.output

    def test_each_command_has_help(self):
        for command in ("detect", "compile", "release", "fingerprint"):
            result = runner.invoke(app, [command, "--help"])
            assert result.exit_code == 0, command


# ---------------------------------------------------------------------------
# Test: command behavior
# ---------------------------------------------------------------------------


class TestDetect:
    def test_ruby_app(self, build_dir: Path):
        result = runner.invoke(app, ["detect", str(build_dir)])
        assert result.exit_code == 0
        assert "Ruby" in result.output

    def test_not_ruby(self, tmp_path: Path):
        result = runner.invoke(app, ["detect", str(tmp_path)])
        assert result.exit_code == 1


class TestCompile:
    def test_missing_manifest_fails_with_remediation(self, build_dir: Path, cache_dir: Path):
        (build_dir / "Gemfile.lock").unlink()
        result = runner.invoke(app, ["compile", str(build_dir), str(cache_dir)])
        assert result.exit_code == 1
        assert "Gemfile.lock is required." in result.output
        assert "bundle install" in result.output


class TestFingerprint:
    def test_no_fingerprint(self, tmp_path: Path):
        result = runner.invoke(app, ["fingerprint", str(tmp_path)])
        assert result.exit_code == 0
        assert "No fingerprint recorded" in result.output

    def test_shows_persisted_fingerprint(self, tmp_path: Path):
        folder = tmp_path / "vendor" / "heroku"
        folder.mkdir(parents=True)
        (folder / "ruby_version_info").write_text(
            yaml.safe_dump({"ruby 2.0.0p247": "2.0.3"}), encoding="utf-8"
        )
        (folder / "buildpack_version").write_text("v70", encoding="utf-8")
        (folder / "bundler_version").write_text("1.3.2", encoding="utf-8")
        result = runner.invoke(app, ["fingerprint", str(tmp_path)])
        assert result.exit_code == 0
        assert "ruby 2.0.0p247" in result.output
        assert "v70" in result.output


class TestRelease:
    def test_release_yaml(self, build_dir: Path, monkeypatch):
        from slugforge.collaborators import shell

        class StubRunner:
            def run(self, command, *, env, cwd):
                return shell.CommandResult(
                    command=tuple(command), exit_code=0, output="vendor/bundle/ruby/2.0.0\n"
                )

        monkeypatch.setattr(shell, "ShellRunner", StubRunner)
        result = runner.invoke(app, ["release", str(build_dir)])
        assert result.exit_code == 0
        release = yaml.safe_load(result.stdout)
        assert release["default_process_types"]["rake"] == "bundle exec rake"
        assert release["config_vars"]["GEM_PATH"] == "vendor/bundle/ruby/2.0.0"
