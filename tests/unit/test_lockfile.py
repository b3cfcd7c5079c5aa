"""Unit tests for Gemfile.lock and Gemfile reading."""

from __future__ import annotations

from pathlib import Path

from slugforge.core.lockfile import parse_lockfile, read_gemfile_ruby, read_lockfile

WINDOWS_LOCK = """\
GEM
  remote: https://rubygems.org/
  specs:
    pg (0.15.1-x86-mingw32)
    rack (1.5.2)

PLATFORMS
  x86-mingw32

DEPENDENCIES
  pg
"""

RUBY_VERSION_LOCK = """\
GEM
  remote: https://rubygems.org/
  specs:
    execjs (2.0.0)

PLATFORMS
  java

RUBY VERSION
   ruby 1.9.3p392 (jruby 1.7.4)

BUNDLED WITH
   1.3.5
"""


class TestParseLockfile:
    def test_specs_and_platforms(self, build_dir: Path):
        lock = read_lockfile(build_dir)
        assert lock is not None
        assert lock.specs == {"rack": "1.5.2", "sinatra": "1.4.3"}
        assert lock.platforms == ("ruby",)
        assert lock.ruby_version is None
        assert not lock.has_incompatible_platform

    def test_nested_dependency_lines_are_not_specs(self, build_dir: Path):
        lock = read_lockfile(build_dir)
        assert list(lock.specs) == ["rack", "sinatra"]

    def test_windows_platform_detected(self):
        lock = parse_lockfile(WINDOWS_LOCK)
        assert lock.has_incompatible_platform
        assert lock.has_gem("pg")

    def test_ruby_version_with_engine(self):
        lock = parse_lockfile(RUBY_VERSION_LOCK)
        assert lock.ruby_version == "ruby-1.9.3-jruby-1.7.4"
        assert lock.bundled_with == "1.3.5"
        assert lock.has_gem("execjs")

    def test_ruby_version_plain(self):
        lock = parse_lockfile("RUBY VERSION\n   ruby 2.0.0p247\n")
        assert lock.ruby_version == "ruby-2.0.0"

    def test_missing_lockfile(self, tmp_path: Path):
        assert read_lockfile(tmp_path) is None


class TestGemfileRuby:
    def test_no_directive(self, build_dir: Path):
        assert read_gemfile_ruby(build_dir) is None

    def test_plain_directive(self, tmp_path: Path):
        (tmp_path / "Gemfile").write_text("source 'x'\nruby '1.9.3'\n", encoding="utf-8")
        assert read_gemfile_ruby(tmp_path) == "ruby-1.9.3"

    def test_hash_rocket_engine(self, tmp_path: Path):
        (tmp_path / "Gemfile").write_text(
            "ruby '1.9.3', :engine => 'jruby', :engine_version => '1.7.4'\n",
            encoding="utf-8",
        )
        assert read_gemfile_ruby(tmp_path) == "ruby-1.9.3-jruby-1.7.4"

    def test_keyword_engine(self, tmp_path: Path):
        (tmp_path / "Gemfile").write_text(
            'ruby "2.0.0", engine: "rbx", engine_version: "2.0.0"\n', encoding="utf-8"
        )
        assert read_gemfile_ruby(tmp_path) == "ruby-2.0.0-rbx-2.0.0"

    def test_gem_named_like_ruby_is_ignored(self, tmp_path: Path):
        (tmp_path / "Gemfile").write_text("gem 'ruby-prof'\n", encoding="utf-8")
        assert read_gemfile_ruby(tmp_path) is None

    def test_no_gemfile(self, tmp_path: Path):
        assert read_gemfile_ruby(tmp_path) is None
