"""Runtime settings — env-driven via pydantic-settings.

Reads from a .env file and SLUGFORGE_* environment variables. These settings
describe where the build runs and where artifacts come from; the versions a
pipeline release pins live in :class:`slugforge.models.config.PipelineConfig`.
"""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class BuildSettings(BaseSettings):
    """Build host settings with environment variable overrides.

    Examples
    --------
    Override via environment::

        export SLUGFORGE_LOG_LEVEL=DEBUG
        export SLUGFORGE_BUILDPACK_BASE_URL=https://mirror.example.com/ruby
        export SLUGFORGE_BUILD_RUBY_ROOT=/var/tmp
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SLUGFORGE_",
        env_file_encoding="utf-8",
    )

    log_level: str = "INFO"

    # Artifact sources
    buildpack_base_url: str = "https://s3-external-1.amazonaws.com/heroku-buildpack-ruby"
    jvm_base_url: str = "http://heroku-jdk.s3.amazonaws.com"
    fetch_timeout_seconds: float = 120.0

    # Bootstrap runtimes are unpacked outside the slug
    build_ruby_root: Path = Path("/tmp")

    # Ruby shim required by runtimes that predate psych
    syck_hack_path: Path = Path(__file__).parent / "data" / "syck_hack.rb"

    # ERB database config written into apps that have a config/ directory
    database_yml_template: Path = Path(__file__).parent / "data" / "database.yml.erb"


# Module-level singleton; import as `from slugforge.config import settings`
settings = BuildSettings()
