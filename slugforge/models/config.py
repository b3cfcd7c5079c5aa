"""Pipeline configuration model — pinned versions and slug layout."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class PipelineConfig(BaseModel):
    """Version pins and well-known paths for one pipeline release.

    Bumping ``pipeline_version`` or ``bundler_version`` is recorded in the
    build metadata so later builds can tell which release filled the cache.
    """

    model_config = ConfigDict(frozen=True)

    pipeline_version: str = "v70"
    default_ruby_version: str = "ruby-2.0.0"
    bundler_version: str = "1.3.2"
    libyaml_version: str = "0.1.4"
    node_version: str = "0.4.7"
    jvm_version: str = "openjdk7-latest"

    # Slug layout, relative to the build directory
    bin_dir: str = "bin"
    vendor_dir: str = "vendor"
    bundler_cache: str = "vendor/bundle"
    bundle_config_dir: str = ".bundle"
    metadata_dir: str = "vendor/heroku"
    jvm_dir: str = "vendor/jvm"
    profile_dir: str = ".profile.d"

    version_catalog: str = "ruby_versions.yml"
    default_bundle_without: str = "development:test"
    locale: str = "en_US.UTF-8"

    # JVM tuning for JRuby
    java_opts: str = "-Xmx384m -Xss512k -XX:+UseCompressedOops -Dfile.encoding=UTF-8"
    jruby_opts: str = "-Xcompile.invokedynamic=true"
    java_tool_options: str = "-Djava.rmi.server.useCodebaseOnly=true"

    @property
    def bundler_gem(self) -> str:
        return f"bundler-{self.bundler_version}"

    @property
    def libyaml_artifact(self) -> str:
        return f"libyaml-{self.libyaml_version}"

    @property
    def node_binary(self) -> str:
        return f"node-{self.node_version}"

    def vendor_ruby(self, identifier: str) -> str:
        """Relative path of a vendored runtime, e.g. ``vendor/ruby-2.0.0``."""
        return f"{self.vendor_dir}/{identifier}"

    def binstubs_path(self, identifier: str) -> str:
        return f"{self.bundler_cache}/{identifier}/bin"
