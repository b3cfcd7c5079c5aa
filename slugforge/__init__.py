"""Slugforge: Ruby runtime and gem provisioning for slug builds.

Resolves which Ruby a build uses, installs prebuilt runtimes, derives the
build and deploy-time environment, and runs Bundler against a cache that is
invalidated whenever the installed runtimes change.
"""

__version__ = "0.1.0"
__description__ = "Ruby runtime and dependency provisioning pipeline for slug builds"

from slugforge.core.pipeline import BuildResult, Pipeline
from slugforge.cli.app import app as cli

__all__ = ["Pipeline", "BuildResult", "cli", "__version__"]
