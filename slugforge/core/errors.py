"""Build error taxonomy.

Every fatal error aborts the pipeline and carries the concrete action the
user should take. ``CacheFingerprintMismatch`` is the one non-fatal member:
it describes a purge decision and is logged, never raised out of the
pipeline.
"""

from __future__ import annotations

from collections.abc import Iterable


class BuildError(RuntimeError):
    """Base for fatal build failures.

    Parameters
    ----------
    message:
        What went wrong.
    remediation:
        What the user should do about it.
    """

    def __init__(self, message: str, *, remediation: str = "") -> None:
        self.message = message
        self.remediation = remediation
        super().__init__(self.render())

    def render(self) -> str:
        if self.remediation:
            return f"{self.message}\n{self.remediation}"
        return self.message


class InvalidVersionError(BuildError):
    """The requested runtime version is not in the version catalog."""

    def __init__(
        self,
        version: str,
        valid_versions: Iterable[str] = (),
        *,
        message: str | None = None,
    ) -> None:
        self.version = version
        self.valid_versions = list(valid_versions)
        super().__init__(
            message or f"Invalid RUBY_VERSION specified: {version}",
            remediation=f"Valid versions: {', '.join(self.valid_versions)}",
        )


class ArtifactFetchError(InvalidVersionError):
    """Fetching or unpacking a runtime, VM, or helper artifact failed."""

    def __init__(
        self,
        artifact: str,
        version: str = "",
        valid_versions: Iterable[str] = (),
    ) -> None:
        self.artifact = artifact
        self.version = version
        self.valid_versions = list(valid_versions)
        if self.valid_versions:
            message = f"Invalid RUBY_VERSION specified: {version or artifact}"
            remediation = f"Valid versions: {', '.join(self.valid_versions)}"
        else:
            message = f"Failed to fetch and unpack {artifact}"
            remediation = (
                f"Could not download {artifact}. "
                "Check network access to the artifact source and retry the build."
            )
        BuildError.__init__(self, message, remediation=remediation)


class MissingManifestError(BuildError):
    """The application has no Gemfile.lock."""

    def __init__(self) -> None:
        super().__init__(
            "Gemfile.lock is required.",
            remediation=(
                'Please run "bundle install" locally\nand commit your Gemfile.lock.'
            ),
        )


class DependencyInstallError(BuildError):
    """Bundler exited non-zero."""

    def __init__(self, output: str, *, hint: str = "") -> None:
        self.output = output
        self.hint = hint
        remediation = f"Bundler Output: {output}"
        if hint:
            remediation += f"\n\n{hint}"
        super().__init__("Failed to install gems via Bundler.", remediation=remediation)


class CacheFingerprintMismatch(Exception):
    """Installed runtimes differ from those that filled the cache.

    Not fatal: the cache manager records it, purges, and continues.
    """

    def __init__(self, old: Iterable[str], new: Iterable[str], reason: str) -> None:
        self.old = sorted(old)
        self.new = sorted(new)
        self.reason = reason
        super().__init__(
            f"{reason}\nOld: {','.join(self.old)}\nNew: {','.join(self.new)}"
        )


class RakeTaskError(BuildError):
    """Loading the app's Rakefile failed while checking for a task."""

    def __init__(self, task: str, output: str) -> None:
        self.task = task
        self.output = output
        super().__init__(
            f"Could not check for rake task {task}.",
            remediation=f"Rake Output: {output}",
        )
