"""Main Typer application — imports and registers all CLI commands.

Entry point: ``slugforge`` (configured via pyproject.toml console_scripts).

Commands: detect, compile, release, fingerprint.
"""

from __future__ import annotations

import logging
from pathlib import Path

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler

from slugforge.cli.commands.compile_cmd import compile_cmd
from slugforge.cli.commands.fingerprint_cmd import fingerprint_cmd
from slugforge.config import settings

app = typer.Typer(
    name="slugforge",
    help="Slugforge: provision a Ruby runtime and gems into a cached build.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

console = Console()


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None, "--log-level", help="Override SLUGFORGE_LOG_LEVEL."
    ),
) -> None:
    """Configure logging once for every command."""
    level = (log_level or settings.log_level).upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# Register subcommands
app.command(name="compile", help="Compile an application into a slug.")(compile_cmd)
app.command(name="fingerprint", help="Show the persisted cache fingerprint.")(fingerprint_cmd)


@app.command(name="detect", help="Report whether a directory holds a Ruby app.")
def detect_cmd(
    build_dir: Path = typer.Argument(..., help="Application checkout."),
) -> None:
    """Print ``Ruby`` and exit 0 for a Ruby app; exit 1 otherwise."""
    from slugforge.core.release import detect

    if not detect(build_dir):
        console.print("no")
        raise typer.Exit(code=1)
    console.print("Ruby")


@app.command(name="release", help="Print release metadata for a compiled slug.")
def release_cmd(
    build_dir: Path = typer.Argument(..., help="Compiled application checkout."),
) -> None:
    """Emit addons, config vars, and default process types as YAML."""
    from slugforge.collaborators.shell import ShellRunner
    from slugforge.core.errors import BuildError
    from slugforge.core.release import describe_release

    try:
        release = describe_release(build_dir, ShellRunner())
    except BuildError as exc:
        console.print(f"[red]{exc.render()}[/red]")
        raise typer.Exit(code=1) from exc
    typer.echo(yaml.safe_dump(release, default_flow_style=False, sort_keys=False), nl=False)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
