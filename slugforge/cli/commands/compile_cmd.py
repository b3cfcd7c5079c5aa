"""``slugforge compile BUILD_DIR CACHE_DIR`` — build a slug.

Runs every provisioning stage against the application checkout and prints
the stage history. Fatal build errors exit non-zero with their remediation.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from slugforge.config import settings
from slugforge.core.errors import BuildError
from slugforge.core.pipeline import Pipeline

console = Console()

_STATE_STYLES = {
    "passed": "green",
    "failed": "red",
    "blocked": "yellow",
    "running": "cyan",
    "not_started": "dim",
}


def compile_cmd(
    build_dir: Path = typer.Argument(..., help="Application checkout to build in."),
    cache_dir: Path = typer.Argument(..., help="Directory that persists across builds."),
) -> None:
    """Compile a Ruby application into a slug."""
    pipeline = Pipeline(build_dir, cache_dir, settings=settings)
    try:
        result = pipeline.run()
    except BuildError as exc:
        _print_states(pipeline)
        console.print(
            Panel(
                exc.render(),
                title="[bold red]Build failed[/bold red]",
                border_style="red",
                padding=(1, 2),
            )
        )
        raise typer.Exit(code=1) from exc

    _print_states(pipeline)
    context = result.context
    resolved = context.require_resolved()
    decision = context.cache_decision
    console.print(
        Panel(
            "\n".join([
                f"[bold]Ruby:[/bold]       {', '.join(resolved.identifiers)} ({resolved.source.value})",
                f"[bold]Fetched:[/bold]    {', '.join(context.fetched) or 'nothing'}",
                f"[bold]Cache:[/bold]      {'purged' if decision and decision.purge else 'kept'}",
                f"[bold]Profile:[/bold]    {', '.join(context.profile_scripts)}",
            ]),
            title="[bold green]Build complete[/bold green]",
            border_style="green",
            padding=(1, 2),
        )
    )


def _print_states(pipeline: Pipeline) -> None:
    table = Table(title="Stages")
    table.add_column("Stage", style="cyan")
    table.add_column("State")
    for stage in pipeline.stages:
        state = pipeline.get_stage_state(stage.stage_id).value
        style = _STATE_STYLES.get(state, "")
        table.add_row(stage.display_name, f"[{style}]{state}[/{style}]")
    console.print(table)
