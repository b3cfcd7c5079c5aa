"""``slugforge fingerprint CACHE_DIR`` — show the persisted cache fingerprint."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from slugforge.core.cache_manager import (
    BUNDLER_VERSION_KEY,
    PIPELINE_VERSION_KEY,
    RUBY_VERSION_INFO_KEY,
)
from slugforge.core.hasher import fingerprint_digest
from slugforge.models.config import PipelineConfig
from slugforge.models.fingerprint import CacheFingerprint

console = Console()


def fingerprint_cmd(
    cache_dir: Path = typer.Argument(..., help="Build cache directory."),
) -> None:
    """Show which runtimes filled the cache, as recorded by the last successful build."""
    metadata_dir = cache_dir / PipelineConfig().metadata_dir
    info = metadata_dir / RUBY_VERSION_INFO_KEY
    if not info.exists():
        console.print("[dim]No fingerprint recorded; the next build starts cold.[/dim]")
        raise typer.Exit(code=0)

    def tag(key: str) -> str:
        path = metadata_dir / key
        return path.read_text(encoding="utf-8").strip() if path.exists() else ""

    fingerprint = CacheFingerprint(
        runtimes=CacheFingerprint.parse_runtimes(info.read_bytes()),
        pipeline_version=tag(PIPELINE_VERSION_KEY),
        bundler_version=tag(BUNDLER_VERSION_KEY),
    )

    table = Table(title="Cache Fingerprint")
    table.add_column("Runtime", style="cyan")
    table.add_column("Gem manager", style="green")
    for runtime, gem in sorted(fingerprint.runtimes.items()):
        table.add_row(runtime, gem)
    console.print(table)
    console.print(f"[bold]Pipeline:[/bold] {fingerprint.pipeline_version or '-'}")
    console.print(f"[bold]Bundler:[/bold]  {fingerprint.bundler_version or '-'}")
    console.print(f"[bold]Digest:[/bold]   {fingerprint_digest(fingerprint)[:16]}")
