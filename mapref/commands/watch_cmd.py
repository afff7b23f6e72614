"""Watch command - keep the index current while documents change."""

from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path

from rich.console import Console

from ..config import IndexConfig
from ..index.indexer import Change, CorpusIndexer, RebuildReport
from ..watcher import run_watch_loop
from .index_cmd import display_path


def run_watch(root: Path, config: IndexConfig) -> None:
    """
    Watch the corpus, index it, then reindex changed documents until interrupted (Ctrl+C).
    """
    console = Console(stderr=True)
    indexer = CorpusIndexer.open(root, config)

    console.print(f"[bold]Watching[/bold] {indexer.layout.assets_dir}")
    console.print(f"  Debounce: {config.debounce_seconds:g}s")
    console.print()
    console.print("[dim]Press Ctrl+C to stop watching[/dim]")
    console.print()

    change_count = 0

    def on_change(path: Path, change: Change) -> None:
        nonlocal change_count
        change_count += 1
        timestamp = datetime.now().strftime("%H:%M:%S")
        console.print(f"[dim]{timestamp}[/dim] {change.value} {display_path(root, str(path))}")

    def on_ready(report: RebuildReport) -> None:
        console.print(f"Indexed {report.changed} documents ({report.unchanged} unchanged)", style="dim")

    try:
        asyncio.run(run_watch_loop(indexer, config.debounce_seconds, on_change=on_change, on_ready=on_ready))
    except KeyboardInterrupt:
        console.print()
        console.print(f"[bold]Stopped.[/bold] Applied {change_count} changes.")
