"""Index and check commands."""

from __future__ import annotations

import asyncio
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import IndexConfig
from ..index.indexer import CorpusIndexer


def display_path(root: Path, file: str | None) -> str:
    """Show a document path relative to the corpus root when possible."""
    if not file:
        return "-"
    try:
        return Path(file).relative_to(root).as_posix()
    except ValueError:
        return file


def open_indexer(root: Path, config: IndexConfig) -> CorpusIndexer:
    """Open the corpus index and bring it up to date with the documents on disk."""
    indexer = CorpusIndexer.open(root, config)
    asyncio.run(indexer.rebuild_all())
    return indexer


def run_index(root: Path, config: IndexConfig, force: bool = False) -> int:
    """Build or update the index snapshot.

    Returns:
        Exit code (0 = success, 1 = some documents could not be scanned)
    """
    console = Console(stderr=True)
    console.print(f"Indexing {root}...", style="dim")

    indexer = CorpusIndexer.open(root, config)
    report = asyncio.run(indexer.rebuild_all(force=force))

    table = Table(title="Index")
    table.add_column("Scanned", justify="right")
    table.add_column("Unchanged", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Removed", justify="right")
    table.add_row(str(report.changed), str(report.unchanged), str(report.failed), str(report.removed))
    console.print(table)

    store = indexer.store
    console.print(
        f"{len(store.entities)} entities, {len(store.references)} references "
        f"in {len(store.files())} documents",
        style="dim",
    )
    if indexer.snapshot_path is not None:
        console.print(f"Snapshot: {display_path(root, str(indexer.snapshot_path))}", style="dim")

    if report.failed:
        console.print(f"✗ {report.failed} documents could not be indexed", style="bold red")
        return 1
    return 0


def run_check(root: Path, config: IndexConfig, fail_on_unresolved: bool = False) -> int:
    """Report unresolved references.

    Returns:
        Exit code (0 = success, 1 = unresolved references found and ``fail_on_unresolved``)
    """
    console = Console()
    indexer = open_indexer(root, config)
    unresolved = indexer.query.unresolved()

    if not unresolved:
        console.print("✓ All references resolve", style="green")
        return 0

    unresolved.sort(key=lambda r: (r.file or "", r.source.range.start.line if r.source.range else 0))
    table = Table(title=f"Unresolved references ({len(unresolved)})")
    table.add_column("File")
    table.add_column("Line", justify="right")
    table.add_column("Kind")
    table.add_column("Reference")
    for ref in unresolved:
        line = str(ref.source.range.start.line + 1) if ref.source.range else "-"
        table.add_row(display_path(root, ref.file), line, ref.kind.value, ref.token)
    console.print(table)

    return 1 if fail_on_unresolved else 0
