"""Entity listing, usage and definition lookup commands."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..config import IndexConfig
from ..corpus.jsonpath import format_path
from ..models import Range
from .index_cmd import display_path, open_indexer


def _line(range_: Range | None) -> str:
    return str(range_.start.line + 1) if range_ else "-"


def run_entities(root: Path, config: IndexConfig, kind: str, output_json: bool = False) -> int:
    """List every concrete entity of ``kind``."""
    indexer = open_indexer(root, config)
    matches = indexer.query.entities_of(kind)

    if output_json:
        output = [
            {
                "id": m.entity.qualified_id,
                "token": m.token,
                "shared": m.shared,
                "file": m.entity.file,
                "path": format_path(m.entity.path),
            }
            for m in matches
        ]
        print(json.dumps(output, indent=2))
        return 0

    console = Console()
    if not matches:
        console.print(f"No {kind} entities found", style="yellow")
        return 0

    table = Table(title=f"{kind} ({len(matches)})")
    table.add_column("Token", style="bold")
    table.add_column("Shared")
    table.add_column("File")
    table.add_column("Line", justify="right")
    for m in matches:
        table.add_row(m.token, "yes" if m.shared else "", display_path(root, m.entity.file), _line(m.entity.range))
    console.print(table)
    return 0


def run_refs(root: Path, config: IndexConfig, qualified_id: str, output_json: bool = False) -> int:
    """List every reference whose target is ``qualified_id``.

    Returns:
        Exit code (0 = success, 1 = no usages found)
    """
    indexer = open_indexer(root, config)
    refs = indexer.query.references_to(qualified_id)
    refs.sort(key=lambda r: (r.file or "", r.source.range.start.line if r.source.range else 0))

    if output_json:
        print(json.dumps([ref.to_dict() for ref in refs], indent=2))
        return 0 if refs else 1

    console = Console()
    if not refs:
        console.print(f"No references to {qualified_id}", style="yellow")
        return 1

    table = Table(title=f"References to {qualified_id} ({len(refs)})")
    table.add_column("File")
    table.add_column("Line", justify="right")
    table.add_column("From")
    table.add_column("As")
    for ref in refs:
        token = f"{ref.token} (builtin)" if ref.builtin else ref.token
        table.add_row(display_path(root, ref.file), _line(ref.source.range), ref.source.qualified_id, token)
    console.print(table)
    return 0


def run_resolve(root: Path, config: IndexConfig, file: Path, path: str) -> int:
    """Show the definitions the reference at ``path`` in ``file`` points to.

    Returns:
        Exit code (0 = success, 1 = no resolved reference at that path)
    """
    console = Console()
    indexer = open_indexer(root, config)
    if not indexer.layout.is_eligible(file):
        console.print(f"{file} is not an indexed corpus document", style="bold red")
        return 1

    targets = indexer.query.resolve_at(file, path)
    if not targets:
        console.print(f"No resolved reference at {path}", style="yellow")
        return 1

    for target in targets:
        console.print(
            f"[bold]{target.qualified_id}[/bold]  "
            f"{display_path(root, target.file)}:{_line(target.range)}"
        )
    return 0
