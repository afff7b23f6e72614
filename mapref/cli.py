"""CLI entrypoint for mapref."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import ConfigError, load_config


def _auto_detect_root(start: Path) -> Path | None:
    """Find the corpus root (a folder holding assets/) by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        if (p / "assets").is_dir():
            return p
    return None


def _setup_logging(verbose: bool) -> None:
    """Route the package's log records to stderr through rich."""
    logger = logging.getLogger("mapref")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    handler = RichHandler(console=Console(stderr=True), show_path=verbose, log_time_format="[%X]")
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    logger.propagate = False


@click.group()
@click.version_option(__version__, prog_name="mapref")
@click.option(
    "--root",
    "-r",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Corpus root containing assets/ (defaults to auto-detected)",
)
@click.option("--verbose", is_flag=True, help="Log indexing details")
@click.pass_context
def cli(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """mapref - Cross-reference index for theme and layer definitions.

    Index the corpus, list reusable entities, and find where they are used.
    """
    ctx.ensure_object(dict)
    _setup_logging(verbose)

    if root is None:
        detected = _auto_detect_root(Path.cwd())
        if detected is None:
            raise click.ClickException("Corpus not found. Pass --root /path/to/corpus or run from inside it.")
        root = detected

    if not root.exists() or not root.is_dir():
        raise click.BadParameter(f"Directory '{root}' does not exist.", param_hint="--root / -r")

    root = root.resolve()
    try:
        config = load_config(root)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e

    ctx.obj["root"] = root
    ctx.obj["config"] = config


@cli.command()
@click.option("--force", is_flag=True, help="Rescan every document, even unchanged ones")
@click.pass_context
def index(ctx: click.Context, force: bool) -> None:
    """Build or update the index snapshot.

    Only documents modified since the last run are rescanned unless --force
    is given.
    """
    from .commands.index_cmd import run_index

    exit_code = run_index(ctx.obj["root"], ctx.obj["config"], force=force)
    sys.exit(exit_code)


@cli.command()
@click.argument("kind", type=click.Choice(["layer", "tagRendering", "filter"]))
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def entities(ctx: click.Context, kind: str, output_json: bool) -> None:
    """List every concrete entity of a kind.

    Shared-pool entries come first and are listed by their bare id.

    Examples:

        mapref entities tagRendering

        mapref entities filter --json
    """
    from .commands.query_cmd import run_entities

    exit_code = run_entities(ctx.obj["root"], ctx.obj["config"], kind, output_json)
    sys.exit(exit_code)


@cli.command()
@click.argument("qualified_id")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def refs(ctx: click.Context, qualified_id: str, output_json: bool) -> None:
    """Find every use of an entity.

    Examples:

        mapref refs layers.questions.tagRenderings.opening_hours

        mapref refs layers.bicycle_rental
    """
    from .commands.query_cmd import run_refs

    exit_code = run_refs(ctx.obj["root"], ctx.obj["config"], qualified_id, output_json)
    sys.exit(exit_code)


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("path")
@click.pass_context
def resolve(ctx: click.Context, file: Path, path: str) -> None:
    """Show where the reference at a JSON path is defined.

    Example:

        mapref resolve assets/themes/cycling/cycling.json layers.0.builtin
    """
    from .commands.query_cmd import run_resolve

    exit_code = run_resolve(ctx.obj["root"], ctx.obj["config"], file, path)
    sys.exit(exit_code)


@cli.command()
@click.option("--fail", "fail_on_unresolved", is_flag=True, help="Exit with error if unresolved references exist")
@click.pass_context
def check(ctx: click.Context, fail_on_unresolved: bool) -> None:
    """Report references whose target cannot be found."""
    from .commands.index_cmd import run_check

    exit_code = run_check(ctx.obj["root"], ctx.obj["config"], fail_on_unresolved)
    sys.exit(exit_code)


@cli.command()
@click.pass_context
def watch(ctx: click.Context) -> None:
    """Keep the index current while documents change.

    Runs until interrupted (Ctrl+C).
    """
    from .commands.watch_cmd import run_watch

    run_watch(ctx.obj["root"], ctx.obj["config"])


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
