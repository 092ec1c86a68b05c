"""CLI entry point. Registers all subcommands."""

from pathlib import Path
from typing import Optional

import typer

from .. import __version__
from ..exceptions import ArchGraphError
from ..logging_config import setup_logging
from ._common import console, load_cli_config

app = typer.Typer(
    name="archgraph",
    help="archgraph - merge, version and roll back architecture graphs",
    add_completion=False,
    rich_markup_mode="rich",
)


@app.callback(invoke_without_command=True, no_args_is_help=False)
def main(
    ctx: typer.Context,
    db: Optional[Path] = typer.Option(
        None,
        "--db",
        help="Archive database file (default: .archgraph/archive.db)",
        dir_okay=False,
    ),
    config: Optional[Path] = typer.Option(
        None,
        "-c",
        "--config",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log every merge step",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
    ),
):
    """
    Merge approved modules into a project's canonical architecture graph.

    Every merge and rollback appends a new snapshot version; earlier
    versions stay retrievable. Conflicting modules are parked in a review
    queue instead of being merged.

    [bold cyan]Examples:[/bold cyan]

      archgraph merge module.json

      archgraph history proj-1

      archgraph diff proj-1 3 5

      archgraph rollback proj-1 3 --author alice
    """
    if version:
        console.print(f"[bold cyan]archgraph[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit(0)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(0)

    try:
        settings = load_cli_config(config=config, db=db, verbose=verbose, quiet=quiet)
    except ArchGraphError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(1)

    setup_logging(
        verbose=settings.verbosity == "verbose",
        quiet=settings.verbosity == "quiet",
        log_file=settings.log_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = settings


# Import subcommands to register them
from .merge import merge as _merge, rebuild as _rebuild  # noqa: F401, E402
from .history import history as _history, show as _show, verify as _verify  # noqa: F401, E402
from .diff import diff_cmd as _diff_cmd  # noqa: F401, E402
from .rollback import rollback as _rollback  # noqa: F401, E402
from .reviews import reviews as _reviews, resolve as _resolve  # noqa: F401, E402
from .audit import audit as _audit  # noqa: F401, E402
