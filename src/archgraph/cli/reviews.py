"""Review CLI commands -- list blocked merges and resolve them."""

import json
from typing import Optional

import click
import typer

from ..exceptions import ArchGraphFailure
from ..merge.resolution import ResolutionAction
from ..persistence.models import ReviewStatus
from . import app
from ._common import console, fail, get_config, get_service, short_timestamp


@app.command()
def reviews(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project whose review queue to list"),
    show_all: bool = typer.Option(
        False,
        "--all",
        help="Include resolved items",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    List conflicts waiting for an administrator.

    [bold cyan]Examples:[/bold cyan]

      archgraph reviews proj-1

      archgraph reviews proj-1 --all --json
    """
    service = get_service(ctx)
    status = None if show_all else ReviewStatus.PENDING
    items = service.reviews.list_for_project(project_id, status=status)

    if json_output:
        print(json.dumps([i.to_dict() for i in items], indent=2))
        return

    if not items:
        console.print(f"[green]No {'' if show_all else 'pending '}review items for {project_id}.[/green]")
        return

    from rich.table import Table

    table = Table(title=f"Review Queue: {project_id}", show_lines=False, pad_edge=True)
    table.add_column("ID", style="bold", justify="right")
    table.add_column("Module", style="cyan")
    table.add_column("Type", style="yellow")
    table.add_column("Node")
    table.add_column("Message")
    table.add_column("Created", style="green")
    if show_all:
        table.add_column("Resolution", style="dim")

    for i in items:
        row = [
            str(i.id),
            i.module_id,
            i.type,
            i.node_id or "-",
            i.message,
            short_timestamp(i.created_at),
        ]
        if show_all:
            row.append(i.resolution or "")
        table.add_row(*row)

    console.print()
    console.print(table)
    console.print()


@app.command()
def resolve(
    ctx: typer.Context,
    item_id: int = typer.Argument(..., help="Review item id"),
    action: str = typer.Argument(
        ...,
        help="How to resolve the conflict",
        click_type=click.Choice([a.value for a in ResolutionAction]),
    ),
    actor: Optional[str] = typer.Option(
        None,
        "--actor",
        "-a",
        help="Administrator resolving the conflict (default: config default_author)",
    ),
    rename_to: Optional[str] = typer.Option(
        None,
        "--rename-to",
        help="New node id for rename_and_keep_both",
    ),
):
    """
    Resolve every pending conflict of a blocked module and merge it.

    [bold cyan]Actions:[/bold cyan]

      apply_incoming         take the module's nodes as proposed
      keep_canonical         drop the module's conflicting nodes
      merge_meta             keep canonical type/label, merge metadata
      rename_and_keep_both   give the incoming node a new id

    [bold cyan]Examples:[/bold cyan]

      archgraph resolve 7 keep_canonical --actor admin

      archgraph resolve 7 rename_and_keep_both --rename-to db-analytics
    """
    service = get_service(ctx)
    actor = actor or get_config(ctx).default_author
    try:
        outcome = service.resolve_conflict(
            item_id, ResolutionAction(action), actor, rename_to=rename_to
        )
    except ArchGraphFailure as e:
        fail(e)

    if outcome.merged:
        console.print(
            f"[green]Resolved[/green] module {outcome.module_id}; "
            f"merged as v{outcome.snapshot.version}"
        )
    else:
        console.print(
            f"[green]Resolved[/green] module {outcome.module_id}; canonical graph unchanged"
        )
