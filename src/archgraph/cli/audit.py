"""Audit CLI command -- show a project's audit trail."""

import json
from typing import Optional

import click
import typer

from ..persistence.models import AuditAction
from . import app
from ._common import console, get_service, short_timestamp


@app.command()
def audit(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project whose audit trail to show"),
    action: Optional[str] = typer.Option(
        None,
        "--action",
        help="Only show entries of this action",
        click_type=click.Choice([a.value for a in AuditAction]),
    ),
    limit: int = typer.Option(
        50,
        "--limit",
        "-n",
        help="Maximum number of entries",
        min=1,
        max=1000,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    List merges, blocked merges, rollbacks and resolutions, newest first.

    [bold cyan]Examples:[/bold cyan]

      archgraph audit proj-1

      archgraph audit proj-1 --action snapshot_rolled_back --json
    """
    service = get_service(ctx)
    entries = service.audit.query(project_id, action=action, limit=limit)

    if json_output:
        print(json.dumps([e.to_dict() for e in entries], indent=2))
        return

    if not entries:
        console.print(f"[yellow]No audit entries for {project_id}.[/yellow]")
        return

    from rich.table import Table

    table = Table(title=f"Audit Trail: {project_id}", show_lines=False, pad_edge=True)
    table.add_column("When", style="green")
    table.add_column("Action", style="cyan")
    table.add_column("By", style="bold")
    table.add_column("Reason")

    for e in entries:
        table.add_row(short_timestamp(e.timestamp), e.action, e.by, e.reason)

    console.print()
    console.print(table)
    console.print()
