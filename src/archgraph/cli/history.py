"""History CLI commands -- list, show and verify snapshot versions."""

import json
from typing import Optional

import typer

from ..exceptions import ArchGraphFailure
from . import app
from ._common import console, fail, get_config, get_service, short_timestamp


@app.command()
def history(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project to list"),
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-n",
        help="Maximum number of versions to list (default: config history_limit)",
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
    List a project's snapshot versions, newest first.

    [bold cyan]Examples:[/bold cyan]

      archgraph history proj-1

      archgraph history proj-1 --limit 5 --json
    """
    service = get_service(ctx)
    versions = service.snapshots.list_versions(
        project_id, limit=limit or get_config(ctx).history_limit
    )

    if not versions:
        console.print(f"[yellow]No snapshots recorded for {project_id}.[/yellow]")
        raise typer.Exit(0)

    if json_output:
        print(json.dumps(versions, indent=2))
        return

    from rich.table import Table

    table = Table(title=f"History: {project_id}", show_lines=False, pad_edge=True)
    table.add_column("Version", style="bold", justify="right")
    table.add_column("Created", style="green")
    table.add_column("By", style="cyan")
    table.add_column("Modules", justify="right")
    table.add_column("Nodes", justify="right")
    table.add_column("Edges", justify="right")
    table.add_column("", style="dim")  # active marker

    for v in versions:
        table.add_row(
            f"v{v['version']}",
            short_timestamp(v["created_at"]),
            v["created_by"],
            str(v["module_count"]),
            str(v["node_count"]),
            str(v["edge_count"]),
            "* active" if v["active"] else "",
        )

    console.print()
    console.print(table)
    console.print()


@app.command()
def show(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project to show"),
    version: Optional[int] = typer.Option(
        None,
        "--version",
        "-V",
        help="Version to show (default: the active one)",
        min=1,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Show the nodes and edges of one snapshot.

    [bold cyan]Examples:[/bold cyan]

      archgraph show proj-1

      archgraph show proj-1 --version 2 --json
    """
    service = get_service(ctx)
    if version is None:
        snapshot = service.active(project_id)
    else:
        snapshot = service.get_version(project_id, version)

    if snapshot is None:
        what = f"v{version}" if version is not None else "active snapshot"
        console.print(f"[yellow]No {what} for {project_id}.[/yellow]")
        raise typer.Exit(1)

    if json_output:
        print(json.dumps(snapshot.to_dict(), indent=2))
        return

    from rich.table import Table

    marker = " (active)" if snapshot.active else ""
    console.print()
    console.print(
        f"[bold]{project_id}[/bold] v{snapshot.version}{marker} "
        f"by {snapshot.created_by} at {short_timestamp(snapshot.created_at)}"
    )

    nodes = Table(title="Nodes", show_lines=False, pad_edge=True)
    nodes.add_column("Id", style="bold")
    nodes.add_column("Type", style="cyan")
    nodes.add_column("Label")
    for n in snapshot.nodes:
        nodes.add_row(n.id, n.type, n.label)

    edges = Table(title="Edges", show_lines=False, pad_edge=True)
    edges.add_column("From", style="bold")
    edges.add_column("To", style="bold")
    edges.add_column("Label", style="dim")
    for e in snapshot.edges:
        edges.add_row(e.source, e.target, e.label or "")

    console.print(nodes)
    console.print(edges)
    console.print()


@app.command()
def verify(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project to check"),
):
    """
    Check that versions run 1..N with exactly one active snapshot.

    Exits 1 on an integrity violation.
    """
    service = get_service(ctx)
    try:
        service.snapshots.verify_integrity(project_id)
    except ArchGraphFailure as e:
        fail(e)
    console.print(f"[green]OK[/green] {project_id}")
