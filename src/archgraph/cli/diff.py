"""Diff CLI command -- compare two snapshot versions of a project."""

import json

import typer

from . import app
from ._common import console, get_service


@app.command(name="diff")
def diff_cmd(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project to compare"),
    from_version: int = typer.Argument(..., help="Older version", min=1),
    to_version: int = typer.Argument(..., help="Newer version", min=1),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Show nodes and edges added or removed between two versions.

    The diff is directional: swapping the versions swaps added and removed.

    [bold cyan]Examples:[/bold cyan]

      archgraph diff proj-1 1 4

      archgraph diff proj-1 4 1 --json
    """
    service = get_service(ctx)
    result = service.diff(project_id, from_version, to_version)

    if result is None:
        console.print(
            f"[yellow]Cannot diff:[/yellow] v{from_version} or v{to_version} "
            f"does not exist for {project_id}"
        )
        raise typer.Exit(1)

    if json_output:
        print(json.dumps(result.to_dict(), indent=2))
        return

    console.print()
    console.print(
        f"[bold]{project_id}[/bold] v{from_version} -> v{to_version}  "
        f"nodes {result.node_count_change:+d}, edges {result.edge_count_change:+d}"
    )
    if result.is_empty:
        console.print("  [dim]No structural changes.[/dim]")
        console.print()
        return

    for n in result.added_nodes:
        console.print(f"  [green]+ node[/green] {n.id} [dim]({n.type})[/dim]")
    for n in result.removed_nodes:
        console.print(f"  [red]- node[/red] {n.id} [dim]({n.type})[/dim]")
    for e in result.added_edges:
        console.print(f"  [green]+ edge[/green] {e.source} -> {e.target}")
    for e in result.removed_edges:
        console.print(f"  [red]- edge[/red] {e.source} -> {e.target}")
    console.print()
