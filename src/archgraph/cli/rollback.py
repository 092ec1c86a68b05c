"""Rollback CLI command -- restore an earlier version as a new one."""

from typing import Optional

import typer

from ..exceptions import ArchGraphFailure
from . import app
from ._common import console, fail, get_service


@app.command()
def rollback(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project to roll back"),
    version: int = typer.Argument(..., help="Version to restore", min=1),
    author: Optional[str] = typer.Option(
        None,
        "--author",
        "-a",
        help="Who is rolling back (default: config default_author)",
    ),
):
    """
    Copy an earlier version forward as the new active snapshot.

    Nothing is deleted: the version that was active stays in history.

    [bold cyan]Examples:[/bold cyan]

      archgraph rollback proj-1 3 --author alice
    """
    service = get_service(ctx)
    try:
        snapshot = service.rollback(project_id, version, author=author)
    except ArchGraphFailure as e:
        fail(e)
    console.print(
        f"[green]Rolled back[/green] {project_id} to v{version}; "
        f"now active as v{snapshot.version}"
    )
