"""Merge CLI commands -- submit approved modules and rebuild the canonical graph."""

import json
from pathlib import Path
from typing import Optional

import typer

from ..exceptions import ArchGraphFailure
from ..graph.models import Module
from ..persistence.modules import ModuleStore
from ..service import MergeOutcome
from . import app
from ._common import console, fail, get_config, get_service


@app.command()
def merge(
    ctx: typer.Context,
    module_file: Path = typer.Argument(
        ...,
        help="JSON file with one module object or a list of modules",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    author: Optional[str] = typer.Option(
        None,
        "--author",
        "-a",
        help="Who is merging (default: config default_author)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """
    Merge approved modules into their project's canonical graph.

    Modules are recorded in the archive first, so a blocked module can be
    resolved later with [bold]archgraph resolve[/bold]. A list of modules is
    merged in ascending [bold]order[/bold] and stops at the first conflict.

    Exits 1 if any module was blocked.

    [bold cyan]Examples:[/bold cyan]

      archgraph merge module.json

      archgraph merge batch.json --author alice --json
    """
    try:
        raw = json.loads(module_file.read_text(encoding="utf-8"))
        modules = [Module.from_dict(m) for m in (raw if isinstance(raw, list) else [raw])]
    except (ValueError, KeyError, TypeError) as e:
        console.print(f"[red]Invalid module file:[/red] {e}")
        raise typer.Exit(1)

    if not modules:
        console.print("[yellow]No modules in file.[/yellow]")
        raise typer.Exit(0)

    project_ids = {m.project_id for m in modules}
    if len(project_ids) != 1:
        console.print(f"[red]Modules span several projects:[/red] {sorted(project_ids)}")
        raise typer.Exit(1)
    project_id = project_ids.pop()

    service = get_service(ctx)
    author = author or get_config(ctx).default_author
    try:
        store = ModuleStore(service.db)
        for module in modules:
            store.save(module)
        outcomes = service.merge_pending(project_id, modules, author=author)
    except ArchGraphFailure as e:
        fail(e)

    if json_output:
        print(json.dumps([_outcome_dict(o) for o in outcomes], indent=2))
    else:
        _output_rich(outcomes)

    if any(not o.merged for o in outcomes):
        raise typer.Exit(1)


@app.command()
def rebuild(
    ctx: typer.Context,
    project_id: str = typer.Argument(..., help="Project to rebuild"),
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Who is rebuilding"),
):
    """
    Re-fold every merged module of a project into a new snapshot.

    [bold cyan]Examples:[/bold cyan]

      archgraph rebuild proj-1
    """
    service = get_service(ctx)
    try:
        snapshot = service.rebuild(project_id, author=author)
    except ArchGraphFailure as e:
        fail(e)
    console.print(
        f"[green]Rebuilt[/green] {project_id} as v{snapshot.version} "
        f"({len(snapshot.nodes)} nodes, {len(snapshot.edges)} edges)"
    )


def _outcome_dict(outcome: MergeOutcome) -> dict:
    return {
        "project_id": outcome.project_id,
        "module_id": outcome.module_id,
        "merged": outcome.merged,
        "version": outcome.snapshot.version if outcome.snapshot else None,
        "conflicts": [
            {"type": c.type, "node_id": c.node_id, "message": c.message} for c in outcome.conflicts
        ],
        "review_items": [i.id for i in outcome.review_items],
        "dropped_edges": [e.to_dict() for e in outcome.dropped_edges],
    }


def _output_rich(outcomes: list[MergeOutcome]) -> None:
    """Human-readable Rich table output."""
    from rich.table import Table

    table = Table(title="Merge Results", show_lines=False, pad_edge=True)
    table.add_column("Module", style="bold")
    table.add_column("Result")
    table.add_column("Version", justify="right", style="cyan")
    table.add_column("Conflicts", style="yellow")

    for o in outcomes:
        result = "[green]merged[/green]" if o.merged else "[yellow]blocked[/yellow]"
        version = f"v{o.snapshot.version}" if o.snapshot else "-"
        conflicts = ", ".join(c.type for c in o.conflicts) or "-"
        table.add_row(o.module_id, result, version, conflicts)

    console.print()
    console.print(table)

    blocked = [o for o in outcomes if not o.merged]
    for o in blocked:
        ids = ", ".join(str(i.id) for i in o.review_items)
        console.print(f"  [dim]Review items for {o.module_id}:[/dim] {ids}")
    console.print()
