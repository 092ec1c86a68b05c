"""Shared CLI helpers."""

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console

from ..config import ArchGraphConfig, load_config
from ..exceptions import ArchGraphFailure
from ..service import MergeService

console = Console()


def load_cli_config(
    config: Optional[Path] = None,
    db: Optional[Path] = None,
    verbose: bool = False,
    quiet: bool = False,
) -> ArchGraphConfig:
    """Build settings from CLI options."""
    overrides = {}
    if db is not None:
        overrides["db_path"] = str(db)
    if verbose:
        overrides["verbose"] = True
    if quiet:
        overrides["quiet"] = True
    return load_config(config_file=config, **overrides)


def get_config(ctx: typer.Context) -> ArchGraphConfig:
    return ctx.obj["config"]


def get_service(ctx: typer.Context) -> MergeService:
    return MergeService.from_config(get_config(ctx))


def fail(err: ArchGraphFailure) -> NoReturn:
    """Print a structured failure and exit 1."""
    console.print(f"[red]Error {err.code.value}:[/red] {err.message}")
    if err.recovery_hint:
        console.print(f"  [dim]Hint:[/dim] {err.recovery_hint}")
    raise typer.Exit(1)


def short_timestamp(ts: str) -> str:
    """Trim an ISO timestamp to date + time (no microseconds/timezone)."""
    if "T" in ts:
        ts = ts.replace("T", " ")
    if "+" in ts:
        ts = ts[: ts.index("+")]
    if "." in ts:
        ts = ts[: ts.index(".")]
    return ts
