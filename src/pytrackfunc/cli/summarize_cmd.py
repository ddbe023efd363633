"""CLI summarize command: aggregate the trace log into a ranked report."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console

from pytrackfunc.config import Config
from pytrackfunc.exceptions import LogNotFoundError
from pytrackfunc.summary import render_plain, render_table, summarize_file

console = Console()


class OutputFormat(StrEnum):
    TABLE = "table"
    PLAIN = "plain"
    JSON = "json"


def summarize_cmd(
    log: Annotated[
        Path | None, typer.Option("--log", help="Trace log to read (default: ./pytrackfunc.log).")
    ] = None,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format.")
    ] = OutputFormat.TABLE,
) -> None:
    """Summarize recorded calls per function, slowest total first."""
    log_path = log or Config().log_path

    try:
        summary = summarize_file(log_path)
    except LogNotFoundError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc

    if output_format == OutputFormat.JSON:
        typer.echo(summary.model_dump_json(indent=2))
    elif output_format == OutputFormat.PLAIN:
        typer.echo(render_plain(summary), nl=False)
    elif summary.entries:
        console.print(render_table(summary))
    else:
        console.print("[dim]No calls recorded.[/dim]")
