"""CLI instrument command: rewrite source files with the timing hook."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.console import Console

from pytrackfunc.bootstrap import Bootstrapper
from pytrackfunc.config import Config
from pytrackfunc.discovery import expand_args
from pytrackfunc.exceptions import BootstrapError, DiscoveryError
from pytrackfunc.transform import Transformer

console = Console()


def instrument_cmd(
    paths: Annotated[
        list[str],
        typer.Argument(help="Files to instrument, or ./... for every source file in the project."),
    ],
) -> None:
    """Inject timing hooks into every eligible function."""
    config = Config()

    try:
        files = expand_args(paths, config)
    except DiscoveryError as exc:
        console.print(f"[red]Failed to expand paths:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    transformer = Transformer(config, Bootstrapper(config).prepare)
    try:
        report = transformer.run_batch(files)
    except BootstrapError as exc:
        console.print(f"[red]Bootstrap failed:[/red] {exc}")
        raise typer.Exit(code=1) from exc

    console.print(
        f"Instrumented [bold]{report.instrumented_functions}[/bold] functions "
        f"in [bold]{report.instrumented_files}[/bold] of {len(report.results)} files"
    )
    if report.failed:
        console.print(f"[yellow]{len(report.failed)} files failed[/yellow]")
        for result in report.failed:
            console.print(f"  {result.path}: {result.error}", markup=False)
