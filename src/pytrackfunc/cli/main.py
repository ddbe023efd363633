"""Root Typer app for the pytrackfunc CLI."""

from __future__ import annotations

from typing import Annotated

import typer

from pytrackfunc.logging.logger import configure_logging

app = typer.Typer(
    name="pytrackfunc",
    help="pytrackfunc: function-level timing instrumentation for Python projects.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging.")] = False,
) -> None:
    """Instrument source files, or summarize the trace log they produce."""
    configure_logging(verbose=verbose)


def _register_commands() -> None:
    """Register all CLI commands."""
    from pytrackfunc.cli.instrument_cmd import instrument_cmd
    from pytrackfunc.cli.summarize_cmd import summarize_cmd

    app.command(name="instrument")(instrument_cmd)
    app.command(name="summarize")(summarize_cmd)


_register_commands()
