# Copyright (c) Syntropy Systems
"""Main CLI entry point for coilsim."""

import logging

import typer

from coilsim.cli.compare import compare
from coilsim.cli.correlate import correlate
from coilsim.cli.delete import delete
from coilsim.cli.export import export
from coilsim.cli.init_cmd import init
from coilsim.cli.results import results
from coilsim.cli.retry import retry
from coilsim.cli.server_cmd import server
from coilsim.cli.status import status
from coilsim.cli.submit import submit
from coilsim.cli.sweep import batches, sweep
from coilsim.config import find_coilsim_dir, load_config

app = typer.Typer(
    name="coilsim",
    help=(
        "Synthetic stellarator simulations. Submit runs, sweep parameters, "
        "compare and correlate the outcomes."
    ),
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Configure logging for every command."""
    level = "WARNING"
    if find_coilsim_dir() is not None:
        try:
            level = load_config().log_level
        except ValueError:
            level = "WARNING"
    if verbose:
        level = "DEBUG"

    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Register commands
_ = app.command()(init)
_ = app.command()(submit)
_ = app.command()(status)
_ = app.command()(results)
_ = app.command(name="export")(export)
_ = app.command()(retry)
_ = app.command()(delete)
_ = app.command()(sweep)
_ = app.command()(batches)
_ = app.command()(compare)
_ = app.command()(correlate)
_ = app.command()(server)


if __name__ == "__main__":
    app()
