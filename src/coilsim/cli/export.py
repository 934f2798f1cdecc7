# Copyright (c) Syntropy Systems
"""Export command - export simulation results to JSON/CSV."""
from __future__ import annotations

from pathlib import Path

import typer

from coilsim.cli._common import console, open_project, resolve_job
from coilsim.export import export_result, format_for_path


def export(
    job_id: str = typer.Argument(..., help="Simulation ID (or unique prefix)"),
    output: Path = typer.Argument(..., help="Output file path (.csv or .json)"),
) -> None:
    """Export the results of a completed simulation.

    JSON holds the full result; CSV holds the time series as t,value rows.

    Examples:
        coilsim export 3f2a results.json
        coilsim export 3f2a curve.csv

    """
    try:
        fmt = format_for_path(output)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e

    with open_project() as (_config, db):
        job = resolve_job(db, job_id)
        result = db.get_result(job.id)

    if result is None:
        console.print(f"[red]Results not found:[/red] simulation {job.id} is {job.status.value}")
        raise typer.Exit(1)

    _ = output.write_text(export_result(result, fmt))
    console.print(f"[green]Exported results of {job.id} to {output}[/green]")
