# Copyright (c) Syntropy Systems
"""coilsim results command."""
from __future__ import annotations

import typer
from rich.table import Table

from coilsim.cli._common import console, open_project, resolve_job, styled_status
from coilsim.models.simulation import JobStatus

SPARK_CHARS = " ▁▂▃▄▅▆▇█"
SPARK_WIDTH = 50


def sparkline(values: list[float], width: int = SPARK_WIDTH) -> str:
    """Compress a series into a one-line block-character chart."""
    if not values:
        return ""
    step = max(1, len(values) // width)
    sampled = values[::step][:width]
    low, high = min(sampled), max(sampled)
    span = high - low or 1.0
    top = len(SPARK_CHARS) - 1
    return "".join(SPARK_CHARS[round((v - low) / span * top)] for v in sampled)


def results(
    job_id: str = typer.Argument(..., help="Simulation ID (or unique prefix)"),
    points: bool = typer.Option(
        False,
        "--points", "-p",
        help="Print every time-series point",
    ),
) -> None:
    """Show the results of a completed simulation."""
    with open_project() as (_config, db):
        job = resolve_job(db, job_id)
        if job.status != JobStatus.COMPLETED:
            console.print(
                f"[yellow]No results:[/yellow] simulation {job.id} is {styled_status(job.status)}"
            )
            raise typer.Exit(1)

        result = db.get_result(job.id)
        if result is None:
            console.print(f"[red]Error:[/red] Results not found for {job.id}")
            raise typer.Exit(1)

    console.print(f"\n[bold]Results for {job.id}[/bold]")
    console.print(f"  [dim]confinement score:[/dim] {result.confinement_score:.4f}")
    console.print(f"  [dim]energy loss:[/dim] {result.energy_loss:.4f}")
    console.print(f"  [dim]stability index:[/dim] {result.stability_index:.4f}")
    console.print(f"  [dim]time series:[/dim] {len(result.time_series)} points")
    console.print(f"  [cyan]{sparkline([p.value for p in result.time_series])}[/cyan]")

    if points:
        table = Table(show_header=True, header_style="bold")
        table.add_column("t", justify="right")
        table.add_column("value", justify="right")
        for point in result.time_series:
            table.add_row(f"{point.t:.4f}", f"{point.value:.4f}")
        console.print(table)
