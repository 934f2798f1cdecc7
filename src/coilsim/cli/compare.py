# Copyright (c) Syntropy Systems
"""Compare command - two completed simulations side by side."""
from __future__ import annotations

from typing import TYPE_CHECKING

import typer
from rich.table import Table

from coilsim.analysis import compare_results
from coilsim.cli._common import console, open_project, resolve_job, styled_status
from coilsim.models.simulation import JobStatus, MetricTrend

if TYPE_CHECKING:
    from coilsim.models.simulation import SimulationJob, SimulationResult

TREND_STYLES = {
    MetricTrend.IMPROVED: "green",
    MetricTrend.WORSENED: "red",
    MetricTrend.UNCHANGED: "dim",
}


def parameter_rows(jobs: list[SimulationJob]) -> list[tuple[str, list[str]]]:
    """Formatted input parameters of each job, one row per parameter."""
    params = [job.parameters for job in jobs]
    return [
        ("coil count", [str(p.coil_count) for p in params]),
        ("field strength (T)", [f"{p.magnetic_field_strength:g}" for p in params]),
        ("plasma density", [f"{p.plasma_density:.2e}" for p in params]),
        ("resolution", [p.resolution.value for p in params]),
    ]


def compare(
    first_id: str = typer.Argument(..., help="Baseline simulation ID (or unique prefix)"),
    second_id: str = typer.Argument(..., help="Simulation measured against the baseline"),
) -> None:
    """Compare the results of two completed simulations.

    Example:
        coilsim compare 3f2a 9c41

    """
    with open_project() as (_config, db):
        jobs = [resolve_job(db, first_id), resolve_job(db, second_id)]
        results: list[SimulationResult] = []
        for job in jobs:
            result = db.get_result(job.id) if job.status == JobStatus.COMPLETED else None
            if result is None:
                console.print(
                    f"[yellow]No results:[/yellow] simulation {job.id} is "
                    f"{styled_status(job.status)}"
                )
                raise typer.Exit(1)
            results.append(result)

    first, second = jobs
    console.print(f"\n[bold]Comparing {first.id[:8]} with {second.id[:8]}[/bold]\n")

    params_table = Table(show_header=True, header_style="bold")
    params_table.add_column("Parameter", style="dim")
    for job in jobs:
        params_table.add_column(job.id[:8], style="cyan")

    for name, values in parameter_rows(jobs):
        # Highlight differences
        if len(set(values)) > 1:
            values = [f"[yellow]{v}[/yellow]" for v in values]
        params_table.add_row(name, *values)

    console.print(params_table)

    console.print("\n[bold]Metrics[/bold]")
    metrics_table = Table(show_header=True, header_style="bold")
    metrics_table.add_column("Metric", style="dim")
    for job in jobs:
        metrics_table.add_column(job.id[:8], justify="right")
    metrics_table.add_column("Change", justify="right")

    for comparison in compare_results(*results):
        values = [f"{comparison.first:.4f}", f"{comparison.second:.4f}"]
        if comparison.first != comparison.second:
            # Highlight the better value
            pick = max if comparison.higher_is_better else min
            best = pick(comparison.first, comparison.second)
            best_index = 0 if comparison.first == best else 1
            values[best_index] = f"[green]{values[best_index]}[/green]"

        label = comparison.label
        if comparison.unit:
            label = f"{label} ({comparison.unit})"
        style = TREND_STYLES[comparison.trend]
        metrics_table.add_row(
            label,
            *values,
            f"[{style}]{comparison.delta_percent:+.1f}%[/{style}]",
        )

    console.print(metrics_table)
