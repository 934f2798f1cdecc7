# Copyright (c) Syntropy Systems
"""coilsim submit command."""
from __future__ import annotations

import typer
from pydantic import ValidationError
from rich.markup import escape

from coilsim.cli._common import console, open_project, styled_status
from coilsim.errors import StoreError
from coilsim.executor import JobExecutor
from coilsim.models.api import MAX_COILS, MIN_COILS
from coilsim.models.simulation import DEFAULT_FAILURE_RATE, Resolution, SimulationParameters


def submit(
    coils: int = typer.Option(
        50,
        "--coils", "-c",
        min=MIN_COILS,
        max=MAX_COILS,
        help="Number of field coils",
    ),
    field: float = typer.Option(
        5.0,
        "--field", "-b",
        help="Magnetic field strength in Tesla",
    ),
    density: float = typer.Option(
        1e20,
        "--density", "-d",
        help="Plasma density (particles per cubic metre)",
    ),
    resolution: Resolution = typer.Option(
        Resolution.MEDIUM,
        "--resolution", "-r",
        help="Time-series resolution",
    ),
    failure_rate: float = typer.Option(
        DEFAULT_FAILURE_RATE,
        "--failure-rate", "-f",
        min=0,
        max=100,
        help="Chance of an injected failure, in percent",
    ),
    experiment: str | None = typer.Option(
        None,
        "--experiment", "-e",
        help="Experiment ID to group this simulation under",
    ),
) -> None:
    """Submit a simulation and run it to completion.

    Example:
        coilsim submit --coils 60 --field 7.5 --density 2e20 -r high

    """
    try:
        params = SimulationParameters(
            coil_count=coils,
            magnetic_field_strength=field,
            plasma_density=density,
            resolution=resolution,
            failure_rate=failure_rate,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid parameters:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    with open_project() as (config, db):
        try:
            job = db.create_job(params, experiment_id=experiment)
        except StoreError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e

        console.print(f"[green]Submitted simulation[/green] {job.id}")

        executor = JobExecutor(db, time_unit=config.time_unit_seconds)
        with console.status("Running simulation..."):
            job = executor.execute(job.id)

        console.print(f"  [dim]status:[/dim] {styled_status(job.status)}")
        if job.error_message:
            console.print(f"  [dim]error:[/dim] {job.error_message}")
            console.print(f"  [dim]retry with:[/dim] coilsim retry {job.id[:8]}")
        else:
            result = db.get_result(job.id)
            if result is not None:
                console.print(f"  [dim]confinement:[/dim] {result.confinement_score:.4f}")
                console.print(f"  [dim]energy loss:[/dim] {result.energy_loss:.4f}")
                console.print(f"  [dim]stability:[/dim] {result.stability_index:.4f}")
