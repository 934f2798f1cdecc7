# Copyright (c) Syntropy Systems
"""coilsim sweep and batches commands."""
from __future__ import annotations

import typer
from pydantic import ValidationError
from rich.markup import escape
from rich.table import Table

from coilsim.batch import BatchOrchestrator, plan_batch
from coilsim.cli._common import console, open_project, styled_status
from coilsim.db import utcnow
from coilsim.errors import StoreError
from coilsim.executor import JobExecutor
from coilsim.models.api import BatchRunCreate
from coilsim.models.simulation import BatchRun, JobStatus, Resolution, SweepParameter


def _format_value(parameter: SweepParameter, value: float) -> str:
    if parameter == SweepParameter.PLASMA_DENSITY:
        return f"{value:.3e}"
    return f"{value:g}"


def sweep(
    parameter: SweepParameter = typer.Option(
        ...,
        "--parameter", "-p",
        help="Parameter to sweep",
    ),
    start: float = typer.Option(..., "--start", help="First value of the sweep"),
    end: float = typer.Option(..., "--end", help="Last value of the sweep"),
    steps: int = typer.Option(5, "--steps", "-n", help="Number of simulations"),
    coils: int = typer.Option(50, "--coils", "-c", help="Base coil count"),
    field: float = typer.Option(5.0, "--field", "-b", help="Base field strength (T)"),
    density: float = typer.Option(1e20, "--density", "-d", help="Base plasma density"),
    resolution: Resolution = typer.Option(
        Resolution.MEDIUM,
        "--resolution", "-r",
        help="Time-series resolution for every simulation",
    ),
    name: str | None = typer.Option(None, "--name", help="Batch run name"),
    description: str | None = typer.Option(None, "--description", help="Batch run notes"),
    experiment: str | None = typer.Option(
        None,
        "--experiment", "-e",
        help="Experiment ID for the batch and its simulations",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Preview the sweep values without running anything",
    ),
) -> None:
    """Run a parameter sweep as a batch of simulations.

    Simulations run one after another; failures are recorded per
    simulation and do not stop the sweep.

    Example:
        coilsim sweep -p coil_count --start 20 --end 80 --steps 4

    """
    try:
        request = BatchRunCreate(
            name=name or f"{parameter.value}-sweep",
            description=description,
            sweep_parameter=parameter,
            start_value=start,
            end_value=end,
            step_count=steps,
            base_coil_count=coils,
            base_magnetic_field_strength=field,
            base_plasma_density=density,
            base_resolution=resolution,
            experiment_id=experiment,
        )
    except ValidationError as e:
        console.print(f"[red]Invalid sweep:[/red] {escape(str(e))}")
        raise typer.Exit(1) from e

    preview = BatchRun(id="preview", created_at=utcnow(), **request.model_dump())
    specs = plan_batch(preview)

    table = Table(title=f"Sweep: {request.name}")
    table.add_column("#", style="dim")
    table.add_column(parameter.label, justify="right")
    table.add_column("Coils", justify="right")
    table.add_column("B (T)", justify="right")
    table.add_column("Density", justify="right")
    for spec in specs:
        params = spec.parameters
        table.add_row(
            str(spec.index),
            _format_value(parameter, spec.value),
            str(params.coil_count),
            f"{params.magnetic_field_strength:g}",
            f"{params.plasma_density:.2e}",
        )
    console.print(table)

    if dry_run:
        console.print("\n[yellow]Dry run - no simulations submitted[/yellow]")
        return

    with open_project() as (config, db):
        try:
            batch = db.create_batch_run(**request.model_dump())
        except StoreError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e

        console.print(f"\n[green]Created batch run[/green] {batch.id}")

        executor = JobExecutor(db, time_unit=config.time_unit_seconds)
        orchestrator = BatchOrchestrator(db, executor)
        with console.status(f"Running {len(specs)} simulations..."):
            report = orchestrator.run(batch.id)

        jobs = [job for job in (db.get_job(job_id) for job_id in report.job_ids) if job]

    completed = sum(1 for job in jobs if job.status == JobStatus.COMPLETED)
    console.print(
        f"  [dim]status:[/dim] {styled_status(report.batch.status)} "
        f"({completed}/{len(jobs)} simulations succeeded)"
    )
    for job in jobs:
        console.print(f"  {job.id[:8]} {styled_status(job.status)}")
    if report.skipped:
        console.print(f"  [yellow]Skipped steps:[/yellow] {report.skipped}")


def batches(
    limit: int = typer.Option(20, "--limit", "-l", help="Max batch runs to show"),
) -> None:
    """List batch runs with their simulation counts."""
    with open_project() as (_config, db):
        runs = db.list_batch_runs(limit=limit)
        if not runs:
            console.print("[dim]No batch runs[/dim]")
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("ID", style="dim")
        table.add_column("Name")
        table.add_column("Sweep")
        table.add_column("Range")
        table.add_column("Status")
        table.add_column("Done", justify="right")
        table.add_column("Failed", justify="right")

        for run in runs:
            children = db.list_jobs(batch_run_id=run.id, limit=max(run.step_count, 1))
            finished = sum(1 for job in children if job.status.is_terminal)
            failed = sum(1 for job in children if job.error_message is not None)
            table.add_row(
                run.id[:8],
                run.name,
                run.sweep_parameter.label,
                f"{_format_value(run.sweep_parameter, run.start_value)} -> "
                f"{_format_value(run.sweep_parameter, run.end_value)}",
                styled_status(run.status),
                f"{finished}/{run.step_count}",
                str(failed),
            )

    console.print(table)
