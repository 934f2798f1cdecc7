# Copyright (c) Syntropy Systems
"""coilsim retry command."""
from __future__ import annotations

import typer

from coilsim.cli._common import console, open_project, resolve_job, styled_status
from coilsim.errors import InvalidStateError
from coilsim.executor import JobExecutor
from coilsim.models.simulation import JobStatus


def retry(
    job_id: str = typer.Argument(
        ...,
        help="Simulation ID (or unique prefix) to retry",
    ),
    failure_rate: float | None = typer.Option(
        None,
        "--failure-rate", "-f",
        min=0,
        max=100,
        help="Failure chance for the new attempt (default: keep the previous one)",
    ),
) -> None:
    """Retry a failed simulation.

    Resets the simulation to PENDING and runs it again with the same parameters.
    """
    with open_project() as (config, db):
        original = resolve_job(db, job_id)

        if original.status != JobStatus.FAILED:
            console.print("[red]Error:[/red] Can only retry failed simulations")
            console.print(f"  Simulation {original.id} has status: {original.status.value}")
            raise typer.Exit(1)

        try:
            job = db.reset_job(original.id, failure_rate=failure_rate)
        except InvalidStateError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise typer.Exit(1) from e

        console.print(f"[green]Retrying simulation[/green] {job.id}")

        executor = JobExecutor(db, time_unit=config.time_unit_seconds)
        with console.status("Running simulation..."):
            job = executor.execute(job.id)

        console.print(f"  [dim]status:[/dim] {styled_status(job.status)}")
        if job.error_message:
            console.print(f"  [dim]error:[/dim] {job.error_message}")
