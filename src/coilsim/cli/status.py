"""coilsim status command."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

import typer
from rich.table import Table

from coilsim.cli._common import console, open_project, resolve_job, styled_status
from coilsim.models.simulation import JobStatus

if TYPE_CHECKING:
    from coilsim.models.simulation import SimulationJob


def _parse(timestamp: str) -> datetime:
    return datetime.fromisoformat(timestamp.replace("Z", "+00:00"))


def format_duration(started_at: Optional[str], finished_at: Optional[str] = None) -> str:
    """Format duration from started_at to now or finished_at."""
    if not started_at:
        return "-"

    try:
        start = _parse(started_at)
        end = _parse(finished_at) if finished_at else datetime.now(timezone.utc)
    except ValueError:
        return "-"

    total_seconds = int((end - start).total_seconds())
    if total_seconds < 60:
        return f"{total_seconds}s"
    if total_seconds < 3600:
        return f"{total_seconds // 60}m {total_seconds % 60}s"
    return f"{total_seconds // 3600}h {(total_seconds % 3600) // 60}m"


def format_time_ago(timestamp: Optional[str]) -> str:
    """Format a timestamp as time ago."""
    if not timestamp:
        return "-"

    try:
        delta = datetime.now(timezone.utc) - _parse(timestamp)
    except ValueError:
        return "-"

    total_seconds = int(delta.total_seconds())
    if total_seconds < 60:
        return "just now"
    if total_seconds < 3600:
        return f"{total_seconds // 60}m ago"
    if total_seconds < 86400:
        return f"{total_seconds // 3600}h ago"
    return f"{total_seconds // 86400}d ago"


def status(
    job_id: Optional[str] = typer.Argument(
        None,
        help="Simulation ID (or unique prefix) to show details for",
    ),
    filter_status: Optional[JobStatus] = typer.Option(
        None,
        "--status", "-s",
        help="Only show simulations with this status",
    ),
    batch: Optional[str] = typer.Option(
        None,
        "--batch",
        help="Only show simulations of this batch run",
    ),
    limit: int = typer.Option(20, "--limit", "-l", help="Max simulations to show"),
) -> None:
    """
    Show simulations.

    Without arguments, lists the most recent simulations.
    With an ID, shows detailed information about that simulation.
    """
    with open_project() as (_config, db):
        if job_id is not None:
            job = resolve_job(db, job_id)
            _show_job_details(job)
            return

        jobs = db.list_jobs(status=filter_status, batch_run_id=batch, limit=limit)
        _show_job_table(jobs)


def _show_job_table(jobs: list[SimulationJob]) -> None:
    """Display jobs in a table."""
    if not jobs:
        console.print("[dim]No simulations[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim")
    table.add_column("Status")
    table.add_column("Coils", justify="right")
    table.add_column("B (T)", justify="right")
    table.add_column("Density", justify="right")
    table.add_column("Res")
    table.add_column("Runtime")
    table.add_column("Submitted")

    for job in jobs:
        params = job.parameters
        table.add_row(
            job.id[:8],
            styled_status(job.status),
            str(params.coil_count),
            f"{params.magnetic_field_strength:g}",
            f"{params.plasma_density:.2e}",
            params.resolution.value,
            format_duration(job.started_at, job.completed_at),
            format_time_ago(job.created_at),
        )

    console.print(table)


def _show_job_details(job: SimulationJob) -> None:
    """Display detailed job information."""
    params = job.parameters

    console.print(f"\n[bold]Simulation {job.id}[/bold]")
    console.print(f"  [dim]status:[/dim] {styled_status(job.status)}")
    console.print(f"  [dim]coils:[/dim] {params.coil_count}")
    console.print(f"  [dim]field:[/dim] {params.magnetic_field_strength:g} T")
    console.print(f"  [dim]density:[/dim] {params.plasma_density:.3e}")
    console.print(f"  [dim]resolution:[/dim] {params.resolution.value}")
    console.print(f"  [dim]failure rate:[/dim] {params.failure_rate:g}%")

    if job.batch_run_id:
        console.print(f"  [dim]batch:[/dim] {job.batch_run_id}")
    if job.experiment_id:
        console.print(f"  [dim]experiment:[/dim] {job.experiment_id}")

    console.print()
    console.print(f"  [dim]created:[/dim] {format_time_ago(job.created_at)}")

    if job.started_at:
        console.print(f"  [dim]started:[/dim] {format_time_ago(job.started_at)}")
        console.print(
            f"  [dim]runtime:[/dim] {format_duration(job.started_at, job.completed_at)}"
        )

    if job.completed_at:
        console.print(f"  [dim]finished:[/dim] {format_time_ago(job.completed_at)}")

    if job.error_message:
        console.print(f"  [dim]error:[/dim] {job.error_message}")
