# Copyright (c) Syntropy Systems
"""Helpers shared by CLI commands."""
from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

import typer
from rich.console import Console

from coilsim.config import get_db_path, load_config, require_coilsim_dir
from coilsim.db import SQLiteDatabase
from coilsim.errors import StoreError
from coilsim.models.simulation import BatchStatus, JobStatus

if TYPE_CHECKING:
    from collections.abc import Iterator

    from coilsim.config import CoilsimConfig
    from coilsim.models.simulation import SimulationJob

console = Console()

STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.RUNNING: "blue",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
    BatchStatus.PENDING: "yellow",
    BatchStatus.RUNNING: "blue",
    BatchStatus.COMPLETED: "green",
}


def styled_status(status: JobStatus | BatchStatus) -> str:
    """Status wrapped in rich markup."""
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


@contextmanager
def open_project() -> Iterator[tuple[CoilsimConfig, SQLiteDatabase]]:
    """Load the project config and open its database, exiting on error."""
    try:
        project_dir = require_coilsim_dir()
    except RuntimeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    try:
        config = load_config(project_dir)
        db = SQLiteDatabase(get_db_path(project_dir))
        db.init_schema()
    except (ValueError, StoreError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    try:
        yield config, db
    finally:
        db.close()


def resolve_job(db: SQLiteDatabase, job_id: str) -> SimulationJob:
    """Find a job by full ID or unique prefix, exiting if there is none."""
    job = db.get_job(job_id)
    if job is not None:
        return job

    matches = [j for j in db.list_jobs(search=job_id, limit=500) if j.id.startswith(job_id)]
    if not matches:
        console.print(f"[red]Error:[/red] Simulation {job_id} not found")
        raise typer.Exit(1)
    if len(matches) > 1:
        console.print(f"[yellow]Ambiguous ID '{job_id}', using most recent match[/yellow]")
    return matches[0]
