# Copyright (c) Syntropy Systems
"""coilsim delete command."""
from __future__ import annotations

import typer

from coilsim.cli._common import console, open_project, resolve_job


def delete(
    job_id: str = typer.Argument(..., help="Simulation ID (or unique prefix) to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a simulation and its results."""
    with open_project() as (_config, db):
        job = resolve_job(db, job_id)

        if not yes:
            _ = typer.confirm(f"Delete simulation {job.id}?", abort=True)

        db.delete_job(job.id)
        console.print(f"[green]Deleted simulation[/green] {job.id}")
