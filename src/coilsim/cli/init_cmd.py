# Copyright (c) Syntropy Systems
"""coilsim init command."""

from pathlib import Path

import typer
from rich.console import Console

from coilsim.config import DB_FILE_NAME, PROJECT_DIR_NAME, write_default_config
from coilsim.db import init_db

console = Console()


def init(
    path: Path = typer.Argument(
        Path(),
        help="Directory to initialize (default: current directory)",
    ),
) -> None:
    """Initialize a new coilsim project.

    Creates a .coilsim directory with configuration and database.
    """
    target = path.resolve()
    project_dir = target / PROJECT_DIR_NAME

    if project_dir.exists():
        console.print(f"[yellow]Already initialized:[/yellow] {project_dir}")
        return

    project_dir.mkdir(parents=True)
    config_path = write_default_config(project_dir)

    db_path = project_dir / DB_FILE_NAME
    init_db(db_path)

    console.print(f"[green]Initialized coilsim project:[/green] {project_dir}")
    console.print(f"  [dim]config:[/dim] {config_path}")
    console.print(f"  [dim]database:[/dim] {db_path}")
