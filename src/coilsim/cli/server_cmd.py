"""CLI command for running the coilsim server."""
from __future__ import annotations

import os
from pathlib import Path

import typer
import uvicorn

from coilsim.cli._common import console
from coilsim.config import DB_FILE_NAME, find_coilsim_dir, load_config


def server(
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    db_path: Path | None = typer.Option(
        None,
        "--db-path",
        envvar="COILSIM_DB_PATH",
        help="SQLite database file",
    ),
    data_dir: Path | None = typer.Option(
        None,
        "--data-dir",
        "-d",
        help="Directory to hold coilsim.db (used when --db-path is not given)",
    ),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload for development"),
) -> None:
    """
    Start the coilsim HTTP server.

    Submissions return at once; simulations and batch sweeps run in a
    background worker pool inside the server process.

    Examples:

        # Use the project database
        coilsim server

        # Use an explicit database file
        coilsim server --db-path /data/coilsim.db

        # Bind to all interfaces (for remote access)
        coilsim server --host 0.0.0.0 --port 8080
    """
    if db_path is None:
        if data_dir is not None:
            data_dir.mkdir(parents=True, exist_ok=True)
            db_path = data_dir / DB_FILE_NAME
        else:
            project_dir = find_coilsim_dir()
            if project_dir is None:
                console.print("[red]Error:[/red] No database configuration provided.")
                console.print()
                console.print("Provide one of:")
                console.print("  --db-path /path/to/coilsim.db")
                console.print("  --data-dir /path/to/data")
                console.print("  COILSIM_DB_PATH environment variable")
                console.print("  a project initialized with 'coilsim init'")
                raise typer.Exit(1)
            db_path = project_dir / DB_FILE_NAME

    try:
        config = load_config()
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    os.environ["COILSIM_DB_PATH"] = str(db_path)

    console.print("[bold]coilsim server[/bold]")
    console.print(f"  Host: {host}")
    console.print(f"  Port: {port}")
    console.print(f"  Database: {db_path}")
    console.print(f"  Time unit: {config.time_unit_seconds:g}s")
    console.print(f"  Workers: {config.max_workers}")
    console.print()

    if reload:
        uvicorn.run(
            "coilsim.server.app:create_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            log_level=config.log_level.lower(),
        )
        return

    from coilsim.server.app import create_app

    app = create_app(db_path=db_path, config=config)
    uvicorn.run(app, host=host, port=port, log_level=config.log_level.lower())
