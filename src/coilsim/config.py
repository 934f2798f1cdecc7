# Copyright (c) Syntropy Systems
"""Configuration management for coilsim."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

PROJECT_DIR_NAME = ".coilsim"
DB_FILE_NAME = "coilsim.db"
CONFIG_FILE_NAME = "config.yaml"


@dataclass
class CoilsimConfig:
    """Configuration for coilsim."""

    # Seconds per simulated time unit (0 runs jobs without waiting)
    time_unit_seconds: float = 1.0

    # Concurrent background executions in server mode
    max_workers: int = 4

    # Root logging level for the CLI and server
    log_level: str = "WARNING"

    def to_dict(self) -> dict[str, object]:
        """Convert to a YAML-friendly dictionary."""
        return {
            "time_unit_seconds": self.time_unit_seconds,
            "max_workers": self.max_workers,
            "log_level": self.log_level,
        }


def find_coilsim_dir(start_path: Path | None = None) -> Path | None:
    """Find the nearest .coilsim directory by walking up from start_path.

    Returns None if no .coilsim directory is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        project_dir = current / PROJECT_DIR_NAME
        if project_dir.is_dir():
            return project_dir
        current = current.parent

    # Check root
    project_dir = current / PROJECT_DIR_NAME
    if project_dir.is_dir():
        return project_dir

    return None


def get_global_config_dir() -> Path:
    """Get the global coilsim config directory (~/.coilsim)."""
    return Path.home() / PROJECT_DIR_NAME


def _apply(config: CoilsimConfig, data: dict[str, object]) -> None:
    time_unit = data.get("time_unit_seconds")
    if isinstance(time_unit, (int, float)) and time_unit >= 0:
        config.time_unit_seconds = float(time_unit)
    max_workers = data.get("max_workers")
    if isinstance(max_workers, int) and max_workers > 0:
        config.max_workers = max_workers
    log_level = data.get("log_level")
    if isinstance(log_level, str):
        config.log_level = log_level.upper()


def load_config(project_dir: Path | None = None) -> CoilsimConfig:
    """Load configuration from .coilsim/config.yaml or defaults.

    Looks for config in:
    1. Provided project_dir
    2. Nearest .coilsim directory walking up
    3. ~/.coilsim/config.yaml
    4. Defaults

    COILSIM_TIME_UNIT overrides the time unit from any source.
    """
    config = CoilsimConfig()

    # Find config file
    config_path = None

    if project_dir is not None:
        config_path = project_dir / CONFIG_FILE_NAME
    else:
        found_dir = find_coilsim_dir()
        if found_dir is not None:
            config_path = found_dir / CONFIG_FILE_NAME
        else:
            global_config = get_global_config_dir() / CONFIG_FILE_NAME
            if global_config.exists():
                config_path = global_config

    if config_path is not None and config_path.exists():
        with config_path.open() as f:
            data = cast("dict[str, object]", yaml.safe_load(f) or {})
        _apply(config, data)

    env_time_unit = os.environ.get("COILSIM_TIME_UNIT")
    if env_time_unit:
        try:
            config.time_unit_seconds = max(0.0, float(env_time_unit))
        except ValueError as e:
            msg = f"COILSIM_TIME_UNIT must be a number, got {env_time_unit!r}"
            raise ValueError(msg) from e

    return config


def write_default_config(project_dir: Path) -> Path:
    """Write a config.yaml with default values."""
    config_path = project_dir / CONFIG_FILE_NAME
    with config_path.open("w") as f:
        yaml.dump(CoilsimConfig().to_dict(), f, default_flow_style=False)
    return config_path


def get_db_path(project_dir: Path | None = None) -> Path:
    """Get the path to the SQLite database."""
    if project_dir is None:
        project_dir = find_coilsim_dir()

    if project_dir is None:
        msg = "No .coilsim directory found. Run 'coilsim init' first."
        raise RuntimeError(msg)

    return project_dir / DB_FILE_NAME


def require_coilsim_dir() -> Path:
    """Get coilsim directory or raise an error if not found."""
    project_dir = find_coilsim_dir()
    if project_dir is None:
        msg = "No .coilsim directory found. Run 'coilsim init' first."
        raise RuntimeError(msg)
    return project_dir
