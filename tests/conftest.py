# Copyright (c) Syntropy Systems
"""Pytest fixtures for coilsim tests."""

import os
import random
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

# Rich sizes its console from COLUMNS when no terminal is attached; give CLI
# tables enough room that cells are not truncated under CliRunner.
os.environ["COLUMNS"] = "200"

from coilsim.db import SQLiteDatabase
from coilsim.executor import JobExecutor

# Store original cwd at module load time
_original_cwd = Path.cwd()


class FixedRandom(random.Random):
    """Random source returning fixed values for latency and failure rolls."""

    def __init__(self, roll: float, duration_fraction: float = 0.5) -> None:
        super().__init__(0)
        self.roll = roll
        self.duration_fraction = duration_fraction

    def random(self) -> float:
        return self.roll

    def uniform(self, a: float, b: float) -> float:
        return a + (b - a) * self.duration_fraction


class SleepRecorder:
    """Stand-in for time.sleep that records requested waits."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def coilsim_project(temp_dir: Path) -> Generator[Path, None, None]:
    """Create a temporary coilsim project with instant execution."""
    from coilsim.db import init_db

    project_dir = temp_dir / ".coilsim"
    project_dir.mkdir()
    _ = (project_dir / "config.yaml").write_text(
        "time_unit_seconds: 0\nmax_workers: 2\nlog_level: WARNING\n"
    )
    init_db(project_dir / "coilsim.db")

    # Change to temp directory
    os.chdir(temp_dir)

    yield temp_dir

    # Always return to original cwd
    os.chdir(_original_cwd)


@pytest.fixture
def database(tmp_path: Path) -> Generator[SQLiteDatabase, None, None]:
    """An initialized SQLite store in a temporary file."""
    db = SQLiteDatabase(tmp_path / "coilsim.db")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture
def project_database(coilsim_project: Path) -> Generator[SQLiteDatabase, None, None]:
    """The store of the temporary project."""
    db = SQLiteDatabase(coilsim_project / ".coilsim" / "coilsim.db")
    yield db
    db.close()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def executor(database: SQLiteDatabase, sleep_recorder: SleepRecorder) -> JobExecutor:
    """Executor that records waits instead of sleeping."""
    return JobExecutor(database, sleep=sleep_recorder)
