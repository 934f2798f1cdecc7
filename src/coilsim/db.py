"""Persistent store with a SQLite implementation (WAL mode, row-keyed writes)."""
from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from coilsim.errors import BatchNotFoundError, InvalidStateError, JobNotFoundError, StoreError
from coilsim.models.simulation import (
    BatchRun,
    BatchStatus,
    JobStatus,
    Resolution,
    SimulationJob,
    SimulationParameters,
    SimulationResult,
    SweepParameter,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

logger = logging.getLogger(__name__)

# SQL schema for coilsim database
SQLITE_SCHEMA = """
-- Batch runs (parameter sweeps)
CREATE TABLE IF NOT EXISTS batch_runs (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    sweep_parameter TEXT NOT NULL,  -- coil_count, magnetic_field_strength, plasma_density
    start_value REAL NOT NULL,
    end_value REAL NOT NULL,
    step_count INTEGER NOT NULL,
    base_coil_count INTEGER NOT NULL,
    base_magnetic_field_strength REAL NOT NULL,
    base_plasma_density REAL NOT NULL,
    base_resolution TEXT NOT NULL,
    status TEXT DEFAULT 'PENDING',  -- PENDING, RUNNING, COMPLETED
    experiment_id TEXT,
    created_at TEXT NOT NULL,
    completed_at TEXT
);

-- Simulation jobs
CREATE TABLE IF NOT EXISTS jobs (
    id TEXT PRIMARY KEY,
    status TEXT DEFAULT 'PENDING',  -- PENDING, RUNNING, COMPLETED, FAILED

    -- Parameters (immutable once created)
    coil_count INTEGER NOT NULL,
    magnetic_field_strength REAL NOT NULL,
    plasma_density REAL NOT NULL,
    resolution TEXT NOT NULL,
    failure_rate REAL NOT NULL,

    -- Grouping
    batch_run_id TEXT REFERENCES batch_runs(id) ON DELETE SET NULL,
    experiment_id TEXT,

    -- Timestamps
    created_at TEXT NOT NULL,
    started_at TEXT,
    completed_at TEXT,

    error_message TEXT
);

-- Results (one per completed job)
CREATE TABLE IF NOT EXISTS results (
    job_id TEXT PRIMARY KEY REFERENCES jobs(id) ON DELETE CASCADE,
    confinement_score REAL NOT NULL,
    energy_loss REAL NOT NULL,
    stability_index REAL NOT NULL,
    time_series TEXT NOT NULL,  -- JSON array of {t, value}
    created_at TEXT NOT NULL
);

-- Indexes for performance
CREATE INDEX IF NOT EXISTS idx_jobs_status ON jobs(status);
CREATE INDEX IF NOT EXISTS idx_jobs_batch ON jobs(batch_run_id);
CREATE INDEX IF NOT EXISTS idx_jobs_created ON jobs(created_at);
"""

JOB_UPDATE_FIELDS = frozenset(
    {"status", "started_at", "completed_at", "error_message", "experiment_id"}
)
BATCH_UPDATE_FIELDS = frozenset({"status", "completed_at", "name", "description"})


def utcnow() -> str:
    """Get current UTC time as ISO format string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def new_id() -> str:
    """Generate an opaque row identifier."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ChangeEvent:
    """A committed row change, pushed to store subscribers."""

    table: str
    action: str  # insert, update, delete
    row_id: str


ChangeListener = Callable[[ChangeEvent], None]


class Database(ABC):
    """Store interface used by the executor, orchestrator and service."""

    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a row-change listener. Returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, table: str, action: str, row_id: str) -> None:
        event = ChangeEvent(table=table, action=action, row_id=row_id)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Change listener failed for %s %s", table, row_id)

    @abstractmethod
    def init_schema(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    # --- Job Operations ---

    @abstractmethod
    def create_job(
        self,
        parameters: SimulationParameters,
        batch_run_id: Optional[str] = None,
        experiment_id: Optional[str] = None,
    ) -> SimulationJob: ...

    @abstractmethod
    def update_job(self, job_id: str, **fields: object) -> None: ...

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[SimulationJob]: ...

    @abstractmethod
    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        search: Optional[str] = None,
        batch_run_id: Optional[str] = None,
        experiment_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[SimulationJob]: ...

    @abstractmethod
    def delete_job(self, job_id: str) -> None: ...

    @abstractmethod
    def reset_job(self, job_id: str, failure_rate: Optional[float] = None) -> SimulationJob: ...

    @abstractmethod
    def count_jobs_by_status(self) -> dict[JobStatus, int]: ...

    # --- Result Operations ---

    @abstractmethod
    def create_result(self, result: SimulationResult) -> None: ...

    @abstractmethod
    def complete_job(self, job_id: str, result: SimulationResult) -> None: ...

    @abstractmethod
    def get_result(self, job_id: str) -> Optional[SimulationResult]: ...

    @abstractmethod
    def list_completed_jobs_with_results(
        self,
    ) -> list[tuple[SimulationJob, SimulationResult]]: ...

    # --- Batch Operations ---

    @abstractmethod
    def create_batch_run(
        self,
        name: str,
        sweep_parameter: SweepParameter,
        start_value: float,
        end_value: float,
        step_count: int,
        base_coil_count: int,
        base_magnetic_field_strength: float,
        base_plasma_density: float,
        base_resolution: Resolution = Resolution.MEDIUM,
        description: Optional[str] = None,
        experiment_id: Optional[str] = None,
    ) -> BatchRun: ...

    @abstractmethod
    def update_batch_run(self, batch_id: str, **fields: object) -> None: ...

    @abstractmethod
    def get_batch_run(self, batch_id: str) -> Optional[BatchRun]: ...

    @abstractmethod
    def list_batch_runs(self, limit: int = 100) -> list[BatchRun]: ...

    @abstractmethod
    def delete_batch_run(self, batch_id: str) -> None: ...


def get_connection(db_path: Path) -> sqlite3.Connection:
    """
    Get a database connection with proper settings for concurrent access.

    - isolation_level=None for explicit transaction control
    - WAL mode for concurrent readers/writers
    - busy_timeout to wait for locks instead of failing immediately
    - Row factory for dict-like access
    - check_same_thread=False so dispatcher threads can share it
    """
    conn = sqlite3.connect(
        str(db_path), timeout=5.0, isolation_level=None, check_same_thread=False
    )
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def _value(field: object) -> object:
    # Enums are stored by value.
    return getattr(field, "value", field)


class SQLiteDatabase(Database):
    """SQLite-backed store.

    A single connection is shared behind a lock; every public method is one
    statement except complete_job, which writes the job and its result in
    one transaction.
    """

    def __init__(self, db_path: Path) -> None:
        super().__init__()
        self.db_path = db_path
        try:
            self.conn = get_connection(db_path)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {db_path}: {e}") from e
        self._lock = threading.RLock()

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self.conn
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._cursor() as conn:
            conn.executescript(SQLITE_SCHEMA)

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # --- Job Operations ---

    def create_job(
        self,
        parameters: SimulationParameters,
        batch_run_id: Optional[str] = None,
        experiment_id: Optional[str] = None,
    ) -> SimulationJob:
        """Insert a PENDING job and return it."""
        job_id = new_id()
        with self._cursor() as conn:
            conn.execute(
                """
                INSERT INTO jobs (
                    id, status, coil_count, magnetic_field_strength, plasma_density,
                    resolution, failure_rate, batch_run_id, experiment_id, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    job_id,
                    JobStatus.PENDING.value,
                    parameters.coil_count,
                    parameters.magnetic_field_strength,
                    parameters.plasma_density,
                    parameters.resolution.value,
                    parameters.failure_rate,
                    batch_run_id,
                    experiment_id,
                    utcnow(),
                ),
            )
            job = self._fetch_job(conn, job_id)
        self._notify("jobs", "insert", job_id)
        if job is None:
            raise StoreError(f"Simulation {job_id} vanished after insert")
        return job

    def update_job(self, job_id: str, **fields: object) -> None:
        """Update mutable job columns."""
        unknown = set(fields) - JOB_UPDATE_FIELDS
        if unknown:
            msg = f"Cannot update job fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if not fields:
            return

        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._cursor() as conn:
            cursor = conn.execute(
                f"UPDATE jobs SET {assignments} WHERE id = ?",  # noqa: S608
                (*[_value(v) for v in fields.values()], job_id),
            )
            if cursor.rowcount == 0:
                raise JobNotFoundError(job_id)
        self._notify("jobs", "update", job_id)

    def _fetch_job(self, conn: sqlite3.Connection, job_id: str) -> Optional[SimulationJob]:
        row = conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        if row is None:
            return None
        return SimulationJob.model_validate(dict(row))

    def get_job(self, job_id: str) -> Optional[SimulationJob]:
        """Get a job by ID."""
        with self._cursor() as conn:
            return self._fetch_job(conn, job_id)

    def list_jobs(
        self,
        status: Optional[JobStatus] = None,
        search: Optional[str] = None,
        batch_run_id: Optional[str] = None,
        experiment_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[SimulationJob]:
        """Get jobs, newest first, with optional filtering."""
        query = "SELECT * FROM jobs WHERE 1=1"
        params: list[object] = []

        if status:
            query += " AND status = ?"
            params.append(_value(status))

        if search and search.strip():
            query += " AND id LIKE ?"
            params.append(f"%{search.strip()}%")

        if batch_run_id:
            query += " AND batch_run_id = ?"
            params.append(batch_run_id)

        if experiment_id:
            query += " AND experiment_id = ?"
            params.append(experiment_id)

        query += " ORDER BY created_at DESC, rowid DESC LIMIT ?"
        params.append(limit)

        with self._cursor() as conn:
            rows = conn.execute(query, params).fetchall()
        return [SimulationJob.model_validate(dict(row)) for row in rows]

    def delete_job(self, job_id: str) -> None:
        """Delete a job and its result."""
        with self._cursor() as conn:
            cursor = conn.execute("DELETE FROM jobs WHERE id = ?", (job_id,))
            if cursor.rowcount == 0:
                raise JobNotFoundError(job_id)
        self._notify("jobs", "delete", job_id)

    def reset_job(self, job_id: str, failure_rate: Optional[float] = None) -> SimulationJob:
        """
        Move a FAILED job back to PENDING for resubmission.

        Clears started_at, completed_at and error_message. A new failure
        rate may be supplied for the next attempt.
        """
        with self._cursor() as conn:
            job = self._fetch_job(conn, job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            if job.status != JobStatus.FAILED:
                msg = f"Can only retry failed simulations, got {job.status.value}"
                raise InvalidStateError(msg)

            rate = job.parameters.failure_rate if failure_rate is None else failure_rate
            conn.execute(
                """
                UPDATE jobs
                SET status = ?, started_at = NULL, completed_at = NULL,
                    error_message = NULL, failure_rate = ?
                WHERE id = ?
                """,
                (JobStatus.PENDING.value, rate, job_id),
            )
            reset = self._fetch_job(conn, job_id)
        self._notify("jobs", "update", job_id)
        if reset is None:
            raise JobNotFoundError(job_id)
        return reset

    def count_jobs_by_status(self) -> dict[JobStatus, int]:
        """Count jobs in each status."""
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT status, COUNT(*) AS n FROM jobs GROUP BY status"
            ).fetchall()
        counts = dict.fromkeys(JobStatus, 0)
        for row in rows:
            counts[JobStatus(row["status"])] = row["n"]
        return counts

    # --- Result Operations ---

    def _insert_result(self, conn: sqlite3.Connection, result: SimulationResult) -> None:
        conn.execute(
            """
            INSERT INTO results (
                job_id, confinement_score, energy_loss, stability_index,
                time_series, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                result.job_id,
                result.confinement_score,
                result.energy_loss,
                result.stability_index,
                result.time_series_json(),
                utcnow(),
            ),
        )

    def create_result(self, result: SimulationResult) -> None:
        """Insert a result row for a job that is already COMPLETED.

        Raises:
            JobNotFoundError: The job does not exist.
            InvalidStateError: The job is not COMPLETED.
        """
        with self._cursor() as conn:
            job = self._fetch_job(conn, result.job_id)
            if job is None:
                raise JobNotFoundError(result.job_id)
            if job.status != JobStatus.COMPLETED:
                msg = (
                    f"Simulation {result.job_id} is {job.status.value}, "
                    "results can only be stored for COMPLETED simulations"
                )
                raise InvalidStateError(msg)
            self._insert_result(conn, result)
        self._notify("results", "insert", result.job_id)

    def complete_job(self, job_id: str, result: SimulationResult) -> None:
        """Mark a job COMPLETED and store its result atomically."""
        with self._cursor() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                cursor = conn.execute(
                    """
                    UPDATE jobs
                    SET status = ?, completed_at = ?, error_message = NULL
                    WHERE id = ?
                    """,
                    (JobStatus.COMPLETED.value, utcnow(), job_id),
                )
                if cursor.rowcount == 0:
                    conn.execute("ROLLBACK")
                    raise JobNotFoundError(job_id)
                self._insert_result(conn, result)
                conn.execute("COMMIT")
            except sqlite3.Error:
                conn.execute("ROLLBACK")
                raise
        self._notify("jobs", "update", job_id)
        self._notify("results", "insert", job_id)

    def get_result(self, job_id: str) -> Optional[SimulationResult]:
        """Get the result of a job, if it has one."""
        with self._cursor() as conn:
            row = conn.execute(
                "SELECT * FROM results WHERE job_id = ?",
                (job_id,),
            ).fetchone()
        if row is None:
            return None
        return SimulationResult.model_validate(dict(row))

    def list_completed_jobs_with_results(
        self,
    ) -> list[tuple[SimulationJob, SimulationResult]]:
        """Get every COMPLETED job paired with its result."""
        with self._cursor() as conn:
            rows = conn.execute(
                """
                SELECT j.*, r.confinement_score, r.energy_loss,
                       r.stability_index, r.time_series
                FROM jobs j
                JOIN results r ON r.job_id = j.id
                WHERE j.status = ?
                ORDER BY j.created_at, j.rowid
                """,
                (JobStatus.COMPLETED.value,),
            ).fetchall()

        pairs: list[tuple[SimulationJob, SimulationResult]] = []
        for row in rows:
            data = dict(row)
            result = SimulationResult(
                job_id=data["id"],
                confinement_score=data.pop("confinement_score"),
                energy_loss=data.pop("energy_loss"),
                stability_index=data.pop("stability_index"),
                time_series=data.pop("time_series"),
            )
            pairs.append((SimulationJob.model_validate(data), result))
        return pairs

    # --- Batch Operations ---

    def create_batch_run(
        self,
        name: str,
        sweep_parameter: SweepParameter,
        start_value: float,
        end_value: float,
        step_count: int,
        base_coil_count: int,
        base_magnetic_field_strength: float,
        base_plasma_density: float,
        base_resolution: Resolution = Resolution.MEDIUM,
        description: Optional[str] = None,
        experiment_id: Optional[str] = None,
    ) -> BatchRun:
        """Insert a PENDING batch run and return it."""
        batch = BatchRun(
            id=new_id(),
            name=name,
            description=description,
            sweep_parameter=sweep_parameter,
            start_value=start_value,
            end_value=end_value,
            step_count=step_count,
            base_coil_count=base_coil_count,
            base_magnetic_field_strength=base_magnetic_field_strength,
            base_plasma_density=base_plasma_density,
            base_resolution=base_resolution,
            experiment_id=experiment_id,
            created_at=utcnow(),
        )
        with self._cursor() as conn:
            conn.execute(
                """
                INSERT INTO batch_runs (
                    id, name, description, sweep_parameter, start_value, end_value,
                    step_count, base_coil_count, base_magnetic_field_strength,
                    base_plasma_density, base_resolution, status, experiment_id,
                    created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    batch.id,
                    batch.name,
                    batch.description,
                    batch.sweep_parameter.value,
                    batch.start_value,
                    batch.end_value,
                    batch.step_count,
                    batch.base_coil_count,
                    batch.base_magnetic_field_strength,
                    batch.base_plasma_density,
                    batch.base_resolution.value,
                    batch.status.value,
                    batch.experiment_id,
                    batch.created_at,
                ),
            )
        self._notify("batch_runs", "insert", batch.id)
        return batch

    def update_batch_run(self, batch_id: str, **fields: object) -> None:
        """Update mutable batch run columns."""
        unknown = set(fields) - BATCH_UPDATE_FIELDS
        if unknown:
            msg = f"Cannot update batch fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if not fields:
            return

        assignments = ", ".join(f"{name} = ?" for name in fields)
        with self._cursor() as conn:
            cursor = conn.execute(
                f"UPDATE batch_runs SET {assignments} WHERE id = ?",  # noqa: S608
                (*[_value(v) for v in fields.values()], batch_id),
            )
            if cursor.rowcount == 0:
                raise BatchNotFoundError(batch_id)
        self._notify("batch_runs", "update", batch_id)

    def get_batch_run(self, batch_id: str) -> Optional[BatchRun]:
        """Get a batch run by ID."""
        with self._cursor() as conn:
            row = conn.execute(
                "SELECT * FROM batch_runs WHERE id = ?",
                (batch_id,),
            ).fetchone()
        if row is None:
            return None
        return BatchRun.model_validate(dict(row))

    def list_batch_runs(self, limit: int = 100) -> list[BatchRun]:
        """Get batch runs, newest first."""
        with self._cursor() as conn:
            rows = conn.execute(
                "SELECT * FROM batch_runs ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [BatchRun.model_validate(dict(row)) for row in rows]

    def delete_batch_run(self, batch_id: str) -> None:
        """Delete a batch run. Child jobs are kept and unlinked."""
        with self._cursor() as conn:
            cursor = conn.execute("DELETE FROM batch_runs WHERE id = ?", (batch_id,))
            if cursor.rowcount == 0:
                raise BatchNotFoundError(batch_id)
        self._notify("batch_runs", "delete", batch_id)


def init_db(db_path: Path) -> None:
    """Initialize the database with the schema."""
    db = SQLiteDatabase(db_path)
    try:
        db.init_schema()
    finally:
        db.close()
