# Copyright (c) Syntropy Systems
"""Tests for batch parameter sweeps."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import pytest

from coilsim.batch import (
    BatchOrchestrator,
    build_child_parameters,
    compute_sweep_values,
    plan_batch,
    round_half_up,
)
from coilsim.db import SQLiteDatabase
from coilsim.errors import BatchNotFoundError, InvalidStateError, StoreError
from coilsim.executor import JobExecutor
from coilsim.models.simulation import (
    BatchRun,
    BatchStatus,
    JobStatus,
    Resolution,
    SimulationParameters,
    SweepParameter,
)
from conftest import FixedRandom

if TYPE_CHECKING:
    from pathlib import Path


def create_batch(
    db: SQLiteDatabase,
    sweep_parameter: SweepParameter = SweepParameter.COIL_COUNT,
    start: float = 20,
    end: float = 80,
    steps: int = 4,
    experiment_id: str | None = None,
) -> BatchRun:
    return db.create_batch_run(
        name="sweep",
        sweep_parameter=sweep_parameter,
        start_value=start,
        end_value=end,
        step_count=steps,
        base_coil_count=50,
        base_magnetic_field_strength=5.0,
        base_plasma_density=1e20,
        base_resolution=Resolution.LOW,
        experiment_id=experiment_id,
    )


class FlakyCreateDatabase(SQLiteDatabase):
    """Store that refuses to create the job at one sweep index."""

    def __init__(self, db_path: Path, fail_on: int) -> None:
        super().__init__(db_path)
        self.fail_on = fail_on
        self.create_calls = 0

    def create_job(
        self,
        parameters: SimulationParameters,
        batch_run_id: str | None = None,
        experiment_id: str | None = None,
    ):
        index = self.create_calls
        self.create_calls += 1
        if index == self.fail_on:
            raise StoreError("disk full")
        return super().create_job(parameters, batch_run_id, experiment_id)


class TestSweepValues:
    """Tests for sweep value interpolation."""

    def test_linear_interpolation(self) -> None:
        """Values are evenly spaced and include both ends."""
        assert compute_sweep_values(4, 12, 5) == [4, 6, 8, 10, 12]

    def test_descending_range(self) -> None:
        """A start above the end sweeps downwards."""
        assert compute_sweep_values(3.0, 1.0, 3) == [3.0, 2.0, 1.0]

    def test_single_step_uses_start(self) -> None:
        """One step yields only the start value."""
        assert compute_sweep_values(7.5, 9.0, 1) == [7.5]

    def test_round_half_up(self) -> None:
        """Halves round towards positive infinity."""
        assert round_half_up(12.5) == 13
        assert round_half_up(13.5) == 14
        assert round_half_up(12.49) == 12


class TestChildParameters:
    """Tests for deriving child job parameters."""

    def test_coil_sweep_rounds(self, database: SQLiteDatabase) -> None:
        """Coil count values are rounded to integers."""
        batch = create_batch(database, start=10, end=11, steps=3)
        coils = [spec.parameters.coil_count for spec in plan_batch(batch)]
        assert coils == [10, 11, 11]

    def test_field_sweep_keeps_base_values(self, database: SQLiteDatabase) -> None:
        """Only the swept parameter changes."""
        batch = create_batch(
            database,
            sweep_parameter=SweepParameter.MAGNETIC_FIELD_STRENGTH,
            start=2.0,
            end=8.0,
            steps=3,
        )
        params = build_child_parameters(batch, 5.0)

        assert params.magnetic_field_strength == 5.0
        assert params.coil_count == 50
        assert params.plasma_density == 1e20
        assert params.resolution == Resolution.LOW

    def test_density_sweep(self, database: SQLiteDatabase) -> None:
        batch = create_batch(
            database,
            sweep_parameter=SweepParameter.PLASMA_DENSITY,
            start=1e19,
            end=1e21,
            steps=2,
        )
        densities = [spec.parameters.plasma_density for spec in plan_batch(batch)]
        assert densities == pytest.approx([1e19, 1e21])


class TestBatchOrchestrator:
    """Tests for draining a batch run."""

    def test_runs_all_children_in_order(self, database: SQLiteDatabase) -> None:
        """Every step becomes a terminal child job, in sweep order."""
        batch = create_batch(database, experiment_id="exp-1")
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.99))

        report = BatchOrchestrator(database, executor).run(batch.id)

        assert report.batch.status == BatchStatus.COMPLETED
        assert report.batch.completed_at is not None
        assert report.skipped == []
        assert len(report.job_ids) == 4

        jobs = [database.get_job(job_id) for job_id in report.job_ids]
        assert [job.parameters.coil_count for job in jobs if job] == [20, 40, 60, 80]
        for job in jobs:
            assert job is not None
            assert job.status == JobStatus.COMPLETED
            assert job.batch_run_id == batch.id
            assert job.experiment_id == "exp-1"

    def test_completes_even_when_every_child_fails(self, database: SQLiteDatabase) -> None:
        """Child failures never fail the batch."""
        batch = create_batch(database)
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.0))

        report = BatchOrchestrator(database, executor).run(batch.id)

        assert report.batch.status == BatchStatus.COMPLETED
        for job_id in report.job_ids:
            job = database.get_job(job_id)
            assert job is not None
            assert job.status == JobStatus.FAILED
            assert job.error_message == "Numerical instability in batch run"

    def test_children_run_strictly_one_at_a_time(self, database: SQLiteDatabase) -> None:
        """While a child runs, no sibling is running or waiting."""
        batch = create_batch(database, steps=5)
        snapshots: list[dict[JobStatus, int]] = []

        def observe(_seconds: float) -> None:
            children = database.list_jobs(batch_run_id=batch.id)
            snapshots.append(
                {status: sum(1 for j in children if j.status == status) for status in JobStatus}
            )

        executor = JobExecutor(database, sleep=observe, rng=FixedRandom(roll=0.99))
        _ = BatchOrchestrator(database, executor).run(batch.id)

        assert len(snapshots) == 5
        for i, counts in enumerate(snapshots):
            assert counts[JobStatus.RUNNING] == 1
            assert counts[JobStatus.PENDING] == 0
            assert counts[JobStatus.COMPLETED] == i

    def test_batch_running_while_children_execute(self, database: SQLiteDatabase) -> None:
        batch = create_batch(database, steps=2)
        statuses: list[BatchStatus] = []

        def observe(_seconds: float) -> None:
            current = database.get_batch_run(batch.id)
            assert current is not None
            statuses.append(current.status)

        executor = JobExecutor(database, sleep=observe, rng=FixedRandom(roll=0.99))
        _ = BatchOrchestrator(database, executor).run(batch.id)

        assert statuses == [BatchStatus.RUNNING, BatchStatus.RUNNING]

    def test_creation_failure_skips_step(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A step whose job cannot be created is logged and skipped."""
        db = FlakyCreateDatabase(tmp_path / "flaky.db", fail_on=1)
        db.init_schema()
        try:
            batch = create_batch(db, steps=3)
            executor = JobExecutor(db, time_unit=0, rng=FixedRandom(roll=0.99))

            with caplog.at_level(logging.ERROR, logger="coilsim.batch"):
                report = BatchOrchestrator(db, executor).run(batch.id)

            assert report.skipped == [1]
            assert len(report.job_ids) == 2
            assert report.batch.status == BatchStatus.COMPLETED
            assert "could not create simulation 1" in caplog.text

            coils = [db.get_job(job_id).parameters.coil_count for job_id in report.job_ids]
            assert coils == [20, 80]
        finally:
            db.close()

    def test_unknown_batch(self, database: SQLiteDatabase) -> None:
        executor = JobExecutor(database, time_unit=0)
        with pytest.raises(BatchNotFoundError):
            _ = BatchOrchestrator(database, executor).run("missing")

    def test_child_deleted_mid_run_still_completes_batch(
        self, database: SQLiteDatabase, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Losing a running child is logged and the sweep carries on."""
        batch = create_batch(database, steps=3)
        deleted: list[str] = []

        def delete_first_child(_seconds: float) -> None:
            if deleted:
                return
            running = database.list_jobs(status=JobStatus.RUNNING, batch_run_id=batch.id)
            assert len(running) == 1
            database.delete_job(running[0].id)
            deleted.append(running[0].id)

        executor = JobExecutor(database, sleep=delete_first_child, rng=FixedRandom(roll=0.99))
        with caplog.at_level(logging.ERROR, logger="coilsim.batch"):
            report = BatchOrchestrator(database, executor).run(batch.id)

        assert report.batch.status == BatchStatus.COMPLETED
        assert report.batch.completed_at is not None
        assert report.job_ids[0] == deleted[0]
        assert f"lost simulation {deleted[0]}" in caplog.text

        remaining = database.list_jobs(batch_run_id=batch.id)
        assert len(remaining) == 2
        assert all(job.status == JobStatus.COMPLETED for job in remaining)

    def test_rerun_is_rejected(self, database: SQLiteDatabase) -> None:
        """A batch that has already run cannot be drained a second time."""
        batch = create_batch(database, steps=3)
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.99))
        orchestrator = BatchOrchestrator(database, executor)
        _ = orchestrator.run(batch.id)

        with pytest.raises(InvalidStateError, match="COMPLETED"):
            _ = orchestrator.run(batch.id)

        assert len(database.list_jobs(batch_run_id=batch.id)) == 3

    def test_running_batch_is_rejected(self, database: SQLiteDatabase) -> None:
        batch = create_batch(database, steps=2)
        database.update_batch_run(batch.id, status=BatchStatus.RUNNING)
        executor = JobExecutor(database, time_unit=0)

        with pytest.raises(InvalidStateError):
            _ = BatchOrchestrator(database, executor).run(batch.id)

        assert database.list_jobs(batch_run_id=batch.id) == []
