# Copyright (c) Syntropy Systems
"""Tests for single-job execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from coilsim.errors import InvalidStateError, JobNotFoundError
from coilsim.executor import (
    BATCH_CHILD_PROFILE,
    SINGLE_JOB_PROFILE,
    JobExecutor,
    clamp_failure_rate,
)
from coilsim.models.simulation import JobStatus, SimulationParameters
from coilsim.synth import synthesize_result
from conftest import FixedRandom, SleepRecorder

if TYPE_CHECKING:
    from coilsim.db import SQLiteDatabase


def make_params(failure_rate: float = 10.0) -> SimulationParameters:
    return SimulationParameters(
        coil_count=50,
        magnetic_field_strength=5.0,
        plasma_density=1e20,
        failure_rate=failure_rate,
    )


class TestExecuteSuccess:
    """Tests for jobs that pass the failure roll."""

    def test_completes_with_result(self, database: SQLiteDatabase) -> None:
        """A passing roll stores the synthetic result and marks COMPLETED."""
        job = database.create_job(make_params())
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.99))

        final = executor.execute(job.id)

        assert final.status == JobStatus.COMPLETED
        assert final.started_at is not None
        assert final.completed_at is not None
        assert final.error_message is None

        result = database.get_result(job.id)
        assert result is not None
        expected = synthesize_result(job.id, job.parameters)
        assert result.confinement_score == expected.confinement_score
        assert result.time_series == expected.time_series

    def test_zero_failure_rate_never_fails(self, database: SQLiteDatabase) -> None:
        """A rate of 0 completes even on the lowest roll."""
        job = database.create_job(make_params(failure_rate=0))
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.0))

        assert executor.execute(job.id).status == JobStatus.COMPLETED

    def test_running_visible_during_latency(self, database: SQLiteDatabase) -> None:
        """The job is RUNNING without a result while the latency elapses."""
        job = database.create_job(make_params())
        seen: list[tuple[JobStatus, bool]] = []

        def observe(_seconds: float) -> None:
            current = database.get_job(job.id)
            assert current is not None
            seen.append((current.status, database.get_result(job.id) is not None))

        executor = JobExecutor(database, sleep=observe, rng=FixedRandom(roll=0.99))
        _ = executor.execute(job.id)

        assert seen == [(JobStatus.RUNNING, False)]


class TestExecuteFailure:
    """Tests for injected failures."""

    def test_fails_below_rate(self, database: SQLiteDatabase) -> None:
        """A roll under the failure rate marks FAILED with no result."""
        job = database.create_job(make_params(failure_rate=10))
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.05))

        final = executor.execute(job.id)

        assert final.status == JobStatus.FAILED
        assert final.error_message == SINGLE_JOB_PROFILE.error_message
        assert final.completed_at is not None
        assert database.get_result(job.id) is None

    def test_full_failure_rate_always_fails(self, database: SQLiteDatabase) -> None:
        """A rate of 100 fails even on the highest roll."""
        job = database.create_job(make_params(failure_rate=100))
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.9999))

        assert executor.execute(job.id).status == JobStatus.FAILED

    def test_batch_profile_uses_fixed_rate(self, database: SQLiteDatabase) -> None:
        """Batch children ignore the job's own rate in favour of 5%."""
        job = database.create_job(make_params(failure_rate=10))
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.07))

        final = executor.execute(job.id, BATCH_CHILD_PROFILE)

        assert final.status == JobStatus.COMPLETED

    def test_batch_profile_error_message(self, database: SQLiteDatabase) -> None:
        """Batch children fail with their own message."""
        job = database.create_job(make_params())
        executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.01))

        final = executor.execute(job.id, BATCH_CHILD_PROFILE)

        assert final.status == JobStatus.FAILED
        assert final.error_message == "Numerical instability in batch run"


class TestLatency:
    """Tests for the simulated latency."""

    def test_single_job_window(
        self, database: SQLiteDatabase, sleep_recorder: SleepRecorder
    ) -> None:
        """Single jobs wait between 3 and 10 time units."""
        executor = JobExecutor(database, time_unit=1.0, sleep=sleep_recorder)
        for _ in range(20):
            job = database.create_job(make_params(failure_rate=0))
            _ = executor.execute(job.id)

        assert len(sleep_recorder.calls) == 20
        assert all(3.0 <= s <= 10.0 for s in sleep_recorder.calls)

    def test_batch_child_window(
        self, database: SQLiteDatabase, sleep_recorder: SleepRecorder
    ) -> None:
        """Batch children wait between 1 and 3 time units."""
        executor = JobExecutor(database, time_unit=1.0, sleep=sleep_recorder)
        for _ in range(20):
            job = database.create_job(make_params())
            _ = executor.execute(job.id, BATCH_CHILD_PROFILE)

        assert all(1.0 <= s <= 3.0 for s in sleep_recorder.calls)

    def test_time_unit_scales_wait(
        self, database: SQLiteDatabase, sleep_recorder: SleepRecorder
    ) -> None:
        """The drawn duration is multiplied by the time unit."""
        job = database.create_job(make_params())
        executor = JobExecutor(
            database,
            time_unit=0.5,
            sleep=sleep_recorder,
            rng=FixedRandom(roll=0.99, duration_fraction=0.5),
        )

        _ = executor.execute(job.id)

        assert sleep_recorder.calls == [pytest.approx(6.5 * 0.5)]


class TestPreconditions:
    """Tests for execution preconditions."""

    def test_missing_job(self, executor: JobExecutor) -> None:
        """Executing an unknown id raises JobNotFoundError."""
        with pytest.raises(JobNotFoundError):
            _ = executor.execute("missing")

    def test_requires_pending(self, database: SQLiteDatabase) -> None:
        """A terminal job cannot be executed again."""
        job = database.create_job(make_params(failure_rate=0))
        executor = JobExecutor(database, time_unit=0)
        _ = executor.execute(job.id)

        with pytest.raises(InvalidStateError):
            _ = executor.execute(job.id)

    @pytest.mark.parametrize(
        ("rate", "expected"),
        [(-5, 0.0), (0, 0.0), (42.5, 42.5), (100, 100.0), (250, 100.0)],
    )
    def test_clamp_failure_rate(self, rate: float, expected: float) -> None:
        assert clamp_failure_rate(rate) == expected
