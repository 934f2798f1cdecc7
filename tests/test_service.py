# Copyright (c) Syntropy Systems
"""Tests for dispatch and the simulation service."""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from typing import TYPE_CHECKING

import pytest

from coilsim.db import SQLiteDatabase
from coilsim.dispatch import Dispatcher
from coilsim.errors import InvalidStateError, JobNotFoundError, NotFoundError, StoreError
from coilsim.executor import JobExecutor
from coilsim.models.simulation import (
    BatchStatus,
    JobStatus,
    SimulationParameters,
    SweepParameter,
)
from coilsim.service import BatchRunSpec, SimulationService
from conftest import FixedRandom

if TYPE_CHECKING:
    from pathlib import Path


def make_params(coil_count: int = 50, failure_rate: float = 0) -> SimulationParameters:
    return SimulationParameters(
        coil_count=coil_count,
        magnetic_field_strength=5.0,
        plasma_density=1e20,
        failure_rate=failure_rate,
    )


@pytest.fixture
def dispatcher() -> Generator[Dispatcher, None, None]:
    d = Dispatcher(max_workers=2)
    yield d
    d.shutdown()


@pytest.fixture
def service(database: SQLiteDatabase, dispatcher: Dispatcher) -> SimulationService:
    executor = JobExecutor(database, time_unit=0, rng=FixedRandom(roll=0.99))
    return SimulationService(database, dispatcher, executor=executor)


class TestDispatcher:
    """Tests for fire-and-forget dispatch."""

    def test_submit_returns_before_task_finishes(self, dispatcher: Dispatcher) -> None:
        """The caller is not blocked by the dispatched work."""
        release = threading.Event()
        finished = threading.Event()

        def task() -> None:
            _ = release.wait(timeout=5)
            finished.set()

        _ = dispatcher.submit(task, description="blocking task")
        assert not finished.is_set()
        assert dispatcher.pending_count == 1

        release.set()
        dispatcher.drain(timeout=5)
        assert finished.is_set()
        assert dispatcher.pending_count == 0

    def test_task_failure_is_logged(
        self, dispatcher: Dispatcher, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Exceptions in dispatched tasks are logged, not raised to the caller."""

        def broken() -> None:
            raise StoreError("store unavailable")

        with caplog.at_level(logging.ERROR, logger="coilsim.dispatch"):
            future = dispatcher.submit(broken, description="broken task")
            dispatcher.drain(timeout=5)
            _ = future.exception(timeout=5)

        assert "Dispatch of broken task failed: store unavailable" in caplog.text

    def test_store_failure_during_execution_is_logged(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A store that fails mid-execution is reported by the dispatcher."""
        db = BrokenUpdateDatabase(tmp_path / "broken.db")
        db.init_schema()
        dispatcher = Dispatcher(max_workers=1)
        service = SimulationService(
            db, dispatcher, executor=JobExecutor(db, time_unit=0)
        )
        try:
            with caplog.at_level(logging.ERROR, logger="coilsim.dispatch"):
                job = service.submit_simulation(make_params())
                dispatcher.drain(timeout=10)

            assert job.status == JobStatus.PENDING
            assert f"Dispatch of simulation {job.id} failed: database is locked" in caplog.text
        finally:
            dispatcher.shutdown()
            db.close()


class BrokenUpdateDatabase(SQLiteDatabase):
    """Store that accepts new jobs but rejects every update."""

    def update_job(self, job_id: str, **fields: object) -> None:
        raise StoreError("database is locked")


class TestSimulationService:
    """Tests for simulation submission and lookups."""

    def test_submit_returns_pending_then_completes(
        self, service: SimulationService, dispatcher: Dispatcher
    ) -> None:
        job = service.submit_simulation(make_params(), experiment_id="exp")

        assert job.status == JobStatus.PENDING
        assert job.experiment_id == "exp"

        dispatcher.drain(timeout=10)

        final = service.get_simulation(job.id)
        assert final.status == JobStatus.COMPLETED
        result = service.get_results(job.id)
        assert result.job_id == job.id

    def test_results_of_unfinished_job(
        self, service: SimulationService, database: SQLiteDatabase
    ) -> None:
        """Results are only served for COMPLETED jobs."""
        job = database.create_job(make_params())
        with pytest.raises(NotFoundError, match="PENDING"):
            _ = service.get_results(job.id)

    def test_unknown_simulation(self, service: SimulationService) -> None:
        with pytest.raises(JobNotFoundError):
            _ = service.get_simulation("missing")

    def test_retry_failed(
        self, service: SimulationService, database: SQLiteDatabase, dispatcher: Dispatcher
    ) -> None:
        job = database.create_job(make_params(failure_rate=50))
        database.update_job(job.id, status=JobStatus.FAILED, error_message="boom")

        retried = service.retry_simulation(job.id, failure_rate=0)
        assert retried.status == JobStatus.PENDING
        assert retried.error_message is None

        dispatcher.drain(timeout=10)
        assert service.get_simulation(job.id).status == JobStatus.COMPLETED

    def test_retry_requires_failed(
        self, service: SimulationService, database: SQLiteDatabase
    ) -> None:
        job = database.create_job(make_params())
        with pytest.raises(InvalidStateError):
            _ = service.retry_simulation(job.id)

    def test_export(self, service: SimulationService, dispatcher: Dispatcher) -> None:
        job = service.submit_simulation(make_params())
        dispatcher.drain(timeout=10)

        csv_text = service.export_results(job.id, "csv")
        assert csv_text.startswith("t,value\n")

    def test_status_counts(self, service: SimulationService, dispatcher: Dispatcher) -> None:
        for _ in range(3):
            _ = service.submit_simulation(make_params())
        dispatcher.drain(timeout=10)

        counts = service.status_counts()
        assert counts[JobStatus.COMPLETED] == 3
        assert counts[JobStatus.PENDING] == 0


class TestBatchService:
    """Tests for batch runs through the service."""

    def test_create_batch_runs_in_background(
        self, service: SimulationService, dispatcher: Dispatcher
    ) -> None:
        spec = BatchRunSpec(
            name="field sweep",
            sweep_parameter=SweepParameter.MAGNETIC_FIELD_STRENGTH,
            start_value=2.0,
            end_value=8.0,
            step_count=4,
            base_coil_count=40,
            base_magnetic_field_strength=5.0,
            base_plasma_density=1e20,
        )
        batch = service.create_batch_run(spec)
        assert batch.status == BatchStatus.PENDING

        dispatcher.drain(timeout=10)

        final, children = service.get_batch_run(batch.id)
        assert final.status == BatchStatus.COMPLETED
        assert [c.parameters.magnetic_field_strength for c in children] == [2.0, 4.0, 6.0, 8.0]
        assert all(c.status.is_terminal for c in children)

    def test_unknown_batch(self, service: SimulationService) -> None:
        with pytest.raises(NotFoundError):
            _ = service.get_batch_run("missing")


class TestCorrelations:
    """Tests for correlation analysis through the service."""

    def test_neutral_without_data(self, service: SimulationService) -> None:
        summaries, sample_size = service.correlations()

        assert sample_size == 0
        assert len(summaries) == 3
        assert all(s.confinement_correlation == 0 for s in summaries)

    def test_sample_size_counts_completed(
        self, service: SimulationService, dispatcher: Dispatcher
    ) -> None:
        for coils in (20, 40, 60, 80):
            _ = service.submit_simulation(make_params(coil_count=coils))
        dispatcher.drain(timeout=10)

        summaries, sample_size = service.correlations()

        assert sample_size == 4
        for summary in summaries:
            assert -1 <= summary.confinement_correlation <= 1


class TestCompare:
    """Tests for comparing two simulations through the service."""

    def test_compare_completed(
        self, service: SimulationService, dispatcher: Dispatcher
    ) -> None:
        first = service.submit_simulation(make_params(coil_count=30))
        second = service.submit_simulation(make_params(coil_count=90))
        dispatcher.drain(timeout=10)

        first_job, second_job, metrics = service.compare_simulations(first.id, second.id)

        assert first_job.id == first.id
        assert second_job.id == second.id
        assert [m.metric for m in metrics] == [
            "confinement_score",
            "energy_loss",
            "stability_index",
        ]
        first_result = service.get_results(first.id)
        assert metrics[0].first == first_result.confinement_score
        assert metrics[0].second == service.get_results(second.id).confinement_score

    def test_compare_requires_results(
        self, service: SimulationService, database: SQLiteDatabase, dispatcher: Dispatcher
    ) -> None:
        """A simulation without results cannot be compared."""
        done = service.submit_simulation(make_params())
        dispatcher.drain(timeout=10)
        pending = database.create_job(make_params())

        with pytest.raises(NotFoundError, match="PENDING"):
            _ = service.compare_simulations(done.id, pending.id)

    def test_compare_unknown(self, service: SimulationService) -> None:
        with pytest.raises(JobNotFoundError):
            _ = service.compare_simulations("missing", "also-missing")
