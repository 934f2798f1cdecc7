# Copyright (c) Syntropy Systems
"""Simulation service: creates rows, dispatches execution, reads results."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from coilsim.analysis import compare_results, compute_correlations
from coilsim.batch import BatchOrchestrator
from coilsim.errors import BatchNotFoundError, JobNotFoundError, NotFoundError
from coilsim.executor import SINGLE_JOB_PROFILE, JobExecutor
from coilsim.export import export_result
from coilsim.models.simulation import JobStatus, Resolution

if TYPE_CHECKING:
    from coilsim.db import Database
    from coilsim.dispatch import Dispatcher
    from coilsim.models.simulation import (
        BatchRun,
        CorrelationSummary,
        MetricComparison,
        SimulationJob,
        SimulationParameters,
        SimulationResult,
        SweepParameter,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchRunSpec:
    """Inputs for a new batch run."""

    name: str
    sweep_parameter: SweepParameter
    start_value: float
    end_value: float
    step_count: int
    base_coil_count: int
    base_magnetic_field_strength: float
    base_plasma_density: float
    base_resolution: Resolution = Resolution.MEDIUM
    description: Optional[str] = None
    experiment_id: Optional[str] = None


class SimulationService:
    """Entry point used by the HTTP API.

    Creating calls return the PENDING row at once; execution runs on the
    dispatcher and reports back only through the store.
    """

    def __init__(
        self,
        db: Database,
        dispatcher: Dispatcher,
        executor: Optional[JobExecutor] = None,
        orchestrator: Optional[BatchOrchestrator] = None,
    ) -> None:
        self.db = db
        self.dispatcher = dispatcher
        self.executor = executor or JobExecutor(db)
        self.orchestrator = orchestrator or BatchOrchestrator(db, self.executor)

    # --- Simulations ---

    def submit_simulation(
        self,
        parameters: SimulationParameters,
        experiment_id: Optional[str] = None,
    ) -> SimulationJob:
        """Create a PENDING job and dispatch its execution."""
        job = self.db.create_job(parameters, experiment_id=experiment_id)
        logger.info("Submitted simulation %s", job.id)
        _ = self.dispatcher.submit(
            self.executor.execute,
            job.id,
            SINGLE_JOB_PROFILE,
            description=f"simulation {job.id}",
        )
        return job

    def retry_simulation(
        self,
        job_id: str,
        failure_rate: Optional[float] = None,
    ) -> SimulationJob:
        """Reset a FAILED job to PENDING and dispatch it again."""
        job = self.db.reset_job(job_id, failure_rate=failure_rate)
        logger.info("Resubmitted simulation %s", job_id)
        _ = self.dispatcher.submit(
            self.executor.execute,
            job.id,
            SINGLE_JOB_PROFILE,
            description=f"simulation {job.id}",
        )
        return job

    def get_simulation(self, job_id: str) -> SimulationJob:
        job = self.db.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def list_simulations(
        self,
        status: Optional[JobStatus] = None,
        search: Optional[str] = None,
        batch_run_id: Optional[str] = None,
        experiment_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[SimulationJob]:
        return self.db.list_jobs(
            status=status,
            search=search,
            batch_run_id=batch_run_id,
            experiment_id=experiment_id,
            limit=limit,
        )

    def delete_simulation(self, job_id: str) -> None:
        self.db.delete_job(job_id)

    def get_results(self, job_id: str) -> SimulationResult:
        """Result of a COMPLETED job.

        Raises NotFoundError when the job is missing or has no result yet.
        """
        job = self.get_simulation(job_id)
        result = self.db.get_result(job_id) if job.status == JobStatus.COMPLETED else None
        if result is None:
            msg = f"Results not found for simulation {job_id} ({job.status.value})"
            raise NotFoundError(msg)
        return result

    def export_results(self, job_id: str, fmt: str) -> str:
        return export_result(self.get_results(job_id), fmt)

    def status_counts(self) -> dict[JobStatus, int]:
        return self.db.count_jobs_by_status()

    # --- Batches ---

    def create_batch_run(self, spec: BatchRunSpec) -> BatchRun:
        """Create a PENDING batch run and dispatch the sweep."""
        batch = self.db.create_batch_run(
            name=spec.name,
            description=spec.description,
            sweep_parameter=spec.sweep_parameter,
            start_value=spec.start_value,
            end_value=spec.end_value,
            step_count=spec.step_count,
            base_coil_count=spec.base_coil_count,
            base_magnetic_field_strength=spec.base_magnetic_field_strength,
            base_plasma_density=spec.base_plasma_density,
            base_resolution=spec.base_resolution,
            experiment_id=spec.experiment_id,
        )
        logger.info("Created batch run %s (%d steps)", batch.id, batch.step_count)
        _ = self.dispatcher.submit(
            self.orchestrator.run,
            batch.id,
            description=f"batch {batch.id}",
        )
        return batch

    def get_batch_run(self, batch_id: str) -> tuple[BatchRun, list[SimulationJob]]:
        """A batch run and its child jobs in creation order."""
        batch = self.db.get_batch_run(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        children = self.db.list_jobs(batch_run_id=batch_id, limit=max(batch.step_count, 1))
        children.reverse()
        return batch, children

    def list_batch_runs(self, limit: int = 100) -> list[BatchRun]:
        return self.db.list_batch_runs(limit=limit)

    def delete_batch_run(self, batch_id: str) -> None:
        self.db.delete_batch_run(batch_id)

    # --- Analysis ---

    def correlations(self) -> tuple[list[CorrelationSummary], int]:
        """Correlation summaries and the number of completed runs behind them."""
        pairs = self.db.list_completed_jobs_with_results()
        return compute_correlations(pairs), len(pairs)

    def compare_simulations(
        self, first_id: str, second_id: str
    ) -> tuple[SimulationJob, SimulationJob, list[MetricComparison]]:
        """Metrics of two COMPLETED simulations, second measured against first.

        Raises NotFoundError when either job is missing or has no result.
        """
        first = self.get_results(first_id)
        second = self.get_results(second_id)
        return (
            self.get_simulation(first_id),
            self.get_simulation(second_id),
            compare_results(first, second),
        )
