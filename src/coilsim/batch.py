# Copyright (c) Syntropy Systems
"""Batch parameter sweeps.

A batch run expands a linear range of one parameter into child jobs and
drains them one at a time. Child failures stay on the child; the batch
always finishes COMPLETED.
"""
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from coilsim.db import utcnow
from coilsim.errors import (
    BatchNotFoundError,
    CoilsimError,
    InvalidStateError,
    StoreError,
)
from coilsim.executor import BATCH_CHILD_PROFILE, ExecutionProfile
from coilsim.models.simulation import (
    BatchRun,
    BatchStatus,
    SimulationParameters,
    SweepParameter,
)

if TYPE_CHECKING:
    from coilsim.db import Database
    from coilsim.executor import JobExecutor

logger = logging.getLogger(__name__)


def compute_sweep_values(start: float, end: float, step_count: int) -> list[float]:
    """Linearly interpolate step_count values from start to end inclusive.

    With a single step only the start value is produced.
    """
    step_size = (end - start) / max(1, step_count - 1)
    return [start + step_size * i for i in range(step_count)]


def round_half_up(value: float) -> int:
    """Round to the nearest integer, with .5 going up."""
    return math.floor(value + 0.5)


def build_child_parameters(batch: BatchRun, value: float) -> SimulationParameters:
    """Base parameters of a batch with the swept field replaced by value."""
    coil_count = batch.base_coil_count
    magnetic_field_strength = batch.base_magnetic_field_strength
    plasma_density = batch.base_plasma_density

    if batch.sweep_parameter == SweepParameter.COIL_COUNT:
        coil_count = round_half_up(value)
    elif batch.sweep_parameter == SweepParameter.MAGNETIC_FIELD_STRENGTH:
        magnetic_field_strength = value
    else:
        plasma_density = value

    return SimulationParameters(
        coil_count=coil_count,
        magnetic_field_strength=magnetic_field_strength,
        plasma_density=plasma_density,
        resolution=batch.base_resolution,
    )


@dataclass(frozen=True)
class ChildJobSpec:
    """A pending child job of a batch, not yet written to the store."""

    index: int
    value: float
    parameters: SimulationParameters


@dataclass
class BatchReport:
    """Outcome of draining a batch run."""

    batch: BatchRun
    job_ids: list[str] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


def plan_batch(batch: BatchRun) -> list[ChildJobSpec]:
    """Expand a batch run into its ordered child job descriptors."""
    values = compute_sweep_values(batch.start_value, batch.end_value, batch.step_count)
    return [
        ChildJobSpec(index=i, value=value, parameters=build_child_parameters(batch, value))
        for i, value in enumerate(values)
    ]


class BatchOrchestrator:
    """Creates and runs the child jobs of a batch strictly in sequence."""

    def __init__(
        self,
        db: Database,
        executor: JobExecutor,
        profile: ExecutionProfile = BATCH_CHILD_PROFILE,
    ) -> None:
        self.db = db
        self.executor = executor
        self.profile = profile

    def run(self, batch_id: str) -> BatchReport:
        """Drive a batch run from PENDING to COMPLETED.

        Raises:
            BatchNotFoundError: No batch run has this id.
            InvalidStateError: The batch run has already been started.
        """
        batch = self.db.get_batch_run(batch_id)
        if batch is None:
            raise BatchNotFoundError(batch_id)
        if batch.status != BatchStatus.PENDING:
            msg = f"Batch run {batch_id} is {batch.status.value}, expected PENDING"
            raise InvalidStateError(msg)

        queue = deque(plan_batch(batch))
        logger.info(
            "Batch %s sweeping %s over %s",
            batch_id,
            batch.sweep_parameter.value,
            [spec.value for spec in queue],
        )

        self.db.update_batch_run(batch_id, status=BatchStatus.RUNNING)
        report = BatchReport(batch=batch)

        try:
            while queue:
                spec = queue.popleft()
                self._run_child(batch, spec, report)
        finally:
            self._finish(batch_id, report)

        final = self.db.get_batch_run(batch_id)
        if final is not None:
            report.batch = final
        return report

    def _finish(self, batch_id: str, report: BatchReport) -> None:
        try:
            self.db.update_batch_run(
                batch_id,
                status=BatchStatus.COMPLETED,
                completed_at=utcnow(),
            )
        except BatchNotFoundError:
            logger.warning("Batch %s was deleted before it completed", batch_id)
            return
        logger.info(
            "Batch %s completed: %d jobs, %d skipped",
            batch_id,
            len(report.job_ids),
            len(report.skipped),
        )

    def _run_child(self, batch: BatchRun, spec: ChildJobSpec, report: BatchReport) -> None:
        logger.info(
            "Batch %s creating simulation %d/%d with %s=%s",
            batch.id,
            spec.index + 1,
            batch.step_count,
            batch.sweep_parameter.value,
            spec.value,
        )
        try:
            job = self.db.create_job(
                spec.parameters,
                batch_run_id=batch.id,
                experiment_id=batch.experiment_id,
            )
        except StoreError:
            logger.exception("Batch %s could not create simulation %d", batch.id, spec.index)
            report.skipped.append(spec.index)
            return

        report.job_ids.append(job.id)
        try:
            _ = self.executor.execute(job.id, self.profile)
        except CoilsimError:
            logger.exception("Batch %s lost simulation %s during execution", batch.id, job.id)
