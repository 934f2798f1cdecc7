# Copyright (c) Syntropy Systems
"""Single-job execution state machine.

PENDING -> RUNNING -> COMPLETED | FAILED. Latency and failure are drawn from
true randomness; the numeric result of a successful run comes from the
deterministic synthesizer.
"""
from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

from coilsim.db import utcnow
from coilsim.errors import InvalidStateError, JobNotFoundError
from coilsim.models.simulation import JobStatus, SimulationJob
from coilsim.synth import synthesize_result

if TYPE_CHECKING:
    from coilsim.db import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionProfile:
    """Latency window and failure behaviour for one kind of execution.

    A failure_rate of None means the job's own parameters decide.
    """

    min_duration: float
    max_duration: float
    failure_rate: Optional[float]
    error_message: str


SINGLE_JOB_PROFILE = ExecutionProfile(
    min_duration=3.0,
    max_duration=10.0,
    failure_rate=None,
    error_message="Numerical instability detected in plasma equilibrium solver",
)

BATCH_CHILD_PROFILE = ExecutionProfile(
    min_duration=1.0,
    max_duration=3.0,
    failure_rate=5.0,
    error_message="Numerical instability in batch run",
)


def clamp_failure_rate(rate: float) -> float:
    """Clamp a failure percentage into [0, 100]."""
    return max(0.0, min(100.0, float(rate)))


class JobExecutor:
    """Drives one job at a time from PENDING to a terminal status.

    Each job's fields are only written by the executor running it, so
    independent executions need no locking between them.
    """

    db: Database
    time_unit: float
    _sleep: Callable[[float], None]
    _rng: random.Random

    def __init__(
        self,
        db: Database,
        *,
        time_unit: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        """Initialize an executor.

        Args:
            db: Store holding the jobs and results
            time_unit: Seconds per simulated time unit (0 disables waiting)
            sleep: Function used to wait out the simulated latency
            rng: Source of non-reproducible randomness for latency and failure

        """
        self.db = db
        self.time_unit = time_unit
        self._sleep = sleep
        self._rng = rng or random.SystemRandom()

    def execute(
        self,
        job_id: str,
        profile: ExecutionProfile = SINGLE_JOB_PROFILE,
    ) -> SimulationJob:
        """Run a PENDING job to completion and return its final state."""
        job = self.db.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        if job.status != JobStatus.PENDING:
            msg = f"Simulation {job_id} is {job.status.value}, expected PENDING"
            raise InvalidStateError(msg)

        self.db.update_job(
            job_id,
            status=JobStatus.RUNNING,
            started_at=utcnow(),
            error_message=None,
        )
        logger.info("Simulation %s running", job_id)

        duration = self._rng.uniform(profile.min_duration, profile.max_duration)
        logger.debug("Simulation %s sleeping %.2f time units", job_id, duration)
        self._sleep(duration * self.time_unit)

        rate = profile.failure_rate
        if rate is None:
            rate = job.parameters.failure_rate
        rate = clamp_failure_rate(rate)

        roll = self._rng.random() * 100
        logger.debug("Simulation %s failure roll %.2f (fails if < %.2f)", job_id, roll, rate)

        if roll < rate:
            self.db.update_job(
                job_id,
                status=JobStatus.FAILED,
                completed_at=utcnow(),
                error_message=profile.error_message,
            )
            logger.info("Simulation %s failed", job_id)
        else:
            result = synthesize_result(job_id, job.parameters)
            self.db.complete_job(job_id, result)
            logger.info("Simulation %s completed", job_id)

        final = self.db.get_job(job_id)
        if final is None:
            raise JobNotFoundError(job_id)
        return final
