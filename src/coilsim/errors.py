# Copyright (c) Syntropy Systems
"""Exception hierarchy for coilsim."""


class CoilsimError(Exception):
    """Base class for coilsim errors."""


class StoreError(CoilsimError):
    """The persistent store rejected a read or write."""


class NotFoundError(CoilsimError):
    """A requested row does not exist."""


class JobNotFoundError(NotFoundError):
    """A simulation job id did not resolve to a row."""

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Simulation {job_id} not found")
        self.job_id = job_id


class BatchNotFoundError(NotFoundError):
    """A batch run id did not resolve to a row."""

    def __init__(self, batch_id: str) -> None:
        super().__init__(f"Batch run {batch_id} not found")
        self.batch_id = batch_id


class InvalidStateError(CoilsimError):
    """A transition was requested from a status that does not allow it."""
