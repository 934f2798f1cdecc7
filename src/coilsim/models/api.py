# Copyright (c) Syntropy Systems
"""Pydantic models for coilsim API requests and responses."""

from __future__ import annotations

from typing import Optional

from pydantic import Field, model_validator
from typing_extensions import Self

from .base import CoilsimBaseModel
from .simulation import (
    DEFAULT_FAILURE_RATE,
    BatchRun,
    CorrelationSummary,
    MetricComparison,
    Resolution,
    SimulationJob,
    SimulationParameters,
    SweepParameter,
)

MIN_COILS = 10
MAX_COILS = 100


class SimulationCreate(CoilsimBaseModel):
    """Request to submit a simulation. Applies the input-boundary limits."""

    coil_count: int = Field(ge=MIN_COILS, le=MAX_COILS)
    magnetic_field_strength: float = Field(gt=0)
    plasma_density: float = Field(gt=0)
    resolution: Resolution = Resolution.MEDIUM
    failure_rate: float = Field(default=DEFAULT_FAILURE_RATE, ge=0, le=100)
    experiment_id: Optional[str] = None

    def to_parameters(self) -> SimulationParameters:
        return SimulationParameters(
            coil_count=self.coil_count,
            magnetic_field_strength=self.magnetic_field_strength,
            plasma_density=self.plasma_density,
            resolution=self.resolution,
            failure_rate=self.failure_rate,
        )


class SimulationRetry(CoilsimBaseModel):
    """Request to resubmit a failed simulation."""

    failure_rate: Optional[float] = Field(default=None, ge=0, le=100)


class SimulationListResponse(CoilsimBaseModel):
    """Response containing simulation jobs."""

    simulations: list[SimulationJob]
    count: int


class BatchRunCreate(CoilsimBaseModel):
    """Request to create a parameter sweep."""

    name: str = Field(min_length=1)
    description: Optional[str] = None
    sweep_parameter: SweepParameter
    start_value: float
    end_value: float
    step_count: int = Field(ge=2, le=100)
    base_coil_count: int = Field(ge=MIN_COILS, le=MAX_COILS)
    base_magnetic_field_strength: float = Field(gt=0)
    base_plasma_density: float = Field(gt=0)
    base_resolution: Resolution = Resolution.MEDIUM
    experiment_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_range(self) -> Self:
        low = min(self.start_value, self.end_value)
        if self.sweep_parameter == SweepParameter.COIL_COUNT:
            high = max(self.start_value, self.end_value)
            if low < MIN_COILS or high > MAX_COILS:
                msg = f"coil_count sweep must stay within {MIN_COILS}-{MAX_COILS}"
                raise ValueError(msg)
        elif low <= 0:
            msg = f"{self.sweep_parameter.value} sweep values must be positive"
            raise ValueError(msg)
        return self


class BatchRunDetail(CoilsimBaseModel):
    """A batch run with its child simulations."""

    batch: BatchRun
    simulations: list[SimulationJob]


class BatchRunListResponse(CoilsimBaseModel):
    """Response containing batch runs."""

    batches: list[BatchRun]
    count: int


class CorrelationResponse(CoilsimBaseModel):
    """Correlation summaries, one per input parameter."""

    correlations: list[CorrelationSummary]
    sample_size: int


class SimulationComparison(CoilsimBaseModel):
    """Two completed simulations and their metric deltas."""

    first: SimulationJob
    second: SimulationJob
    metrics: list[MetricComparison]


class StatusResponse(CoilsimBaseModel):
    """Server status response."""

    pending: int
    running: int
    completed: int
    failed: int
    batches: int


class MessageResponse(CoilsimBaseModel):
    """Generic message response."""

    message: str
    success: bool = True


class ErrorResponse(CoilsimBaseModel):
    """Error response."""

    detail: str
    error_code: Optional[str] = None


class HealthResponse(CoilsimBaseModel):
    """Health check response."""

    status: str
