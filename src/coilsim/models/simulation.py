# Copyright (c) Syntropy Systems
"""Pydantic models for simulation jobs, results and batch runs."""

from __future__ import annotations

from enum import Enum
from typing import Optional, cast

from pydantic import Field, TypeAdapter, field_validator, model_validator

from .base import CoilsimBaseModel, FrozenModel

DEFAULT_FAILURE_RATE = 10.0

_PARAMETER_FIELDS = (
    "coil_count",
    "magnetic_field_strength",
    "plasma_density",
    "resolution",
    "failure_rate",
)


class Resolution(str, Enum):
    """Simulation resolution; controls the length of the time series."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def point_count(self) -> int:
        """Number of time-series points produced at this resolution."""
        return _POINT_COUNTS[self]


_POINT_COUNTS = {
    Resolution.LOW: 50,
    Resolution.MEDIUM: 100,
    Resolution.HIGH: 200,
}


class JobStatus(str, Enum):
    """Lifecycle status of a simulation job."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class BatchStatus(str, Enum):
    """Lifecycle status of a batch run. Batches never fail as a whole."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"


class SweepParameter(str, Enum):
    """Input parameters a batch run can sweep."""

    COIL_COUNT = "coil_count"
    MAGNETIC_FIELD_STRENGTH = "magnetic_field_strength"
    PLASMA_DENSITY = "plasma_density"

    @property
    def label(self) -> str:
        """Human readable name used in analysis output."""
        return _SWEEP_LABELS[self]


_SWEEP_LABELS = {
    SweepParameter.COIL_COUNT: "Coil Count",
    SweepParameter.MAGNETIC_FIELD_STRENGTH: "B-Field Strength",
    SweepParameter.PLASMA_DENSITY: "Plasma Density",
}


class SimulationParameters(FrozenModel):
    """Physical inputs of a simulation job.

    Only positivity is enforced here; the 10-100 coil window is an input
    boundary rule applied by request models and the CLI.
    """

    coil_count: int = Field(gt=0)
    magnetic_field_strength: float = Field(gt=0)
    plasma_density: float = Field(gt=0)
    resolution: Resolution = Resolution.MEDIUM
    failure_rate: float = Field(default=DEFAULT_FAILURE_RATE, ge=0, le=100)


class SimulationJob(CoilsimBaseModel):
    """A simulation job as stored in the jobs table."""

    id: str
    status: JobStatus
    parameters: SimulationParameters
    batch_run_id: Optional[str] = None
    experiment_id: Optional[str] = None
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error_message: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _nest_parameters(cls, data: object) -> object:
        # Store rows carry the parameters as flat columns.
        if isinstance(data, dict) and "parameters" not in data:
            row = cast("dict[str, object]", dict(data))
            params = {
                key: row.pop(key)
                for key in _PARAMETER_FIELDS
                if key in row and row[key] is not None
            }
            row["parameters"] = params
            return row
        return data


class TimeSeriesPoint(FrozenModel):
    """One sample of the synthetic confinement curve."""

    t: float
    value: float


_TIME_SERIES_ADAPTER = TypeAdapter(list[TimeSeriesPoint])


class SimulationResult(CoilsimBaseModel):
    """Synthetic output of a completed simulation job."""

    job_id: str
    confinement_score: float
    energy_loss: float
    stability_index: float
    time_series: list[TimeSeriesPoint] = Field(default_factory=list)

    @field_validator("time_series", mode="before")
    @classmethod
    def _parse_time_series(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, (str, bytes)):
            return _TIME_SERIES_ADAPTER.validate_json(value)
        return value

    def time_series_json(self) -> str:
        """Serialize the time series for storage."""
        return _TIME_SERIES_ADAPTER.dump_json(self.time_series).decode("utf-8")


class BatchRun(CoilsimBaseModel):
    """A parameter sweep that owns one child job per step."""

    id: str
    name: str
    description: Optional[str] = None
    sweep_parameter: SweepParameter
    start_value: float
    end_value: float
    step_count: int = Field(ge=1)
    base_coil_count: int
    base_magnetic_field_strength: float
    base_plasma_density: float
    base_resolution: Resolution = Resolution.MEDIUM
    status: BatchStatus = BatchStatus.PENDING
    experiment_id: Optional[str] = None
    created_at: str
    completed_at: Optional[str] = None


class CorrelationSummary(CoilsimBaseModel):
    """Pearson coefficients of one input parameter against each output metric."""

    parameter: SweepParameter
    label: str
    confinement_correlation: float = Field(default=0.0, ge=-1, le=1)
    energy_loss_correlation: float = Field(default=0.0, ge=-1, le=1)
    stability_correlation: float = Field(default=0.0, ge=-1, le=1)


class MetricTrend(str, Enum):
    """Direction of a metric between two simulations, judged by its polarity."""

    IMPROVED = "improved"
    WORSENED = "worsened"
    UNCHANGED = "unchanged"


class MetricComparison(CoilsimBaseModel):
    """One output metric of two completed simulations side by side.

    delta_percent is the change from first to second relative to first.
    """

    metric: str
    label: str
    unit: Optional[str] = None
    first: float
    second: float
    delta_percent: float
    higher_is_better: bool
    trend: MetricTrend
