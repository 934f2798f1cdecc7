# Copyright (c) Syntropy Systems
"""Synthetic result generation.

Results are a pure function of the physical parameters: the seed is derived
from coil count, field strength and density, and a single generator
instance feeds the three scalar metrics and then the time-series walk, in
that order.
"""
from __future__ import annotations

import math

from coilsim.models.simulation import (
    Resolution,
    SimulationParameters,
    SimulationResult,
    TimeSeriesPoint,
)
from coilsim.rng import SeededRandom

DECIMALS = 4
SERIES_MIN = 0.1
SERIES_MAX = 0.95
SERIES_STEP = 0.1
FIELD_SCALE = 15.0


def derive_seed(params: SimulationParameters) -> int:
    """Derive the generator seed from the physical inputs."""
    if params.plasma_density <= 0:
        msg = f"plasma_density must be positive, got {params.plasma_density}"
        raise ValueError(msg)
    return math.floor(
        params.coil_count * 1000
        + params.magnetic_field_strength * 100
        + math.log10(params.plasma_density)
    )


def generate_time_series(
    rng: SeededRandom,
    resolution: Resolution,
) -> list[TimeSeriesPoint]:
    """Bounded random walk continued from the generator's current state."""
    count = resolution.point_count
    points: list[TimeSeriesPoint] = []

    value = 0.5 + rng.random() * 0.3
    for i in range(count):
        t = i / (count - 1)
        value += (rng.random() - 0.5) * SERIES_STEP
        value = max(SERIES_MIN, min(SERIES_MAX, value))
        points.append(TimeSeriesPoint(t=round(t, DECIMALS), value=round(value, DECIMALS)))

    return points


def synthesize_result(job_id: str, params: SimulationParameters) -> SimulationResult:
    """Produce the synthetic result for a set of parameters."""
    rng = SeededRandom(derive_seed(params))
    coil_ratio = params.coil_count / 100
    field_ratio = params.magnetic_field_strength / FIELD_SCALE

    confinement_score = 0.5 + rng.random() * 0.4 + coil_ratio * 0.2 + field_ratio * 0.1
    energy_loss = 2 + rng.random() * 5 + (1 - coil_ratio) * 2
    stability_index = 0.6 + rng.random() * 0.3 + field_ratio * 0.1

    time_series = generate_time_series(rng, params.resolution)

    return SimulationResult(
        job_id=job_id,
        confinement_score=round(confinement_score, DECIMALS),
        energy_loss=round(energy_loss, DECIMALS),
        stability_index=round(stability_index, DECIMALS),
        time_series=time_series,
    )
