# Copyright (c) Syntropy Systems
"""Correlation analysis and pairwise comparison of completed simulations."""
from __future__ import annotations

import math
from typing import TYPE_CHECKING, Optional

from coilsim.models.simulation import (
    CorrelationSummary,
    JobStatus,
    MetricComparison,
    MetricTrend,
    SweepParameter,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from coilsim.models.simulation import SimulationJob, SimulationResult

MIN_PAIRS = 2

STRONG_THRESHOLD = 0.7
MODERATE_THRESHOLD = 0.4
WEAK_THRESHOLD = 0.2

# Relative moves smaller than this many percent count as unchanged
UNCHANGED_PERCENT = 0.5

# (result field, label, unit, higher is better)
COMPARED_METRICS: tuple[tuple[str, str, Optional[str], bool], ...] = (
    ("confinement_score", "Confinement Score", "τ_E", True),
    ("energy_loss", "Energy Loss", "MW", False),
    ("stability_index", "Stability Index", None, True),
)


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson correlation coefficient of two equal-length series.

    Returns 0.0 when either series has no variance or there are fewer than
    two points.
    """
    if len(xs) != len(ys):
        msg = f"Series lengths differ: {len(xs)} != {len(ys)}"
        raise ValueError(msg)

    n = len(xs)
    if n < MIN_PAIRS:
        return 0.0
    # Large constant inputs (densities near 1e20) leave rounding noise in the
    # variance terms, so no-variance series are caught before the sums.
    if min(xs) == max(xs) or min(ys) == max(ys):
        return 0.0

    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_x2 = sum(x * x for x in xs)
    sum_y2 = sum(y * y for y in ys)

    numerator = n * sum_xy - sum_x * sum_y
    variance_product = (n * sum_x2 - sum_x * sum_x) * (n * sum_y2 - sum_y * sum_y)
    # Cancellation can leave a tiny negative product for constant series.
    if variance_product <= 0:
        return 0.0

    denominator = math.sqrt(variance_product)
    if denominator == 0:
        return 0.0
    return max(-1.0, min(1.0, numerator / denominator))


def neutral_summary() -> list[CorrelationSummary]:
    """All-zero summary used when there is not enough data."""
    return [CorrelationSummary(parameter=p, label=p.label) for p in SweepParameter]


def compute_correlations(
    pairs: Iterable[tuple[SimulationJob, SimulationResult]],
) -> list[CorrelationSummary]:
    """Correlate each input parameter with each output metric."""
    completed = [(job, result) for job, result in pairs if job.status == JobStatus.COMPLETED]
    if len(completed) < MIN_PAIRS:
        return neutral_summary()

    inputs = {
        SweepParameter.COIL_COUNT: [float(j.parameters.coil_count) for j, _ in completed],
        SweepParameter.MAGNETIC_FIELD_STRENGTH: [
            j.parameters.magnetic_field_strength for j, _ in completed
        ],
        SweepParameter.PLASMA_DENSITY: [j.parameters.plasma_density for j, _ in completed],
    }
    confinement = [r.confinement_score for _, r in completed]
    energy_loss = [r.energy_loss for _, r in completed]
    stability = [r.stability_index for _, r in completed]

    return [
        CorrelationSummary(
            parameter=parameter,
            label=parameter.label,
            confinement_correlation=pearson(xs, confinement),
            energy_loss_correlation=pearson(xs, energy_loss),
            stability_correlation=pearson(xs, stability),
        )
        for parameter, xs in inputs.items()
    ]


def correlation_strength(value: float) -> str:
    """Qualitative label for a coefficient."""
    magnitude = abs(value)
    if magnitude > STRONG_THRESHOLD:
        return "Strong"
    if magnitude > MODERATE_THRESHOLD:
        return "Moderate"
    if magnitude > WEAK_THRESHOLD:
        return "Weak"
    return "None"


def percent_change(first: float, second: float) -> float:
    """Change from first to second as a percentage of first (0 when first is 0)."""
    if first == 0:
        return 0.0
    return (second - first) / first * 100


def metric_trend(delta_percent: float, higher_is_better: bool) -> MetricTrend:
    """Classify a percentage change; moves under half a percent are unchanged."""
    if abs(delta_percent) < UNCHANGED_PERCENT:
        return MetricTrend.UNCHANGED
    improved = delta_percent > 0 if higher_is_better else delta_percent < 0
    return MetricTrend.IMPROVED if improved else MetricTrend.WORSENED


def compare_results(
    first: SimulationResult,
    second: SimulationResult,
) -> list[MetricComparison]:
    """Compare the scalar metrics of two results, second against first."""
    comparisons: list[MetricComparison] = []
    for metric, label, unit, higher_is_better in COMPARED_METRICS:
        a = float(getattr(first, metric))
        b = float(getattr(second, metric))
        delta = percent_change(a, b)
        comparisons.append(
            MetricComparison(
                metric=metric,
                label=label,
                unit=unit,
                first=a,
                second=b,
                delta_percent=delta,
                higher_is_better=higher_is_better,
                trend=metric_trend(delta, higher_is_better),
            )
        )
    return comparisons
