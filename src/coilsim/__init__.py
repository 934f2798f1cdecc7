"""
coilsim - Synthetic stellarator simulation orchestration.

Queue simulation jobs, sweep parameters, correlate the results.
"""

from coilsim.models.simulation import (
    BatchRun,
    SimulationJob,
    SimulationParameters,
    SimulationResult,
)

__version__ = "0.1.0"
__all__ = [
    "BatchRun",
    "SimulationJob",
    "SimulationParameters",
    "SimulationResult",
    "__version__",
]
