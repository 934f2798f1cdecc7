# Copyright (c) Syntropy Systems
"""Result export to JSON and CSV."""
from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING

from coilsim.models.simulation import SimulationResult

if TYPE_CHECKING:
    from pathlib import Path

EXPORT_FORMATS = ("json", "csv")


def result_to_json(result: SimulationResult) -> str:
    """Serialize a result with the same structure as the stored record."""
    return result.model_dump_json(indent=2)


def result_from_json(text: str | bytes) -> SimulationResult:
    """Parse a result previously produced by result_to_json."""
    return SimulationResult.model_validate_json(text)


def result_to_csv(result: SimulationResult) -> str:
    """Two-column CSV of the time series with a t,value header."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["t", "value"])
    for point in result.time_series:
        writer.writerow([repr(point.t), repr(point.value)])
    return buffer.getvalue()


def export_result(result: SimulationResult, fmt: str) -> str:
    """Export a result in the requested format."""
    fmt = fmt.lower()
    if fmt == "json":
        return result_to_json(result)
    if fmt == "csv":
        return result_to_csv(result)
    msg = f"Unknown export format: {fmt} (expected one of {', '.join(EXPORT_FORMATS)})"
    raise ValueError(msg)


def format_for_path(path: Path) -> str:
    """Pick an export format from a file extension."""
    suffix = path.suffix.lower().lstrip(".")
    if suffix not in EXPORT_FORMATS:
        msg = "Output must be .csv or .json"
        raise ValueError(msg)
    return suffix
