# Copyright (c) Syntropy Systems
"""coilsim correlate command."""
from __future__ import annotations

from rich.table import Table

from coilsim.analysis import MIN_PAIRS, compute_correlations, correlation_strength
from coilsim.cli._common import console, open_project

STRENGTH_STYLES = {
    "Strong": "bold green",
    "Moderate": "green",
    "Weak": "yellow",
    "None": "dim",
}


def correlate() -> None:
    """Correlate input parameters with outcomes across completed simulations."""
    with open_project() as (_config, db):
        pairs = db.list_completed_jobs_with_results()

    if len(pairs) < MIN_PAIRS:
        console.print(
            f"[yellow]Need at least {MIN_PAIRS} completed simulations, "
            f"found {len(pairs)}[/yellow]"
        )

    table = Table(title=f"Correlations ({len(pairs)} completed simulations)")
    table.add_column("Parameter", style="bold")
    table.add_column("Outcome")
    table.add_column("r", justify="right")
    table.add_column("Strength")

    for summary in compute_correlations(pairs):
        outcomes = [
            ("confinement", summary.confinement_correlation),
            ("energy loss", summary.energy_loss_correlation),
            ("stability", summary.stability_correlation),
        ]
        for i, (outcome, value) in enumerate(outcomes):
            strength = correlation_strength(value)
            style = STRENGTH_STYLES[strength]
            table.add_row(
                summary.label if i == 0 else "",
                outcome,
                f"{value:+.3f}",
                f"[{style}]{strength}[/{style}]",
            )

    console.print(table)
