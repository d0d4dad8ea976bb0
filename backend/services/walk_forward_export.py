"""
Export of walk-forward computations as JSON or CSV.

The CSV has one row per optimized period followed by a summary block.
"""
from __future__ import annotations

import csv
import io
import math
from typing import Any, List, Literal

from config.walk_forward_config import WalkForwardComputation
from engine.windows import to_utc

ExportFormat = Literal["json", "csv"]

# (parameter key, column header); further keys get their own column after these
_STANDARD_PARAMETER_COLUMNS = (
    ("kellyMultiplier", "Kelly Multiplier"),
    ("fixedFractionPct", "Fixed Fraction %"),
    ("maxDrawdownPct", "Max DD %"),
    ("maxDailyLossPct", "Max Daily Loss %"),
    ("consecutiveLossLimit", "Consecutive Loss Limit"),
)


def _cell(value: Any) -> Any:
    """Blank for missing and non-finite numbers."""
    if value is None:
        return ""
    if isinstance(value, float) and not math.isfinite(value):
        return ""
    return value


def _parameter_keys(computation: WalkForwardComputation) -> List[str]:
    keys = [key for key, _ in _STANDARD_PARAMETER_COLUMNS]
    for key in computation.config.parameter_ranges:
        if key not in keys:
            keys.append(key)
    for period in computation.results.periods:
        for key in period.optimal_parameters:
            if key not in keys:
                keys.append(key)
    return keys


def build_csv(computation: WalkForwardComputation) -> str:
    results = computation.results
    headers = dict(_STANDARD_PARAMETER_COLUMNS)
    keys = _parameter_keys(computation)

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(
        ["IS Start", "IS End", "OOS Start", "OOS End", "Target IS", "Target OOS"]
        + [headers.get(key, key) for key in keys]
    )
    for period in results.periods:
        writer.writerow(
            [
                to_utc(period.in_sample_start).date().isoformat(),
                to_utc(period.in_sample_end).date().isoformat(),
                to_utc(period.out_of_sample_start).date().isoformat(),
                to_utc(period.out_of_sample_end).date().isoformat(),
                _cell(period.target_metric_in_sample),
                _cell(period.target_metric_out_of_sample),
            ]
            + [_cell(period.optimal_parameters.get(key)) for key in keys]
        )

    writer.writerow([])
    writer.writerow(["Summary"])
    summary_rows = (
        ("Avg IS Performance", results.summary.avg_in_sample_performance),
        ("Avg OOS Performance", results.summary.avg_out_of_sample_performance),
        ("Efficiency Ratio (OOS/IS)", results.summary.degradation_factor),
        ("Parameter Stability", results.summary.parameter_stability),
        ("Robustness Score", results.summary.robustness_score),
        ("Consistency Score", results.stats.consistency_score),
        ("Avg Performance Delta", results.stats.average_performance_delta),
    )
    for label, value in summary_rows:
        writer.writerow([label, _cell(value)])
    return buffer.getvalue()


def export_computation(computation: WalkForwardComputation, export_format: ExportFormat = "json") -> str:
    """Render a computation in the requested format."""
    if export_format == "csv":
        return build_csv(computation)
    if export_format == "json":
        return computation.model_dump_json(indent=2)
    raise ValueError(f"Unsupported export format: {export_format}")
