"""
Tests for JSON and CSV export of walk-forward computations.
"""

import json
import math
from datetime import datetime, timezone

import pytest

from config.walk_forward_config import (
    PortfolioStats,
    WalkForwardComputation,
    WalkForwardConfig,
    WalkForwardPeriodResult,
    WalkForwardResults,
    WalkForwardRunStats,
    WalkForwardSummary,
)
from services.walk_forward_export import build_csv, export_computation


def _utc(day: int, month: int = 1) -> datetime:
    return datetime(2024, month, day, tzinfo=timezone.utc)


@pytest.fixture
def computation():
    period = WalkForwardPeriodResult(
        in_sample_start=_utc(1),
        in_sample_end=_utc(30),
        out_of_sample_start=_utc(31),
        out_of_sample_end=_utc(9, 2),
        optimal_parameters={"kellyMultiplier": 1.5, "strategy:Put, Spread": 0.5},
        in_sample_metrics=PortfolioStats(),
        out_of_sample_metrics=PortfolioStats(),
        target_metric_in_sample=3000.0,
        target_metric_out_of_sample=-math.inf,
    )
    return WalkForwardComputation(
        config=WalkForwardConfig(
            in_sample_days=30,
            out_of_sample_days=10,
            step_size_days=10,
            parameter_ranges={"kellyMultiplier": (0.5, 1.5, 0.5), "fixedContracts": (1, 2, 1)},
        ),
        results=WalkForwardResults(
            periods=[period],
            summary=WalkForwardSummary(
                avg_in_sample_performance=3000.0,
                avg_out_of_sample_performance=0.0,
                degradation_factor=0.0,
                parameter_stability=1.0,
                robustness_score=0.5,
            ),
            stats=WalkForwardRunStats(consistency_score=0.0, average_performance_delta=-math.inf),
        ),
        started_at=_utc(1, 3),
        completed_at=_utc(1, 3),
    )


def test_csv_header_lists_standard_then_extra_parameters(computation):
    """Range keys and winning keys outside the standard five get their own columns."""
    header = build_csv(computation).splitlines()[0]
    assert header == (
        "IS Start,IS End,OOS Start,OOS End,Target IS,Target OOS,"
        "Kelly Multiplier,Fixed Fraction %,Max DD %,Max Daily Loss %,Consecutive Loss Limit,"
        'fixedContracts,"strategy:Put, Spread"'
    )


def test_csv_period_row(computation):
    """Dates are UTC days; missing and non-finite cells are blank."""
    row = build_csv(computation).splitlines()[1]
    assert row == "2024-01-01,2024-01-30,2024-01-31,2024-02-09,3000.0,,1.5,,,,,,0.5"


def test_csv_summary_block(computation):
    """A blank line separates the periods from the summary."""
    lines = build_csv(computation).splitlines()
    assert lines[2] == ""
    assert lines[3] == "Summary"
    assert lines[4:] == [
        "Avg IS Performance,3000.0",
        "Avg OOS Performance,0.0",
        "Efficiency Ratio (OOS/IS),0.0",
        "Parameter Stability,1.0",
        "Robustness Score,0.5",
        "Consistency Score,0.0",
        "Avg Performance Delta,",
    ]


def test_csv_without_periods_has_header_and_summary(computation):
    """An empty run still exports."""
    empty = computation.model_copy(update={"results": WalkForwardResults()})
    lines = build_csv(empty).splitlines()
    assert lines[0].startswith("IS Start")
    assert lines[1] == ""
    assert lines[2] == "Summary"


def test_json_export_maps_non_finite_to_null(computation):
    """JSON export is the serialized computation."""
    payload = json.loads(export_computation(computation, "json"))
    assert payload["results"]["periods"][0]["target_metric_out_of_sample"] is None
    assert payload["results"]["stats"]["average_performance_delta"] is None


def test_unknown_format_raises(computation):
    """Only json and csv are supported."""
    with pytest.raises(ValueError, match="Unsupported export format"):
        export_computation(computation, "xml")
