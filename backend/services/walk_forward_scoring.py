"""
Walk-forward aggregation and robustness scoring.
"""
from __future__ import annotations

import math
from typing import List, Sequence

from config.walk_forward_config import (
    WalkForwardPeriodResult,
    WalkForwardResults,
    WalkForwardRunStats,
    WalkForwardSummary,
)

# degradation factor is min/max normalized over this range
_DEGRADATION_NORMALIZATION_RANGE = (0.0, 2.0)


def _finite_mean(values: Sequence[float]) -> float:
    finite = [v for v in values if math.isfinite(v)]
    if not finite:
        return 0.0
    return sum(finite) / len(finite)


def _clamp01(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def normalize(value: float, minimum: float, maximum: float) -> float:
    if maximum == minimum:
        return 0.0
    clamped = max(min(value, maximum), minimum)
    return (clamped - minimum) / (maximum - minimum)


def calculate_parameter_stability(periods: Sequence[WalkForwardPeriodResult]) -> float:
    """
    Average over parameter names of 1 - coefficient of variation.

    The CV is |std/mean| (population std), or std when the mean is zero,
    capped at 1.
    """
    if len(periods) <= 1:
        return 1.0

    names: List[str] = []
    for period in periods:
        for name in period.optimal_parameters:
            if name not in names:
                names.append(name)
    if not names:
        return 1.0

    scores: List[float] = []
    for name in names:
        values = [p.optimal_parameters[name] for p in periods if name in p.optimal_parameters]
        if len(values) <= 1:
            scores.append(1.0)
            continue
        mean = sum(values) / len(values)
        variance = sum((v - mean) ** 2 for v in values) / len(values)
        std_dev = math.sqrt(variance)
        normalized_std = min(abs(std_dev / mean), 1.0) if mean != 0 else min(std_dev, 1.0)
        scores.append(1.0 - normalized_std)

    return _clamp01(sum(scores) / len(scores))


def calculate_consistency_score(periods: Sequence[WalkForwardPeriodResult]) -> float:
    """Share of periods with a non-negative out-of-sample target metric."""
    if not periods:
        return 0.0
    profitable = sum(1 for p in periods if p.target_metric_out_of_sample >= 0)
    return profitable / len(periods)


def calculate_average_performance_delta(periods: Sequence[WalkForwardPeriodResult]) -> float:
    if not periods:
        return 0.0
    deltas = [p.target_metric_out_of_sample - p.target_metric_in_sample for p in periods]
    return sum(deltas) / len(deltas)


def calculate_summary(periods: Sequence[WalkForwardPeriodResult]) -> WalkForwardSummary:
    """Summary without the robustness score (filled in by build_results)."""
    if not periods:
        return WalkForwardSummary()

    avg_in = _finite_mean([p.target_metric_in_sample for p in periods])
    avg_out = _finite_mean([p.target_metric_out_of_sample for p in periods])
    return WalkForwardSummary(
        avg_in_sample_performance=avg_in,
        avg_out_of_sample_performance=avg_out,
        degradation_factor=(avg_out / avg_in) if avg_in != 0 else 0.0,
        parameter_stability=calculate_parameter_stability(periods),
    )


def calculate_robustness_score(summary: WalkForwardSummary, consistency_score: float) -> float:
    """Mean of normalized degradation, parameter stability and consistency."""
    efficiency = normalize(summary.degradation_factor, *_DEGRADATION_NORMALIZATION_RANGE)
    stability = _clamp01(summary.parameter_stability)
    consistency = _clamp01(consistency_score)
    return _clamp01((efficiency + stability + consistency) / 3.0)


def build_results(
    periods: List[WalkForwardPeriodResult],
    *,
    total_periods: int,
    skipped_periods: int,
    total_parameter_tests: int,
    analyzed_trades: int,
    duration_ms: int,
) -> WalkForwardResults:
    summary = calculate_summary(periods)
    stats = WalkForwardRunStats(
        total_periods=total_periods,
        evaluated_periods=len(periods),
        skipped_periods=skipped_periods,
        total_parameter_tests=total_parameter_tests,
        analyzed_trades=analyzed_trades,
        duration_ms=duration_ms,
        consistency_score=calculate_consistency_score(periods),
        average_performance_delta=calculate_average_performance_delta(periods),
    )
    summary = summary.model_copy(
        update={"robustness_score": calculate_robustness_score(summary, stats.consistency_score)}
    )
    return WalkForwardResults(periods=periods, summary=summary, stats=stats)
