"""
Scenario scaling: replay historical trades under hypothetical sizing rules.

Recognized parameters:
- kellyMultiplier: multiplies position size directly
- fixedFractionPct: scales relative to a 2% reference fraction
- fixedContracts: scales relative to the window's average contract count
- strategy:<name>: per-strategy weight, matched case-insensitively

Unrecognized parameter names (e.g. risk limits) do not affect scaling.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from config.walk_forward_config import Trade
from services.kelly import KellyMetrics, compute_kelly_metrics
from services.portfolio_stats import PortfolioStatsCalculator

DEFAULT_FIXED_FRACTION_PCT = 2.0
STRATEGY_WEIGHT_PREFIX = "strategy:"


@dataclass(frozen=True)
class ScalingBaseline:
    """Per-window normalization inputs derived from in-sample trades."""
    base_kelly_fraction: float
    avg_contracts: float


def build_scaling_baseline(
    trades: Sequence[Trade],
    kelly_calculator: Callable[[Sequence[Trade]], KellyMetrics] = compute_kelly_metrics,
) -> ScalingBaseline:
    kelly = kelly_calculator(trades)
    if trades:
        avg_contracts = sum(abs(t.num_contracts or 0) for t in trades) / len(trades)
    else:
        avg_contracts = 1.0
    return ScalingBaseline(
        base_kelly_fraction=kelly.fraction or 0.0,
        avg_contracts=avg_contracts if avg_contracts > 0 else 1.0,
    )


def normalize_strategy_key(strategy: Optional[str]) -> str:
    return (strategy or "Unknown").lower()


def calculate_position_multiplier(params: Mapping[str, float], baseline: ScalingBaseline) -> float:
    multiplier = 1.0

    kelly_multiplier = params.get("kellyMultiplier")
    if kelly_multiplier is not None and kelly_multiplier > 0:
        multiplier *= kelly_multiplier

    fixed_fraction = params.get("fixedFractionPct")
    if fixed_fraction is not None and fixed_fraction > 0:
        multiplier *= fixed_fraction / DEFAULT_FIXED_FRACTION_PCT

    fixed_contracts = params.get("fixedContracts")
    if fixed_contracts is not None and fixed_contracts > 0:
        base_contracts = baseline.avg_contracts if baseline.avg_contracts > 0 else 1.0
        multiplier *= fixed_contracts / base_contracts

    return max(multiplier, 0.0)


def build_strategy_weights(params: Mapping[str, float]) -> Dict[str, float]:
    weights: Dict[str, float] = {}
    for key, value in params.items():
        if key.startswith(STRATEGY_WEIGHT_PREFIX):
            name = key[len(STRATEGY_WEIGHT_PREFIX):]
            weights[normalize_strategy_key(name)] = max(0.0, value)
    return weights


def apply_scenario(
    trades: Sequence[Trade],
    params: Mapping[str, float],
    baseline: ScalingBaseline,
    initial_capital: Optional[float] = None,
) -> List[Trade]:
    """
    Return rescaled copies of trades; the inputs are never modified.

    Trades must already be in chronological order: funds_at_close is rebuilt
    as a running total in the order given.
    """
    if not trades:
        return []

    if initial_capital is None:
        initial_capital = PortfolioStatsCalculator.initial_capital(trades)

    position_multiplier = calculate_position_multiplier(params, baseline)
    strategy_weights = build_strategy_weights(params)
    running_equity = initial_capital

    scaled: List[Trade] = []
    for trade in trades:
        weight = strategy_weights.get(normalize_strategy_key(trade.strategy), 1.0)
        scale = position_multiplier * weight
        scaled_pl = trade.pl * scale
        running_equity += scaled_pl
        scaled.append(
            trade.model_copy(
                update={
                    "pl": scaled_pl,
                    "funds_at_close": running_equity,
                    "opening_commissions_fees": trade.opening_commissions_fees * abs(scale),
                    "closing_commissions_fees": trade.closing_commissions_fees * abs(scale),
                }
            )
        )
    return scaled
