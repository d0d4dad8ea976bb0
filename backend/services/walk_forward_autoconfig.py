"""
Walk-Forward Auto-Configuration.

Derives window sizes and trade minimums from how often a trade history
trades, so that each window holds enough trades to be scored.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Optional, Sequence, Tuple, Union

from pydantic import BaseModel

from config.walk_forward_config import Trade, WalkForwardConfig
from config.walk_forward_presets import WalkForwardPresetKey, apply_preset, default_walk_forward_config
from engine.windows import DAY_MS, to_epoch_ms

logger = logging.getLogger(__name__)

# trades a window should capture
_TARGET_IN_SAMPLE_TRADES = 10
_TARGET_OUT_OF_SAMPLE_TRADES = 3

_IN_SAMPLE_BOUNDS = (14, 180)
_OUT_OF_SAMPLE_BOUNDS = (7, 60)
_MIN_WINDOWS = 3
_SCALE_ABOVE_DAYS = 60

# (trades per month floor, min in-sample trades, min out-of-sample trades)
_TRADE_MINIMUMS = (
    (20.0, 15, 5),  # daily or more
    (8.0, 10, 3),  # 2-3 per week
    (4.0, 6, 2),  # weekly
    (0.0, 4, 1),
)


class TradeFrequency(BaseModel):
    """How densely a trade history is populated."""
    total_trades: int
    trading_days: int
    avg_days_between_trades: float
    trades_per_month: float


def calculate_trade_frequency(trades: Sequence[Trade]) -> Optional[TradeFrequency]:
    """Frequency metrics by open date; None for fewer than two trades."""
    if len(trades) < 2:
        return None
    opened = sorted(to_epoch_ms(t.date_opened) for t in trades)
    trading_days = max(1, math.ceil((opened[-1] - opened[0]) / DAY_MS))
    return TradeFrequency(
        total_trades=len(trades),
        trading_days=trading_days,
        avg_days_between_trades=trading_days / (len(trades) - 1),
        trades_per_month=len(trades) / trading_days * 30,
    )


def _clamp(value: int, bounds: Tuple[int, int]) -> int:
    low, high = bounds
    return max(low, min(high, value))


def calculate_auto_config(frequency: TradeFrequency) -> Dict[str, int]:
    """
    Window sizes and trade minimums for a given trade frequency.

    Returns only the fields it decides: in/out-of-sample and step days plus
    the two trade minimums. The step equals the out-of-sample length
    computed before any shrinking, so windows never overlap.

    When fewer than three windows would fit in a history longer than 60
    days, both window lengths shrink proportionally (never below their
    lower bounds).
    """
    in_sample_days = _clamp(
        math.ceil(frequency.avg_days_between_trades * _TARGET_IN_SAMPLE_TRADES), _IN_SAMPLE_BOUNDS
    )
    out_of_sample_days = _clamp(
        math.ceil(frequency.avg_days_between_trades * _TARGET_OUT_OF_SAMPLE_TRADES), _OUT_OF_SAMPLE_BOUNDS
    )
    step_size_days = out_of_sample_days

    max_windows = math.floor((frequency.trading_days - in_sample_days) / step_size_days)
    if max_windows < _MIN_WINDOWS and frequency.trading_days > _SCALE_ABOVE_DAYS:
        scale = frequency.trading_days / (in_sample_days + out_of_sample_days + _MIN_WINDOWS * step_size_days)
        if scale < 1:
            in_sample_days = max(_IN_SAMPLE_BOUNDS[0], math.floor(in_sample_days * scale))
            out_of_sample_days = max(_OUT_OF_SAMPLE_BOUNDS[0], math.floor(out_of_sample_days * scale))

    for floor, min_in_sample, min_out_of_sample in _TRADE_MINIMUMS:
        if frequency.trades_per_month >= floor:
            break

    return {
        "in_sample_days": in_sample_days,
        "out_of_sample_days": out_of_sample_days,
        "step_size_days": step_size_days,
        "min_in_sample_trades": min_in_sample,
        "min_out_of_sample_trades": min_out_of_sample,
    }


def resolve_walk_forward_config(
    config: Optional[WalkForwardConfig] = None,
    *,
    preset: Optional[Union[WalkForwardPresetKey, str]] = None,
    trades: Optional[Sequence[Trade]] = None,
) -> Tuple[WalkForwardConfig, Optional[TradeFrequency]]:
    """
    Build a run config in layers: base (or the default), then the preset,
    then auto-configuration from trades when given.

    Returns:
        (config, frequency); frequency is None when auto-configuration was
        not requested or the history has fewer than two trades, in which
        case the config is returned without it.
    """
    resolved = config.model_copy(deep=True) if config is not None else default_walk_forward_config()
    if preset is not None:
        resolved = apply_preset(resolved, preset)

    if trades is None:
        return resolved, None
    frequency = calculate_trade_frequency(trades)
    if frequency is None:
        logger.warning("Auto-configuration needs at least two trades; keeping config (trades=%d)", len(trades))
        return resolved, None

    auto = calculate_auto_config(frequency)
    logger.info(
        "Auto-configured walk-forward windows is=%d oos=%d step=%d (%.1f trades/month)",
        auto["in_sample_days"],
        auto["out_of_sample_days"],
        auto["step_size_days"],
        frequency.trades_per_month,
    )
    return resolved.model_copy(update=auto), frequency
