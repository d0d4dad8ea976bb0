"""
Tests for trade-frequency based auto-configuration.
"""

from datetime import datetime, timedelta, timezone

import pytest

from config.walk_forward_config import Trade, WalkForwardConfig
from services.walk_forward_autoconfig import (
    TradeFrequency,
    calculate_auto_config,
    calculate_trade_frequency,
    resolve_walk_forward_config,
)

BASE = datetime(2024, 1, 8, 15, 30, tzinfo=timezone.utc)


def _trades(count: int, spacing_days: int):
    return [
        Trade(date_opened=BASE + timedelta(days=index * spacing_days), pl=10.0, funds_at_close=1000.0)
        for index in range(count)
    ]


# ============================================================================
# Trade frequency
# ============================================================================

def test_frequency_of_daily_trades():
    """50 daily trades span 49 days."""
    frequency = calculate_trade_frequency(list(reversed(_trades(50, 1))))

    assert frequency.total_trades == 50
    assert frequency.trading_days == 49
    assert frequency.avg_days_between_trades == pytest.approx(1.0)
    assert frequency.trades_per_month == pytest.approx(50 / 49 * 30)


def test_frequency_needs_two_trades():
    """One trade has no spacing."""
    assert calculate_trade_frequency(_trades(1, 1)) is None
    assert calculate_trade_frequency([]) is None


def test_same_day_trades_count_as_one_day():
    """The span is at least one day."""
    trades = [Trade(date_opened=BASE + timedelta(hours=h), pl=1.0) for h in range(3)]
    assert calculate_trade_frequency(trades).trading_days == 1


# ============================================================================
# Auto config
# ============================================================================

def test_high_frequency_hits_lower_window_bounds():
    """Daily trading clamps to 14/7 days and the strictest minimums."""
    auto = calculate_auto_config(calculate_trade_frequency(_trades(50, 1)))
    assert auto == {
        "in_sample_days": 14,
        "out_of_sample_days": 7,
        "step_size_days": 7,
        "min_in_sample_trades": 15,
        "min_out_of_sample_trades": 5,
    }


def test_weekly_trading():
    """Windows hold 10 and 3 trades; weekly minimums."""
    auto = calculate_auto_config(calculate_trade_frequency(_trades(20, 7)))
    assert auto == {
        "in_sample_days": 70,
        "out_of_sample_days": 21,
        "step_size_days": 21,
        "min_in_sample_trades": 6,
        "min_out_of_sample_trades": 2,
    }


def test_sparse_history_shrinks_windows():
    """Too few windows fit, so both lengths scale down; the step does not."""
    auto = calculate_auto_config(calculate_trade_frequency(_trades(12, 10)))
    assert auto == {
        "in_sample_days": 50,
        "out_of_sample_days": 15,
        "step_size_days": 30,
        "min_in_sample_trades": 4,
        "min_out_of_sample_trades": 1,
    }


def test_short_history_is_not_scaled():
    """Histories of 60 days or less keep the computed lengths."""
    frequency = TradeFrequency(total_trades=5, trading_days=40, avg_days_between_trades=10.0, trades_per_month=3.75)
    auto = calculate_auto_config(frequency)
    assert (auto["in_sample_days"], auto["out_of_sample_days"]) == (100, 30)


def test_upper_bounds():
    """Very sparse trading caps at 180/60 days."""
    frequency = TradeFrequency(total_trades=3, trading_days=1000, avg_days_between_trades=500.0, trades_per_month=0.09)
    auto = calculate_auto_config(frequency)
    assert (auto["in_sample_days"], auto["out_of_sample_days"], auto["step_size_days"]) == (180, 60, 60)


@pytest.mark.parametrize(
    "trades_per_month,expected",
    [(20.0, (15, 5)), (8.0, (10, 3)), (4.0, (6, 2)), (3.99, (4, 1))],
)
def test_trade_minimum_tiers(trades_per_month, expected):
    """Minimums relax as trading gets sparser."""
    frequency = TradeFrequency(
        total_trades=10, trading_days=30, avg_days_between_trades=1.0, trades_per_month=trades_per_month
    )
    auto = calculate_auto_config(frequency)
    assert (auto["min_in_sample_trades"], auto["min_out_of_sample_trades"]) == expected


# ============================================================================
# Config resolution
# ============================================================================

def test_resolve_defaults_without_inputs():
    """No base, preset or trades gives the default config."""
    config, frequency = resolve_walk_forward_config()
    assert config.in_sample_days == 45
    assert frequency is None


def test_resolve_layers_preset_then_auto_config():
    """Auto-config overrides the preset's day counts but keeps its ranges."""
    base = WalkForwardConfig(in_sample_days=5, out_of_sample_days=5, step_size_days=5)
    config, frequency = resolve_walk_forward_config(base, preset="conservative", trades=_trades(20, 7))

    assert frequency is not None
    assert (config.in_sample_days, config.out_of_sample_days, config.step_size_days) == (70, 21, 21)
    assert config.parameter_ranges["kellyMultiplier"] == (0.25, 1.0, 0.25)
    assert (config.min_in_sample_trades, config.min_out_of_sample_trades) == (6, 2)
    assert base.in_sample_days == 5


def test_resolve_keeps_config_when_too_few_trades():
    """Auto-config is skipped for a single trade."""
    base = WalkForwardConfig(in_sample_days=5, out_of_sample_days=5, step_size_days=5)
    config, frequency = resolve_walk_forward_config(base, trades=_trades(1, 1))
    assert frequency is None
    assert config == base
