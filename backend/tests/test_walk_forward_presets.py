"""
Tests for the default walk-forward config and named presets.
"""

import pytest

from config.walk_forward_config import OptimizationTarget, WalkForwardConfig
from config.walk_forward_presets import (
    DEFAULT_WALK_FORWARD_CONFIG,
    WALK_FORWARD_PRESETS,
    WalkForwardPresetKey,
    apply_preset,
    default_walk_forward_config,
    get_walk_forward_preset,
)
from engine.parameter_grid import build_parameter_grid


def test_default_config_values():
    """45/15/15 days, net P/L target, 15/5 trade minimums."""
    config = default_walk_forward_config()
    assert (config.in_sample_days, config.out_of_sample_days, config.step_size_days) == (45, 15, 15)
    assert config.optimization_target == OptimizationTarget.NET_PL
    assert (config.min_in_sample_trades, config.min_out_of_sample_trades) == (15, 5)
    assert list(config.parameter_ranges) == [
        "kellyMultiplier",
        "fixedFractionPct",
        "maxDrawdownPct",
        "maxDailyLossPct",
        "consecutiveLossLimit",
    ]


def test_default_grid_fits_under_the_cap():
    """5 * 7 * 4 * 4 * 5 combinations."""
    grid = build_parameter_grid(default_walk_forward_config().parameter_ranges)
    assert len(grid) == 2800


def test_default_config_copy_is_independent():
    """Editing a copy leaves the shared default alone."""
    config = default_walk_forward_config()
    config.parameter_ranges["kellyMultiplier"] = (1.0, 1.0, 1.0)
    assert DEFAULT_WALK_FORWARD_CONFIG.parameter_ranges["kellyMultiplier"] == (0.5, 1.5, 0.25)


def test_all_presets_defined():
    """Test all presets are defined."""
    assert set(WALK_FORWARD_PRESETS) == {key.value for key in WalkForwardPresetKey}
    for preset in WALK_FORWARD_PRESETS.values():
        assert preset.label
        assert preset.step_size_days == preset.out_of_sample_days


def test_conservative_preset_merges_ranges():
    """Preset ranges replace same-named ranges; the rest are kept in place."""
    config = apply_preset(default_walk_forward_config(), WalkForwardPresetKey.CONSERVATIVE)

    assert (config.in_sample_days, config.out_of_sample_days, config.step_size_days) == (30, 10, 10)
    assert config.parameter_ranges == {
        "kellyMultiplier": (0.25, 1.0, 0.25),
        "fixedFractionPct": (2.0, 8.0, 1.0),
        "maxDrawdownPct": (5.0, 15.0, 5.0),
        "maxDailyLossPct": (2.0, 6.0, 2.0),
        "consecutiveLossLimit": (2.0, 4.0, 1.0),
    }
    assert list(config.parameter_ranges)[1] == "fixedFractionPct"
    assert (config.min_in_sample_trades, config.min_out_of_sample_trades) == (15, 5)


def test_preset_keeps_target_and_adds_new_ranges():
    """A base config without preset ranges gains them after its own."""
    base = WalkForwardConfig(
        in_sample_days=10,
        out_of_sample_days=5,
        step_size_days=5,
        optimization_target=OptimizationTarget.SHARPE_RATIO,
        parameter_ranges={"fixedContracts": (1, 3, 1)},
    )
    config = apply_preset(base, "aggressive")

    assert config.optimization_target == OptimizationTarget.SHARPE_RATIO
    assert list(config.parameter_ranges) == [
        "fixedContracts",
        "kellyMultiplier",
        "fixedFractionPct",
        "maxDrawdownPct",
        "maxDailyLossPct",
    ]
    assert base.in_sample_days == 10


def test_unknown_preset_raises():
    """Unknown names are rejected."""
    with pytest.raises(ValueError, match="Unknown walk-forward preset"):
        get_walk_forward_preset("reckless")
