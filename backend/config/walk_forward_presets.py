"""
Walk-Forward Presets.

Default run configuration plus named presets trading off window length
against the breadth of the parameter sweep:
- Conservative: short windows, lower leverage, tight risk limits
- Moderate: balanced windows and sweep (same day counts as the default)
- Aggressive: long windows, broad leverage sweep, wide risk tolerances
"""

from enum import Enum
from typing import Dict, Tuple, Union

from pydantic import BaseModel, Field

from config.walk_forward_config import OptimizationTarget, WalkForwardConfig

RangeTuple = Tuple[float, float, float]


class WalkForwardPresetKey(str, Enum):
    """Preset names."""
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"


class WalkForwardPreset(BaseModel):
    """Window sizes and parameter ranges layered onto a base config."""
    label: str
    description: str
    in_sample_days: int
    out_of_sample_days: int
    step_size_days: int
    # merged into the base ranges; keys not listed here are kept
    parameter_ranges: Dict[str, RangeTuple] = Field(default_factory=dict)


DEFAULT_PARAMETER_RANGES: Dict[str, RangeTuple] = {
    "kellyMultiplier": (0.5, 1.5, 0.25),
    "fixedFractionPct": (2.0, 8.0, 1.0),
    "maxDrawdownPct": (5.0, 20.0, 5.0),
    "maxDailyLossPct": (2.0, 8.0, 2.0),
    "consecutiveLossLimit": (2.0, 6.0, 1.0),
}

DEFAULT_WALK_FORWARD_CONFIG = WalkForwardConfig(
    in_sample_days=45,
    out_of_sample_days=15,
    step_size_days=15,
    optimization_target=OptimizationTarget.NET_PL,
    parameter_ranges=DEFAULT_PARAMETER_RANGES,
    min_in_sample_trades=15,
    min_out_of_sample_trades=5,
)

WALK_FORWARD_PRESETS: Dict[str, WalkForwardPreset] = {
    "conservative": WalkForwardPreset(
        label="Conservative",
        description="Lower leverage, tighter risk controls",
        in_sample_days=30,
        out_of_sample_days=10,
        step_size_days=10,
        parameter_ranges={
            "kellyMultiplier": (0.25, 1.0, 0.25),
            "maxDrawdownPct": (5.0, 15.0, 5.0),
            "maxDailyLossPct": (2.0, 6.0, 2.0),
            "consecutiveLossLimit": (2.0, 4.0, 1.0),
        },
    ),
    "moderate": WalkForwardPreset(
        label="Moderate",
        description="Balanced trade-off between return and robustness",
        in_sample_days=45,
        out_of_sample_days=15,
        step_size_days=15,
        parameter_ranges={
            "kellyMultiplier": (0.5, 1.5, 0.25),
            "fixedFractionPct": (2.0, 8.0, 1.0),
            "maxDrawdownPct": (5.0, 20.0, 5.0),
        },
    ),
    "aggressive": WalkForwardPreset(
        label="Aggressive",
        description="Broader leverage sweep with wider risk tolerances",
        in_sample_days=60,
        out_of_sample_days=20,
        step_size_days=20,
        parameter_ranges={
            "kellyMultiplier": (0.75, 2.0, 0.25),
            "fixedFractionPct": (4.0, 12.0, 2.0),
            "maxDrawdownPct": (10.0, 30.0, 5.0),
            "maxDailyLossPct": (4.0, 12.0, 2.0),
        },
    ),
}


def default_walk_forward_config() -> WalkForwardConfig:
    """Fresh copy of the default config, safe to modify."""
    return DEFAULT_WALK_FORWARD_CONFIG.model_copy(deep=True)


def get_walk_forward_preset(preset: Union[WalkForwardPresetKey, str]) -> WalkForwardPreset:
    """
    Look up a preset by key.

    Raises:
        ValueError: If the preset is not recognized
    """
    key = preset.value if isinstance(preset, WalkForwardPresetKey) else preset
    if key not in WALK_FORWARD_PRESETS:
        raise ValueError(f"Unknown walk-forward preset: {key}")
    return WALK_FORWARD_PRESETS[key]


def apply_preset(config: WalkForwardConfig, preset: Union[WalkForwardPresetKey, str]) -> WalkForwardConfig:
    """
    Return a copy of config with the preset's day counts and ranges applied.

    Preset ranges overwrite same-named base ranges in place; ranges the
    preset does not mention are kept. Target and trade minimums are untouched.
    """
    chosen = get_walk_forward_preset(preset)
    ranges = dict(config.parameter_ranges)
    ranges.update(chosen.parameter_ranges)
    return config.model_copy(
        update={
            "in_sample_days": chosen.in_sample_days,
            "out_of_sample_days": chosen.out_of_sample_days,
            "step_size_days": chosen.step_size_days,
            "parameter_ranges": ranges,
        },
        deep=True,
    )
