"""
Walk-forward engine module.

Core components:
- Window segmentation and trade slicing
- Parameter grid expansion
- Scenario scaling (engine.scenario)
- Risk filtering (engine.risk_manager)
- Cancellation and error taxonomy

engine.scenario and engine.risk_manager depend on the stats services and
are imported directly rather than re-exported here.
"""

from engine.cancellation import CancellationToken
from engine.errors import (
    CombinationCapExceededError,
    ConfigurationError,
    ParameterRangeError,
    WalkForwardCancelledError,
    WalkForwardError,
)
from engine.parameter_grid import MAX_PARAMETER_COMBINATIONS, ParameterGrid, build_parameter_grid
from engine.windows import TradeTimeline, build_windows

__all__ = [
    "CancellationToken",
    "CombinationCapExceededError",
    "ConfigurationError",
    "ParameterRangeError",
    "WalkForwardCancelledError",
    "WalkForwardError",
    "MAX_PARAMETER_COMBINATIONS",
    "ParameterGrid",
    "build_parameter_grid",
    "TradeTimeline",
    "build_windows",
]
