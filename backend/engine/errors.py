"""
Walk-forward error taxonomy.

Every error here is fatal to the analyze() call. Insufficient trades, risk
rejections and non-finite scores are skips, not errors, and never raise.
"""


class WalkForwardError(Exception):
    """Base class for walk-forward failures."""


class ConfigurationError(WalkForwardError, ValueError):
    """Raised when in/out-of-sample or step day counts are not positive."""


class ParameterRangeError(WalkForwardError, ValueError):
    """Raised when a parameter range has max < min or a non-positive step."""


class CombinationCapExceededError(WalkForwardError, ValueError):
    """Raised when the parameter grid exceeds the combination cap."""

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Walk-forward parameter grid too large ({count:,} combinations, limit {limit:,}). "
            "Reduce ranges or increase step sizes."
        )


class WalkForwardCancelledError(WalkForwardError, RuntimeError):
    """Raised when the run is canceled by the caller."""
