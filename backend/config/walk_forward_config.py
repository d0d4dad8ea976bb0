"""
Walk-Forward Configuration Module.
Defines the trade record, run configuration, progress event and result
models shared by the walk-forward engine, its services and the API.
"""
import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    """JSON has no representation for inf/nan; emit null instead."""
    if value is None or math.isfinite(value):
        return value
    return None


class Trade(BaseModel):
    """Single closed trade record as exported by the trade log."""
    model_config = ConfigDict(frozen=True)

    date_opened: datetime
    time_opened: str = ""
    opening_price: float = 0.0
    legs: str = ""
    premium: float = 0.0
    closing_price: Optional[float] = None
    date_closed: Optional[datetime] = None
    time_closed: Optional[str] = None
    avg_closing_cost: Optional[float] = None
    reason_for_close: Optional[str] = None
    pl: float
    num_contracts: float = 1.0
    funds_at_close: float = 0.0
    margin_req: float = 0.0
    strategy: str = ""
    opening_commissions_fees: float = 0.0
    closing_commissions_fees: float = 0.0
    opening_short_long_ratio: float = 0.0
    closing_short_long_ratio: Optional[float] = None
    opening_vix: Optional[float] = None
    closing_vix: Optional[float] = None
    gap: Optional[float] = None
    movement: Optional[float] = None
    max_profit: Optional[float] = None
    max_loss: Optional[float] = None


class OptimizationTarget(str, Enum):
    """Metric maximized by the in-sample grid search."""
    NET_PL = "net_pl"
    PROFIT_FACTOR = "profit_factor"
    SHARPE_RATIO = "sharpe_ratio"
    SORTINO_RATIO = "sortino_ratio"
    CALMAR_RATIO = "calmar_ratio"
    CAGR = "cagr"
    AVG_DAILY_PL = "avg_daily_pl"
    WIN_RATE = "win_rate"


class WalkForwardConfig(BaseModel):
    """
    Walk-forward run configuration.

    Day counts are validated by the analyzer rather than the model so that
    bad values surface as ConfigurationError regardless of where the config
    was built.
    """
    in_sample_days: int
    out_of_sample_days: int
    step_size_days: int
    optimization_target: OptimizationTarget = OptimizationTarget.NET_PL
    # name -> (min, max, step); insertion order is the enumeration order
    parameter_ranges: Dict[str, Tuple[float, float, float]] = Field(default_factory=dict)
    min_in_sample_trades: Optional[int] = None
    min_out_of_sample_trades: Optional[int] = None


class WalkForwardWindow(BaseModel):
    """In-sample/out-of-sample date pair; all bounds are UTC midnights, end dates inclusive."""
    in_sample_start: datetime
    in_sample_end: datetime
    out_of_sample_start: datetime
    out_of_sample_end: datetime


class PortfolioStats(BaseModel):
    """Portfolio statistics for one trade sequence."""
    total_trades: int = 0
    total_pl: float = 0.0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0
    win_rate: float = 0.0  # 0-1 decimal, not percentage
    avg_win: float = 0.0
    avg_loss: float = 0.0
    max_win: float = 0.0
    max_loss: float = 0.0
    sharpe_ratio: Optional[float] = None
    sortino_ratio: Optional[float] = None
    calmar_ratio: Optional[float] = None
    cagr: Optional[float] = None  # percent
    kelly_percentage: Optional[float] = None
    max_drawdown: float = 0.0  # positive percentage magnitude
    avg_daily_pl: float = 0.0
    total_commissions: float = 0.0
    net_pl: float = 0.0
    profit_factor: float = 0.0
    initial_capital: float = 0.0
    max_win_streak: int = 0
    max_loss_streak: int = 0

    @field_serializer("profit_factor", "sharpe_ratio", "sortino_ratio", "calmar_ratio", "cagr", when_used="json")
    def _serialize_ratio(self, value: Optional[float]) -> Optional[float]:
        return _finite_or_none(value)


class WalkForwardPeriodResult(WalkForwardWindow):
    """Optimized window: winning parameters plus in/out-of-sample scores."""
    optimal_parameters: Dict[str, float] = Field(default_factory=dict)
    in_sample_metrics: PortfolioStats
    out_of_sample_metrics: PortfolioStats
    target_metric_in_sample: float
    target_metric_out_of_sample: float

    @field_serializer("target_metric_in_sample", "target_metric_out_of_sample", when_used="json")
    def _serialize_target(self, value: float) -> Optional[float]:
        return _finite_or_none(value)


class WalkForwardSummary(BaseModel):
    """Run-level robustness summary."""
    avg_in_sample_performance: float = 0.0
    avg_out_of_sample_performance: float = 0.0
    degradation_factor: float = 0.0
    parameter_stability: float = 0.0
    robustness_score: float = 0.0


class WalkForwardRunStats(BaseModel):
    """Run bookkeeping counters."""
    total_periods: int = 0
    evaluated_periods: int = 0
    skipped_periods: int = 0
    total_parameter_tests: int = 0
    analyzed_trades: int = 0
    duration_ms: int = 0
    consistency_score: float = 0.0
    average_performance_delta: float = 0.0

    @field_serializer("average_performance_delta", when_used="json")
    def _serialize_delta(self, value: float) -> Optional[float]:
        return _finite_or_none(value)


class WalkForwardResults(BaseModel):
    periods: List[WalkForwardPeriodResult] = Field(default_factory=list)
    summary: WalkForwardSummary = Field(default_factory=WalkForwardSummary)
    stats: WalkForwardRunStats = Field(default_factory=WalkForwardRunStats)


class WalkForwardComputation(BaseModel):
    """Complete output of one analyze() call."""
    config: WalkForwardConfig
    results: WalkForwardResults
    started_at: datetime
    completed_at: datetime


class WalkForwardPhase(str, Enum):
    """Controller phases reported through the progress channel."""
    SEGMENTING = "segmenting"
    OPTIMIZING = "optimizing"
    EVALUATING = "evaluating"
    COMPLETED = "completed"


class WalkForwardProgressEvent(BaseModel):
    """One progress notification emitted by the analyzer."""
    phase: WalkForwardPhase
    current_period: int
    total_periods: int
    tested_combinations: Optional[int] = None
    total_combinations: Optional[int] = None
    window: Optional[WalkForwardWindow] = None
    message: Optional[str] = None

    def as_log_fields(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "period": f"{self.current_period}/{self.total_periods}",
            "combinations": (
                f"{self.tested_combinations}/{self.total_combinations}"
                if self.total_combinations is not None
                else None
            ),
        }
