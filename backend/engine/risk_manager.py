"""
Risk Manager Module.
Rejects candidate parameter combinations whose simulated in-sample results
breach configured risk limits.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Mapping, Optional, Sequence

from config.walk_forward_config import PortfolioStats, Trade
from engine.windows import to_utc
from services.portfolio_stats import PortfolioStatsCalculator

logger = logging.getLogger(__name__)


class RiskManager:
    """
    Risk filter for scenario results.

    Each limit is read from the candidate's own parameters and only checked
    when present:
    - maxDrawdownPct: max drawdown (positive percent) of the scenario
    - consecutiveLossLimit: longest run of losing trades
    - maxDailyLossPct: worst calendar-day loss as percent of initial capital
    """

    def __init__(
        self,
        initial_capital: Callable[[Sequence[Trade]], float] = PortfolioStatsCalculator.initial_capital,
    ):
        self._initial_capital = initial_capital

    def validate_scenario(
        self,
        params: Mapping[str, float],
        stats: PortfolioStats,
        scaled_trades: Sequence[Trade],
    ) -> tuple[bool, Optional[str]]:
        """
        Validate a scenario against the limits embedded in params.

        Returns:
            (is_valid, rejection_reason)
        """
        max_drawdown_pct = params.get("maxDrawdownPct")
        if max_drawdown_pct is not None and stats.max_drawdown > max_drawdown_pct:
            return False, f"Drawdown {stats.max_drawdown:.2f}% exceeds limit {max_drawdown_pct:.2f}%"

        loss_limit = params.get("consecutiveLossLimit")
        if loss_limit is not None:
            max_losses = self.calculate_max_consecutive_losses(scaled_trades)
            if max_losses > loss_limit:
                return False, f"Consecutive losses {max_losses} exceed limit {loss_limit:g}"

        daily_loss_limit = params.get("maxDailyLossPct")
        if daily_loss_limit is not None:
            capital = self._initial_capital(scaled_trades)
            worst_day = self.calculate_max_daily_loss_pct(scaled_trades, capital)
            if worst_day > daily_loss_limit:
                return False, f"Daily loss {worst_day:.2f}% exceeds limit {daily_loss_limit:.2f}%"

        return True, None

    def is_acceptable(
        self,
        params: Mapping[str, float],
        stats: PortfolioStats,
        scaled_trades: Sequence[Trade],
    ) -> bool:
        ok, reason = self.validate_scenario(params, stats, scaled_trades)
        if not ok:
            logger.debug("Scenario rejected params=%s reason=%s", dict(params), reason)
        return ok

    @staticmethod
    def calculate_max_consecutive_losses(trades: Sequence[Trade]) -> int:
        """Longest streak of strictly negative P/L, in the order given."""
        max_streak = 0
        current_streak = 0
        for trade in trades:
            if trade.pl < 0:
                current_streak += 1
                max_streak = max(max_streak, current_streak)
            else:
                current_streak = 0
        return max_streak

    @staticmethod
    def calculate_max_daily_loss_pct(trades: Sequence[Trade], initial_capital: float) -> float:
        """Worst single-day net loss in percent of initial_capital (0 when no losing day)."""
        if initial_capital == 0:
            return 0.0

        pl_by_day: Dict[str, float] = {}
        for trade in trades:
            day = to_utc(trade.date_closed or trade.date_opened).date().isoformat()
            pl_by_day[day] = pl_by_day.get(day, 0.0) + trade.pl

        worst = 0.0
        for pl in pl_by_day.values():
            if pl < 0:
                worst = max(worst, abs(pl) / initial_capital * 100.0)
        return worst
