"""
Portfolio Statistics Service.
Computes performance statistics for a trade sequence: P/L totals, win/loss
breakdown, drawdown, Sharpe/Sortino/Calmar ratios, CAGR and streaks.
"""
from __future__ import annotations

import math
import statistics
from collections import OrderedDict
from typing import List, Optional, Sequence

from config.walk_forward_config import PortfolioStats, Trade
from engine.windows import DAY_MS, to_epoch_ms, to_utc

_YEAR_MS = DAY_MS * 365.25


def _chronological(trades: Sequence[Trade]) -> List[Trade]:
    return sorted(trades, key=lambda t: (to_epoch_ms(t.date_opened), t.time_opened or ""))


def _date_key(trade: Trade) -> str:
    return to_utc(trade.date_opened).date().isoformat()


class PortfolioStatsCalculator:
    """Trade-based portfolio statistics calculator."""

    def __init__(self, risk_free_rate: float = 2.0, annualization_factor: int = 252):
        """
        Args:
            risk_free_rate: Annual risk-free rate in percent
            annualization_factor: Trading periods per year for ratio annualization
        """
        self.risk_free_rate = risk_free_rate
        self.annualization_factor = annualization_factor

    @staticmethod
    def initial_capital(trades: Sequence[Trade]) -> float:
        """Capital before the first chronological trade: funds_at_close - pl."""
        if not trades:
            return 0.0
        first = _chronological(trades)[0]
        return first.funds_at_close - first.pl

    def compute_stats(self, trades: Sequence[Trade]) -> PortfolioStats:
        valid = [t for t in trades if math.isfinite(t.pl)]
        if not valid:
            return PortfolioStats()

        ordered = _chronological(valid)
        total_pl = sum(t.pl for t in valid)
        total_commissions = sum(t.opening_commissions_fees + t.closing_commissions_fees for t in valid)
        winners = [t.pl for t in valid if t.pl > 0]
        losers = [t.pl for t in valid if t.pl < 0]
        max_drawdown = self._calculate_max_drawdown(valid)
        cagr = self._calculate_cagr(ordered)
        max_win_streak, max_loss_streak = self._calculate_streaks(ordered)

        return PortfolioStats(
            total_trades=len(valid),
            total_pl=total_pl,
            winning_trades=len(winners),
            losing_trades=len(losers),
            break_even_trades=len(valid) - len(winners) - len(losers),
            win_rate=len(winners) / len(valid),
            avg_win=statistics.fmean(winners) if winners else 0.0,
            avg_loss=statistics.fmean(losers) if losers else 0.0,
            max_win=max(winners) if winners else 0.0,
            max_loss=min(losers) if losers else 0.0,
            sharpe_ratio=self._calculate_sharpe_ratio(ordered),
            sortino_ratio=self._calculate_sortino_ratio(ordered),
            calmar_ratio=(cagr / max_drawdown) if cagr is not None and max_drawdown != 0 else None,
            cagr=cagr,
            kelly_percentage=self._calculate_kelly_percentage(valid),
            max_drawdown=max_drawdown,
            avg_daily_pl=self._calculate_avg_daily_pl(valid),
            total_commissions=total_commissions,
            net_pl=total_pl - total_commissions,
            profit_factor=self._calculate_profit_factor(winners, losers),
            initial_capital=self.initial_capital(valid),
            max_win_streak=max_win_streak,
            max_loss_streak=max_loss_streak,
        )

    # ------------------------------------------------------------------
    # Core statistical calculations
    # ------------------------------------------------------------------

    def _daily_returns(self, ordered: List[Trade]) -> List[float]:
        """Per-day P/L divided by running capital at the start of that day."""
        daily_pl: "OrderedDict[str, float]" = OrderedDict()
        for trade in ordered:
            key = _date_key(trade)
            daily_pl[key] = daily_pl.get(key, 0.0) + trade.pl

        returns: List[float] = []
        portfolio_value = self.initial_capital(ordered)
        for day_pl in daily_pl.values():
            if portfolio_value > 0:
                returns.append(day_pl / portfolio_value)
                portfolio_value += day_pl
        return returns

    def _calculate_sharpe_ratio(self, ordered: List[Trade]) -> Optional[float]:
        """Annualized Sharpe ratio on daily returns (sample std)."""
        returns = self._daily_returns(ordered)
        if len(returns) < 2:
            return None
        std_dev = statistics.stdev(returns)
        if std_dev == 0:
            return None
        daily_rf = self.risk_free_rate / 100.0 / self.annualization_factor
        excess = statistics.fmean(returns) - daily_rf
        return (excess / std_dev) * math.sqrt(self.annualization_factor)

    def _calculate_sortino_ratio(self, ordered: List[Trade]) -> Optional[float]:
        """Annualized Sortino ratio (population std of negative excess returns)."""
        if len(ordered) < 2:
            return None
        returns = self._daily_returns(ordered)
        if len(returns) < 2:
            return None
        daily_rf = self.risk_free_rate / 100.0 / self.annualization_factor
        excess = [r - daily_rf for r in returns]
        downside = [r for r in excess if r < 0]
        if not downside:
            return None
        downside_dev = statistics.pstdev(downside)
        if downside_dev < 1e-10:
            return None
        return (statistics.fmean(excess) / downside_dev) * math.sqrt(self.annualization_factor)

    def _calculate_max_drawdown(self, trades: Sequence[Trade]) -> float:
        """Max peak-to-trough drop of funds_at_close, in percent, ordered by close."""
        closed = [t for t in trades if t.date_closed is not None]
        if not closed:
            return 0.0
        closed.sort(key=lambda t: (to_epoch_ms(t.date_closed), t.time_closed or ""))

        first = closed[0]
        peak = first.funds_at_close - first.pl
        max_drawdown = 0.0
        for trade in closed:
            value = trade.funds_at_close
            peak = max(peak, value)
            if peak > 0:
                max_drawdown = max(max_drawdown, (peak - value) / peak * 100.0)
        return max_drawdown

    def _calculate_avg_daily_pl(self, trades: Sequence[Trade]) -> float:
        daily_pl = {}
        for trade in trades:
            key = _date_key(trade)
            daily_pl[key] = daily_pl.get(key, 0.0) + trade.pl
        if not daily_pl:
            return 0.0
        return sum(daily_pl.values()) / len(daily_pl)

    def _calculate_cagr(self, ordered: List[Trade]) -> Optional[float]:
        """Compound annual growth rate in percent."""
        if not ordered:
            return None
        last = ordered[-1]
        start_ms = to_epoch_ms(ordered[0].date_opened)
        end_ms = to_epoch_ms(last.date_closed or last.date_opened)
        total_years = (end_ms - start_ms) / _YEAR_MS
        if total_years <= 0:
            return None

        initial = self.initial_capital(ordered)
        final = initial + sum(t.pl for t in ordered)
        if initial <= 0 or final <= 0:
            return None
        try:
            return ((final / initial) ** (1.0 / total_years) - 1.0) * 100.0
        except OverflowError:
            # sub-day spans annualize past float range
            return math.inf

    def _calculate_profit_factor(self, winners: List[float], losers: List[float]) -> float:
        """Profit factor = gross profits / gross losses."""
        gross_profit = sum(winners)
        gross_loss = abs(sum(losers))
        if gross_loss > 0:
            return gross_profit / gross_loss
        return math.inf if gross_profit > 0 else 0.0

    def _calculate_kelly_percentage(self, trades: Sequence[Trade]) -> Optional[float]:
        winners = [t.pl for t in trades if t.pl > 0]
        losers = [abs(t.pl) for t in trades if t.pl < 0]
        if not winners or not losers:
            return None
        avg_loss = statistics.fmean(losers)
        if avg_loss == 0:
            return None
        win_rate = len(winners) / len(trades)
        ratio = statistics.fmean(winners) / avg_loss
        return ((win_rate * ratio - (1.0 - win_rate)) / ratio) * 100.0

    def _calculate_streaks(self, ordered: List[Trade]) -> tuple[int, int]:
        """Return (max_win_streak, max_loss_streak)."""
        max_win = max_loss = 0
        win = loss = 0
        for trade in ordered:
            if trade.pl > 0:
                win += 1
                loss = 0
            elif trade.pl < 0:
                loss += 1
                win = 0
            else:
                win = loss = 0
            max_win = max(max_win, win)
            max_loss = max(max_loss, loss)
        return max_win, max_loss
