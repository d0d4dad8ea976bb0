"""
Kelly criterion metrics for position sizing.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from config.walk_forward_config import Trade


@dataclass(frozen=True)
class KellyMetrics:
    fraction: float = 0.0
    percent: float = 0.0
    win_rate: float = 0.0
    payoff_ratio: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    has_valid_kelly: bool = False
    # Kelly % computed on P/L as a percentage of margin requirement
    normalized_kelly_pct: Optional[float] = None


def _kelly_fraction(win_rate: float, payoff_ratio: float) -> float:
    return (payoff_ratio * win_rate - (1.0 - win_rate)) / payoff_ratio


def _normalized_kelly_pct(trades: Sequence[Trade]) -> Optional[float]:
    """Kelly % from returns on margin; None without usable margin data."""
    win_returns = []
    loss_returns = []
    for trade in trades:
        margin = trade.margin_req or 0.0
        if margin <= 0:
            continue
        return_pct = (trade.pl / margin) * 100.0
        if trade.pl > 0:
            win_returns.append(return_pct)
        elif trade.pl < 0:
            loss_returns.append(abs(return_pct))

    if not win_returns or not loss_returns:
        return None
    avg_win_pct = sum(win_returns) / len(win_returns)
    avg_loss_pct = sum(loss_returns) / len(loss_returns)
    if avg_loss_pct <= 0:
        return None
    win_rate = len(win_returns) / (len(win_returns) + len(loss_returns))
    return _kelly_fraction(win_rate, avg_win_pct / avg_loss_pct) * 100.0


def compute_kelly_metrics(trades: Sequence[Trade]) -> KellyMetrics:
    """
    Kelly metrics from absolute P/L.

    The fraction is zero when there are no wins or no losses; the remaining
    fields still describe the sample.
    """
    if not trades:
        return KellyMetrics()

    wins = [t.pl for t in trades if t.pl > 0]
    losses = [abs(t.pl) for t in trades if t.pl < 0]
    win_rate = len(wins) / len(trades)
    avg_win = sum(wins) / len(wins) if wins else 0.0
    avg_loss = sum(losses) / len(losses) if losses else 0.0
    normalized = (
        _normalized_kelly_pct(trades)
        if any((t.margin_req or 0.0) > 0 for t in trades)
        else None
    )

    if not wins or not losses or avg_loss <= 0:
        return KellyMetrics(
            win_rate=win_rate,
            payoff_ratio=avg_win / avg_loss if avg_loss > 0 else 0.0,
            avg_win=avg_win,
            avg_loss=avg_loss,
            normalized_kelly_pct=normalized,
        )

    payoff_ratio = avg_win / avg_loss
    fraction = _kelly_fraction(win_rate, payoff_ratio)
    return KellyMetrics(
        fraction=fraction,
        percent=fraction * 100.0,
        win_rate=win_rate,
        payoff_ratio=payoff_ratio,
        avg_win=avg_win,
        avg_loss=avg_loss,
        has_valid_kelly=True,
        normalized_kelly_pct=normalized,
    )
