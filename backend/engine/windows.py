"""
Walk-forward window segmentation and trade slicing.

Windows are built from UTC calendar days. A window's in-sample block spans
in_sample_days days starting at the cursor, the out-of-sample block follows
on the next day, and the cursor advances step_size_days per window.
"""
from __future__ import annotations

from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Sequence

from config.walk_forward_config import Trade, WalkForwardWindow

DAY_MS = 24 * 60 * 60 * 1000


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return int(round(to_utc(value).timestamp() * 1000))


def floor_to_utc_date(value: datetime) -> datetime:
    utc = to_utc(value)
    return datetime(utc.year, utc.month, utc.day, tzinfo=timezone.utc)


class TradeTimeline:
    """
    Trades sorted by open timestamp with a parallel timestamp column.

    Timestamps are memoized in a cache keyed by the trade's position in the
    caller's input list, so parsing happens once per trade per run.
    """

    def __init__(self, trades: Sequence[Trade], timestamp_cache: Dict[int, int]):
        for index, trade in enumerate(trades):
            if index not in timestamp_cache:
                timestamp_cache[index] = to_epoch_ms(trade.date_opened)
        order = sorted(
            range(len(trades)),
            key=lambda idx: (timestamp_cache[idx], trades[idx].time_opened or ""),
        )
        self.trades: List[Trade] = [trades[idx] for idx in order]
        self.timestamps: List[int] = [timestamp_cache[idx] for idx in order]

    def __len__(self) -> int:
        return len(self.trades)

    def filter(self, start: datetime, end: datetime) -> List[Trade]:
        """Trades opened in [start, end + 1 day - 1 ms]."""
        start_ms = to_epoch_ms(start)
        end_ms = to_epoch_ms(end) + DAY_MS - 1
        lo = bisect_left(self.timestamps, start_ms)
        hi = bisect_right(self.timestamps, end_ms)
        return self.trades[lo:hi]


def build_windows(
    trades: Sequence[Trade],
    in_sample_days: int,
    out_of_sample_days: int,
    step_size_days: int,
) -> List[WalkForwardWindow]:
    """
    Build rolling windows over chronologically sorted trades.

    Enumeration stops at the first window whose out-of-sample start falls
    after the last trade's open date.
    """
    if not trades:
        return []

    first_date = floor_to_utc_date(trades[0].date_opened)
    last_date = floor_to_utc_date(trades[-1].date_opened)
    windows: List[WalkForwardWindow] = []

    cursor = first_date
    while cursor < last_date:
        in_sample_end = cursor + timedelta(days=in_sample_days - 1)
        out_of_sample_start = in_sample_end + timedelta(days=1)
        out_of_sample_end = out_of_sample_start + timedelta(days=out_of_sample_days - 1)

        if out_of_sample_start > last_date:
            break

        windows.append(
            WalkForwardWindow(
                in_sample_start=cursor,
                in_sample_end=in_sample_end,
                out_of_sample_start=out_of_sample_start,
                out_of_sample_end=out_of_sample_end,
            )
        )
        cursor += timedelta(days=step_size_days)

    return windows
