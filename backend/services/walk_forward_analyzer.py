"""
Walk-forward optimization service.

Segments trade history into rolling in-sample/out-of-sample windows, grid
searches position-sizing parameters on each in-sample block, replays the
winning combination on the following out-of-sample block, and aggregates the
per-window results into robustness statistics.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence

from config.settings import Settings, get_settings
from config.walk_forward_config import (
    OptimizationTarget,
    PortfolioStats,
    Trade,
    WalkForwardComputation,
    WalkForwardConfig,
    WalkForwardPeriodResult,
    WalkForwardPhase,
    WalkForwardProgressEvent,
)
from engine.cancellation import CancellationToken, raise_if_cancelled
from engine.errors import ConfigurationError, WalkForwardCancelledError
from engine.parameter_grid import MAX_PARAMETER_COMBINATIONS, build_parameter_grid
from engine.risk_manager import RiskManager
from engine.scenario import ScalingBaseline, apply_scenario, build_scaling_baseline
from engine.windows import TradeTimeline, build_windows
from services.kelly import KellyMetrics, compute_kelly_metrics
from services.portfolio_stats import PortfolioStatsCalculator
from services.walk_forward_scoring import build_results

logger = logging.getLogger(__name__)

DEFAULT_MIN_IN_SAMPLE_TRADES = 10
DEFAULT_MIN_OUT_OF_SAMPLE_TRADES = 3
YIELD_EVERY = 50

ProgressCallback = Callable[[WalkForwardProgressEvent], None]


@dataclass
class _BestCombination:
    params: Dict[str, float]
    in_sample_stats: PortfolioStats
    score: float


def target_metric_value(stats: PortfolioStats, target: OptimizationTarget) -> float:
    """Scalar used for ranking; missing metrics rank as -inf."""
    value = getattr(stats, OptimizationTarget(target).value, None)
    if value is None:
        return -math.inf
    return float(value)


class WalkForwardAnalyzer:
    """Walk-forward parameter optimizer over historical trades."""

    def __init__(
        self,
        stats_calculator: Optional[PortfolioStatsCalculator] = None,
        kelly_calculator: Callable[[Sequence[Trade]], KellyMetrics] = compute_kelly_metrics,
        max_combinations: int = MAX_PARAMETER_COMBINATIONS,
        yield_every: int = YIELD_EVERY,
        default_min_in_sample_trades: int = DEFAULT_MIN_IN_SAMPLE_TRADES,
        default_min_out_of_sample_trades: int = DEFAULT_MIN_OUT_OF_SAMPLE_TRADES,
    ):
        self.stats_calculator = stats_calculator or PortfolioStatsCalculator()
        self.kelly_calculator = kelly_calculator
        self.risk_manager = RiskManager(initial_capital=self.stats_calculator.initial_capital)
        self.max_combinations = int(max_combinations)
        self.yield_every = max(1, int(yield_every))
        self.default_min_in_sample_trades = int(default_min_in_sample_trades)
        self.default_min_out_of_sample_trades = int(default_min_out_of_sample_trades)
        # input index -> open timestamp (ms); cleared at the start of every run
        self._timestamp_cache: Dict[int, int] = {}

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "WalkForwardAnalyzer":
        settings = settings or get_settings()
        return cls(
            max_combinations=settings.max_parameter_combinations,
            yield_every=settings.yield_every,
            default_min_in_sample_trades=settings.default_min_in_sample_trades,
            default_min_out_of_sample_trades=settings.default_min_out_of_sample_trades,
        )

    def analyze(
        self,
        trades: Sequence[Trade],
        config: WalkForwardConfig,
        *,
        daily_logs: Optional[Sequence[Any]] = None,
        cancellation_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> WalkForwardComputation:
        """
        Run the full walk-forward analysis synchronously.

        daily_logs is accepted for interface compatibility and not used.

        Raises:
            ConfigurationError, ParameterRangeError, CombinationCapExceededError,
            WalkForwardCancelledError. No partial result is returned on failure.
        """
        run = self._run(trades, config, cancellation_token, progress_callback)
        try:
            while True:
                next(run)
        except StopIteration as done:
            return done.value
        except WalkForwardCancelledError:
            logger.warning("Walk-forward analysis canceled; partial results discarded")
            raise

    async def analyze_async(
        self,
        trades: Sequence[Trade],
        config: WalkForwardConfig,
        *,
        daily_logs: Optional[Sequence[Any]] = None,
        cancellation_token: Optional[CancellationToken] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> WalkForwardComputation:
        """Same as analyze(), handing control back to the event loop every yield_every combinations."""
        run = self._run(trades, config, cancellation_token, progress_callback)
        try:
            while True:
                next(run)
                await asyncio.sleep(0)
        except StopIteration as done:
            return done.value
        except WalkForwardCancelledError:
            logger.warning("Walk-forward analysis canceled; partial results discarded")
            raise

    def _run(
        self,
        trades: Sequence[Trade],
        config: WalkForwardConfig,
        token: Optional[CancellationToken],
        progress_callback: Optional[ProgressCallback],
    ) -> Generator[None, None, WalkForwardComputation]:
        self._ensure_valid_config(config)
        self._timestamp_cache.clear()

        timeline = TradeTimeline(trades, self._timestamp_cache)
        started_at = datetime.now(timezone.utc)

        def _emit(**fields: Any) -> None:
            if progress_callback is None:
                return
            progress_callback(WalkForwardProgressEvent(**fields))

        if not timeline.trades:
            return self._finish(config, [], started_at, 0, 0, 0, 0)

        windows = build_windows(
            timeline.trades,
            config.in_sample_days,
            config.out_of_sample_days,
            config.step_size_days,
        )
        total_periods = len(windows)
        logger.info(
            "Walk-forward analysis started: trades=%d windows=%d target=%s",
            len(timeline),
            total_periods,
            config.optimization_target.value,
        )
        _emit(
            phase=WalkForwardPhase.SEGMENTING,
            current_period=0,
            total_periods=total_periods,
            message=f"Prepared {total_periods} optimization windows",
        )

        min_in_sample = (
            config.min_in_sample_trades
            if config.min_in_sample_trades is not None
            else self.default_min_in_sample_trades
        )
        min_out_of_sample = (
            config.min_out_of_sample_trades
            if config.min_out_of_sample_trades is not None
            else self.default_min_out_of_sample_trades
        )

        periods: List[WalkForwardPeriodResult] = []
        skipped_periods = 0
        total_parameter_tests = 0

        for index, window in enumerate(windows, start=1):
            raise_if_cancelled(token)

            in_sample_trades = timeline.filter(window.in_sample_start, window.in_sample_end)
            out_sample_trades = timeline.filter(window.out_of_sample_start, window.out_of_sample_end)
            if len(in_sample_trades) < min_in_sample or len(out_sample_trades) < min_out_of_sample:
                skipped_periods += 1
                logger.debug(
                    "Window %d/%d skipped: %d in-sample / %d out-of-sample trades (need %d / %d)",
                    index,
                    total_periods,
                    len(in_sample_trades),
                    len(out_sample_trades),
                    min_in_sample,
                    min_out_of_sample,
                )
                continue

            grid = build_parameter_grid(config.parameter_ranges, self.max_combinations)
            _emit(
                phase=WalkForwardPhase.OPTIMIZING,
                current_period=index,
                total_periods=total_periods,
                total_combinations=grid.count,
                tested_combinations=0,
                window=window,
            )

            baseline = build_scaling_baseline(in_sample_trades, self.kelly_calculator)
            in_sample_capital = self.stats_calculator.initial_capital(in_sample_trades)
            out_sample_capital = self.stats_calculator.initial_capital(out_sample_trades)

            tested = 0
            best: Optional[_BestCombination] = None
            for params in grid:
                tested += 1
                candidate = self._score_combination(
                    params,
                    in_sample_trades,
                    baseline,
                    in_sample_capital,
                    config.optimization_target,
                )
                # strict > keeps the earliest combination on ties
                if candidate is not None and (best is None or candidate.score > best.score):
                    best = candidate

                if tested % self.yield_every == 0:
                    raise_if_cancelled(token)
                    yield
                    raise_if_cancelled(token)
                    _emit(
                        phase=WalkForwardPhase.OPTIMIZING,
                        current_period=index,
                        total_periods=total_periods,
                        total_combinations=grid.count,
                        tested_combinations=tested,
                        window=window,
                    )

            total_parameter_tests += tested

            if best is None:
                skipped_periods += 1
                logger.debug(
                    "Window %d/%d skipped: no combination passed risk limits with a finite %s",
                    index,
                    total_periods,
                    config.optimization_target.value,
                )
                continue

            scaled_out_sample = apply_scenario(out_sample_trades, best.params, baseline, out_sample_capital)
            out_sample_stats = self.stats_calculator.compute_stats(scaled_out_sample)
            periods.append(
                WalkForwardPeriodResult(
                    **window.model_dump(),
                    optimal_parameters=best.params,
                    in_sample_metrics=best.in_sample_stats,
                    out_of_sample_metrics=out_sample_stats,
                    target_metric_in_sample=best.score,
                    target_metric_out_of_sample=target_metric_value(
                        out_sample_stats, config.optimization_target
                    ),
                )
            )
            _emit(
                phase=WalkForwardPhase.EVALUATING,
                current_period=index,
                total_periods=total_periods,
                tested_combinations=tested,
                total_combinations=grid.count,
                window=window,
            )

        computation = self._finish(
            config,
            periods,
            started_at,
            total_periods,
            skipped_periods,
            total_parameter_tests,
            len(timeline),
        )
        _emit(
            phase=WalkForwardPhase.COMPLETED,
            current_period=total_periods,
            total_periods=total_periods,
            message="Walk-forward analysis complete",
        )
        stats = computation.results.stats
        logger.info(
            "Walk-forward analysis complete: evaluated=%d skipped=%d parameter_tests=%d duration_ms=%d",
            stats.evaluated_periods,
            stats.skipped_periods,
            stats.total_parameter_tests,
            stats.duration_ms,
        )
        return computation

    def _score_combination(
        self,
        params: Dict[str, float],
        trades: Sequence[Trade],
        baseline: ScalingBaseline,
        initial_capital: float,
        target: OptimizationTarget,
    ) -> Optional[_BestCombination]:
        """In-sample score for one combination, or None when rejected."""
        scaled = apply_scenario(trades, params, baseline, initial_capital)
        stats = self.stats_calculator.compute_stats(scaled)
        if not self.risk_manager.is_acceptable(params, stats, scaled):
            return None
        score = target_metric_value(stats, target)
        if not math.isfinite(score):
            return None
        return _BestCombination(params=params, in_sample_stats=stats, score=score)

    def _finish(
        self,
        config: WalkForwardConfig,
        periods: List[WalkForwardPeriodResult],
        started_at: datetime,
        total_periods: int,
        skipped_periods: int,
        total_parameter_tests: int,
        analyzed_trades: int,
    ) -> WalkForwardComputation:
        completed_at = datetime.now(timezone.utc)
        results = build_results(
            periods,
            total_periods=total_periods,
            skipped_periods=skipped_periods,
            total_parameter_tests=total_parameter_tests,
            analyzed_trades=analyzed_trades,
            duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        )
        return WalkForwardComputation(
            config=config,
            results=results,
            started_at=started_at,
            completed_at=completed_at,
        )

    @staticmethod
    def _ensure_valid_config(config: WalkForwardConfig) -> None:
        if config.in_sample_days <= 0:
            raise ConfigurationError("in_sample_days must be greater than zero")
        if config.out_of_sample_days <= 0:
            raise ConfigurationError("out_of_sample_days must be greater than zero")
        if config.step_size_days <= 0:
            raise ConfigurationError("step_size_days must be greater than zero")
