"""
Backtest orchestrator.

``run(bars, strategy, config)`` validates the rule tree, builds one indicator
snapshot over every bar (lookback included), generates signals only inside the
configured date window, replays them through the simulator and hands the ledger
and equity curve to the analyzer. The call is pure: no I/O, no global state.
"""

from __future__ import annotations

import bisect
import time
from typing import Sequence, Tuple

from loguru import logger

from chartlab.backtest.metrics import analyze, yearly_returns
from chartlab.backtest.models import BacktestConfig, BacktestResult
from chartlab.backtest.simulator import simulate
from chartlab.core.exceptions import DataValidationError
from chartlab.core.models import Bar, validate_bars
from chartlab.logging_utils import logging_context
from chartlab.signals.conditions import IndicatorSnapshot
from chartlab.signals.engine import generate_signals
from chartlab.signals.rules import validate_strategy
from chartlab.signals.types import Strategy


def window_indices(bars: Sequence[Bar], config: BacktestConfig) -> Tuple[int, int]:
    """
    Inclusive ``(first, last)`` bar indices inside the config date window.

    ``first > last`` when no bar falls inside the window.
    """
    times = [b.time for b in bars]
    first = bisect.bisect_left(times, config.start_ms)
    last = bisect.bisect_right(times, config.end_ms) - 1
    return first, last


def ensure_backtestable(
    bars: Sequence[Bar], config: BacktestConfig, min_bars: int = 30
) -> None:
    """Caller-side precondition: ordered bars and at least ``min_bars`` in the window."""
    validate_bars(bars)
    first, last = window_indices(bars, config)
    usable = max(0, last - first + 1)
    if usable < min_bars:
        raise DataValidationError(
            f"insufficient data for {config.symbol}: {usable} bars in "
            f"[{config.start_date.date()}, {config.end_date.date()}], need {min_bars}"
        )


def run(
    bars: Sequence[Bar],
    strategy: Strategy,
    config: BacktestConfig,
) -> BacktestResult:
    """
    Run one backtest.

    Raises:
        ConditionError: The strategy's rule tree is malformed. Raised before
            any simulation work happens.
    """
    validate_strategy(strategy)
    with logging_context(symbol=config.symbol, strategy=strategy.id):
        return _run(bars, strategy, config)


def _run(
    bars: Sequence[Bar],
    strategy: Strategy,
    config: BacktestConfig,
) -> BacktestResult:
    t0 = time.perf_counter()

    snapshot = IndicatorSnapshot(bars)
    first, last = window_indices(bars, config)
    logger.debug(
        "[backtest] symbol={} bars_total={} window=[{}, {}]",
        config.symbol,
        len(bars),
        first,
        last,
    )

    signals = generate_signals(
        strategy, bars, start_index=first, end_index=last, snapshot=snapshot
    )
    sim = simulate(signals.signals, bars, config)
    metrics, drawdown, monthly = analyze(sim.equity_curve, sim.trades, config)

    result = BacktestResult(
        config=config,
        strategy_id=strategy.id,
        strategy_name=strategy.name,
        metrics=metrics,
        trades=sim.trades,
        equity_curve=sim.equity_curve,
        drawdown_curve=drawdown,
        monthly_returns=monthly,
        yearly_returns=yearly_returns(sim.equity_curve, config.initial_capital),
    )
    logger.info(
        "[backtest] done symbol={} strategy={} bars={} trades={} open={} "
        "total_return={:.2f}% mdd={:.2f}% sharpe={:.2f} elapsed_ms={:.1f} cached_series={}",
        config.symbol,
        strategy.id,
        len(sim.equity_curve),
        metrics.total_trades,
        metrics.open_trades,
        metrics.total_return,
        metrics.max_drawdown,
        metrics.sharpe_ratio,
        (time.perf_counter() - t0) * 1000.0,
        snapshot.cache_size,
    )
    return result


__all__ = ["run", "ensure_backtestable", "window_indices"]
