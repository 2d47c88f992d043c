# chartlab/backtest/metrics.py
"""Performance analyzer.

Conventions, pinned by golden-value tests:
  * per-bar simple returns of the mark-to-market equity curve
  * population standard deviation (ddof=0), zero risk-free rate
  * annualization by sqrt(252)
  * every ratio has a finite fallback; nothing returns NaN or Infinity
"""
from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from chartlab.backtest.models import (
    PROFIT_FACTOR_CAP,
    RATIO_CAP,
    BacktestConfig,
    DrawdownPoint,
    EquityPoint,
    MonthlyReturn,
    PerformanceMetrics,
    Trade,
    YearlyReturn,
)
from chartlab.core.timeutils import MS_PER_DAY, days_between

TRADING_DAYS = 252
# relative tolerance under which a return stddev counts as zero
_STD_EPS = 1e-12


# -------- Internals --------
def _values(curve: Sequence[EquityPoint]) -> np.ndarray:
    return np.fromiter((p.value for p in curve), dtype=float, count=len(curve))


def _to_returns(curve: Sequence[EquityPoint]) -> np.ndarray:
    values = _values(curve)
    if values.size < 2:
        return np.zeros(0)
    prev = values[:-1]
    with np.errstate(divide="ignore", invalid="ignore"):
        rets = np.where(prev > 0, values[1:] / prev - 1.0, 0.0)
    return np.nan_to_num(rets, nan=0.0, posinf=0.0, neginf=0.0)


def _finite(x: float) -> float:
    return float(x) if math.isfinite(x) else 0.0


# -------- Returns --------
def total_return(curve: Sequence[EquityPoint]) -> float:
    if len(curve) < 1 or curve[0].value <= 0:
        return 0.0
    return (curve[-1].value / curve[0].value - 1.0) * 100.0


def annualized_return(curve: Sequence[EquityPoint]) -> float:
    """Compound over elapsed calendar days; 0 when under one day has elapsed."""
    if len(curve) < 2:
        return 0.0
    days = days_between(curve[0].time, curve[-1].time)
    if days < 1:
        return 0.0
    growth = 1.0 + total_return(curve) / 100.0
    if growth <= 0:
        return -100.0
    return _finite((growth ** (365.0 / days) - 1.0) * 100.0)


# -------- Drawdown --------
def drawdown_curve(curve: Sequence[EquityPoint]) -> Tuple[DrawdownPoint, ...]:
    """Percent below the running peak at every bar (always <= 0)."""
    if not curve:
        return tuple()
    values = _values(curve)
    peaks = np.maximum.accumulate(values)
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peaks > 0, (values - peaks) / peaks * 100.0, 0.0)
    dd = np.minimum(dd, 0.0)
    return tuple(
        DrawdownPoint(time=p.time, value=float(v) if v < 0 else 0.0)
        for p, v in zip(curve, dd)
    )


def max_drawdown(dd_curve: Sequence[DrawdownPoint]) -> float:
    """Largest drawdown as a positive percentage (0 when never below peak)."""
    if not dd_curve:
        return 0.0
    worst = min(p.value for p in dd_curve)
    return -worst if worst < 0 else 0.0


def max_drawdown_duration(dd_curve: Sequence[DrawdownPoint]) -> Tuple[int, int]:
    """
    Longest contiguous underwater run as ``(days, bars)``.

    Days run from the bar that set the peak to the last underwater bar of the
    run, rounded up; the first bar is never underwater so a peak bar exists.
    """
    best_bars = 0
    best_days = 0
    run_start: int | None = None
    for i, point in enumerate(dd_curve):
        if point.value < 0:
            if run_start is None:
                run_start = i
            bars = i - run_start + 1
            peak_idx = run_start - 1 if run_start > 0 else run_start
            peak_time = dd_curve[peak_idx].time
            days = int(math.ceil((point.time - peak_time) / MS_PER_DAY))
            if bars > best_bars:
                best_bars = bars
            if days > best_days:
                best_days = days
        else:
            run_start = None
    return best_days, best_bars


# -------- Risk ratios --------
def _negligible(std: float, mean: float) -> bool:
    """True when ``std`` is zero up to float noise relative to ``mean``."""
    return not math.isfinite(std) or std <= _STD_EPS * max(1.0, abs(mean))


def sharpe_ratio(curve: Sequence[EquityPoint], periods_per_year: int = TRADING_DAYS) -> float:
    rets = _to_returns(curve)
    if rets.size == 0:
        return 0.0
    mean = float(rets.mean())
    std = float(rets.std(ddof=0))
    if _negligible(std, mean):
        return 0.0
    return _finite(mean / std * math.sqrt(periods_per_year))


def sortino_ratio(curve: Sequence[EquityPoint], periods_per_year: int = TRADING_DAYS) -> float:
    """Same numerator as Sharpe over the population stddev of negative returns."""
    rets = _to_returns(curve)
    neg = rets[rets < 0]
    if neg.size == 0:
        return 0.0
    downside = float(neg.std(ddof=0))
    if _negligible(downside, float(neg.mean())):
        return 0.0
    return _finite(float(rets.mean()) / downside * math.sqrt(periods_per_year))


def volatility(curve: Sequence[EquityPoint], periods_per_year: int = TRADING_DAYS) -> float:
    rets = _to_returns(curve)
    if rets.size == 0:
        return 0.0
    std = float(rets.std(ddof=0))
    if _negligible(std, float(rets.mean())):
        return 0.0
    return _finite(std * math.sqrt(periods_per_year) * 100.0)


def downside_volatility(
    curve: Sequence[EquityPoint], periods_per_year: int = TRADING_DAYS
) -> float:
    """Annualized semi-deviation below zero (%); 0 with fewer than two negative returns."""
    rets = _to_returns(curve)
    neg = rets[rets < 0]
    if neg.size < 2:
        return 0.0
    return _finite(math.sqrt(float(np.mean(neg**2))) * math.sqrt(periods_per_year) * 100.0)


def omega_ratio(curve: Sequence[EquityPoint], threshold: float = 0.0) -> float:
    """
    Sum of per-bar gains above ``threshold`` over the sum of shortfalls at or below it.

    RATIO_CAP when there are gains and no shortfalls; 0 when there are neither.
    """
    rets = _to_returns(curve)
    gains = float(np.sum(rets[rets > threshold] - threshold))
    losses = float(np.sum(threshold - rets[rets <= threshold]))
    if losses <= 0:
        return RATIO_CAP if gains > 0 else 0.0
    return _finite(min(RATIO_CAP, gains / losses))


# -------- Trades --------
def _is_win(trade: Trade) -> bool:
    return (trade.return_pct or 0.0) > 0


def _streaks(closed: Sequence[Trade]) -> Tuple[int, int]:
    max_wins = max_losses = wins = losses = 0
    for trade in closed:
        if _is_win(trade):
            wins += 1
            losses = 0
            max_wins = max(max_wins, wins)
        else:
            losses += 1
            wins = 0
            max_losses = max(max_losses, losses)
    return max_wins, max_losses


def profit_factor(closed: Sequence[Trade]) -> float:
    """Gross profit over gross loss; PROFIT_FACTOR_CAP with no losses, 0 with no winners."""
    gross_profit = sum(t.pnl or 0.0 for t in closed if (t.pnl or 0.0) > 0)
    gross_loss = abs(sum(t.pnl or 0.0 for t in closed if (t.pnl or 0.0) < 0))
    if gross_profit <= 0:
        return 0.0
    if gross_loss == 0:
        return PROFIT_FACTOR_CAP
    return min(PROFIT_FACTOR_CAP, gross_profit / gross_loss)


def risk_reward_ratio(closed: Sequence[Trade]) -> float:
    """
    Mean winning return over the magnitude of the mean losing return.

    Only strictly negative trades count as losses here; 0 without both sides.
    """
    wins = [t.return_pct for t in closed if (t.return_pct or 0.0) > 0]
    losses = [t.return_pct for t in closed if (t.return_pct or 0.0) < 0]
    if not wins or not losses:
        return 0.0
    avg_loss = abs(float(np.mean(losses)))
    if avg_loss == 0:
        return 0.0
    return _finite(min(RATIO_CAP, float(np.mean(wins)) / avg_loss))


def _period_returns(
    curve: Sequence[EquityPoint], initial_capital: float, key_format: str
) -> List[Tuple[str, float]]:
    """``(key, pct)`` per UTC calendar period, chained from ``initial_capital``."""
    if not curve:
        return []
    times = np.fromiter((p.time for p in curve), dtype=np.int64, count=len(curve))
    s = pd.Series(_values(curve), index=pd.to_datetime(times, unit="ms", utc=True))
    period_end = s.groupby(s.index.strftime(key_format)).last()

    out: List[Tuple[str, float]] = []
    baseline = float(initial_capital)
    for key, value in period_end.items():
        ret = (float(value) / baseline - 1.0) * 100.0 if baseline > 0 else 0.0
        out.append((str(key), _finite(ret)))
        baseline = float(value)
    return out


def monthly_returns(
    curve: Sequence[EquityPoint], initial_capital: float
) -> Tuple[MonthlyReturn, ...]:
    """
    Month-end equity relative to the previous month-end (UTC calendar months).

    The first month is measured against ``initial_capital``.
    """
    return tuple(
        MonthlyReturn(month=key, return_pct=pct)
        for key, pct in _period_returns(curve, initial_capital, "%Y-%m")
    )


def yearly_returns(
    curve: Sequence[EquityPoint], initial_capital: float
) -> Tuple[YearlyReturn, ...]:
    """Year-end equity relative to the previous year-end, same chaining as monthly."""
    return tuple(
        YearlyReturn(year=int(key), return_pct=pct)
        for key, pct in _period_returns(curve, initial_capital, "%Y")
    )


# -------- Public API --------
def analyze(
    equity_curve: Sequence[EquityPoint],
    trades: Sequence[Trade],
    config: BacktestConfig,
    *,
    periods_per_year: int = TRADING_DAYS,
) -> Tuple[PerformanceMetrics, Tuple[DrawdownPoint, ...], Tuple[MonthlyReturn, ...]]:
    """
    Compute the metrics report for one run.

    Only closed trades feed trade statistics; open trades are counted but
    otherwise ignored.
    """
    closed = [t for t in trades if t.status == "closed"]
    winners = [t for t in closed if _is_win(t)]
    losers = [t for t in closed if not _is_win(t)]

    dd = drawdown_curve(equity_curve)
    mdd = max_drawdown(dd)
    dd_days, dd_bars = max_drawdown_duration(dd)
    ann = annualized_return(equity_curve)

    n = len(closed)
    win_rate = len(winners) / n * 100.0 if n else 0.0
    avg_win = float(np.mean([t.return_pct for t in winners])) if winners else 0.0
    avg_loss = float(np.mean([t.return_pct for t in losers])) if losers else 0.0
    expectancy = (
        win_rate / 100.0 * avg_win + (1.0 - win_rate / 100.0) * avg_loss if n else 0.0
    )
    holding = [t.holding_days for t in closed if t.holding_days is not None]
    max_wins, max_losses = _streaks(closed)

    if len(equity_curve) < 30:
        logger.debug(
            "[metrics] short series (n={}); ratios may be unstable", len(equity_curve)
        )

    metrics = PerformanceMetrics(
        total_return=_finite(total_return(equity_curve)),
        annualized_return=ann,
        volatility=volatility(equity_curve, periods_per_year),
        max_drawdown=mdd,
        max_drawdown_duration=dd_days,
        max_drawdown_bars=dd_bars,
        sharpe_ratio=sharpe_ratio(equity_curve, periods_per_year),
        sortino_ratio=sortino_ratio(equity_curve, periods_per_year),
        calmar_ratio=_finite(ann / mdd) if mdd > 0 else 0.0,
        omega_ratio=omega_ratio(equity_curve),
        downside_volatility=downside_volatility(equity_curve, periods_per_year),
        total_trades=n,
        open_trades=sum(1 for t in trades if t.status == "open"),
        winning_trades=len(winners),
        losing_trades=len(losers),
        win_rate=win_rate,
        avg_win_pct=avg_win,
        avg_loss_pct=avg_loss,
        profit_factor=profit_factor(closed),
        risk_reward_ratio=risk_reward_ratio(closed),
        expectancy=expectancy,
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
        avg_holding_days=float(np.mean(holding)) if holding else 0.0,
        final_equity=(
            float(equity_curve[-1].value) if equity_curve else float(config.initial_capital)
        ),
    )
    logger.debug("[metrics] summary built: equity & trades")
    return metrics, dd, monthly_returns(equity_curve, config.initial_capital)


__all__ = [
    "TRADING_DAYS",
    "analyze",
    "total_return",
    "annualized_return",
    "drawdown_curve",
    "max_drawdown",
    "max_drawdown_duration",
    "sharpe_ratio",
    "sortino_ratio",
    "volatility",
    "downside_volatility",
    "omega_ratio",
    "profit_factor",
    "risk_reward_ratio",
    "monthly_returns",
    "yearly_returns",
]
