"""
Feature engineering: technical indicators.

Every function takes full-length input series and returns output aligned 1:1
with the input. Indices that do not yet have enough history hold ``NaN``.
Windows are strictly causal: a value at index ``t`` only reads indices ``<= t``.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd
from loguru import logger

ArrayLike = pd.Series | np.ndarray | Sequence[float]

# %K when the high/low range over the window is zero.
STOCHASTIC_FLAT_VALUE = 50.0


def _as_series(values: ArrayLike) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(values, dtype=float))


def _check_period(name: str, period: int) -> int:
    period = int(period)
    if period <= 0:
        raise ValueError(f"{name} must be a positive integer (got {period})")
    return period


def _recursive_smooth(values: np.ndarray, period: int, alpha: float) -> np.ndarray:
    """
    Exponential smoothing seeded by the SMA of the first ``period`` valid values.

    Leading NaNs are skipped, so the same helper serves prices (EMA), the MACD
    line (signal EMA), gains/losses and true range (Wilder, ``alpha=1/period``).
    """
    out = np.full(values.shape[0], np.nan)
    valid = np.flatnonzero(~np.isnan(values))
    if valid.size == 0:
        return out
    first = int(valid[0])
    seed_at = first + period - 1
    if seed_at >= values.shape[0]:
        return out
    prev = float(np.mean(values[first : seed_at + 1]))
    out[seed_at] = prev
    for i in range(seed_at + 1, values.shape[0]):
        prev = values[i] * alpha + prev * (1.0 - alpha)
        out[i] = prev
    return out


def sma(series: ArrayLike, period: int = 20) -> pd.Series:
    """Simple moving average; NaN for indices ``< period - 1``."""
    period = _check_period("period", period)
    s = _as_series(series)
    return s.rolling(window=period, min_periods=period).mean()


def ema(series: ArrayLike, period: int = 20) -> pd.Series:
    """
    Exponential moving average with ``k = 2 / (period + 1)``.

    Seeded by SMA(period) at the first index with a full window.
    """
    period = _check_period("period", period)
    s = _as_series(series)
    out = _recursive_smooth(s.to_numpy(), period, 2.0 / (period + 1.0))
    return pd.Series(out, index=s.index)


def rsi(series: ArrayLike, period: int = 14) -> pd.Series:
    """
    Compute Relative Strength Index (RSI) with Wilder smoothing.

    Parameters
    ----------
    series : array-like
        Closing prices.
    period : int, default 14
        Lookback period. The first value appears at index ``period``.

    Returns
    -------
    pd.Series
        RSI values scaled 0–100; 100 when the average loss is zero.
    """
    period = _check_period("period", period)
    s = _as_series(series)
    if len(s) <= period:
        logger.debug("RSI input too short (len={} <= period={})", len(s), period)
        return pd.Series(np.nan, index=s.index)

    delta = s.diff().to_numpy()
    gains = np.where(delta > 0, delta, 0.0)
    losses = np.where(delta < 0, -delta, 0.0)
    gains[0] = np.nan
    losses[0] = np.nan

    avg_gain = _recursive_smooth(gains, period, 1.0 / period)
    avg_loss = _recursive_smooth(losses, period, 1.0 / period)

    with np.errstate(divide="ignore", invalid="ignore"):
        rs = avg_gain / avg_loss
        out = 100.0 - 100.0 / (1.0 + rs)
    out = np.where(avg_loss == 0.0, 100.0, out)
    out = np.where(np.isnan(avg_loss), np.nan, out)
    return pd.Series(out, index=s.index)


def macd(
    series: ArrayLike, fast: int = 12, slow: int = 26, signal: int = 9
) -> pd.DataFrame:
    """MACD line, signal line and histogram as columns ``macd``/``signal``/``histogram``."""
    fast = _check_period("fast", fast)
    slow = _check_period("slow", slow)
    signal = _check_period("signal", signal)
    s = _as_series(series)
    line = ema(s, fast) - ema(s, slow)
    signal_line = pd.Series(
        _recursive_smooth(line.to_numpy(), signal, 2.0 / (signal + 1.0)),
        index=s.index,
    )
    return pd.DataFrame(
        {"macd": line, "signal": signal_line, "histogram": line - signal_line},
        index=s.index,
    )


def bollinger_bands(
    series: ArrayLike, period: int = 20, std_dev: float = 2.0
) -> pd.DataFrame:
    """Middle = SMA(period); upper/lower = middle ± std_dev · population stddev."""
    period = _check_period("period", period)
    s = _as_series(series)
    middle = s.rolling(window=period, min_periods=period).mean()
    width = s.rolling(window=period, min_periods=period).std(ddof=0) * float(std_dev)
    return pd.DataFrame(
        {"upper": middle + width, "middle": middle, "lower": middle - width},
        index=s.index,
    )


def stochastic(
    high: ArrayLike,
    low: ArrayLike,
    close: ArrayLike,
    k_period: int = 14,
    d_period: int = 3,
) -> pd.DataFrame:
    """
    Stochastic oscillator: columns ``k`` (%K) and ``d`` (SMA of %K).

    A flat window (highest high == lowest low) yields ``STOCHASTIC_FLAT_VALUE``.
    """
    k_period = _check_period("k_period", k_period)
    d_period = _check_period("d_period", d_period)
    c = _as_series(close)
    h = _as_series(high).set_axis(c.index)
    lo = _as_series(low).set_axis(c.index)

    highest = h.rolling(window=k_period, min_periods=k_period).max()
    lowest = lo.rolling(window=k_period, min_periods=k_period).min()
    span = highest - lowest
    with np.errstate(divide="ignore", invalid="ignore"):
        k = 100.0 * (c - lowest) / span
    k = k.where(span != 0, STOCHASTIC_FLAT_VALUE).where(span.notna())
    d = k.rolling(window=d_period, min_periods=d_period).mean()
    return pd.DataFrame({"k": k, "d": d}, index=c.index)


def atr(high: ArrayLike, low: ArrayLike, close: ArrayLike, period: int = 14) -> pd.Series:
    """
    Average True Range with Wilder smoothing.

    TR[0] is ``high - low``; the first ATR (index ``period - 1``) is the mean TR.
    """
    period = _check_period("period", period)
    c = _as_series(close)
    h = _as_series(high).to_numpy()
    lo = _as_series(low).to_numpy()
    prev_close = c.shift(1).to_numpy()
    tr = np.maximum.reduce(
        [h - lo, np.abs(h - prev_close), np.abs(lo - prev_close)]
    )
    tr[0] = h[0] - lo[0]
    return pd.Series(_recursive_smooth(tr, period, 1.0 / period), index=c.index)


def obv(close: ArrayLike, volume: ArrayLike) -> pd.Series:
    """On-balance volume, starting at 0 on the first bar."""
    c = _as_series(close)
    v = _as_series(volume).to_numpy()
    direction = np.sign(c.diff().fillna(0.0).to_numpy())
    return pd.Series(np.cumsum(direction * v), index=c.index)


__all__ = [
    "STOCHASTIC_FLAT_VALUE",
    "sma",
    "ema",
    "rsi",
    "macd",
    "bollinger_bands",
    "stochastic",
    "atr",
    "obv",
]
