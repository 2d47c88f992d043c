from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from chartlab.core.exceptions import DataValidationError
from chartlab.core.timeutils import ms_to_datetime

OHLCV_COLUMNS = ("open", "high", "low", "close", "volume")


@dataclass(frozen=True, slots=True)
class Bar:
    """One daily OHLCV sample; ``time`` is epoch milliseconds (UTC)."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Bar":
        return cls(
            time=int(raw["time"]),
            open=float(raw["open"]),
            high=float(raw["high"]),
            low=float(raw["low"]),
            close=float(raw["close"]),
            volume=float(raw.get("volume", 0.0) or 0.0),
        )

    def as_dict(self) -> dict:
        return {
            "time": self.time,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """
    Convert bars to a float DataFrame indexed by UTC timestamp.

    Columns: open, high, low, close, volume, plus the raw ``time`` (epoch ms).
    """
    if not bars:
        return pd.DataFrame(columns=["time", *OHLCV_COLUMNS])
    times = np.fromiter((b.time for b in bars), dtype=np.int64, count=len(bars))
    frame = pd.DataFrame(
        {
            "time": times,
            "open": [b.open for b in bars],
            "high": [b.high for b in bars],
            "low": [b.low for b in bars],
            "close": [b.close for b in bars],
            "volume": [b.volume for b in bars],
        },
        index=pd.to_datetime(times, unit="ms", utc=True),
    )
    return frame.astype({c: float for c in OHLCV_COLUMNS})


def validate_bars(bars: Iterable[Bar]) -> None:
    """Raise DataValidationError unless bar times are strictly ascending."""
    prev: int | None = None
    for i, bar in enumerate(bars):
        if prev is not None and bar.time <= prev:
            raise DataValidationError(
                f"bars must be strictly time-ordered: index {i} "
                f"({ms_to_datetime(bar.time).date()}) does not follow previous bar"
            )
        prev = bar.time


__all__ = ["Bar", "OHLCV_COLUMNS", "bars_to_frame", "validate_bars"]
