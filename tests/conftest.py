from __future__ import annotations

import os
import warnings
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Sequence

import numpy as np
import pytest
from dotenv import load_dotenv

from chartlab.backtest.models import BacktestConfig
from chartlab.core.models import Bar
from chartlab.core.timeutils import ms_to_datetime
from chartlab.logging_utils import setup_test_logging

warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    module=r"sentry_sdk\.integrations\.fastapi",
)

os.environ.setdefault("ENV", "test")

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def load_env():
    load_dotenv(override=False)


@pytest.fixture(scope="session", autouse=True)
def configure_logging():
    setup_test_logging(Path("chartlab-logs/"))
    yield


def build_bars(
    closes: Sequence[float],
    *,
    start: datetime = EPOCH,
    step_days: int = 1,
    spread: float = 0.0,
    volumes: Sequence[float] | None = None,
) -> List[Bar]:
    bars = []
    for i, close in enumerate(closes):
        ts = start + timedelta(days=i * step_days)
        bars.append(
            Bar(
                time=int(ts.timestamp() * 1000),
                open=float(close),
                high=float(close) + spread,
                low=float(close) - spread,
                close=float(close),
                volume=float(volumes[i]) if volumes is not None else 1_000.0,
            )
        )
    return bars


@pytest.fixture(scope="session")
def make_bars() -> Callable[..., List[Bar]]:
    return build_bars


@pytest.fixture(scope="session")
def make_config() -> Callable[..., BacktestConfig]:
    def _make(bars: Sequence[Bar], **overrides) -> BacktestConfig:
        kwargs = dict(
            symbol="TEST",
            start_date=ms_to_datetime(bars[0].time),
            end_date=ms_to_datetime(bars[-1].time),
        )
        kwargs.update(overrides)
        return BacktestConfig(**kwargs)

    return _make


@pytest.fixture(scope="module")
def rising_bars() -> List[Bar]:
    """
    60 bars: a 20-bar slide (120 down to 101) then 40 strictly rising closes.

    SMA(5) sits below SMA(20) after the slide and crosses above it once, at
    index 25, on the rising leg.
    """
    return build_bars([120.0 - i for i in range(20)] + [102.0 + 2 * i for i in range(40)])


@pytest.fixture(scope="module")
def flat_bars() -> List[Bar]:
    """100 bars with no price movement at all."""
    return build_bars([100.0] * 100)


@pytest.fixture(scope="module")
def toy_bars() -> List[Bar]:
    """
    Deterministic series with three regimes so crossovers happen both ways:
    - slow drift
    - strong momentum
    - a fade
    """
    rng = np.random.default_rng(seed=42)
    n = 300
    drift = np.r_[np.full(100, 0.0002), np.full(100, 0.004), np.full(100, -0.003)]
    noise = rng.normal(0.0, 0.012, n)
    close = 100.0 * np.cumprod(1 + drift + noise)
    volumes = rng.integers(1_000_000, 5_000_000, n)
    return build_bars(close.tolist(), spread=0.5, volumes=volumes.tolist())
