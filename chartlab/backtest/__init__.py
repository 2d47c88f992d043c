"""Trade simulation, performance analysis and the backtest orchestrator."""
from __future__ import annotations

from chartlab.backtest.engine import ensure_backtestable, run
from chartlab.backtest.markers import trades_to_markers
from chartlab.backtest.metrics import analyze
from chartlab.backtest.models import (
    PROFIT_FACTOR_CAP,
    BacktestConfig,
    BacktestResult,
    DrawdownPoint,
    EquityPoint,
    MonthlyReturn,
    PerformanceMetrics,
    Trade,
    YearlyReturn,
)
from chartlab.backtest.simulator import simulate

__all__ = [
    "PROFIT_FACTOR_CAP",
    "BacktestConfig",
    "BacktestResult",
    "DrawdownPoint",
    "EquityPoint",
    "MonthlyReturn",
    "PerformanceMetrics",
    "Trade",
    "YearlyReturn",
    "analyze",
    "ensure_backtestable",
    "run",
    "simulate",
    "trades_to_markers",
]
