"""Condition evaluator.

``evaluate(condition, snapshot, index)`` interprets a rule tree at one bar. Any
comparison that touches an undefined (warm-up) value is false, never true.
"""

from __future__ import annotations

import math
from typing import Dict, Mapping, Sequence, Tuple

import numpy as np

from chartlab.core.exceptions import ConditionError
from chartlab.core.models import OHLCV_COLUMNS, Bar, bars_to_frame
from chartlab.features import indicators as ind
from chartlab.signals.rules import (
    format_indicator,
    merge_params,
    params_key,
    resolve_special_value,
)
from chartlab.signals.types import (
    AndCondition,
    Condition,
    CrossoverCondition,
    OrCondition,
    SingleCondition,
)

EQ_REL_TOL = 1e-9
EQ_ABS_TOL = 1e-12


class IndicatorSnapshot:
    """
    Indicator series over one OHLCV window, memoized per ``(indicator, params)``.

    One snapshot belongs to one run; identical references in the buy and sell
    trees share a single computed series.
    """

    def __init__(self, bars: Sequence[Bar]) -> None:
        frame = bars_to_frame(bars)
        self._times = frame["time"].to_numpy(dtype=np.int64)
        self._ohlcv = {c: frame[c].to_numpy(dtype=float) for c in OHLCV_COLUMNS}
        self._cache: Dict[Tuple[str, Tuple], np.ndarray] = {}

    def __len__(self) -> int:
        return int(self._times.shape[0])

    @property
    def times(self) -> np.ndarray:
        return self._times

    @property
    def close(self) -> np.ndarray:
        return self._ohlcv["close"]

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def series(self, indicator: str, params: Mapping[str, float] | None = None) -> np.ndarray:
        key = params_key(indicator, params)
        cached = self._cache.get(key)
        if cached is None:
            cached = self._compute(indicator, merge_params(indicator, params))
            self._cache[key] = cached
        return cached

    def value(
        self, indicator: str, params: Mapping[str, float] | None, index: int
    ) -> float:
        if index < 0 or index >= len(self):
            return math.nan
        return float(self.series(indicator, params)[index])

    def _compute(self, indicator: str, p: Mapping[str, float]) -> np.ndarray:
        o = self._ohlcv
        if indicator == "price":
            return o["close"]
        if indicator in ("open", "high", "low", "volume"):
            return o[indicator]
        if indicator == "volume_ma":
            return ind.sma(o["volume"], p["period"]).to_numpy()
        if indicator == "sma":
            return ind.sma(o["close"], p["period"]).to_numpy()
        if indicator == "ema":
            return ind.ema(o["close"], p["period"]).to_numpy()
        if indicator == "rsi":
            return ind.rsi(o["close"], p["period"]).to_numpy()
        if indicator in ("macd", "macd_signal", "macd_histogram"):
            frame = ind.macd(o["close"], p["fast"], p["slow"], p["signal"])
            column = {"macd": "macd", "macd_signal": "signal", "macd_histogram": "histogram"}
            return frame[column[indicator]].to_numpy()
        if indicator in ("stochastic_k", "stochastic_d"):
            frame = ind.stochastic(
                o["high"], o["low"], o["close"], p["k_period"], p["d_period"]
            )
            return frame["k" if indicator == "stochastic_k" else "d"].to_numpy()
        if indicator.startswith("bollinger_"):
            frame = ind.bollinger_bands(o["close"], p["period"], p["std_dev"])
            return frame[indicator.split("_", 1)[1]].to_numpy()
        if indicator == "atr":
            return ind.atr(o["high"], o["low"], o["close"], p["period"]).to_numpy()
        if indicator == "obv":
            return ind.obv(o["close"], o["volume"]).to_numpy()
        raise ConditionError("condition", f"unknown indicator '{indicator}'")


def compare(left: float, operator: str, right: float) -> bool:
    """Apply a comparison operator; NaN on either side is false."""
    if math.isnan(left) or math.isnan(right):
        return False
    if operator == "gt":
        return left > right
    if operator == "gte":
        return left >= right
    if operator == "lt":
        return left < right
    if operator == "lte":
        return left <= right
    if operator == "eq":
        return math.isclose(left, right, rel_tol=EQ_REL_TOL, abs_tol=EQ_ABS_TOL)
    raise ConditionError("condition", f"unknown operator '{operator}'")


def _target_value(condition: SingleCondition, snapshot: IndicatorSnapshot, index: int) -> float:
    if condition.special_value is not None:
        resolved = resolve_special_value(condition)
        if isinstance(resolved, tuple):
            return snapshot.value(resolved[0], resolved[1], index)
        return resolved
    if condition.compare_indicator is not None:
        params = (
            condition.compare_params
            if condition.compare_params is not None
            else condition.params
        )
        return snapshot.value(condition.compare_indicator, params, index)
    if condition.value is None:
        raise ConditionError("condition", "single condition has no comparison target")
    return float(condition.value)


def _crossed(condition: CrossoverCondition, snapshot: IndicatorSnapshot, index: int) -> bool:
    if index < 1:
        return False
    a = snapshot.series(condition.indicator_a, condition.params_a)
    b = snapshot.series(condition.indicator_b, condition.params_b)
    a_prev, a_now = float(a[index - 1]), float(a[index])
    b_prev, b_now = float(b[index - 1]), float(b[index])
    if any(math.isnan(v) for v in (a_prev, a_now, b_prev, b_now)):
        return False
    if condition.direction == "cross_above":
        return a_prev <= b_prev and a_now > b_now
    if condition.direction == "cross_below":
        return a_prev >= b_prev and a_now < b_now
    raise ConditionError("condition", f"unknown direction '{condition.direction}'")


def evaluate(condition: Condition, snapshot: IndicatorSnapshot, index: int) -> bool:
    """Evaluate ``condition`` at bar ``index``; AND/OR short-circuit left to right."""
    if isinstance(condition, SingleCondition):
        left = snapshot.value(condition.indicator, condition.params, index)
        return compare(left, condition.operator, _target_value(condition, snapshot, index))
    if isinstance(condition, CrossoverCondition):
        return _crossed(condition, snapshot, index)
    if isinstance(condition, AndCondition):
        if not condition.children:
            raise ConditionError("condition", "AND group has no children")
        return all(evaluate(c, snapshot, index) for c in condition.children)
    if isinstance(condition, OrCondition):
        if not condition.children:
            raise ConditionError("condition", "OR group has no children")
        return any(evaluate(c, snapshot, index) for c in condition.children)
    raise ConditionError("condition", f"unsupported condition type {type(condition).__name__}")


def _fmt(value: float) -> str:
    if math.isnan(value):
        return "N/A"
    if abs(value) >= 1000:
        return f"{value:,.0f}"
    return f"{value:,.2f}"


def explain(condition: Condition, snapshot: IndicatorSnapshot, index: int) -> str:
    """
    Describe ``condition`` with the actual values at ``index``.

    OR groups list only their satisfied children when at least one is satisfied.
    """
    if isinstance(condition, SingleCondition):
        left = format_indicator(condition.indicator, condition.params)
        actual = snapshot.value(condition.indicator, condition.params, index)
        op = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<=", "eq": "="}[condition.operator]
        if condition.special_value is None and condition.compare_indicator is None:
            return f"{left}({_fmt(actual)}) {op} {_target_value(condition, snapshot, index):g}"
        target = _target_value(condition, snapshot, index)
        if condition.special_value == "zero":
            return f"{left}({_fmt(actual)}) {op} 0"
        if condition.special_value is not None:
            name, params = resolve_special_value(condition)  # type: ignore[misc]
            right = format_indicator(name, params)
        else:
            right = format_indicator(
                condition.compare_indicator,  # type: ignore[arg-type]
                condition.compare_params
                if condition.compare_params is not None
                else condition.params,
            )
        return f"{left}({_fmt(actual)}) {op} {right}({_fmt(target)})"
    if isinstance(condition, CrossoverCondition):
        a = format_indicator(condition.indicator_a, condition.params_a)
        b = format_indicator(condition.indicator_b, condition.params_b)
        a_val = snapshot.value(condition.indicator_a, condition.params_a, index)
        b_val = snapshot.value(condition.indicator_b, condition.params_b, index)
        verb = "crossed above" if condition.direction == "cross_above" else "crossed below"
        return f"{a}({_fmt(a_val)}) {verb} {b}({_fmt(b_val)})"
    if isinstance(condition, AndCondition):
        return " AND ".join(explain(c, snapshot, index) for c in condition.children)
    satisfied = [c for c in condition.children if evaluate(c, snapshot, index)]
    shown = satisfied or list(condition.children)
    return " OR ".join(explain(c, snapshot, index) for c in shown)


__all__ = ["IndicatorSnapshot", "compare", "evaluate", "explain", "EQ_REL_TOL", "EQ_ABS_TOL"]
