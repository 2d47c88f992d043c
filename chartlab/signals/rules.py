"""Rule-tree plumbing: JSON (de)serialization, validation, warm-up and descriptions.

The JSON shape is the one the front end stores for presets::

    {"type": "single", "indicator": "rsi", "operator": "lte", "value": 30,
     "params": {"period": 14}}
    {"type": "crossover", "indicatorA": "sma", "indicatorB": "sma",
     "paramsA": {"period": 5}, "paramsB": {"period": 20}, "direction": "cross_above"}
    {"type": "and", "children": [...]}

Older payloads using ``indicator1``/``indicator2``/``params1``/``params2``,
``up``/``down`` directions and ``conditions`` for children are accepted too.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Mapping, Tuple

from chartlab.core.exceptions import ConditionError
from chartlab.signals.types import (
    DIRECTIONS,
    INDICATOR_DEFAULTS,
    OPERATORS,
    SPECIAL_VALUES,
    AndCondition,
    Condition,
    CrossoverCondition,
    OrCondition,
    SingleCondition,
    Strategy,
)

_PARAM_ALIASES = {
    "kPeriod": "k_period",
    "dPeriod": "d_period",
    "stdDev": "std_dev",
}
_INT_PARAMS = {"period", "fast", "slow", "signal", "k_period", "d_period"}
_DIRECTION_ALIASES = {
    "up": "cross_above",
    "down": "cross_below",
    "above": "cross_above",
    "below": "cross_below",
}
_MACD_FAMILY = {"macd", "macd_signal", "macd_histogram"}
_STOCHASTIC_FAMILY = {"stochastic_k", "stochastic_d"}

_OPERATOR_SYMBOLS = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<=", "eq": "="}
_DIRECTION_TEXT = {"cross_above": "crossed above", "cross_below": "crossed below"}
_SPECIAL_TEXT = {
    "upper_band": "upper band",
    "lower_band": "lower band",
    "signal_line": "signal line",
    "zero": "0",
}


# -------- Params --------
def normalize_params(params: Mapping[str, Any] | None) -> Dict[str, float]:
    out: Dict[str, float] = {}
    for key, value in (params or {}).items():
        out[_PARAM_ALIASES.get(key, key)] = value
    return out


def merge_params(
    indicator: str, params: Mapping[str, Any] | None, *, path: str = "condition"
) -> Dict[str, float]:
    """
    Defaults for ``indicator`` overlaid with the keys of ``params`` it understands.

    Keys the indicator does not use are ignored, so one param set can serve a
    Bollinger comparison made from ``price``.
    """
    if indicator not in INDICATOR_DEFAULTS:
        raise ConditionError(path, f"unknown indicator '{indicator}'")
    defaults = INDICATOR_DEFAULTS[indicator]
    given = normalize_params(params)
    merged: Dict[str, float] = {}
    for key, default in defaults.items():
        raw = given.get(key, default)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ConditionError(path, f"param '{key}' must be numeric (got {raw!r})")
        if not math.isfinite(value) or value <= 0:
            raise ConditionError(path, f"param '{key}' must be positive (got {raw!r})")
        if key in _INT_PARAMS:
            if not value.is_integer():
                raise ConditionError(
                    path, f"param '{key}' must be an integer (got {raw!r})"
                )
            merged[key] = int(value)
        else:
            merged[key] = value
    return merged


def params_key(indicator: str, params: Mapping[str, Any] | None) -> Tuple[str, Tuple]:
    """Hashable memo key for one indicator series."""
    merged = merge_params(indicator, params)
    return indicator, tuple(sorted(merged.items()))


def resolve_special_value(
    condition: SingleCondition, *, path: str = "condition"
) -> float | Tuple[str, Dict[str, float]]:
    """Map a special value to a constant or to ``(indicator, params)`` of its family."""
    special = condition.special_value
    if special == "zero":
        return 0.0
    if special == "upper_band":
        return "bollinger_upper", merge_params("bollinger_upper", condition.params, path=path)
    if special == "lower_band":
        return "bollinger_lower", merge_params("bollinger_lower", condition.params, path=path)
    if special == "signal_line":
        if condition.indicator in _MACD_FAMILY:
            return "macd_signal", merge_params("macd_signal", condition.params, path=path)
        if condition.indicator in _STOCHASTIC_FAMILY:
            return "stochastic_d", merge_params("stochastic_d", condition.params, path=path)
        raise ConditionError(
            path, f"'signal_line' has no meaning for indicator '{condition.indicator}'"
        )
    raise ConditionError(path, f"unknown special value '{special}'")


# -------- Validation --------
def validate_condition(condition: Condition, path: str = "condition") -> None:
    """Walk the tree and raise ConditionError at the first malformed node."""
    if isinstance(condition, SingleCondition):
        merge_params(condition.indicator, condition.params, path=path)
        if condition.operator not in OPERATORS:
            raise ConditionError(path, f"unknown operator '{condition.operator}'")
        targets = [
            t
            for t in (
                condition.value,
                condition.special_value,
                condition.compare_indicator,
            )
            if t is not None
        ]
        if len(targets) != 1:
            raise ConditionError(
                path,
                "exactly one of value, special_value or compare_indicator is required",
            )
        if condition.value is not None and not math.isfinite(float(condition.value)):
            raise ConditionError(path, "value must be a finite number")
        if condition.special_value is not None:
            if condition.special_value not in SPECIAL_VALUES:
                raise ConditionError(
                    path, f"unknown special value '{condition.special_value}'"
                )
            resolve_special_value(condition, path=path)
        if condition.compare_indicator is not None:
            merge_params(
                condition.compare_indicator,
                condition.compare_params
                if condition.compare_params is not None
                else condition.params,
                path=path,
            )
        return
    if isinstance(condition, CrossoverCondition):
        merge_params(condition.indicator_a, condition.params_a, path=path)
        merge_params(condition.indicator_b, condition.params_b, path=path)
        if condition.direction not in DIRECTIONS:
            raise ConditionError(path, f"unknown direction '{condition.direction}'")
        return
    if isinstance(condition, (AndCondition, OrCondition)):
        kind = "AND" if isinstance(condition, AndCondition) else "OR"
        if not condition.children:
            raise ConditionError(path, f"{kind} group has no children")
        for i, child in enumerate(condition.children):
            validate_condition(child, f"{path}.children[{i}]")
        return
    raise ConditionError(path, f"unsupported condition type {type(condition).__name__}")


def validate_strategy(strategy: Strategy) -> None:
    validate_condition(strategy.buy_condition, "buy")
    validate_condition(strategy.sell_condition, "sell")


# -------- Warm-up --------
def indicator_lookback(indicator: str, params: Mapping[str, Any] | None = None) -> int:
    """First bar index at which ``indicator`` has a defined value."""
    p = merge_params(indicator, params)
    if indicator in ("sma", "ema", "volume_ma", "atr") or indicator.startswith(
        "bollinger_"
    ):
        return int(p["period"]) - 1
    if indicator == "rsi":
        return int(p["period"])
    if indicator in _MACD_FAMILY:
        line = max(int(p["fast"]), int(p["slow"])) - 1
        return line if indicator == "macd" else line + int(p["signal"]) - 1
    if indicator == "stochastic_k":
        return int(p["k_period"]) - 1
    if indicator == "stochastic_d":
        return int(p["k_period"]) + int(p["d_period"]) - 2
    return 0


def warmup_bars(condition: Condition) -> int:
    """
    Earliest bar index at which ``condition`` could evaluate true.

    AND needs every child; OR needs any child; a crossover needs one extra bar.
    """
    if isinstance(condition, SingleCondition):
        left = indicator_lookback(condition.indicator, condition.params)
        if condition.special_value is not None:
            resolved = resolve_special_value(condition)
            if isinstance(resolved, tuple):
                return max(left, indicator_lookback(*resolved))
            return left
        if condition.compare_indicator is not None:
            params = (
                condition.compare_params
                if condition.compare_params is not None
                else condition.params
            )
            return max(left, indicator_lookback(condition.compare_indicator, params))
        return left
    if isinstance(condition, CrossoverCondition):
        return (
            max(
                indicator_lookback(condition.indicator_a, condition.params_a),
                indicator_lookback(condition.indicator_b, condition.params_b),
            )
            + 1
        )
    if isinstance(condition, AndCondition):
        return max(warmup_bars(c) for c in condition.children)
    if isinstance(condition, OrCondition):
        return min(warmup_bars(c) for c in condition.children)
    raise ConditionError("condition", f"unsupported condition type {type(condition).__name__}")


# -------- Descriptions --------
def format_indicator(indicator: str, params: Mapping[str, Any] | None = None) -> str:
    p = merge_params(indicator, params)
    if indicator == "price":
        return "Close"
    if indicator in ("open", "high", "low", "volume"):
        return indicator.capitalize()
    if indicator == "obv":
        return "OBV"
    if indicator == "volume_ma":
        return f"Volume MA({p['period']})"
    if indicator in ("sma", "ema", "rsi", "atr"):
        return f"{indicator.upper()}({p['period']})"
    if indicator in _MACD_FAMILY:
        label = {"macd": "MACD", "macd_signal": "MACD Signal", "macd_histogram": "MACD Histogram"}
        return f"{label[indicator]}({p['fast']},{p['slow']},{p['signal']})"
    if indicator in _STOCHASTIC_FAMILY:
        label = "%K" if indicator == "stochastic_k" else "%D"
        return f"{label}({p['k_period']},{p['d_period']})"
    band = indicator.split("_", 1)[1].capitalize()
    return f"BB {band}({p['period']},{p['std_dev']:g})"


def describe_condition(condition: Condition) -> str:
    """Value-free, human-readable rendering of a rule tree."""
    if isinstance(condition, SingleCondition):
        left = format_indicator(condition.indicator, condition.params)
        op = _OPERATOR_SYMBOLS.get(condition.operator, condition.operator)
        if condition.special_value is not None:
            right = _SPECIAL_TEXT.get(condition.special_value, condition.special_value)
        elif condition.compare_indicator is not None:
            right = format_indicator(
                condition.compare_indicator,
                condition.compare_params
                if condition.compare_params is not None
                else condition.params,
            )
        else:
            right = f"{condition.value:g}"
        return f"{left} {op} {right}"
    if isinstance(condition, CrossoverCondition):
        a = format_indicator(condition.indicator_a, condition.params_a)
        b = format_indicator(condition.indicator_b, condition.params_b)
        return f"{a} {_DIRECTION_TEXT.get(condition.direction, condition.direction)} {b}"
    joiner = " AND " if isinstance(condition, AndCondition) else " OR "
    parts = [describe_condition(c) for c in condition.children]
    return "(" + joiner.join(parts) + ")" if len(parts) > 1 else "".join(parts)


# -------- JSON --------
def _require(raw: Mapping[str, Any], *keys: str, path: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    raise ConditionError(path, f"missing '{keys[0]}'")


def condition_from_dict(raw: Any, path: str = "condition") -> Condition:
    """Build a Condition from its JSON form; raises ConditionError on bad input."""
    if not isinstance(raw, Mapping):
        raise ConditionError(path, "condition must be an object")
    kind = str(raw.get("type", "")).lower()

    if kind == "single":
        indicator = str(_require(raw, "indicator", path=path))
        operator = str(_require(raw, "operator", path=path))
        params = normalize_params(raw.get("params"))
        compare_params = raw.get("compareParams", raw.get("valueParams"))
        value = raw.get("value")
        special = raw.get("specialValue", raw.get("special_value"))
        compare = raw.get("compareIndicator", raw.get("compare_indicator"))
        numeric: float | None = None
        if isinstance(value, bool):
            raise ConditionError(path, "value must be a number")
        if isinstance(value, (int, float)):
            numeric = float(value)
        elif isinstance(value, str):
            if value in SPECIAL_VALUES:
                special = value
            elif value in INDICATOR_DEFAULTS:
                compare = value
            else:
                try:
                    numeric = float(value)
                except ValueError:
                    raise ConditionError(path, f"unrecognised value '{value}'")
        elif value is not None:
            raise ConditionError(path, "value must be a number or a name")
        return SingleCondition(
            indicator=indicator,
            operator=operator,  # type: ignore[arg-type]
            value=numeric,
            special_value=special,
            compare_indicator=compare,
            params=params,
            compare_params=normalize_params(compare_params)
            if compare_params is not None
            else None,
        )

    if kind == "crossover":
        direction = str(_require(raw, "direction", path=path))
        return CrossoverCondition(
            indicator_a=str(_require(raw, "indicatorA", "indicator_a", "indicator1", path=path)),
            indicator_b=str(_require(raw, "indicatorB", "indicator_b", "indicator2", path=path)),
            direction=_DIRECTION_ALIASES.get(direction, direction),  # type: ignore[arg-type]
            params_a=normalize_params(
                raw.get("paramsA", raw.get("params_a", raw.get("params1")))
            ),
            params_b=normalize_params(
                raw.get("paramsB", raw.get("params_b", raw.get("params2")))
            ),
        )

    if kind in ("and", "or"):
        children_raw = raw.get("children", raw.get("conditions"))
        if children_raw is None:
            children_raw = []
        if not isinstance(children_raw, (list, tuple)):
            raise ConditionError(path, "children must be a list")
        children = tuple(
            condition_from_dict(child, f"{path}.children[{i}]")
            for i, child in enumerate(children_raw)
        )
        return AndCondition(children) if kind == "and" else OrCondition(children)

    raise ConditionError(path, f"unknown condition type '{raw.get('type')}'")


def condition_to_dict(condition: Condition) -> Dict[str, Any]:
    if isinstance(condition, SingleCondition):
        out: Dict[str, Any] = {
            "type": "single",
            "indicator": condition.indicator,
            "operator": condition.operator,
            "params": dict(condition.params),
        }
        if condition.special_value is not None:
            out["specialValue"] = condition.special_value
        elif condition.compare_indicator is not None:
            out["compareIndicator"] = condition.compare_indicator
            if condition.compare_params is not None:
                out["compareParams"] = dict(condition.compare_params)
        else:
            out["value"] = condition.value
        return out
    if isinstance(condition, CrossoverCondition):
        return {
            "type": "crossover",
            "indicatorA": condition.indicator_a,
            "indicatorB": condition.indicator_b,
            "paramsA": dict(condition.params_a),
            "paramsB": dict(condition.params_b),
            "direction": condition.direction,
        }
    return {
        "type": "and" if isinstance(condition, AndCondition) else "or",
        "children": [condition_to_dict(c) for c in condition.children],
    }


def strategy_from_dict(raw: Mapping[str, Any]) -> Strategy:
    if not isinstance(raw, Mapping):
        raise ConditionError("strategy", "strategy must be an object")
    return Strategy(
        id=str(raw.get("id") or ""),
        name=str(raw.get("name") or raw.get("id") or ""),
        description=str(raw.get("description") or ""),
        buy_condition=condition_from_dict(
            raw.get("buyCondition", raw.get("buy_condition")), "buy"
        ),
        sell_condition=condition_from_dict(
            raw.get("sellCondition", raw.get("sell_condition")), "sell"
        ),
    )


def strategy_to_dict(strategy: Strategy) -> Dict[str, Any]:
    return {
        "id": strategy.id,
        "name": strategy.name,
        "description": strategy.description,
        "buyCondition": condition_to_dict(strategy.buy_condition),
        "sellCondition": condition_to_dict(strategy.sell_condition),
    }


__all__ = [
    "normalize_params",
    "merge_params",
    "params_key",
    "resolve_special_value",
    "validate_condition",
    "validate_strategy",
    "indicator_lookback",
    "warmup_bars",
    "format_indicator",
    "describe_condition",
    "condition_from_dict",
    "condition_to_dict",
    "strategy_from_dict",
    "strategy_to_dict",
]
