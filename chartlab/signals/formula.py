"""Text formulas for rule trees.

A formula is the typed form of a condition tree, e.g.::

    SMA(20) cross_above SMA(60)
    RSI(14) <= 30 AND (Price < BB_Lower(20,2) OR MACD_Histogram > 0)

``parse_formula`` produces the same dataclasses as the JSON codec in
``chartlab.signals.rules`` and ``condition_to_formula`` renders a tree back to
text. OR binds looser than AND and parentheses group. Names and keywords are
case-insensitive; indicator parameters are positional in the order of
``INDICATOR_DEFAULTS`` (MACD takes fast, slow, signal; Stochastic takes
k_period, d_period; Bollinger takes period, std_dev).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from chartlab.core.exceptions import ConditionError
from chartlab.signals.rules import merge_params, resolve_special_value, validate_condition
from chartlab.signals.types import (
    INDICATOR_DEFAULTS,
    AndCondition,
    Condition,
    CrossoverCondition,
    OrCondition,
    SingleCondition,
)

_TOKEN_RE = re.compile(
    r"""
      (?P<space>\s+)
    | (?P<number>-?\d+(?:\.\d+)?)
    | (?P<compare>>=|<=|==|=|>|<)
    | (?P<name>[A-Za-z_][A-Za-z0-9_]*)
    | (?P<lparen>\()
    | (?P<rparen>\))
    | (?P<comma>,)
    | (?P<arith>[-+*/])
    """,
    re.VERBOSE,
)

_NAMES: Dict[str, str] = {
    "PRICE": "price",
    "CLOSE": "price",
    "OPEN": "open",
    "HIGH": "high",
    "LOW": "low",
    "VOLUME": "volume",
    "VOLUME_MA": "volume_ma",
    "VOL_MA": "volume_ma",
    "SMA": "sma",
    "EMA": "ema",
    "RSI": "rsi",
    "ATR": "atr",
    "OBV": "obv",
    "MACD": "macd",
    "MACD_SIGNAL": "macd_signal",
    "SIGNAL": "macd_signal",
    "MACD_HISTOGRAM": "macd_histogram",
    "HISTOGRAM": "macd_histogram",
    "STOCHASTIC_K": "stochastic_k",
    "STOCH_K": "stochastic_k",
    "STOCHASTIC_D": "stochastic_d",
    "STOCH_D": "stochastic_d",
    "BOLLINGER_UPPER": "bollinger_upper",
    "BB_UPPER": "bollinger_upper",
    "BOLLINGER_MIDDLE": "bollinger_middle",
    "BB_MIDDLE": "bollinger_middle",
    "BOLLINGER_LOWER": "bollinger_lower",
    "BB_LOWER": "bollinger_lower",
}
_SPECIALS = {
    "UPPER_BAND": "upper_band",
    "LOWER_BAND": "lower_band",
    "SIGNAL_LINE": "signal_line",
    "ZERO": "zero",
}
_COMPARISONS = {">": "gt", ">=": "gte", "<": "lt", "<=": "lte", "==": "eq", "=": "eq"}
_OPERATOR_TEXT = {"gt": ">", "gte": ">=", "lt": "<", "lte": "<=", "eq": "=="}

_LABELS = {
    "price": "Price",
    "open": "Open",
    "high": "High",
    "low": "Low",
    "volume": "Volume",
    "volume_ma": "Volume_MA",
    "sma": "SMA",
    "ema": "EMA",
    "rsi": "RSI",
    "atr": "ATR",
    "obv": "OBV",
    "macd": "MACD",
    "macd_signal": "MACD_Signal",
    "macd_histogram": "MACD_Histogram",
    "stochastic_k": "Stochastic_K",
    "stochastic_d": "Stochastic_D",
    "bollinger_upper": "Bollinger_Upper",
    "bollinger_middle": "Bollinger_Middle",
    "bollinger_lower": "Bollinger_Lower",
}
# rendered without parameters when they are the defaults
_BARE_WHEN_DEFAULT = {"macd", "macd_signal", "macd_histogram"}

FORMULA_EXAMPLES: Tuple[str, ...] = (
    "SMA(20) cross_above SMA(60)",
    "RSI(14) <= 30",
    "MACD cross_above MACD_Signal",
    "Price <= BB_Lower(20,2)",
    "RSI(14) < 30 AND Price > SMA(200)",
    "(RSI(14) < 30 OR Stochastic_K(14,3) < 20) AND Volume > Volume_MA(20)",
)


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int

    @property
    def column(self) -> int:
        return self.pos + 1


def _tokenize(formula: str, path: str) -> List[_Token]:
    tokens: List[_Token] = []
    pos = 0
    while pos < len(formula):
        match = _TOKEN_RE.match(formula, pos)
        if match is None:
            raise ConditionError(
                path, f"unexpected character {formula[pos]!r} at column {pos + 1}"
            )
        kind, text = match.lastgroup, match.group()
        if kind == "arith":
            raise ConditionError(
                path, f"arithmetic ('{text}') is not supported, at column {pos + 1}"
            )
        if kind == "name":
            upper = text.upper()
            if upper in ("AND", "OR"):
                kind = upper.lower()
            elif upper in ("CROSS_ABOVE", "CROSS_BELOW"):
                kind = "cross"
        if kind != "space":
            tokens.append(_Token(kind, text, pos))
        pos = match.end()
    return tokens


def _as_param(value: float) -> float | int:
    return int(value) if value.is_integer() else value


class _Parser:
    """Recursive descent over ``or := and (OR and)*``, ``and := primary (AND primary)*``."""

    def __init__(self, formula: str, path: str) -> None:
        self.path = path
        self.tokens = _tokenize(formula, path)
        self.index = 0

    # -------- token helpers --------
    def _peek(self) -> Optional[_Token]:
        return self.tokens[self.index] if self.index < len(self.tokens) else None

    def _accept(self, kind: str) -> Optional[_Token]:
        tok = self._peek()
        if tok is not None and tok.kind == kind:
            self.index += 1
            return tok
        return None

    def _expect(self, kind: str, what: str) -> _Token:
        tok = self._peek()
        if tok is None:
            raise ConditionError(self.path, f"unexpected end of formula, expected {what}")
        if tok.kind != kind:
            raise ConditionError(
                self.path, f"expected {what} but found '{tok.text}' at column {tok.column}"
            )
        self.index += 1
        return tok

    # -------- grammar --------
    def parse(self) -> Condition:
        if not self.tokens:
            raise ConditionError(self.path, "formula is empty")
        condition = self._or()
        extra = self._peek()
        if extra is not None:
            raise ConditionError(
                self.path, f"unexpected '{extra.text}' at column {extra.column}"
            )
        return condition

    def _or(self) -> Condition:
        children = [self._and()]
        while self._accept("or"):
            children.append(self._and())
        return _group(OrCondition, children)

    def _and(self) -> Condition:
        children = [self._primary()]
        while self._accept("and"):
            children.append(self._primary())
        return _group(AndCondition, children)

    def _primary(self) -> Condition:
        if self._accept("lparen"):
            inner = self._or()
            self._expect("rparen", "')'")
            return inner
        return self._comparison()

    def _comparison(self) -> Condition:
        indicator, params = self._operand()
        tok = self._peek()
        if tok is not None and tok.kind == "cross":
            self.index += 1
            other, other_params = self._operand()
            return CrossoverCondition(
                indicator_a=indicator,
                indicator_b=other,
                direction=tok.text.lower(),
                params_a=params or {},
                params_b=other_params or {},
            )
        op = self._expect("compare", "a comparison or cross_above/cross_below")
        operator = _COMPARISONS[op.text]
        target = self._peek()
        if target is not None and target.kind == "number":
            self.index += 1
            return SingleCondition(
                indicator=indicator,
                operator=operator,
                value=float(target.text),
                params=params or {},
            )
        if target is not None and target.kind == "name" and target.text.upper() in _SPECIALS:
            self.index += 1
            return SingleCondition(
                indicator=indicator,
                operator=operator,
                special_value=_SPECIALS[target.text.upper()],
                params=params or {},
            )
        other, other_params = self._operand()
        return SingleCondition(
            indicator=indicator,
            operator=operator,
            compare_indicator=other,
            params=params or {},
            compare_params=other_params,
        )

    def _operand(self) -> Tuple[str, Optional[Dict[str, float]]]:
        tok = self._expect("name", "an indicator")
        indicator = _NAMES.get(tok.text.upper())
        if indicator is None:
            raise ConditionError(
                self.path, f"unknown indicator '{tok.text}' at column {tok.column}"
            )
        if not self._accept("lparen"):
            return indicator, None

        values: List[float] = []
        if not self._accept("rparen"):
            values.append(float(self._expect("number", "a number").text))
            while self._accept("comma"):
                values.append(float(self._expect("number", "a number").text))
            self._expect("rparen", "')'")

        names = tuple(INDICATOR_DEFAULTS[indicator])
        if len(values) > len(names):
            if not names:
                reason = f"'{tok.text}' takes no parameters"
            else:
                reason = f"'{tok.text}' takes at most {len(names)} parameters ({', '.join(names)})"
            raise ConditionError(self.path, f"{reason}, at column {tok.column}")
        return indicator, {name: _as_param(v) for name, v in zip(names, values)}


def _group(kind, children: List[Condition]) -> Condition:
    if len(children) == 1:
        return children[0]
    flat: List[Condition] = []
    for child in children:
        if isinstance(child, kind):
            flat.extend(child.children)
        else:
            flat.append(child)
    return kind(children=tuple(flat))


def parse_formula(formula: str, path: str = "formula") -> Condition:
    """
    Parse ``formula`` into a validated condition tree.

    Raises ConditionError (with ``path``) for syntax errors, unknown
    indicators, unsupported arithmetic and anything ``validate_condition``
    rejects.
    """
    condition = _Parser(formula, path).parse()
    validate_condition(condition, path)
    return condition


def formula_error(formula: str) -> Optional[str]:
    """Reason ``formula`` does not parse, or None when it does."""
    try:
        parse_formula(formula)
    except ConditionError as exc:
        return exc.reason
    return None


# -------- Rendering --------
def _number(value: float) -> str:
    return np.format_float_positional(float(value), trim="-")


def _operand_text(indicator: str, params: Mapping[str, float] | None, path: str) -> str:
    merged = merge_params(indicator, params, path=path)
    label = _LABELS[indicator]
    if not merged:
        return label
    if indicator in _BARE_WHEN_DEFAULT and merged == dict(INDICATOR_DEFAULTS[indicator]):
        return label
    return f"{label}({','.join(_number(merged[k]) for k in INDICATOR_DEFAULTS[indicator])})"


def condition_to_formula(condition: Condition, path: str = "condition") -> str:
    """
    Render a condition tree as a formula that ``parse_formula`` accepts.

    Special values are written as the indicator they resolve to (e.g.
    ``lower_band`` on ``Price`` with period 20 becomes ``Bollinger_Lower(20,2)``),
    so the text stands on its own.
    """
    if isinstance(condition, SingleCondition):
        left = _operand_text(condition.indicator, condition.params, path)
        op = _OPERATOR_TEXT.get(condition.operator)
        if op is None:
            raise ConditionError(path, f"unknown operator '{condition.operator}'")
        if condition.special_value is not None:
            resolved = resolve_special_value(condition, path=path)
            if isinstance(resolved, tuple):
                right = _operand_text(resolved[0], resolved[1], path)
            else:
                right = _number(resolved)
        elif condition.compare_indicator is not None:
            params = (
                condition.compare_params
                if condition.compare_params is not None
                else condition.params
            )
            right = _operand_text(condition.compare_indicator, params, path)
        elif condition.value is not None:
            right = _number(condition.value)
        else:
            raise ConditionError(
                path, "exactly one of value, special_value or compare_indicator is required"
            )
        return f"{left} {op} {right}"

    if isinstance(condition, CrossoverCondition):
        a = _operand_text(condition.indicator_a, condition.params_a, path)
        b = _operand_text(condition.indicator_b, condition.params_b, path)
        return f"{a} {condition.direction} {b}"

    if isinstance(condition, (AndCondition, OrCondition)):
        joiner = " AND " if isinstance(condition, AndCondition) else " OR "
        if not condition.children:
            raise ConditionError(path, f"{joiner.strip()} group has no children")
        parts = []
        for i, child in enumerate(condition.children):
            text = condition_to_formula(child, f"{path}.children[{i}]")
            mixed = type(child) is not type(condition)
            if isinstance(child, (AndCondition, OrCondition)) and mixed:
                text = f"({text})"
            parts.append(text)
        return joiner.join(parts)

    raise ConditionError(path, f"unsupported condition type {type(condition).__name__}")


__all__ = ["FORMULA_EXAMPLES", "parse_formula", "formula_error", "condition_to_formula"]
