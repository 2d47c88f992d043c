from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping, Tuple, Union

ComparisonOperator = Literal["gt", "gte", "lt", "lte", "eq"]
CrossDirection = Literal["cross_above", "cross_below"]
SpecialValue = Literal["upper_band", "lower_band", "signal_line", "zero"]
SignalType = Literal["buy", "sell"]

OPERATORS: Tuple[str, ...] = ("gt", "gte", "lt", "lte", "eq")
DIRECTIONS: Tuple[str, ...] = ("cross_above", "cross_below")
SPECIAL_VALUES: Tuple[str, ...] = ("upper_band", "lower_band", "signal_line", "zero")

# Indicator name -> default params. The key set is the closed list of series a
# rule may reference.
INDICATOR_DEFAULTS: Mapping[str, Mapping[str, float]] = {
    "price": {},
    "open": {},
    "high": {},
    "low": {},
    "volume": {},
    "volume_ma": {"period": 20},
    "sma": {"period": 20},
    "ema": {"period": 20},
    "rsi": {"period": 14},
    "macd": {"fast": 12, "slow": 26, "signal": 9},
    "macd_signal": {"fast": 12, "slow": 26, "signal": 9},
    "macd_histogram": {"fast": 12, "slow": 26, "signal": 9},
    "stochastic_k": {"k_period": 14, "d_period": 3},
    "stochastic_d": {"k_period": 14, "d_period": 3},
    "bollinger_upper": {"period": 20, "std_dev": 2},
    "bollinger_middle": {"period": 20, "std_dev": 2},
    "bollinger_lower": {"period": 20, "std_dev": 2},
    "atr": {"period": 14},
    "obv": {},
}

INDICATORS: Tuple[str, ...] = tuple(INDICATOR_DEFAULTS)


@dataclass(frozen=True)
class SingleCondition:
    """
    Compare one indicator at the current bar against a literal, a special value
    resolved from the same indicator family, or another indicator.

    Exactly one of ``value``, ``special_value`` or ``compare_indicator`` is set.
    """

    indicator: str
    operator: ComparisonOperator
    value: float | None = None
    special_value: SpecialValue | None = None
    compare_indicator: str | None = None
    params: Mapping[str, float] = field(default_factory=dict)
    compare_params: Mapping[str, float] | None = None


@dataclass(frozen=True)
class CrossoverCondition:
    """``indicator_a`` crossing ``indicator_b`` between the previous and current bar."""

    indicator_a: str
    indicator_b: str
    direction: CrossDirection
    params_a: Mapping[str, float] = field(default_factory=dict)
    params_b: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class AndCondition:
    children: Tuple["Condition", ...]


@dataclass(frozen=True)
class OrCondition:
    children: Tuple["Condition", ...]


Condition = Union[SingleCondition, CrossoverCondition, AndCondition, OrCondition]


@dataclass(frozen=True)
class Strategy:
    id: str
    name: str
    buy_condition: Condition
    sell_condition: Condition
    description: str = ""


@dataclass(frozen=True, slots=True)
class Signal:
    type: SignalType
    time: int
    price: float
    index: int
    reason: str = ""

    def as_dict(self) -> dict:
        return {
            "type": self.type,
            "time": self.time,
            "price": self.price,
            "index": self.index,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class SignalResult:
    signals: Tuple[Signal, ...]

    @property
    def buy_count(self) -> int:
        return sum(1 for s in self.signals if s.type == "buy")

    @property
    def sell_count(self) -> int:
        return sum(1 for s in self.signals if s.type == "sell")

    def as_dict(self) -> dict:
        return {
            "signals": [s.as_dict() for s in self.signals],
            "buy_count": self.buy_count,
            "sell_count": self.sell_count,
        }


__all__ = [
    "ComparisonOperator",
    "CrossDirection",
    "SpecialValue",
    "SignalType",
    "OPERATORS",
    "DIRECTIONS",
    "SPECIAL_VALUES",
    "INDICATOR_DEFAULTS",
    "INDICATORS",
    "SingleCondition",
    "CrossoverCondition",
    "AndCondition",
    "OrCondition",
    "Condition",
    "Strategy",
    "Signal",
    "SignalResult",
]
