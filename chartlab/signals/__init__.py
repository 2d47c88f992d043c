"""Rule trees, condition evaluation and signal generation."""
from __future__ import annotations

from chartlab.signals.conditions import IndicatorSnapshot, evaluate
from chartlab.signals.engine import generate_signals
from chartlab.signals.formula import condition_to_formula, formula_error, parse_formula
from chartlab.signals.presets import get_preset_strategy, list_preset_strategies
from chartlab.signals.rules import (
    condition_from_dict,
    condition_to_dict,
    strategy_from_dict,
    strategy_to_dict,
    validate_strategy,
)
from chartlab.signals.types import (
    AndCondition,
    Condition,
    CrossoverCondition,
    OrCondition,
    Signal,
    SignalResult,
    SingleCondition,
    Strategy,
)

__all__ = [
    "AndCondition",
    "Condition",
    "CrossoverCondition",
    "OrCondition",
    "Signal",
    "SignalResult",
    "SingleCondition",
    "Strategy",
    "IndicatorSnapshot",
    "evaluate",
    "generate_signals",
    "parse_formula",
    "formula_error",
    "condition_to_formula",
    "get_preset_strategy",
    "list_preset_strategies",
    "condition_from_dict",
    "condition_to_dict",
    "strategy_from_dict",
    "strategy_to_dict",
    "validate_strategy",
]
