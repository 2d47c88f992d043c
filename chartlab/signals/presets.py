from __future__ import annotations

from typing import Dict, List

from chartlab.signals.types import CrossoverCondition, SingleCondition, Strategy

PRESET_STRATEGIES: Dict[str, Strategy] = {
    "golden_cross": Strategy(
        id="golden_cross",
        name="Golden Cross",
        description="Buy when SMA(20) crosses above SMA(60); sell on the cross back below.",
        buy_condition=CrossoverCondition(
            indicator_a="sma",
            indicator_b="sma",
            direction="cross_above",
            params_a={"period": 20},
            params_b={"period": 60},
        ),
        sell_condition=CrossoverCondition(
            indicator_a="sma",
            indicator_b="sma",
            direction="cross_below",
            params_a={"period": 20},
            params_b={"period": 60},
        ),
    ),
    "death_cross": Strategy(
        id="death_cross",
        name="Death Cross",
        description="Exit when SMA(20) crosses below SMA(60); re-enter on the cross back above.",
        buy_condition=CrossoverCondition(
            indicator_a="sma",
            indicator_b="sma",
            direction="cross_above",
            params_a={"period": 20},
            params_b={"period": 60},
        ),
        sell_condition=CrossoverCondition(
            indicator_a="sma",
            indicator_b="sma",
            direction="cross_below",
            params_a={"period": 20},
            params_b={"period": 60},
        ),
    ),
    "rsi_oversold": Strategy(
        id="rsi_oversold",
        name="RSI Oversold",
        description="Buy when RSI(14) <= 30; sell when RSI(14) >= 70.",
        buy_condition=SingleCondition(
            indicator="rsi", operator="lte", value=30.0, params={"period": 14}
        ),
        sell_condition=SingleCondition(
            indicator="rsi", operator="gte", value=70.0, params={"period": 14}
        ),
    ),
    "rsi_overbought": Strategy(
        id="rsi_overbought",
        name="RSI Overbought",
        description="Sell when RSI(14) >= 70; buy back when RSI(14) <= 30.",
        buy_condition=SingleCondition(
            indicator="rsi", operator="lte", value=30.0, params={"period": 14}
        ),
        sell_condition=SingleCondition(
            indicator="rsi", operator="gte", value=70.0, params={"period": 14}
        ),
    ),
    "macd_crossover": Strategy(
        id="macd_crossover",
        name="MACD Crossover",
        description="Buy when MACD crosses above its signal line; sell on the cross below.",
        buy_condition=CrossoverCondition(
            indicator_a="macd",
            indicator_b="macd_signal",
            direction="cross_above",
        ),
        sell_condition=CrossoverCondition(
            indicator_a="macd",
            indicator_b="macd_signal",
            direction="cross_below",
        ),
    ),
    "bollinger_breakout": Strategy(
        id="bollinger_breakout",
        name="Bollinger Band Reversion",
        description="Buy at or below the lower band; sell at or above the upper band.",
        buy_condition=SingleCondition(
            indicator="price",
            operator="lte",
            special_value="lower_band",
            params={"period": 20, "std_dev": 2},
        ),
        sell_condition=SingleCondition(
            indicator="price",
            operator="gte",
            special_value="upper_band",
            params={"period": 20, "std_dev": 2},
        ),
    ),
}


def list_preset_strategies() -> List[Strategy]:
    return list(PRESET_STRATEGIES.values())


def get_preset_strategy(preset_id: str) -> Strategy | None:
    return PRESET_STRATEGIES.get(preset_id)


__all__ = ["PRESET_STRATEGIES", "list_preset_strategies", "get_preset_strategy"]
