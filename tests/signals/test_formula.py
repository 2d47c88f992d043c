from __future__ import annotations

import pytest

from chartlab.core.exceptions import ConditionError
from chartlab.signals.engine import generate_signals
from chartlab.signals.formula import (
    FORMULA_EXAMPLES,
    condition_to_formula,
    formula_error,
    parse_formula,
)
from chartlab.signals.presets import get_preset_strategy, list_preset_strategies
from chartlab.signals.types import (
    AndCondition,
    CrossoverCondition,
    OrCondition,
    SingleCondition,
    Strategy,
)

RSI_LOW = SingleCondition(indicator="rsi", operator="lt", value=30.0, params={"period": 14})
RSI_HIGH = SingleCondition(indicator="rsi", operator="gt", value=70.0, params={"period": 14})
VOLUME_UP = SingleCondition(
    indicator="volume",
    operator="gt",
    compare_indicator="volume_ma",
    compare_params={"period": 20},
)


def test_parses_preset_crossover():
    parsed = parse_formula("SMA(20) cross_above SMA(60)")

    assert parsed == get_preset_strategy("golden_cross").buy_condition


def test_names_and_keywords_are_case_insensitive():
    parsed = parse_formula("close >= bb_upper(20, 2.5)")

    assert parsed == SingleCondition(
        indicator="price",
        operator="gte",
        compare_indicator="bollinger_upper",
        compare_params={"period": 20, "std_dev": 2.5},
    )
    assert parse_formula("macd CROSS_BELOW signal") == CrossoverCondition(
        indicator_a="macd", indicator_b="macd_signal", direction="cross_below"
    )


def test_and_binds_tighter_than_or():
    parsed = parse_formula("RSI(14) < 30 OR RSI(14) > 70 AND Volume > Volume_MA(20)")

    assert parsed == OrCondition(children=(RSI_LOW, AndCondition(children=(RSI_HIGH, VOLUME_UP))))


def test_parentheses_group_and_same_kind_groups_flatten():
    grouped = parse_formula("(RSI(14) < 30 OR RSI(14) > 70) AND Volume > Volume_MA(20)")
    flat = parse_formula("(RSI(14) < 30 AND RSI(14) > 70) AND Volume > Volume_MA(20)")

    assert grouped == AndCondition(children=(OrCondition(children=(RSI_LOW, RSI_HIGH)), VOLUME_UP))
    assert flat == AndCondition(children=(RSI_LOW, RSI_HIGH, VOLUME_UP))


def test_special_values_and_negative_numbers():
    band = parse_formula("Price <= lower_band")
    histogram = parse_formula("MACD_Histogram > -0.5")

    assert band.special_value == "lower_band" and band.value is None
    assert histogram.value == -0.5
    assert parse_formula("Stoch_K(9,3) > signal_line").params == {"k_period": 9, "d_period": 3}


def test_positional_params_follow_indicator_defaults():
    macd = parse_formula("MACD(5,12,4) cross_above MACD_Signal(5,12,4)")
    stoch = parse_formula("Stochastic_K(9) < 20")

    assert macd.params_a == {"fast": 5, "slow": 12, "signal": 4}
    assert stoch.params == {"k_period": 9}


@pytest.mark.parametrize(
    "formula, fragment",
    [
        ("", "formula is empty"),
        ("   ", "formula is empty"),
        ("RSI(14) <", "unexpected end of formula, expected an indicator"),
        ("RSI(14) < 30 AND", "unexpected end of formula"),
        ("(RSI(14) < 30", "expected ')'"),
        ("RSI(14) < 30)", "unexpected ')' at column 13"),
        ("RSI(14) 30", "expected a comparison or cross_above/cross_below"),
        ("FOO > 3", "unknown indicator 'FOO'"),
        ("Price * 2 > SMA(20)", "arithmetic ('*') is not supported"),
        ("Price > 3 $", "unexpected character '$' at column 11"),
        ("Price(5) > 3", "'Price' takes no parameters"),
        ("RSI(14, 3) > 50", "'RSI' takes at most 1 parameters"),
        ("SMA(20.5) > 3", "param 'period' must be an integer"),
        ("RSI(14) > signal_line", "'signal_line' has no meaning for indicator 'rsi'"),
        ("SMA(5) cross_above 30", "expected an indicator but found '30'"),
    ],
)
def test_malformed_formulas_raise_with_reason(formula, fragment):
    with pytest.raises(ConditionError) as err:
        parse_formula(formula)

    assert err.value.path == "formula"
    assert fragment in err.value.reason


def test_error_path_is_configurable():
    with pytest.raises(ConditionError) as err:
        parse_formula("RSI(14) <<", path="buy")

    assert err.value.path == "buy"


def test_formula_error_reports_reason_or_none():
    assert formula_error("RSI(14) <= 30") is None
    assert formula_error("RSI(14) <=") == "unexpected end of formula, expected an indicator"


def test_examples_parse():
    for example in FORMULA_EXAMPLES:
        assert formula_error(example) is None, example


@pytest.mark.parametrize(
    "preset_id, buy, sell",
    [
        ("golden_cross", "SMA(20) cross_above SMA(60)", "SMA(20) cross_below SMA(60)"),
        ("rsi_oversold", "RSI(14) <= 30", "RSI(14) >= 70"),
        ("macd_crossover", "MACD cross_above MACD_Signal", "MACD cross_below MACD_Signal"),
        (
            "bollinger_breakout",
            "Price <= Bollinger_Lower(20,2)",
            "Price >= Bollinger_Upper(20,2)",
        ),
    ],
)
def test_presets_render_as_formulas(preset_id, buy, sell):
    preset = get_preset_strategy(preset_id)

    assert condition_to_formula(preset.buy_condition) == buy
    assert condition_to_formula(preset.sell_condition) == sell


def test_rendering_resolves_special_values_and_custom_params():
    stoch = SingleCondition(
        indicator="stochastic_k",
        operator="gt",
        special_value="signal_line",
        params={"k_period": 9, "d_period": 3},
    )
    histogram = SingleCondition(
        indicator="macd_histogram",
        operator="gt",
        special_value="zero",
        params={"fast": 5, "slow": 12, "signal": 4},
    )

    assert condition_to_formula(stoch) == "Stochastic_K(9,3) > Stochastic_D(9,3)"
    assert condition_to_formula(histogram) == "MACD_Histogram(5,12,4) > 0"
    assert condition_to_formula(RSI_LOW) == "RSI(14) < 30"


def test_rendering_parenthesizes_mixed_groups():
    tree = OrCondition(children=(AndCondition(children=(RSI_LOW, VOLUME_UP)), RSI_HIGH))

    assert condition_to_formula(tree) == "(RSI(14) < 30 AND Volume > Volume_MA(20)) OR RSI(14) > 70"
    assert condition_to_formula(AndCondition(children=(RSI_LOW, RSI_HIGH))) == (
        "RSI(14) < 30 AND RSI(14) > 70"
    )


def test_rendering_empty_group_raises():
    with pytest.raises(ConditionError, match="OR group has no children"):
        condition_to_formula(OrCondition(children=()))


def test_rendered_presets_signal_identically(toy_bars):
    for preset in list_preset_strategies():
        rebuilt = Strategy(
            id=preset.id,
            name=preset.name,
            buy_condition=parse_formula(condition_to_formula(preset.buy_condition)),
            sell_condition=parse_formula(condition_to_formula(preset.sell_condition)),
        )

        expected = [(s.type, s.index) for s in generate_signals(preset, toy_bars).signals]
        actual = [(s.type, s.index) for s in generate_signals(rebuilt, toy_bars).signals]
        assert actual == expected, preset.id
