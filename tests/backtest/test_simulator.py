from __future__ import annotations

import math

import pytest
from loguru import logger

from chartlab.backtest.simulator import (
    buy_fill_price,
    invest_amount,
    sell_fill_price,
    simulate,
)
from chartlab.core.timeutils import ms_to_datetime
from chartlab.signals.types import Signal


def _signal(kind, bar, price=None):
    return Signal(type=kind, time=bar.time, price=bar.close if price is None else price, index=0)


def test_round_trip_costs_match_formulas(make_bars, make_config):
    bars = make_bars([10_000.0, 11_000.0])
    config = make_config(
        bars, initial_capital=10_000_000.0, commission=0.001, slippage=0.1
    )
    signals = [_signal("buy", bars[0]), _signal("sell", bars[1])]

    result = simulate(signals, bars, config)

    buy_px = 10_000.0 * 1.001
    shares = math.floor(10_000_000.0 / (buy_px * 1.001))
    entry_cost = shares * buy_px * 1.001
    sell_px = 11_000.0 * 0.999
    proceeds = shares * sell_px * 0.999

    (trade,) = result.trades
    assert shares == 998
    assert trade.status == "closed"
    assert trade.shares == shares
    assert trade.entry_price == pytest.approx(10_010.0)
    assert trade.exit_price == pytest.approx(10_989.0)
    assert trade.entry_cost == pytest.approx(entry_cost)
    assert trade.pnl == pytest.approx(proceeds - entry_cost)
    assert trade.return_pct == pytest.approx((proceeds - entry_cost) / entry_cost * 100.0)
    assert trade.pnl < (11_000.0 - 10_000.0) * shares

    cash_after_buy = 10_000_000.0 - entry_cost
    assert [p.value for p in result.equity_curve] == pytest.approx(
        [cash_after_buy + shares * 10_000.0, cash_after_buy + proceeds]
    )


def test_fill_price_helpers():
    assert buy_fill_price(100.0, 0.5) == pytest.approx(100.5)
    assert sell_fill_price(100.0, 0.5) == pytest.approx(99.5)


def test_fixed_sizing_caps_at_cash(make_bars, make_config):
    bars = make_bars([100.0, 100.0])
    config = make_config(
        bars,
        initial_capital=10_000.0,
        commission=0.0,
        slippage=0.0,
        position_sizing="fixed",
        position_size=2_500.0,
    )
    assert invest_amount(10_000.0, config) == 2_500.0
    assert invest_amount(1_000.0, config) == 1_000.0

    result = simulate([_signal("buy", bars[0])], bars, config)
    assert result.trades[0].shares == 25


def test_open_position_is_left_open(make_bars, make_config):
    bars = make_bars([100.0, 110.0, 120.0])
    config = make_config(bars, initial_capital=1_000.0, commission=0.0, slippage=0.0)

    result = simulate([_signal("buy", bars[0])], bars, config)

    (trade,) = result.trades
    assert trade.status == "open"
    assert trade.exit_time is None
    assert trade.pnl is None and trade.return_pct is None
    # still marked to market every bar
    assert [p.value for p in result.equity_curve] == pytest.approx([1_000.0, 1_100.0, 1_200.0])


def test_equity_has_one_point_per_bar_and_starts_at_capital(make_bars, make_config):
    bars = make_bars([100.0, 101.0, 99.0, 102.0, 103.0])
    config = make_config(bars, initial_capital=5_000.0)

    result = simulate([_signal("buy", bars[2]), _signal("sell", bars[4])], bars, config)

    assert len(result.equity_curve) == len(bars)
    assert result.equity_curve[0].value == 5_000.0
    assert result.equity_curve[1].value == 5_000.0


def test_unaffordable_buy_is_skipped_with_warning(make_bars, make_config):
    bars = make_bars([100.0, 120.0, 130.0])
    config = make_config(bars, initial_capital=50.0)
    messages = []
    handler_id = logger.add(messages.append, level="WARNING")
    try:
        result = simulate([_signal("buy", bars[0]), _signal("sell", bars[1])], bars, config)
    finally:
        logger.remove(handler_id)

    assert result.trades == ()
    assert [p.value for p in result.equity_curve] == [50.0, 50.0, 50.0]
    assert any("buy skipped" in str(m) for m in messages)


def test_fractional_shares_invest_everything(make_bars, make_config):
    bars = make_bars([40.0, 50.0])
    config = make_config(
        bars, initial_capital=1_000.0, commission=0.0, slippage=0.0, fractional_shares=True
    )

    result = simulate([_signal("buy", bars[0])], bars, config)

    assert result.trades[0].shares == pytest.approx(25.0)
    assert result.equity_curve[-1].value == pytest.approx(1_250.0)


def test_bars_outside_window_are_not_simulated(make_bars, make_config):
    bars = make_bars([100.0 + i for i in range(10)])
    config = make_config(
        bars,
        start_date=ms_to_datetime(bars[3].time),
        end_date=ms_to_datetime(bars[6].time),
    )

    result = simulate([_signal("buy", bars[1]), _signal("buy", bars[4])], bars, config)

    assert [p.time for p in result.equity_curve] == [b.time for b in bars[3:7]]
    assert [t.entry_time for t in result.trades] == [bars[4].time]
