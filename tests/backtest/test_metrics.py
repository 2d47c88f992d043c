from __future__ import annotations

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from chartlab.backtest import metrics
from chartlab.backtest.models import PROFIT_FACTOR_CAP, RATIO_CAP, EquityPoint, Trade

DAY_MS = 86_400_000
START = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)

# Ensure deterministic synthetic series
rng = np.random.default_rng(1337)


def _curve(values, step_days=1):
    return [
        EquityPoint(time=START + i * step_days * DAY_MS, value=float(v))
        for i, v in enumerate(values)
    ]


def _closed(i, return_pct, pnl, days=2):
    entry = START + i * 10 * DAY_MS
    return Trade(
        id=f"trade-{i}",
        entry_time=entry,
        entry_price=100.0,
        shares=1.0,
        entry_cost=100.0,
        status="closed",
        exit_time=entry + days * DAY_MS,
        exit_price=100.0 + return_pct,
        pnl=pnl,
        return_pct=return_pct,
    )


def test_sharpe_golden_value():
    # per-bar returns +10%, -10%, +10%: mean 1/30, population std sqrt(8/900)
    curve = _curve([100.0, 110.0, 99.0, 108.9])
    assert metrics.sharpe_ratio(curve) == pytest.approx(5.612486, rel=1e-6)


def test_sortino_golden_value():
    # returns +10%, -10%, +10%, -20%: mean -2.5%, downside std 5%
    curve = _curve([100.0, 110.0, 99.0, 108.9, 87.12])
    assert metrics.sortino_ratio(curve) == pytest.approx(-7.937254, rel=1e-6)
    assert metrics.sharpe_ratio(curve) == pytest.approx(-3.0550505, rel=1e-6)


def test_flat_equity_has_degenerate_defaults(make_config, flat_bars):
    curve = _curve([1_000.0] * 120)
    config = make_config(flat_bars, initial_capital=1_000.0)

    result, drawdown, monthly = metrics.analyze(curve, [], config)

    assert result.total_return == 0.0
    assert result.sharpe_ratio == 0.0
    assert result.sortino_ratio == 0.0
    assert result.volatility == pytest.approx(0.0)
    assert result.max_drawdown == 0.0
    assert result.calmar_ratio == 0.0
    assert result.omega_ratio == 0.0
    assert result.downside_volatility == 0.0
    assert result.win_rate == 0.0
    assert result.profit_factor == 0.0
    assert result.total_trades == 0
    assert result.final_equity == 1_000.0
    assert all(p.value == 0.0 for p in drawdown)
    assert all(m.return_pct == pytest.approx(0.0) for m in monthly)


def test_monotonic_increase_has_positive_sharpe_and_no_negative_returns():
    increments = np.abs(rng.normal(loc=0.4, scale=0.1, size=252))
    curve = _curve(100.0 + np.cumsum(increments))

    assert metrics.sharpe_ratio(curve) > 0.0
    # no negative returns means no downside deviation
    assert metrics.sortino_ratio(curve) == 0.0


def test_drawdown_curve_and_duration():
    curve = _curve([100.0, 120.0, 90.0, 95.0, 130.0, 117.0])

    dd = metrics.drawdown_curve(curve)

    assert [p.value for p in dd] == pytest.approx([0.0, 0.0, -25.0, -125.0 / 6.0, 0.0, -10.0])
    assert all(p.value <= 0 for p in dd)
    assert metrics.max_drawdown(dd) == pytest.approx(25.0)
    assert metrics.max_drawdown(dd) == -min(p.value for p in dd)
    # peak on day 1, underwater through day 3
    assert metrics.max_drawdown_duration(dd) == (2, 2)


def test_drawdown_duration_counts_calendar_days():
    curve = _curve([100.0, 90.0, 95.0, 101.0], step_days=3)

    assert metrics.max_drawdown_duration(metrics.drawdown_curve(curve)) == (6, 2)


def test_annualized_return():
    one_year = [EquityPoint(START, 100.0), EquityPoint(START + 365 * DAY_MS, 110.0)]
    same_day = [EquityPoint(START, 100.0), EquityPoint(START + DAY_MS // 2, 110.0)]

    assert metrics.annualized_return(one_year) == pytest.approx(10.0)
    assert metrics.annualized_return(same_day) == 0.0
    assert metrics.total_return(same_day) == pytest.approx(10.0)


def test_monthly_returns_compound_to_total_return():
    jan_10 = datetime(2024, 1, 10, tzinfo=timezone.utc)
    points = [
        (jan_10, 100.0),
        (jan_10 + timedelta(days=21), 110.0),  # Jan 31
        (jan_10 + timedelta(days=36), 105.0),  # Feb 15
        (jan_10 + timedelta(days=50), 121.0),  # Feb 29
    ]
    curve = [EquityPoint(int(dt.timestamp() * 1000), v) for dt, v in points]

    monthly = metrics.monthly_returns(curve, initial_capital=100.0)

    assert [m.month for m in monthly] == ["2024-01", "2024-02"]
    assert [m.return_pct for m in monthly] == pytest.approx([10.0, 10.0])
    compounded = (np.prod([1 + m.return_pct / 100.0 for m in monthly]) - 1) * 100.0
    assert compounded == pytest.approx(metrics.total_return(curve))


def test_first_month_uses_initial_capital_baseline():
    curve = _curve([95.0, 99.0])
    (month,) = metrics.monthly_returns(curve, initial_capital=90.0)
    assert month.return_pct == pytest.approx(10.0)


def test_trade_statistics(make_config, flat_bars):
    trades = [
        _closed(0, 10.0, 100.0, days=2),
        _closed(1, -5.0, -50.0, days=4),
        _closed(2, 0.0, 0.0, days=6),
        _closed(3, 20.0, 200.0, days=8),
        Trade(
            id="open",
            entry_time=START + 50 * DAY_MS,
            entry_price=1.0,
            shares=1.0,
            entry_cost=1.0,
        ),
    ]
    config = make_config(flat_bars)

    result, _, _ = metrics.analyze(_curve([1.0, 1.0]), trades, config)

    assert result.total_trades == 4
    assert result.open_trades == 1
    assert result.winning_trades == 2
    # break-even trades count as losers
    assert result.losing_trades == 2
    assert result.win_rate == pytest.approx(50.0)
    assert result.avg_win_pct == pytest.approx(15.0)
    assert result.avg_loss_pct == pytest.approx(-2.5)
    assert result.expectancy == pytest.approx(6.25)
    assert result.profit_factor == pytest.approx(6.0)
    # break-even trades are left out of the risk/reward average loss
    assert result.risk_reward_ratio == pytest.approx(3.0)
    assert result.max_consecutive_wins == 1
    assert result.max_consecutive_losses == 2
    assert result.avg_holding_days == pytest.approx(5.0)


def test_profit_factor_sentinels():
    winners = [_closed(0, 5.0, 50.0), _closed(1, 3.0, 30.0)]
    losers = [_closed(0, -5.0, -50.0)]

    assert metrics.profit_factor(winners) == PROFIT_FACTOR_CAP
    assert metrics.profit_factor(losers) == 0.0
    assert metrics.profit_factor([]) == 0.0


def test_calmar_ratio_is_annualized_over_max_drawdown(make_config, flat_bars):
    curve = _curve([100.0, 80.0] + [80.0 + i for i in range(1, 400)])
    config = make_config(flat_bars, initial_capital=100.0)

    result, _, _ = metrics.analyze(curve, [], config)

    assert result.max_drawdown == pytest.approx(20.0)
    assert result.calmar_ratio == pytest.approx(result.annualized_return / 20.0)


def test_constant_growth_has_zero_variance_ratios():
    # every per-bar return is exactly 1%; float residue must not blow up the ratios
    curve = _curve([100.0 * 1.01**i for i in range(60)])

    assert metrics.sharpe_ratio(curve) == 0.0
    assert metrics.sortino_ratio(curve) == 0.0
    assert metrics.volatility(curve) == 0.0
    assert metrics.total_return(curve) > 0.0


def test_constant_loss_has_zero_sortino():
    curve = _curve([100.0 * 0.99**i for i in range(60)])

    assert metrics.sharpe_ratio(curve) == 0.0
    assert metrics.sortino_ratio(curve) == 0.0


def test_omega_ratio_golden_value():
    # returns +10%, -10%, +10%, -20%: gains 0.2 over shortfalls 0.3
    curve = _curve([100.0, 110.0, 99.0, 108.9, 87.12])
    assert metrics.omega_ratio(curve) == pytest.approx(2.0 / 3.0, rel=1e-9)


def test_omega_ratio_sentinels():
    assert metrics.omega_ratio(_curve([100.0, 101.0, 103.0])) == RATIO_CAP
    assert metrics.omega_ratio(_curve([100.0] * 10)) == 0.0
    assert metrics.omega_ratio(_curve([100.0])) == 0.0


def test_downside_volatility_golden_value():
    # negative returns -10% and -20%: sqrt(mean(0.01, 0.04)) * sqrt(252) = sqrt(6.3)
    curve = _curve([100.0, 110.0, 99.0, 108.9, 87.12])
    assert metrics.downside_volatility(curve) == pytest.approx(100.0 * np.sqrt(6.3), rel=1e-9)
    # a single negative return is not enough to measure
    assert metrics.downside_volatility(_curve([100.0, 90.0, 95.0])) == 0.0


def test_risk_reward_ratio_needs_both_sides():
    assert metrics.risk_reward_ratio([_closed(0, 6.0, 60.0), _closed(1, -2.0, -20.0)]) == (
        pytest.approx(3.0)
    )
    assert metrics.risk_reward_ratio([_closed(0, 6.0, 60.0)]) == 0.0
    assert metrics.risk_reward_ratio([_closed(0, 6.0, 60.0), _closed(1, 0.0, 0.0)]) == 0.0
    assert metrics.risk_reward_ratio([]) == 0.0


def test_yearly_returns_chain_year_ends():
    points = [
        (datetime(2023, 12, 28, tzinfo=timezone.utc), 100.0),
        (datetime(2023, 12, 29, tzinfo=timezone.utc), 110.0),
        (datetime(2024, 1, 2, tzinfo=timezone.utc), 99.0),
        (datetime(2024, 1, 3, tzinfo=timezone.utc), 121.0),
    ]
    curve = [EquityPoint(int(dt.timestamp() * 1000), v) for dt, v in points]

    yearly = metrics.yearly_returns(curve, initial_capital=100.0)

    assert [y.year for y in yearly] == [2023, 2024]
    assert [y.return_pct for y in yearly] == pytest.approx([10.0, 10.0])
    assert metrics.yearly_returns([], initial_capital=100.0) == tuple()
