"""Long-only, single-position trade simulator with flat-percentage costs."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, List, Sequence, Tuple

from loguru import logger

from chartlab.backtest.models import BacktestConfig, EquityPoint, Position, Trade
from chartlab.core.models import Bar
from chartlab.signals.types import Signal


@dataclass(frozen=True)
class SimulationResult:
    trades: Tuple[Trade, ...]
    equity_curve: Tuple[EquityPoint, ...]


def buy_fill_price(price: float, slippage: float) -> float:
    """Slippage works against the buyer."""
    return float(price) * (1.0 + slippage / 100.0)


def sell_fill_price(price: float, slippage: float) -> float:
    """Slippage works against the seller."""
    return float(price) * (1.0 - slippage / 100.0)


def invest_amount(cash: float, config: BacktestConfig) -> float:
    if config.position_sizing == "fixed":
        return min(float(config.position_size), cash)
    return cash * float(config.position_size) / 100.0


def simulate(
    signals: Sequence[Signal],
    bars: Sequence[Bar],
    config: BacktestConfig,
) -> SimulationResult:
    """
    Replay signals against bars inside ``[config.start_date, config.end_date]``.

    Args:
        signals (Sequence[Signal]): Chronological buy/sell signals.
        bars (Sequence[Bar]): Ascending bars; bars outside the window are skipped.
        config (BacktestConfig): Capital, sizing and cost assumptions.

    Returns:
        SimulationResult: The trade ledger and one mark-to-market equity point
        per simulated bar. A position still open on the last bar stays open.
    """
    start_ms, end_ms = config.start_ms, config.end_ms
    by_time: Dict[int, Signal] = {}
    for sig in sorted(signals, key=lambda s: s.time):
        by_time.setdefault(sig.time, sig)

    cash = float(config.initial_capital)
    position = Position()
    trades: List[Trade] = []
    equity_curve: List[EquityPoint] = []
    skipped = 0

    for bar in bars:
        if bar.time < start_ms or bar.time > end_ms:
            continue
        sig = by_time.get(bar.time)

        if sig is not None and sig.type == "buy" and position.status == "flat":
            fill_px = buy_fill_price(sig.price, config.slippage)
            unit_cost = fill_px * (1.0 + config.commission)
            raw_shares = invest_amount(cash, config) / unit_cost
            shares = raw_shares if config.fractional_shares else float(math.floor(raw_shares))
            if shares > 0.0:
                entry_cost = shares * fill_px * (1.0 + config.commission)
                cash -= entry_cost
                position = Position(
                    status="long", entry_time=bar.time, entry_price=fill_px, shares=shares
                )
                trades.append(
                    Trade(
                        id=f"trade-{len(trades) + 1}",
                        entry_time=bar.time,
                        entry_price=fill_px,
                        shares=shares,
                        entry_cost=entry_cost,
                        entry_reason=sig.reason,
                    )
                )
            else:
                skipped += 1
                logger.warning(
                    "[simulator] buy skipped symbol={} time={} price={:.4f}: "
                    "cash {:.2f} buys no shares",
                    config.symbol,
                    bar.time,
                    fill_px,
                    cash,
                )

        elif sig is not None and sig.type == "sell" and position.status == "long":
            fill_px = sell_fill_price(sig.price, config.slippage)
            proceeds = position.shares * fill_px * (1.0 - config.commission)
            # the open trade is always the newest ledger entry
            opened = trades[-1]
            pnl = proceeds - opened.entry_cost
            trades[-1] = replace(
                opened,
                status="closed",
                exit_time=bar.time,
                exit_price=fill_px,
                pnl=pnl,
                return_pct=pnl / opened.entry_cost * 100.0,
                exit_reason=sig.reason,
            )
            cash += proceeds
            position = Position()

        equity_curve.append(EquityPoint(time=bar.time, value=cash + position.shares * bar.close))

    logger.debug(
        "[simulator] symbol={} bars={} trades={} open={} skipped_buys={}",
        config.symbol,
        len(equity_curve),
        len(trades),
        position.status == "long",
        skipped,
    )
    return SimulationResult(trades=tuple(trades), equity_curve=tuple(equity_curve))


__all__ = [
    "SimulationResult",
    "simulate",
    "buy_fill_price",
    "sell_fill_price",
    "invest_amount",
]
