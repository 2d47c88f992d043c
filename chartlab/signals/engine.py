"""Signal generator.

Walks the bars once with a two-state machine (seeking entry / seeking exit)
and emits alternating buy/sell signals priced at the bar close. The output is
reproducible from ``(strategy, bars)`` alone, which is what the signal preview
endpoint relies on.
"""

from __future__ import annotations

from typing import List, Sequence

from loguru import logger

from chartlab.core.models import Bar
from chartlab.signals.conditions import IndicatorSnapshot, evaluate, explain
from chartlab.signals.rules import validate_strategy, warmup_bars
from chartlab.signals.types import Signal, SignalResult, Strategy

SEEKING_ENTRY = "seeking_entry"
SEEKING_EXIT = "seeking_exit"


def generate_signals(
    strategy: Strategy,
    bars: Sequence[Bar],
    *,
    start_index: int = 0,
    end_index: int | None = None,
    snapshot: IndicatorSnapshot | None = None,
) -> SignalResult:
    """
    Generate buy/sell signals for ``strategy`` over ``bars``.

    Args:
        strategy: The rule set; validated before the walk starts.
        bars: Ascending daily bars, including any warm-up lookback.
        start_index: First bar eligible to emit a signal.
        end_index: Last bar (inclusive) eligible to emit a signal.
        snapshot: Pre-built indicator snapshot over ``bars`` to share a cache.

    Returns:
        SignalResult: Chronological signals; types strictly alternate from buy.
    """
    validate_strategy(strategy)
    snap = snapshot if snapshot is not None else IndicatorSnapshot(bars)
    last = len(bars) - 1 if end_index is None else min(end_index, len(bars) - 1)
    first = max(start_index, warmup_bars(strategy.buy_condition))

    signals: List[Signal] = []
    state = SEEKING_ENTRY
    for i in range(first, last + 1):
        if state == SEEKING_ENTRY:
            if evaluate(strategy.buy_condition, snap, i):
                signals.append(
                    Signal(
                        type="buy",
                        time=bars[i].time,
                        price=bars[i].close,
                        index=i,
                        reason=explain(strategy.buy_condition, snap, i),
                    )
                )
                state = SEEKING_EXIT
        elif evaluate(strategy.sell_condition, snap, i):
            signals.append(
                Signal(
                    type="sell",
                    time=bars[i].time,
                    price=bars[i].close,
                    index=i,
                    reason=explain(strategy.sell_condition, snap, i),
                )
            )
            state = SEEKING_ENTRY

    logger.debug(
        "[signals] strategy={} bars={} window=[{}, {}] signals={}",
        strategy.id,
        len(bars),
        first,
        last,
        len(signals),
    )
    return SignalResult(signals=tuple(signals))


__all__ = ["generate_signals", "SEEKING_ENTRY", "SEEKING_EXIT"]
