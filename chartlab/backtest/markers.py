"""Pure mapping from a trade ledger to chart markers (lightweight-charts shape)."""

from __future__ import annotations

from typing import Dict, List, Sequence

from chartlab.backtest.models import Trade

BUY_COLOR = "#26a69a"
SELL_COLOR = "#ef5350"


def _marker(time_ms: int, side: str) -> Dict[str, object]:
    if side == "buy":
        return {
            "time": time_ms // 1000,
            "position": "belowBar",
            "color": BUY_COLOR,
            "shape": "arrowUp",
            "text": "B",
        }
    return {
        "time": time_ms // 1000,
        "position": "aboveBar",
        "color": SELL_COLOR,
        "shape": "arrowDown",
        "text": "S",
    }


def trades_to_markers(trades: Sequence[Trade]) -> List[Dict[str, object]]:
    """
    One buy marker per trade entry and one sell marker per closed exit.

    Marker times are epoch seconds; the list is sorted by time and ties keep
    ledger order.
    """
    markers: List[Dict[str, object]] = []
    for trade in trades:
        markers.append(_marker(trade.entry_time, "buy"))
        if trade.status == "closed" and trade.exit_time is not None:
            markers.append(_marker(trade.exit_time, "sell"))
    markers.sort(key=lambda m: m["time"])
    return markers


__all__ = ["trades_to_markers", "BUY_COLOR", "SELL_COLOR"]
