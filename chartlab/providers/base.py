from __future__ import annotations

from typing import List, Protocol, runtime_checkable

from chartlab.core.models import Bar


@runtime_checkable
class OHLCVProvider(Protocol):
    """Anything that can hand the engine an ascending daily bar series."""

    name: str

    def get_ohlcv(self, symbol: str, interval: str = "1d", limit: int = 500) -> List[Bar]:
        """Return at most ``limit`` most recent bars, oldest first."""
        ...


__all__ = ["OHLCVProvider"]
