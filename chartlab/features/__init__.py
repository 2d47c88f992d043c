"""
chartlab.features: feature engineering package

This package includes:
- `indicators`: SMA, EMA, RSI, MACD, Bollinger Bands, Stochastic, ATR and OBV

All indicator functions are pure pandas/numpy operations with no I/O and no
look-ahead: outputs align 1:1 with their inputs.
"""

from . import indicators

__all__ = ["indicators"]
