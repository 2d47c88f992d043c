from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter

from chartlab import APP_VERSION
from chartlab.settings import get_settings
from chartlab.signals.presets import list_preset_strategies

router = APIRouter(tags=["health"])


@router.get("")
async def health() -> Dict[str, Any]:
    return await health_live()


@router.get("/live")
async def health_live() -> Dict[str, Any]:
    """Liveness probe: the process is up and serving."""
    return {"ok": True, "service": "chartlab", "version": APP_VERSION}


@router.get("/ready")
async def health_ready() -> Dict[str, Any]:
    """
    Readiness probe.

    Reports the engine limits a client needs before submitting a run, and
    whether the results directory is usable.
    """
    backtest = get_settings().backtest
    results_dir = backtest.results_dir
    results_ok = not results_dir.exists() or results_dir.is_dir()
    return {
        "ok": results_ok,
        "version": APP_VERSION,
        "presets": len(list_preset_strategies()),
        "max_bars": backtest.max_bars,
        "min_bars": backtest.min_bars,
        "results_dir_ok": results_ok,
    }
