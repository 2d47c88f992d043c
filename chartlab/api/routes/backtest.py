from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from chartlab.backtest.engine import ensure_backtestable, run
from chartlab.backtest.markers import trades_to_markers
from chartlab.backtest.models import BacktestConfig
from chartlab.core.exceptions import (
    ConditionError,
    ConfigError,
    DataValidationError,
    ProviderError,
    StorageError,
)
from chartlab.core.models import Bar, validate_bars
from chartlab.core.timeutils import to_datetime
from chartlab.providers.base import OHLCVProvider
from chartlab.providers.yahoo_provider import YahooOHLCVProvider
from chartlab.repositories.results import JsonlResultStore
from chartlab.repositories.strategies import JsonStrategyStore
from chartlab.settings import get_backtest_settings
from chartlab.signals.engine import generate_signals
from chartlab.signals.formula import condition_to_formula, parse_formula
from chartlab.signals.presets import list_preset_strategies
from chartlab.signals.rules import (
    condition_to_dict,
    describe_condition,
    strategy_from_dict,
    strategy_to_dict,
)
from chartlab.signals.types import Condition, Strategy

router = APIRouter(prefix="/backtests", tags=["backtests"])


# ---------------------------------------------------------------------
# Dependencies (overridden in tests)
# ---------------------------------------------------------------------


def get_provider() -> OHLCVProvider:
    return YahooOHLCVProvider()


def get_strategy_store() -> JsonStrategyStore:
    return JsonStrategyStore(get_backtest_settings().strategies_path)


def get_result_store() -> JsonlResultStore:
    return JsonlResultStore(get_backtest_settings().results_dir)


# ---------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------


class StrategySelector(BaseModel):
    preset_id: Optional[str] = Field(
        default=None, description="Built-in preset or stored strategy id."
    )
    strategy: Optional[Dict[str, Any]] = Field(
        default=None, description="Inline strategy with buyCondition/sellCondition."
    )
    buy_formula: Optional[str] = Field(
        default=None, description="Buy rule as a formula, e.g. 'RSI(14) <= 30'."
    )
    sell_formula: Optional[str] = Field(
        default=None, description="Sell rule as a formula, e.g. 'RSI(14) >= 70'."
    )


class FormulaRequest(BaseModel):
    formula: str


class BacktestRequest(StrategySelector):
    symbol: str
    start_date: str
    end_date: str
    initial_capital: Optional[float] = None
    commission: Optional[float] = None
    slippage: Optional[float] = None
    position_sizing: Literal["percent", "fixed"] = "percent"
    position_size: float = 100.0
    fractional_shares: bool = False


class SignalPreviewRequest(StrategySelector):
    symbol: str
    limit: int = Field(default=200, ge=2)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------


def _config_error(exc: ConfigError) -> HTTPException:
    if isinstance(exc, ConditionError):
        return HTTPException(status_code=422, detail=exc.as_dict())
    return HTTPException(status_code=422, detail=str(exc))


def _resolve_strategy(req: StrategySelector, store: JsonStrategyStore) -> Strategy:
    if req.strategy is not None:
        try:
            return strategy_from_dict(req.strategy)
        except ConfigError as exc:
            raise _config_error(exc) from exc
    if req.buy_formula is not None or req.sell_formula is not None:
        return _formula_strategy(req)
    if not req.preset_id:
        raise HTTPException(
            status_code=422, detail="preset_id, strategy or buy/sell formulas are required"
        )
    try:
        strategy = store.load(req.preset_id)
    except StorageError as exc:
        logger.warning("strategy store unavailable: {}", exc)
        strategy = None
    except ConfigError as exc:
        logger.warning("stored strategy {} is malformed: {}", req.preset_id, exc)
        raise _config_error(exc) from exc
    if strategy is None:
        raise HTTPException(status_code=404, detail=f"unknown strategy '{req.preset_id}'")
    return strategy


def _formula_strategy(req: StrategySelector) -> Strategy:
    if req.buy_formula is None or req.sell_formula is None:
        raise HTTPException(
            status_code=422, detail="buy_formula and sell_formula must be given together"
        )
    try:
        buy = parse_formula(req.buy_formula, "buy")
        sell = parse_formula(req.sell_formula, "sell")
    except ConfigError as exc:
        raise _config_error(exc) from exc
    return Strategy(
        id="formula",
        name="Formula strategy",
        buy_condition=buy,
        sell_condition=sell,
        description=f"Buy: {req.buy_formula.strip()} / Sell: {req.sell_formula.strip()}",
    )


def _formula_payload(condition: Condition) -> Dict[str, Any]:
    return {
        "formula": condition_to_formula(condition),
        "condition": condition_to_dict(condition),
        "description": describe_condition(condition),
    }


def _fetch_bars(provider: OHLCVProvider, symbol: str, limit: int) -> List[Bar]:
    try:
        bars = provider.get_ohlcv(symbol, "1d", limit)
    except ProviderError as exc:
        logger.warning("ohlcv fetch failed symbol={} error={}", symbol, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    try:
        validate_bars(bars)
    except DataValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return list(bars)


# ---------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------


@router.get("/presets")
def list_presets() -> List[Dict[str, Any]]:
    return [
        {
            **strategy_to_dict(s),
            "buyDescription": describe_condition(s.buy_condition),
            "sellDescription": describe_condition(s.sell_condition),
            "buyFormula": condition_to_formula(s.buy_condition),
            "sellFormula": condition_to_formula(s.sell_condition),
        }
        for s in list_preset_strategies()
    ]


@router.post("/formulas")
def parse_formula_endpoint(req: FormulaRequest) -> Dict[str, Any]:
    """Parse a formula into a condition tree and echo its normalized text."""
    try:
        condition = parse_formula(req.formula)
    except ConfigError as exc:
        raise _config_error(exc) from exc
    return _formula_payload(condition)


@router.post("/run")
def run_backtest_endpoint(
    req: BacktestRequest,
    provider: OHLCVProvider = Depends(get_provider),
    strategies: JsonStrategyStore = Depends(get_strategy_store),
    results: JsonlResultStore = Depends(get_result_store),
) -> Dict[str, Any]:
    cfg = get_backtest_settings()
    try:
        config = BacktestConfig(
            symbol=req.symbol.strip().upper(),
            start_date=to_datetime(req.start_date),
            end_date=to_datetime(req.end_date),
            initial_capital=(
                cfg.initial_capital if req.initial_capital is None else req.initial_capital
            ),
            commission=cfg.commission if req.commission is None else req.commission,
            slippage=cfg.slippage if req.slippage is None else req.slippage,
            position_sizing=req.position_sizing,
            position_size=req.position_size,
            fractional_shares=req.fractional_shares,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=f"invalid date: {exc}") from exc
    except ConfigError as exc:
        raise _config_error(exc) from exc

    strategy = _resolve_strategy(req, strategies)

    days = (config.end_date - config.start_date).days
    limit = min(days + cfg.lookback_bars, cfg.max_bars)
    bars = _fetch_bars(provider, config.symbol, limit)
    try:
        ensure_backtestable(bars, config, cfg.min_bars)
    except DataValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        result = run(bars, strategy, config)
    except ConfigError as exc:
        raise _config_error(exc) from exc

    payload = result.to_dict()
    payload["markers"] = trades_to_markers(result.trades)
    try:
        payload["run_id"] = results.save(result)
    except StorageError as exc:
        logger.warning("result not persisted symbol={} error={}", config.symbol, exc)
        payload["run_id"] = None
    return payload


@router.post("/signals")
def preview_signals(
    req: SignalPreviewRequest,
    provider: OHLCVProvider = Depends(get_provider),
    strategies: JsonStrategyStore = Depends(get_strategy_store),
) -> Dict[str, Any]:
    strategy = _resolve_strategy(req, strategies)
    limit = min(req.limit, get_backtest_settings().max_bars)
    bars = _fetch_bars(provider, req.symbol.strip().upper(), limit)
    try:
        signals = generate_signals(strategy, bars)
    except ConfigError as exc:
        raise _config_error(exc) from exc
    return {"symbol": req.symbol.strip().upper(), "strategy_id": strategy.id, **signals.as_dict()}
