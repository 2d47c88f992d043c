from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Mapping, Tuple

from chartlab.core.exceptions import ConfigError
from chartlab.core.timeutils import MS_PER_DAY, isoformat, to_datetime, to_epoch_ms

PositionSizing = Literal["percent", "fixed"]

# profit_factor when there are winners but no losing trades.
PROFIT_FACTOR_CAP = 999.0
# omega_ratio and risk_reward_ratio share the same ceiling.
RATIO_CAP = PROFIT_FACTOR_CAP


@dataclass(frozen=True)
class BacktestConfig:
    """
    Run configuration.

    Attributes:
        symbol (str): Ticker being simulated.
        start_date (datetime): First bar eligible for simulation (inclusive).
        end_date (datetime): Last bar eligible for simulation (inclusive).
        initial_capital (float): Starting cash, > 0.
        commission (float): Fraction of notional charged per fill, in [0, 1].
        slippage (float): Percent of price lost per fill, in [0, 5].
        position_sizing (str): "percent" of cash or a "fixed" cash amount.
        position_size (float): Percent (0, 100] or fixed amount > 0.
        fractional_shares (bool): Allow fractional share quantities.
    """

    symbol: str
    start_date: datetime
    end_date: datetime
    initial_capital: float = 10_000_000.0
    commission: float = 0.00015
    slippage: float = 0.1
    position_sizing: PositionSizing = "percent"
    position_size: float = 100.0
    fractional_shares: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.start_date, datetime) or not isinstance(
            self.end_date, datetime
        ):
            raise ConfigError("start_date and end_date must be datetimes")
        if to_epoch_ms(self.start_date) >= to_epoch_ms(self.end_date):
            raise ConfigError("start_date must be before end_date")
        if not (math.isfinite(self.initial_capital) and self.initial_capital > 0):
            raise ConfigError("initial_capital must be positive")
        if not (0.0 <= self.commission <= 1.0):
            raise ConfigError("commission must be within [0, 1]")
        if not (0.0 <= self.slippage <= 5.0):
            raise ConfigError("slippage must be within [0, 5]")
        if self.position_sizing not in ("percent", "fixed"):
            raise ConfigError("position_sizing must be 'percent' or 'fixed'")
        if not (math.isfinite(self.position_size) and self.position_size > 0):
            raise ConfigError("position_size must be positive")
        if self.position_sizing == "percent" and self.position_size > 100.0:
            raise ConfigError("percent position_size must not exceed 100")

    @property
    def start_ms(self) -> int:
        return to_epoch_ms(self.start_date)

    @property
    def end_ms(self) -> int:
        return to_epoch_ms(self.end_date)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "initial_capital": self.initial_capital,
            "commission": self.commission,
            "slippage": self.slippage,
            "position_sizing": self.position_sizing,
            "position_size": self.position_size,
            "fractional_shares": self.fractional_shares,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "BacktestConfig":
        try:
            return cls(
                symbol=str(raw["symbol"]),
                start_date=to_datetime(raw["start_date"]),
                end_date=to_datetime(raw["end_date"]),
                initial_capital=float(raw.get("initial_capital", 10_000_000.0)),
                commission=float(raw.get("commission", 0.00015)),
                slippage=float(raw.get("slippage", 0.1)),
                position_sizing=raw.get("position_sizing", "percent"),
                position_size=float(raw.get("position_size", 100.0)),
                fractional_shares=bool(raw.get("fractional_shares", False)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigError(f"invalid backtest config: {exc}") from exc


@dataclass
class Position:
    """Runtime position state owned by a single simulation."""

    status: Literal["flat", "long"] = "flat"
    entry_time: int | None = None
    entry_price: float = 0.0
    shares: float = 0.0


@dataclass(frozen=True)
class Trade:
    id: str
    entry_time: int
    entry_price: float
    shares: float
    entry_cost: float
    status: Literal["open", "closed"] = "open"
    exit_time: int | None = None
    exit_price: float | None = None
    pnl: float | None = None
    return_pct: float | None = None
    entry_reason: str = ""
    exit_reason: str = ""

    @property
    def holding_days(self) -> float | None:
        if self.exit_time is None:
            return None
        return (self.exit_time - self.entry_time) / MS_PER_DAY

    def as_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        out["holding_days"] = self.holding_days
        return out


@dataclass(frozen=True, slots=True)
class EquityPoint:
    time: int
    value: float


@dataclass(frozen=True, slots=True)
class DrawdownPoint:
    time: int
    value: float


@dataclass(frozen=True, slots=True)
class MonthlyReturn:
    month: str
    return_pct: float


@dataclass(frozen=True, slots=True)
class YearlyReturn:
    year: int
    return_pct: float


@dataclass(frozen=True)
class PerformanceMetrics:
    total_return: float = 0.0
    annualized_return: float = 0.0
    volatility: float = 0.0
    max_drawdown: float = 0.0
    max_drawdown_duration: int = 0
    max_drawdown_bars: int = 0
    sharpe_ratio: float = 0.0
    sortino_ratio: float = 0.0
    calmar_ratio: float = 0.0
    omega_ratio: float = 0.0
    downside_volatility: float = 0.0
    total_trades: int = 0
    open_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0
    avg_win_pct: float = 0.0
    avg_loss_pct: float = 0.0
    profit_factor: float = 0.0
    risk_reward_ratio: float = 0.0
    expectancy: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    avg_holding_days: float = 0.0
    final_equity: float = 0.0


@dataclass(frozen=True)
class BacktestResult:
    """Immutable output of one engine run; JSON-ready through ``to_dict``."""

    config: BacktestConfig
    strategy_id: str
    strategy_name: str
    metrics: PerformanceMetrics
    trades: Tuple[Trade, ...] = field(default_factory=tuple)
    equity_curve: Tuple[EquityPoint, ...] = field(default_factory=tuple)
    drawdown_curve: Tuple[DrawdownPoint, ...] = field(default_factory=tuple)
    monthly_returns: Tuple[MonthlyReturn, ...] = field(default_factory=tuple)
    yearly_returns: Tuple[YearlyReturn, ...] = field(default_factory=tuple)

    @property
    def open_trade(self) -> Trade | None:
        return next((t for t in self.trades if t.status == "open"), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "config": self.config.to_dict(),
            "strategy_id": self.strategy_id,
            "strategy_name": self.strategy_name,
            **asdict(self.metrics),
            "trades": [t.as_dict() for t in self.trades],
            "equity_curve": [asdict(p) for p in self.equity_curve],
            "drawdown_curve": [asdict(p) for p in self.drawdown_curve],
            "monthly_returns": [asdict(m) for m in self.monthly_returns],
            "yearly_returns": [asdict(y) for y in self.yearly_returns],
        }


__all__ = [
    "PROFIT_FACTOR_CAP",
    "BacktestConfig",
    "Position",
    "Trade",
    "EquityPoint",
    "DrawdownPoint",
    "MonthlyReturn",
    "YearlyReturn",
    "PerformanceMetrics",
    "BacktestResult",
    "RATIO_CAP",
]
