"""Centralized application settings powered by Pydantic.

Environment matrix:

| Section  | Environment Variable            | Default                          | Purpose                                  |
|----------|---------------------------------|----------------------------------|------------------------------------------|
| Backtest | `BACKTEST_INITIAL_CAPITAL`      | `10000000`                       | Default starting cash                    |
| Backtest | `BACKTEST_COMMISSION`           | `0.00015`                        | Default fractional commission per fill   |
| Backtest | `BACKTEST_SLIPPAGE`             | `0.1`                            | Default slippage, percent of price       |
| Backtest | `BACKTEST_MIN_BARS`             | `30`                             | Minimum usable bars accepted by the API  |
| Backtest | `BACKTEST_MAX_BARS`             | `500`                            | Cap on bars fetched for one run          |
| Backtest | `BACKTEST_LOOKBACK_BARS`        | `100`                            | Extra bars fetched for indicator warm-up |
| Backtest | `BACKTEST_RESULTS_DIR`          | `artifacts/backtests/runs`       | JSONL results store location             |
| Backtest | `BACKTEST_STRATEGIES_PATH`      | `artifacts/strategies.json`      | User strategy store                      |
| Provider | `HTTP_TIMEOUT`                  | `10`                             | OHLCV request timeout (seconds)          |
| Provider | `HTTP_RETRIES`                  | `2`                              | Retries after the first attempt          |
| Provider | `HTTP_BACKOFF`                  | `1.5`                            | Jittered backoff base (seconds)          |
| Provider | `HTTP_USER_AGENT`               | `chartlab/1.0`                   | User agent sent to the provider          |
| Sentry   | `SENTRY_DSN`                    | `None`                           | Sentry ingest DSN                        |
| Sentry   | `SENTRY_TRACES_SAMPLE_RATE`     | `0.0`                            | Fraction of transactions to trace        |
| Sentry   | `SENTRY_ENVIRONMENT`            | `None`                           | Deployment environment label             |

The settings objects source environment variables when instantiated and are
intended to be treated as read-only; call ``reload_settings()`` after changing
the environment (tests do this through ``monkeypatch``).
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from chartlab import APP_VERSION


class _SettingsBase(BaseSettings):
    """Common configuration for BaseSettings subclasses."""

    model_config = SettingsConfigDict(
        env_prefix="",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )


class BacktestSettings(_SettingsBase):
    """Defaults and caller-side limits for backtest runs."""

    initial_capital: float = Field(default=10_000_000.0, alias="BACKTEST_INITIAL_CAPITAL")
    commission: float = Field(default=0.00015, alias="BACKTEST_COMMISSION")
    slippage: float = Field(default=0.1, alias="BACKTEST_SLIPPAGE")
    min_bars: int = Field(default=30, alias="BACKTEST_MIN_BARS")
    max_bars: int = Field(default=500, alias="BACKTEST_MAX_BARS")
    lookback_bars: int = Field(default=100, alias="BACKTEST_LOOKBACK_BARS")
    results_dir: Path = Field(
        default=Path("artifacts/backtests/runs"), alias="BACKTEST_RESULTS_DIR"
    )
    strategies_path: Path = Field(
        default=Path("artifacts/strategies.json"), alias="BACKTEST_STRATEGIES_PATH"
    )

    @field_validator("min_bars", "max_bars", "lookback_bars", mode="before")
    @classmethod
    def _coerce_positive_int(cls, value: int | str | None, info) -> int:
        defaults = {"min_bars": 30, "max_bars": 500, "lookback_bars": 100}
        if value in (None, ""):
            return defaults[info.field_name]
        try:
            parsed = int(value)
        except (TypeError, ValueError):
            return defaults[info.field_name]
        return parsed if parsed > 0 else defaults[info.field_name]


class ProviderSettings(_SettingsBase):
    """HTTP behaviour of the OHLCV provider."""

    timeout: float = Field(default=10.0, alias="HTTP_TIMEOUT")
    retries: int = Field(default=2, alias="HTTP_RETRIES")
    backoff: float = Field(default=1.5, alias="HTTP_BACKOFF")
    user_agent: str = Field(default="chartlab/1.0", alias="HTTP_USER_AGENT")

    @field_validator("retries", mode="before")
    @classmethod
    def _coerce_retries(cls, value: int | str | None) -> int:
        if value in (None, ""):
            return 2
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return 2


class SentrySettings(_SettingsBase):
    """Sentry SDK configuration."""

    dsn: str | None = Field(default=None, alias="SENTRY_DSN")
    traces_sample_rate: float = Field(default=0.0, alias="SENTRY_TRACES_SAMPLE_RATE")
    environment: str | None = Field(default=None, alias="SENTRY_ENVIRONMENT")

    @computed_field
    @property
    def enabled(self) -> bool:
        return bool(self.dsn)


class Settings(BaseModel):
    """Aggregate accessor for domain-specific settings."""

    VERSION: str = APP_VERSION
    backtest: BacktestSettings = Field(default_factory=BacktestSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    model_config = {
        "frozen": True,
        "arbitrary_types_allowed": True,
    }


def get_settings() -> Settings:
    """Instantiate settings from the current environment."""
    return Settings()


def reload_settings() -> Settings:
    """Alias for get_settings to maintain a consistent API."""
    return get_settings()


def get_backtest_settings() -> BacktestSettings:
    return get_settings().backtest


def get_provider_settings() -> ProviderSettings:
    return get_settings().provider


def get_sentry_settings() -> SentrySettings:
    return get_settings().sentry


settings = get_settings()

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "reload_settings",
    "get_backtest_settings",
    "get_provider_settings",
    "get_sentry_settings",
    "BacktestSettings",
    "ProviderSettings",
    "SentrySettings",
]
