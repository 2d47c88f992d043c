from __future__ import annotations

import math
import random
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import requests
from loguru import logger

from chartlab.core.exceptions import ProviderError
from chartlab.core.models import Bar
from chartlab.settings import ProviderSettings, get_provider_settings

_YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"
# calendar days fetched per requested daily bar (weekends and holidays)
_CALENDAR_PADDING = 1.6


def compute_backoff_delay(
    attempt: int, backoff: float, retry_after: Optional[str]
) -> float:
    if retry_after:
        try:
            val = float(retry_after)
            if val > 0:
                return val
        except ValueError:
            pass
    # Jittered backoff: base * (attempt+1) * (0.85..1.15)
    jitter = random.uniform(0.85, 1.15)
    return max(0.1, backoff * (attempt + 1) * jitter)


def _safe_float(seq: Any, idx: int) -> Optional[float]:
    if not isinstance(seq, list):
        return None
    try:
        val = seq[idx]
    except (IndexError, TypeError):
        return None
    if val is None:
        return None
    try:
        num = float(val)
    except (TypeError, ValueError):
        return None
    if math.isnan(num):
        return None
    return num


def chart_to_bars(payload: Dict[str, Any]) -> List[Bar]:
    """
    Parse a Yahoo v8 chart payload into ascending bars.

    Rows without a close are dropped; missing open/high/low fall back to the
    close and missing volume to 0.
    """
    chart = payload.get("chart") or {}
    result = chart.get("result") or []
    if not result:
        return []

    node = result[0] or {}
    timestamps = node.get("timestamp") or []
    quote = ((node.get("indicators") or {}).get("quote") or [{}])[0] or {}

    by_time: Dict[int, Bar] = {}
    for idx, ts in enumerate(timestamps):
        try:
            time_ms = int(ts) * 1000
        except (TypeError, ValueError):
            continue
        c = _safe_float(quote.get("close"), idx)
        if c is None:
            continue
        o = _safe_float(quote.get("open"), idx)
        h = _safe_float(quote.get("high"), idx)
        low_val = _safe_float(quote.get("low"), idx)
        v = _safe_float(quote.get("volume"), idx)
        by_time[time_ms] = Bar(
            time=time_ms,
            open=c if o is None else o,
            high=c if h is None else h,
            low=c if low_val is None else low_val,
            close=c,
            volume=v or 0.0,
        )
    return [by_time[t] for t in sorted(by_time)]


class YahooOHLCVProvider:
    """Daily OHLCV from the public Yahoo chart API, with retry and backoff."""

    name = "yahoo"

    def __init__(
        self,
        settings: ProviderSettings | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.settings = settings or get_provider_settings()
        self.session = session or requests.Session()

    def _request(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        cfg = self.settings
        headers = {"User-Agent": cfg.user_agent}
        last_error = ""
        for attempt in range(cfg.retries + 1):
            try:
                resp = self.session.get(
                    url, params=params, headers=headers, timeout=cfg.timeout
                )
            except requests.RequestException as exc:
                last_error = str(exc)
                logger.warning(
                    "yahoo request error attempt={} url={} error={}",
                    attempt + 1,
                    url,
                    exc,
                )
                if attempt < cfg.retries:
                    time.sleep(compute_backoff_delay(attempt, cfg.backoff, None))
                    continue
                break

            throttled = resp.status_code == 429 or resp.status_code >= 500
            if throttled:
                last_error = f"status {resp.status_code}"
                logger.warning(
                    "yahoo retryable status={} attempt={} url={}",
                    resp.status_code,
                    attempt + 1,
                    url,
                )
                if attempt < cfg.retries:
                    time.sleep(
                        compute_backoff_delay(
                            attempt, cfg.backoff, resp.headers.get("Retry-After")
                        )
                    )
                    continue
                break

            if resp.status_code != 200:
                try:
                    detail = ((resp.json() or {}).get("chart") or {}).get("error")
                except ValueError:
                    detail = None
                raise ProviderError(
                    f"yahoo chart request failed status={resp.status_code} error={detail}"
                )
            try:
                return resp.json() or {}
            except ValueError as exc:
                raise ProviderError(f"yahoo chart returned invalid JSON: {exc}") from exc

        raise ProviderError(
            f"yahoo chart request failed after {cfg.retries + 1} attempts: {last_error}"
        )

    def get_ohlcv(self, symbol: str, interval: str = "1d", limit: int = 500) -> List[Bar]:
        if limit <= 0:
            return []
        sym = symbol.strip().upper()
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=int(limit * _CALENDAR_PADDING) + 7)
        params = {
            "interval": interval,
            "period1": str(int(start.timestamp())),
            "period2": str(int(end.timestamp())),
            "includeAdjustedClose": "false",
        }
        payload = self._request(_YAHOO_CHART_URL.format(symbol=sym), params)
        bars = chart_to_bars(payload)
        if not bars:
            raise ProviderError(f"no OHLCV data returned for {sym}")
        logger.bind(provider=self.name, symbol=sym).debug(
            "yahoo bars fetched symbol={} interval={} count={} limit={}",
            sym,
            interval,
            len(bars),
            limit,
        )
        return bars[-limit:]


__all__ = ["YahooOHLCVProvider", "chart_to_bars", "compute_backoff_delay"]
