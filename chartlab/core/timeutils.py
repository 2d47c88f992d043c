from __future__ import annotations

from datetime import date, datetime, timezone

MS_PER_DAY = 86_400_000


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_datetime(value: datetime | date | str | int | float) -> datetime:
    """
    Coerce an ISO-8601 string, date, datetime or epoch-ms number to an aware UTC datetime.
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return ms_to_datetime(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def to_epoch_ms(dt: datetime) -> int:
    return int(round(ensure_utc(dt).timestamp() * 1000))


def ms_to_datetime(ms: int | float) -> datetime:
    return datetime.fromtimestamp(float(ms) / 1000.0, tz=timezone.utc)


def month_key(ms: int) -> str:
    """Calendar month (UTC) of an epoch-ms timestamp as ``YYYY-MM``."""
    return ms_to_datetime(ms).strftime("%Y-%m")


def days_between(start_ms: int, end_ms: int) -> float:
    return (float(end_ms) - float(start_ms)) / MS_PER_DAY


def isoformat(dt: datetime) -> str:
    return ensure_utc(dt).isoformat()


__all__ = [
    "MS_PER_DAY",
    "now_utc",
    "ensure_utc",
    "to_datetime",
    "to_epoch_ms",
    "ms_to_datetime",
    "month_key",
    "days_between",
    "isoformat",
]
