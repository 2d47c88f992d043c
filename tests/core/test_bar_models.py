from __future__ import annotations

import pytest

from chartlab.core.exceptions import DataValidationError
from chartlab.core.models import OHLCV_COLUMNS, Bar, bars_to_frame, validate_bars
from chartlab.signals.conditions import IndicatorSnapshot


def test_bars_to_frame_is_utc_indexed(make_bars):
    bars = make_bars([10.0, 11.0, 12.5], spread=0.5, volumes=[100, 200, 300])

    frame = bars_to_frame(bars)

    assert list(frame.columns) == ["time", *OHLCV_COLUMNS]
    assert str(frame.index.tz) == "UTC"
    assert frame.index[0].isoformat().startswith("2024-01-01T00:00:00")
    assert frame["time"].tolist() == [b.time for b in bars]
    assert frame["high"].tolist() == [10.5, 11.5, 13.0]
    assert frame["volume"].dtype == float


def test_bars_to_frame_empty():
    frame = bars_to_frame([])
    assert frame.empty
    assert list(frame.columns) == ["time", *OHLCV_COLUMNS]


def test_snapshot_columns_come_from_the_frame(make_bars):
    bars = make_bars([10.0, 11.0, 12.5], spread=0.5)
    snap = IndicatorSnapshot(bars)

    assert snap.times.tolist() == [b.time for b in bars]
    assert snap.close.tolist() == [10.0, 11.0, 12.5]
    assert snap.series("low").tolist() == [9.5, 10.5, 12.0]
    assert len(IndicatorSnapshot([])) == 0


def test_validate_bars_rejects_duplicates():
    bar = Bar(time=1_000, open=1.0, high=1.0, low=1.0, close=1.0, volume=0.0)
    with pytest.raises(DataValidationError):
        validate_bars([bar, bar])
    validate_bars([bar])
