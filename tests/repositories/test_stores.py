from __future__ import annotations

import json

import pytest

from chartlab.backtest.engine import run
from chartlab.core.exceptions import ConfigError, StorageError
from chartlab.repositories.results import JsonlResultStore
from chartlab.repositories.strategies import JsonStrategyStore
from chartlab.signals.presets import get_preset_strategy
from chartlab.signals.types import SingleCondition, Strategy

CUSTOM = Strategy(
    id="rsi_25_75",
    name="RSI 25/75",
    buy_condition=SingleCondition(indicator="rsi", operator="lt", value=25.0),
    sell_condition=SingleCondition(indicator="rsi", operator="gt", value=75.0),
)


def test_strategy_store_round_trip(tmp_path):
    store = JsonStrategyStore(tmp_path / "nested" / "strategies.json")

    assert store.load("rsi_25_75") is None
    store.save(CUSTOM)

    assert store.load("rsi_25_75") == CUSTOM
    ids = [s.id for s in store.list()]
    assert ids[:6] == [
        "golden_cross",
        "death_cross",
        "rsi_oversold",
        "rsi_overbought",
        "macd_crossover",
        "bollinger_breakout",
    ]
    assert ids[-1] == "rsi_25_75"


def test_presets_resolve_first_and_are_read_only(tmp_path):
    store = JsonStrategyStore(tmp_path / "strategies.json")

    assert store.load("golden_cross") is get_preset_strategy("golden_cross")
    with pytest.raises(ConfigError):
        store.save(get_preset_strategy("golden_cross"))


def test_corrupt_strategy_file_raises_storage_error(tmp_path):
    path = tmp_path / "strategies.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(StorageError):
        JsonStrategyStore(path).load("anything")


def test_result_store_save_and_load(tmp_path, toy_bars, make_config):
    result = run(toy_bars, CUSTOM, make_config(toy_bars))
    store = JsonlResultStore(tmp_path)

    first = store.save(result)
    second = store.save(result)

    assert first != second
    loaded = store.load(first)
    assert loaded == json.loads(json.dumps(result.to_dict()))
    assert store.load("missing") is None
    assert {r["run_id"] for r in store.recent()} == {first, second}
    assert len(store.path.read_text(encoding="utf-8").splitlines()) == 2


def test_unreadable_results_raise_storage_error(tmp_path):
    # a directory where the log file should be cannot be opened for reading
    (tmp_path / "results.jsonl").mkdir()
    store = JsonlResultStore(tmp_path)

    with pytest.raises(StorageError):
        store.load("anything")
    with pytest.raises(StorageError):
        store.recent()


def test_undecodable_results_raise_storage_error(tmp_path):
    (tmp_path / "results.jsonl").write_bytes(b"\xff\xfe\xfa not utf-8\n")

    with pytest.raises(StorageError):
        JsonlResultStore(tmp_path).load("anything")
