from __future__ import annotations

import logging
from contextlib import contextmanager

import pytest
from loguru import logger

from chartlab.logging_utils import logging_context, setup_logging, setup_test_logging
from chartlab.settings import settings


@pytest.fixture(autouse=True)
def _reset_logging():
    setup_logging(force=True, level="INFO")
    yield
    setup_logging(force=True, level="INFO")


@contextmanager
def capture_records(level=logging.INFO):
    records = []

    class ListHandler(logging.Handler):
        def emit(self, record):
            records.append(record)

    handler = ListHandler()
    handler.setLevel(level)
    root = logging.getLogger()
    prev_level = root.level
    root.setLevel(level)
    root.addHandler(handler)
    try:
        yield records
    finally:
        root.removeHandler(handler)
        root.setLevel(prev_level)


def test_setup_logging_attaches_metadata(monkeypatch):
    monkeypatch.setenv("ENV", "staging")
    monkeypatch.setenv("GIT_SHA", "abc123")

    setup_logging(force=True, level="INFO")

    with capture_records() as records:
        logger.info("hello world")

    record = records[-1]
    assert record.environment == "staging"
    assert record.git_sha == "abc123"
    assert record.service_version == settings.VERSION
    assert record.request_id == "-"


def test_logging_context_sets_request_id():
    with capture_records() as records:
        with logging_context(request_id="req-1"):
            logger.info("with request id")
        logger.info("after")

    assert records[-2].request_id == "req-1"
    assert records[-1].request_id == "-"


def test_setup_test_logging_writes_file(tmp_path):
    setup_test_logging(tmp_path, level="DEBUG")

    logger.debug("to file")
    # closing the sinks flushes the file
    logger.remove()

    content = (tmp_path / "pytest.log").read_text(encoding="utf-8")
    assert "to file" in content


def test_logging_context_scopes_backtest_run():
    with capture_records() as records:
        with logging_context(symbol="AAPL", strategy="golden_cross"):
            logger.info("inside run")
        logger.info("outside run")

    inside, outside = records[-2], records[-1]
    assert (inside.symbol, inside.strategy) == ("AAPL", "golden_cross")
    assert (outside.symbol, outside.strategy) == ("-", "-")


def test_backtest_run_logs_carry_symbol_and_strategy(toy_bars, make_config):
    from chartlab.backtest.engine import run
    from chartlab.signals.presets import get_preset_strategy

    strategy = get_preset_strategy("golden_cross")
    with capture_records() as records:
        run(toy_bars, strategy, make_config(toy_bars, symbol="MSFT"))

    done = [r for r in records if r.getMessage().startswith("[backtest] done")]
    assert len(done) == 1
    assert done[0].symbol == "MSFT"
    assert done[0].strategy == "golden_cross"
