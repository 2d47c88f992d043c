"""Loguru setup shared by the API, the engine and the test suite.

Every record carries the deployment metadata (environment, version, git sha)
plus two scopes that are set with ``logging_context``: the HTTP request id and
the backtest being run (symbol and strategy id). Records are also forwarded to
stdlib ``logging`` so pytest's ``caplog`` and Sentry's logging integration see
them, with the scope fields attached as record attributes.
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from os import PathLike
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

from loguru import logger

from chartlab.settings import settings as app_settings

_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "req={extra[request_id]} | run={extra[symbol]}/{extra[strategy]} | "
    "{extra[environment]}@{extra[service_version]} | {name}:{line} | {message}"
)

_UNSET = "-"

# scope name -> context variable; deployment fields are filled in by setup_logging
_SCOPES: Dict[str, ContextVar[str]] = {
    name: ContextVar(f"chartlab_log_{name}", default=_UNSET)
    for name in (
        "request_id",
        "symbol",
        "strategy",
        "environment",
        "service_version",
        "git_sha",
    )
}


def _git_sha() -> str:
    for key in ("GIT_SHA", "COMMIT_SHA", "SOURCE_VERSION"):
        value = os.getenv(key)
        if value:
            return value
    return "unknown"


def _patch_scopes(record: Dict[str, Any]) -> None:
    extra = record["extra"]
    for key, var in _SCOPES.items():
        extra.setdefault(key, var.get())


def _forward_to_stdlib(message) -> None:
    record = message.record
    exc = record["exception"]
    std_record = logging.LogRecord(
        name=record["name"],
        level=record["level"].no,
        pathname=record["file"].path,
        lineno=record["line"],
        msg=record["message"],
        args=(),
        exc_info=(exc.type, exc.value, exc.traceback) if exc else None,
        func=record["function"],
    )
    for key, value in record["extra"].items():
        setattr(std_record, key, value)
    logging.getLogger(record["name"]).handle(std_record)


def setup_logging(*, force: bool = False, level: str | None = None) -> None:
    """Install the stdout sink and the stdlib bridge once per process (or again with ``force``)."""
    if getattr(setup_logging, "_configured", False) and not force:
        return

    log_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    deployment = {
        "environment": os.getenv("ENV", "local"),
        "service_version": app_settings.VERSION,
        "git_sha": _git_sha(),
    }
    for key, value in deployment.items():
        _SCOPES[key].set(value)

    logger.remove()
    logger.configure(
        extra={**deployment, "request_id": _UNSET, "symbol": _UNSET, "strategy": _UNSET},
        patcher=_patch_scopes,
    )
    sink_options = dict(level=log_level, enqueue=False, backtrace=False, diagnose=False)
    logger.add(sys.stdout, format=_LOG_FORMAT, **sink_options)
    logger.add(_forward_to_stdlib, **sink_options)

    logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))
    setup_logging._configured = True  # type: ignore[attr-defined]


def setup_test_logging(
    target: Optional[Union[str, PathLike]] = None,
    *,
    level: Optional[str] = None,
    filename: str = "pytest.log",
) -> None:
    """
    Logging for pytest runs.

    ``target`` is either a level name ("DEBUG") or a log file / directory; a
    directory gets ``<dir>/<filename>``. The level falls back to
    ``PYTEST_LOGLEVEL`` and then INFO.
    """
    path: Optional[Path] = None
    if isinstance(target, str) and not ("/" in target or target.endswith(".log")):
        level = level or target
    elif target is not None:
        path = Path(target)

    effective = (level or os.getenv("PYTEST_LOGLEVEL") or "INFO").upper()
    setup_logging(force=True, level=effective)
    if path is None:
        return

    if path.is_dir() or not path.suffix:
        path.mkdir(parents=True, exist_ok=True)
        path = path / filename
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(str(path), level=effective, format=_LOG_FORMAT, enqueue=False)


@contextmanager
def logging_context(**values: str) -> Iterator[None]:
    """
    Scope log fields to a block, e.g. ``logging_context(request_id=rid)`` or
    ``logging_context(symbol="AAPL", strategy="golden_cross")``.
    """
    tokens = [
        (_SCOPES[key], _SCOPES[key].set(value or _UNSET))
        for key, value in values.items()
        if key in _SCOPES
    ]
    try:
        with logger.contextualize(**values):
            yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


__all__ = ["setup_logging", "setup_test_logging", "logging_context"]
