# chartlab/main.py
from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger

import chartlab as chartlab_package  # noqa: F401  # ensure package __init__ (Sentry) runs
from chartlab.api.routes.backtest import router as backtest_router
from chartlab.api.routes.health import router as health_router
from chartlab.core.exceptions import ChartLabError
from chartlab.logging_utils import logging_context, setup_logging
from chartlab.settings import get_settings

__all__ = ["app"]


setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    settings = get_settings()
    logger.info(
        "ChartLab {} env={} max_bars={} results_dir={}",
        settings.VERSION,
        os.getenv("ENV", "local"),
        settings.backtest.max_bars,
        settings.backtest.results_dir,
    )
    yield


app = FastAPI(title="ChartLab", version=get_settings().VERSION, lifespan=lifespan)

app.include_router(health_router, prefix="/health", tags=["health"])
app.include_router(backtest_router)


@app.exception_handler(ChartLabError)
async def chartlab_error_handler(request: Request, exc: ChartLabError) -> JSONResponse:
    logger.error(
        "unhandled {} on path={}: {}", type(exc).__name__, request.url.path, exc
    )
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    start = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or uuid4().hex
    request.state.request_id = request_id
    with logging_context(request_id=request_id):
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000.0
            logger.exception(
                "request method={} path={} status=500 duration_ms={:.2f}",
                request.method,
                request.url.path,
                duration_ms,
            )
            raise

        duration_ms = (time.perf_counter() - start) * 1000.0
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request method={} path={} status={} duration_ms={:.2f}",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response
