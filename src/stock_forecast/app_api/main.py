"""
FastAPI application for daily stock forecasting.

Fetches history, checks the minimum bar count and runs the forecasting
pipeline. One run at a time per process.
"""

import asyncio
import json
import sys
from datetime import datetime, timezone
from typing import Tuple

import pandas as pd
from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger

from ..config import FINNHUB_API_KEY, LOG_LEVEL, MIN_HISTORY_BARS
from ..data import (
    FinnhubProvider,
    default_providers,
    ensure_min_history,
    fetch_history_with_fallback,
    lookup_company_name,
    normalize_symbol,
)
from ..errors import (
    DataSourceError,
    EmptyPartitionError,
    ForecastError,
    InsufficientDataError,
    RunInProgressError,
    SymbolNotFoundError,
    TrainingError,
    TransientDataSourceError,
)
from ..pipeline import ForecastResult, ForecastRun
from .schemas import (
    ErrorResponse,
    ForecastPointSchema,
    ForecastRequest,
    ForecastResponse,
    HealthResponse,
    ProgressEventSchema,
    SymbolMatch,
    SymbolSearchResponse,
)

logger.remove()
logger.add(sys.stderr, level=LOG_LEVEL)

# Initialize FastAPI app
app = FastAPI(
    title="Stock Forecast API",
    description="Short-horizon daily close forecasts with a stacked LSTM regressor",
    version="0.1.0",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# At most one training run per process
_run_lock = asyncio.Lock()

# Most specific first
_ERROR_STATUS = [
    (SymbolNotFoundError, 404),
    (TransientDataSourceError, 503),
    (DataSourceError, 502),
    (RunInProgressError, 409),
    (InsufficientDataError, 422),
    (EmptyPartitionError, 422),
    (TrainingError, 500),
]


def status_for(error: ForecastError) -> int:
    for error_type, status in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def _error_body(error: Exception) -> dict:
    return ErrorResponse(error=type(error).__name__, detail=str(error)).model_dump()


@app.exception_handler(ForecastError)
async def forecast_error_handler(request: Request, exc: ForecastError):
    status = status_for(exc)
    logger.error(f"{request.url.path} failed ({status}): {exc}")
    return JSONResponse(status_code=status, content=_error_body(exc))


def load_bars(code: str) -> Tuple[str, str, pd.DataFrame]:
    """
    Fetch daily history for a stock code and enforce the minimum bar count.

    Returns:
        (symbol, company name, bars)
    """
    symbol = normalize_symbol(code)
    providers = default_providers()
    bars = fetch_history_with_fallback(providers, symbol)
    ensure_min_history(bars, minimum=MIN_HISTORY_BARS)
    return symbol, lookup_company_name(providers, symbol), bars


def search_provider() -> FinnhubProvider:
    """Provider backing symbol search."""
    if not FINNHUB_API_KEY:
        raise DataSourceError("Symbol search needs a Finnhub API key (FINNHUB_API_KEY).")
    return FinnhubProvider(api_key=FINNHUB_API_KEY)


async def _start_run(request: ForecastRequest) -> Tuple[str, str, pd.DataFrame, ForecastRun]:
    if _run_lock.locked():
        raise RunInProgressError("A forecast run is already in progress. Wait for it to finish.")

    await _run_lock.acquire()
    try:
        symbol, company_name, bars = await asyncio.to_thread(load_bars, request.symbol)
        run = ForecastRun(bars, config=request.to_config(), variant=request.to_variant()).start()
    except BaseException:
        _run_lock.release()
        raise

    # Released when the worker finishes, even if the client went away
    run.add_done_callback(lambda _: _run_lock.release())
    return symbol, company_name, bars, run


def _to_response(
    symbol: str,
    company_name: str,
    bars: pd.DataFrame,
    result: ForecastResult,
) -> ForecastResponse:
    return ForecastResponse(
        symbol=symbol,
        company_name=company_name,
        regime=result.variant.regime.value,
        feature_set=result.variant.feature_set.value,
        n_bars=len(bars),
        last_close=float(bars["close"].iloc[-1]),
        points=[
            ForecastPointSchema(date=p.date.isoformat(), price=round(p.price, 4))
            for p in result.points
        ],
        rmse=result.rmse,
        metrics=result.metrics,
        train_loss=result.train_loss,
    )


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint."""
    return {
        "message": "Stock Forecast API",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@app.post("/forecast", response_model=ForecastResponse, tags=["Forecast"])
async def forecast(request: ForecastRequest):
    """
    Train a model on the symbol's recent history and forecast the next business days.
    """
    logger.info(f"Forecast request: {request}")
    symbol, company_name, bars, run = await _start_run(request)

    try:
        async for event in run.events():
            logger.debug(f"{symbol} progress: {event.to_dict()}")
        result = await run.result()
    finally:
        # No-op once finished; stops an abandoned run at the next epoch
        run.cancel()

    return _to_response(symbol, company_name, bars, result)


@app.post("/forecast/stream", tags=["Forecast"])
async def forecast_stream(request: ForecastRequest):
    """
    Same as /forecast, streamed as NDJSON.

    Each line is {"type": "progress", ...event}; the last line is either
    {"type": "result", ...forecast} or {"type": "error", "error", "detail"}.
    Data-source and history-length errors are returned as plain HTTP errors
    before streaming starts.
    """
    logger.info(f"Streaming forecast request: {request}")
    symbol, company_name, bars, run = await _start_run(request)

    async def body():
        try:
            async for event in run.events():
                line = ProgressEventSchema(**event.to_dict()).model_dump()
                yield json.dumps({"type": "progress", **line}) + "\n"
            try:
                result = await run.result()
            except ForecastError as e:
                yield json.dumps({"type": "error", **_error_body(e)}) + "\n"
                return
            payload = _to_response(symbol, company_name, bars, result).model_dump()
            yield json.dumps({"type": "result", **payload}) + "\n"
        finally:
            # Client gone: let the epoch in flight finish, discard the result
            run.cancel()

    return StreamingResponse(body(), media_type="application/x-ndjson")


@app.get("/symbols/search", response_model=SymbolSearchResponse, tags=["Symbols"])
async def search_symbols(q: str = Query(..., min_length=1, pattern=r"\S", description="Code or company name")):
    """Find listed symbols with the default exchange suffix (Finnhub)."""
    provider = search_provider()
    matches = await asyncio.to_thread(provider.search_symbols, q)
    return SymbolSearchResponse(
        query=q.strip(),
        results=[SymbolMatch(**m) for m in matches],
    )
