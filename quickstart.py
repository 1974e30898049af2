"""Quick start script for Stock Forecast.

Demonstrates the complete workflow: ingest -> features -> train -> evaluate -> forecast
"""

import argparse

import numpy as np
import pandas as pd
from loguru import logger

from stock_forecast import FeatureSet, ForecastConfig, ForecastVariant, Regime, run_forecast
from stock_forecast.config import DISCLAIMER, MIN_HISTORY_BARS
from stock_forecast.data import (
    default_providers,
    ensure_min_history,
    fetch_history_with_fallback,
    lookup_company_name,
    normalize_symbol,
)
from stock_forecast.pipeline import ProgressEvent

# Configuration
SYMBOL = "7203"  # Toyota Motor, Tokyo Stock Exchange
CONFIG = ForecastConfig(
    window_size=30,
    epochs=20,  # Quick demo
    learning_rate=0.001,
    batch_size=32,
    prediction_days=5,
)


def synthetic_bars(n_days: int = 365, start_price: float = 1000.0, step: float = 2.0) -> pd.DataFrame:
    """Linear-trend bars on business days, for running without network access."""
    dates = pd.bdate_range("2024-01-01", periods=n_days)
    close = start_price + step * np.arange(n_days)
    return pd.DataFrame(
        {
            "date": dates,
            "open": close - 1.0,
            "high": close + 2.0,
            "low": close - 2.0,
            "close": close,
            "volume": np.full(n_days, 1_000_000.0),
        }
    )


def log_progress(event: ProgressEvent):
    if event.loss is not None:
        logger.info(f"[{event.phase.value}] epoch {event.current_epoch}/{event.total_epochs} loss={event.loss:.6f}")
    else:
        logger.info(f"[{event.phase.value}] rmse={event.rmse}")


def main():
    """Run complete demo workflow."""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--symbol", default=SYMBOL)
    parser.add_argument("--offline", action="store_true", help="Use synthetic bars instead of fetching")
    parser.add_argument("--regime", choices=[r.value for r in Regime], default=Regime.ITERATIVE.value)
    parser.add_argument("--features", choices=[f.value for f in FeatureSet], default=FeatureSet.CLOSE.value)
    args = parser.parse_args()

    # Step 1: Ingest data
    logger.info("=" * 80)
    logger.info("STEP 1: DATA INGESTION")
    logger.info("=" * 80)

    if args.offline:
        symbol = name = "SYNTHETIC"
        bars = synthetic_bars()
    else:
        symbol = normalize_symbol(args.symbol)
        providers = default_providers()
        bars = fetch_history_with_fallback(providers, symbol)
        name = lookup_company_name(providers, symbol)
    ensure_min_history(bars, minimum=MIN_HISTORY_BARS)
    logger.info(f"Loaded {len(bars)} bars for {symbol} ({name}): {bars['date'].min()} -> {bars['date'].max()}")

    # Step 2: Train, evaluate and forecast
    logger.info("=" * 80)
    logger.info("STEP 2: TRAINING AND FORECASTING")
    logger.info("=" * 80)

    variant = ForecastVariant(regime=Regime(args.regime), feature_set=FeatureSet(args.features))
    result = run_forecast(bars, CONFIG, on_progress=log_progress, variant=variant)

    # Step 3: Report
    logger.info("=" * 80)
    logger.info("STEP 3: FORECAST")
    logger.info("=" * 80)

    logger.info(f"Last close: {bars['close'].iloc[-1]:.2f}")
    for point in result.points:
        logger.info(f"  {point.date.isoformat()}: {point.price:.2f}")
    for key, value in result.metrics.items():
        logger.info(f"  {key}: {value:.4f}")

    logger.info(DISCLAIMER)


if __name__ == "__main__":
    main()
