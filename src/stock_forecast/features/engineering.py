"""
Feature engineering pipeline for daily price forecasting.

Turns raw OHLCV bars into enriched bars (bars plus technical indicators)
and selects the model input columns for a feature set.
"""

from typing import List

import numpy as np
import pandas as pd
from loguru import logger

from ..config import FeatureSet
from ..errors import InsufficientDataError
from .indicators import compute_bollinger_bands, compute_macd, compute_rsi, compute_sma

OHLCV_COLUMNS = ["open", "high", "low", "close", "volume"]
INDICATOR_COLUMNS = [
    "sma5",
    "sma20",
    "rsi",
    "macd",
    "macd_signal",
    "macd_hist",
    "bb_upper",
    "bb_lower",
]

# Neutral values used where an indicator's lookback is not satisfied yet
RSI_NEUTRAL = 50.0
MACD_NEUTRAL = 0.0


def prepare_bars(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and clean raw price bars.

    Sorts by date, coerces OHLCV to numeric, drops bars without a close,
    fills missing volume with 0 and removes duplicate dates.

    Args:
        df: DataFrame with columns [date, open, high, low, close, volume]

    Returns:
        Clean DataFrame with a fresh RangeIndex
    """
    if df.empty:
        raise ValueError("Cannot engineer features on empty DataFrame")

    missing = [c for c in ["date"] + OHLCV_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}. Available: {df.columns.tolist()}")

    df = df.copy()
    df["date"] = pd.to_datetime(df["date"])

    for col in OHLCV_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce")

    df = df.dropna(subset=["close"])
    df["volume"] = df["volume"].fillna(0.0)

    # Open/high/low may be missing on thin days; fall back to the close
    for col in ["open", "high", "low"]:
        df[col] = df[col].fillna(df["close"])

    df = df.sort_values("date")
    n_before = len(df)
    df = df.drop_duplicates(subset=["date"], keep="first").reset_index(drop=True)
    if len(df) < n_before:
        logger.warning(f"Dropped {n_before - len(df)} bars with duplicate dates")

    return df[["date"] + OHLCV_COLUMNS]


def add_technical_indicators(df: pd.DataFrame) -> pd.DataFrame:
    """
    Build enriched bars: price bars plus indicator columns without gaps.

    Where an indicator is undefined the bar gets a fallback:
    moving averages and bands use the bar's own close, RSI uses 50 and
    the MACD family uses 0.

    Args:
        df: Clean bars (see prepare_bars)

    Returns:
        DataFrame with INDICATOR_COLUMNS added
    """
    df = df.copy()
    close = df["close"].astype("float64")

    sma5 = compute_sma(close, 5)
    sma20 = compute_sma(close, 20)
    rsi = compute_rsi(close, 14)
    macd = compute_macd(close, fast=12, slow=26, signal=9)
    bands = compute_bollinger_bands(close, period=20, num_std=2.0)

    df["sma5"] = sma5.fillna(close)
    df["sma20"] = sma20.fillna(close)
    df["rsi"] = rsi.fillna(RSI_NEUTRAL)
    df["macd"] = macd["macd"].fillna(MACD_NEUTRAL)
    df["macd_signal"] = macd["macd_signal"].fillna(MACD_NEUTRAL)
    df["macd_hist"] = macd["macd_hist"].fillna(MACD_NEUTRAL)
    df["bb_upper"] = bands["bb_upper"].fillna(close)
    df["bb_lower"] = bands["bb_lower"].fillna(close)

    assert not df[INDICATOR_COLUMNS].isna().any().any()

    return df


def get_feature_columns(feature_set: FeatureSet) -> List[str]:
    """Model input columns for a feature set. 'close' is always included."""
    if feature_set is FeatureSet.CLOSE:
        return ["close"]
    if feature_set is FeatureSet.OHLCV:
        return list(OHLCV_COLUMNS)
    if feature_set is FeatureSet.INDICATORS:
        return OHLCV_COLUMNS + INDICATOR_COLUMNS
    raise ValueError(f"Unknown feature_set: {feature_set}")


def engineer_features(df: pd.DataFrame, feature_set: FeatureSet = FeatureSet.CLOSE) -> pd.DataFrame:
    """
    Main feature engineering pipeline.

    Args:
        df: Raw OHLCV DataFrame with columns [date, open, high, low, close, volume]
        feature_set: Which columns the model will consume

    Returns:
        Clean DataFrame, enriched with indicators when the feature set needs them
    """
    n_raw = len(df)
    df = prepare_bars(df)
    if df.empty:
        raise InsufficientDataError(
            f"None of the {n_raw} price bars has a usable close. "
            f"Choose a different symbol or period.",
            n_bars=0,
        )

    if feature_set is FeatureSet.INDICATORS:
        df = add_technical_indicators(df)

    feature_cols = get_feature_columns(feature_set)
    values = df[feature_cols].to_numpy(dtype=np.float64)
    if not np.isfinite(values).all():
        raise ValueError("Engineered features contain non-finite values")

    logger.info(
        f"Feature engineering complete. Bars: {len(df)}, "
        f"feature_set={feature_set.value}, features={feature_cols}"
    )

    return df
