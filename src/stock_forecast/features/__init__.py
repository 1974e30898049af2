"""Feature engineering module."""

from .engineering import (
    INDICATOR_COLUMNS,
    OHLCV_COLUMNS,
    add_technical_indicators,
    engineer_features,
    get_feature_columns,
    prepare_bars,
)
from .indicators import (
    compute_bollinger_bands,
    compute_ema,
    compute_macd,
    compute_rsi,
    compute_sma,
)
from .normalization import FeatureNormalizer, Scaler
from .windowing import (
    WindowedDataset,
    create_direct_windows,
    create_iterative_windows,
    create_windows,
    train_test_split,
)

__all__ = [
    "compute_sma",
    "compute_ema",
    "compute_rsi",
    "compute_macd",
    "compute_bollinger_bands",
    "prepare_bars",
    "add_technical_indicators",
    "engineer_features",
    "get_feature_columns",
    "OHLCV_COLUMNS",
    "INDICATOR_COLUMNS",
    "Scaler",
    "FeatureNormalizer",
    "WindowedDataset",
    "create_iterative_windows",
    "create_direct_windows",
    "create_windows",
    "train_test_split",
]
