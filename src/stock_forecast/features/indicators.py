"""
Technical indicators computed from a close-price series.

Every function returns values aligned with the input index and leaves
positions whose lookback window is not yet satisfied as NaN. Substituting
fallback values is the job of the enrichment step in ``engineering``.
"""

from typing import Iterable, Union

import numpy as np
import pandas as pd
from ta.trend import SMAIndicator
from ta.volatility import BollingerBands

PriceInput = Union[pd.Series, np.ndarray, Iterable[float]]


def _as_float_series(close: PriceInput) -> pd.Series:
    if isinstance(close, pd.Series):
        return close.astype("float64")
    return pd.Series(np.asarray(list(close), dtype="float64"))


def _seeded_ewm(series: pd.Series, period: int, alpha: float, start: int) -> pd.Series:
    """
    Exponential smoothing seeded with a simple mean.

    The seed is the mean of the ``period`` values ending at position ``start``;
    from there on ``avg_t = avg_{t-1} + alpha * (x_t - avg_{t-1})``.
    """
    out = pd.Series(np.nan, index=series.index, dtype="float64")
    if start >= len(series):
        return out

    seed = series.iloc[start - period + 1 : start + 1].mean()
    tail = series.iloc[start:].copy()
    tail.iloc[0] = seed
    out.iloc[start:] = tail.ewm(alpha=alpha, adjust=False).mean().to_numpy()
    return out


def compute_sma(close: PriceInput, period: int) -> pd.Series:
    """Simple moving average of the trailing ``period`` closes."""
    close = _as_float_series(close)
    sma = SMAIndicator(close=close, window=period, fillna=False).sma_indicator()
    return sma.rename(f"sma_{period}")


def compute_ema(close: PriceInput, period: int) -> pd.Series:
    """
    Exponential moving average seeded by the SMA of the first ``period`` values.

    ema_t = (price_t - ema_{t-1}) * 2 / (period + 1) + ema_{t-1}
    """
    close = _as_float_series(close)
    ema = _seeded_ewm(close, period, alpha=2.0 / (period + 1), start=period - 1)
    return ema.rename(f"ema_{period}")


def compute_rsi(close: PriceInput, period: int = 14) -> pd.Series:
    """
    Relative Strength Index with Wilder smoothing.

    The first average gain/loss is the plain mean of the first ``period``
    price changes and is reported at position ``period``. An average loss of
    zero maps to RSI = 100.
    """
    close = _as_float_series(close)
    delta = close.diff()
    gains = delta.clip(lower=0.0)
    losses = (-delta).clip(lower=0.0)

    alpha = 1.0 / period
    avg_gain = _seeded_ewm(gains, period, alpha=alpha, start=period)
    avg_loss = _seeded_ewm(losses, period, alpha=alpha, start=period)

    with np.errstate(divide="ignore", invalid="ignore"):
        rsi = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
    rsi = rsi.where(avg_loss != 0.0, 100.0)
    rsi = rsi.where(avg_loss.notna())
    return rsi.rename(f"rsi_{period}")


def compute_macd(
    close: PriceInput,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> pd.DataFrame:
    """
    MACD line, signal line and histogram.

    The signal EMA runs over the defined part of the MACD line only and is
    then realigned with the original index.

    Returns:
        DataFrame with 'macd', 'macd_signal', 'macd_hist' columns
    """
    close = _as_float_series(close)
    macd_line = compute_ema(close, fast) - compute_ema(close, slow)

    defined = macd_line.dropna()
    signal_line = compute_ema(defined, signal).reindex(close.index)

    return pd.DataFrame(
        {
            "macd": macd_line,
            "macd_signal": signal_line,
            "macd_hist": macd_line - signal_line,
        },
        index=close.index,
    )


def compute_bollinger_bands(
    close: PriceInput,
    period: int = 20,
    num_std: float = 2.0,
) -> pd.DataFrame:
    """
    Bollinger Bands: SMA ± num_std * population standard deviation.

    Returns:
        DataFrame with 'bb_middle', 'bb_upper', 'bb_lower' columns
    """
    close = _as_float_series(close)
    bands = BollingerBands(close=close, window=period, window_dev=num_std, fillna=False)

    return pd.DataFrame(
        {
            "bb_middle": bands.bollinger_mavg(),
            "bb_upper": bands.bollinger_hband(),
            "bb_lower": bands.bollinger_lband(),
        },
        index=close.index,
    )
