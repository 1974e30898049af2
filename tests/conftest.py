"""Shared fixtures: synthetic daily bars."""

import numpy as np
import pandas as pd
import pytest


def _make_bars(closes, start="2024-01-01") -> pd.DataFrame:
    closes = np.asarray(closes, dtype=float)
    n = len(closes)
    return pd.DataFrame(
        {
            "date": pd.bdate_range(start, periods=n),
            "open": closes - 1.0,
            "high": closes + 2.0,
            "low": closes - 2.0,
            "close": closes,
            "volume": np.linspace(1_000_000, 2_000_000, n),
        }
    )


@pytest.fixture
def make_bars():
    """Factory: close prices -> OHLCV DataFrame on business days."""
    return _make_bars


@pytest.fixture
def linear_bars():
    """365 bars rising linearly from 1000 to 1728 (+2/day)."""
    return _make_bars(1000.0 + 2.0 * np.arange(365))


@pytest.fixture
def random_walk_bars():
    """120 bars of a seeded geometric random walk around 100."""
    rng = np.random.default_rng(42)
    returns = rng.normal(0.0005, 0.02, 120)
    return _make_bars(100.0 * np.cumprod(1.0 + returns))
