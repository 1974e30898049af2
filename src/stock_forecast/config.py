"""Runtime configuration and per-run forecast parameters."""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict

import torch

# Environment-driven settings
DEVICE = os.getenv("DEFAULT_DEVICE", "cuda" if torch.cuda.is_available() else "cpu")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SEED = int(os.getenv("FORECAST_SEED", "42"))
MIN_HISTORY_BARS = int(os.getenv("MIN_HISTORY_BARS", "60"))
HISTORY_MONTHS = int(os.getenv("HISTORY_MONTHS", "12"))
DEFAULT_SYMBOL_SUFFIX = os.getenv("DEFAULT_SYMBOL_SUFFIX", ".T")
FINNHUB_API_KEY = os.getenv("FINNHUB_API_KEY", "")

DISCLAIMER = (
    "Forecasts are produced by a statistical model for educational purposes only "
    "and are not investment advice. No accuracy is guaranteed."
)


class Regime(str, Enum):
    """How the forecast horizon is produced."""

    ITERATIVE = "iterative"  # one-step model, rolled forward prediction_days times
    DIRECT = "direct"  # prediction_days-output model, one inference call


class FeatureSet(str, Enum):
    """Which bar columns feed the model."""

    CLOSE = "close"
    OHLCV = "ohlcv"
    INDICATORS = "indicators"


@dataclass(frozen=True)
class ForecastVariant:
    """
    Regime and feature set, selected once per run.

    The default reproduces the single-feature iterative model.
    """

    regime: Regime = Regime.ITERATIVE
    feature_set: FeatureSet = FeatureSet.CLOSE

    @property
    def uses_indicators(self) -> bool:
        return self.feature_set is FeatureSet.INDICATORS

    def describe(self) -> str:
        return f"{self.regime.value}/{self.feature_set.value}"


@dataclass
class ForecastConfig:
    """Parameters of a single forecasting run."""

    window_size: int = 30
    epochs: int = 50
    learning_rate: float = 0.001
    batch_size: int = 32
    prediction_days: int = 5
    train_ratio: float = 0.8

    def to_dict(self) -> Dict:
        return {
            "window_size": self.window_size,
            "epochs": self.epochs,
            "learning_rate": self.learning_rate,
            "batch_size": self.batch_size,
            "prediction_days": self.prediction_days,
            "train_ratio": self.train_ratio,
        }
