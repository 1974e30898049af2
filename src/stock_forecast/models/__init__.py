"""Models module."""

from .base import BaseForecaster
from .lstm_regressor import LSTMRegressor
from .training import ForecastModel

__all__ = [
    "BaseForecaster",
    "LSTMRegressor",
    "ForecastModel",
]
