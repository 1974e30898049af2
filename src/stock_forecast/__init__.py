"""
Stock Forecast

Short-horizon daily close forecasting for equities with a stacked LSTM
regressor, technical-indicator features and iterative or direct
multi-step output.
"""

__version__ = "0.1.0"

from . import data, evaluation, features, models, pipeline
from .config import FeatureSet, ForecastConfig, ForecastVariant, Regime
from .pipeline import ForecastResult, ForecastRun, run_forecast, run_forecast_async

__all__ = [
    "data",
    "features",
    "models",
    "evaluation",
    "pipeline",
    "ForecastConfig",
    "ForecastVariant",
    "Regime",
    "FeatureSet",
    "ForecastResult",
    "ForecastRun",
    "run_forecast",
    "run_forecast_async",
]
