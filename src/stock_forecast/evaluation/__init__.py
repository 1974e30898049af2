"""Evaluation metrics module."""

from .metrics import point_forecast_metrics, root_mean_squared_error

__all__ = [
    "root_mean_squared_error",
    "point_forecast_metrics",
]
