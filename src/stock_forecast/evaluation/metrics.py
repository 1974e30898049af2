"""
Point forecast metrics on price scale.

All metrics flatten their inputs, so direct multi-step predictions are
scored over every (example, horizon step) pair.
"""

from typing import Dict

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error


def root_mean_squared_error(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """RMSE = sqrt(mean((actual - predicted)^2))."""
    y_true = np.asarray(y_true, dtype=np.float64).flatten()
    y_pred = np.asarray(y_pred, dtype=np.float64).flatten()

    if y_true.shape != y_pred.shape:
        raise ValueError(f"Shape mismatch: y_true {y_true.shape} vs y_pred {y_pred.shape}")
    if len(y_true) == 0:
        raise ValueError("Cannot compute RMSE of an empty set")

    return float(np.sqrt(mean_squared_error(y_true, y_pred)))


def point_forecast_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
) -> Dict[str, float]:
    """
    Compute standard point forecast metrics (RMSE, MAE, MAPE).

    Args:
        y_true: Observed prices
        y_pred: Predicted prices

    Returns:
        Dict with rmse, mae, mape (percent)
    """
    rmse = root_mean_squared_error(y_true, y_pred)

    y_true = np.asarray(y_true, dtype=np.float64).flatten()
    y_pred = np.asarray(y_pred, dtype=np.float64).flatten()
    mae = float(mean_absolute_error(y_true, y_pred))

    # MAPE (skip zero prices)
    nonzero = np.abs(y_true) > 1e-8
    if nonzero.any():
        mape = float(np.mean(np.abs((y_true[nonzero] - y_pred[nonzero]) / y_true[nonzero])) * 100)
    else:
        mape = 0.0

    return {
        "rmse": rmse,
        "mae": mae,
        "mape": mape,
    }
