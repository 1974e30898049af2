"""Base interface for forecasting models."""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

import numpy as np


class BaseForecaster(ABC):
    """
    Interface for forecasting models.

    A forecaster owns its network weights and optimizer state for exactly one
    run and must be released with close() (or used as a context manager).
    Implement this to add new model architectures.
    """

    @abstractmethod
    def fit(
        self,
        inputs: np.ndarray,
        targets: np.ndarray,
        epochs: int,
        batch_size: int,
        on_epoch_end: Optional[Callable[[int, float], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> Dict[str, list]:
        """
        Train the model.

        Args:
            inputs: (N, window_size, n_features) normalized windows
            targets: (N, output_size) normalized closes
            epochs: Number of passes over the data
            batch_size: Mini-batch size
            on_epoch_end: Called with (epoch, mean_loss) after every epoch
            should_stop: Polled after every epoch; True ends training early

        Returns:
            Training history dict
        """
        pass

    @abstractmethod
    def predict(self, inputs: np.ndarray) -> np.ndarray:
        """
        Generate normalized point forecasts.

        Args:
            inputs: (N, window_size, n_features)

        Returns:
            predictions: (N, output_size)
        """
        pass

    @abstractmethod
    def close(self):
        """Release weights, optimizer state and device memory."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
