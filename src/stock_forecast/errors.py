"""
Exception taxonomy for the forecasting pipeline.

Every error carries a user-facing message that names a remedy
(smaller window, shorter horizon, another symbol, retry later).
"""

from typing import Optional


class ForecastError(Exception):
    """Base class for all forecasting failures surfaced to callers."""


class InsufficientDataError(ForecastError):
    """Too few bars, or windowing produced zero examples."""

    def __init__(
        self,
        message: str,
        n_bars: Optional[int] = None,
        required: Optional[int] = None,
    ):
        super().__init__(message)
        self.n_bars = n_bars
        self.required = required


class EmptyPartitionError(ForecastError):
    """Chronological train/test split left one partition empty."""

    def __init__(self, message: str, n_train: int = 0, n_test: int = 0):
        super().__init__(message)
        self.n_train = n_train
        self.n_test = n_test


class TrainingError(ForecastError):
    """Numerical failure while fitting (divergence, non-finite loss, backend error)."""


class DataSourceError(ForecastError):
    """Failure reported by a market data provider. Not retried by the core."""


class SymbolNotFoundError(DataSourceError):
    """The provider does not know the requested symbol."""


class TransientDataSourceError(DataSourceError):
    """Network, rate-limit or upstream outage; another provider may succeed."""


class RunCancelledError(ForecastError):
    """The caller revoked interest in the run; its result was discarded."""


class RunInProgressError(ForecastError):
    """A training run is already active for this pipeline."""
