"""
Sliding-window dataset construction and chronological train/test split.

LEAKAGE CHECK: a window starting at i uses bars [i, i+window_size) as input
and only bars at or after i+window_size as target.
"""

import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from loguru import logger

from ..config import Regime
from ..errors import EmptyPartitionError, InsufficientDataError


@dataclass
class WindowedDataset:
    """
    Window examples in chronological order.

    inputs: (N, window_size, n_features)
    targets: (N, 1) for iterative, (N, prediction_days) for direct
    indices: (N,) start position of each window in the bar series
    """

    inputs: np.ndarray
    targets: np.ndarray
    indices: np.ndarray

    def __len__(self) -> int:
        return len(self.inputs)

    def __getitem__(self, item: slice) -> "WindowedDataset":
        return WindowedDataset(
            inputs=self.inputs[item],
            targets=self.targets[item],
            indices=self.indices[item],
        )

    @property
    def window_size(self) -> int:
        return self.inputs.shape[1]

    @property
    def n_features(self) -> int:
        return self.inputs.shape[2]

    @property
    def output_size(self) -> int:
        return self.targets.shape[1]


def _insufficient(n_bars: int, window_size: int, horizon: int) -> InsufficientDataError:
    required = window_size + horizon
    return InsufficientDataError(
        f"Not enough data: {n_bars} bars cannot form a single window of "
        f"{window_size} bars plus {horizon} target day(s) (need at least {required}). "
        f"Reduce the window size or the number of prediction days.",
        n_bars=n_bars,
        required=required,
    )


def _as_2d(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=np.float32)
    if values.ndim == 1:
        values = values[:, None]
    if values.ndim != 2:
        raise ValueError(f"Expected (n_bars, n_features) values, got shape {values.shape}")
    return values


def create_iterative_windows(
    values: np.ndarray,
    window_size: int,
    target_index: int = 0,
) -> WindowedDataset:
    """
    Single-step examples: window [i, i+W) -> close at i+W.

    Args:
        values: (n_bars, n_features) normalized features (1-D for a single feature)
        window_size: Bars per input window
        target_index: Column of the close in ``values``

    Returns:
        WindowedDataset with (N, 1) targets, N = n_bars - window_size
    """
    values = _as_2d(values)
    n_bars = len(values)
    n_examples = n_bars - window_size

    if window_size < 1 or n_examples <= 0:
        raise _insufficient(n_bars, window_size, 1)

    inputs = np.stack([values[i : i + window_size] for i in range(n_examples)])
    targets = values[window_size:, target_index].reshape(-1, 1)

    logger.info(
        f"Created {n_examples} iterative windows: window={window_size}, "
        f"features={values.shape[1]}"
    )

    return WindowedDataset(
        inputs=inputs.astype(np.float32),
        targets=targets.astype(np.float32),
        indices=np.arange(n_examples),
    )


def create_direct_windows(
    values: np.ndarray,
    window_size: int,
    prediction_days: int,
    target_index: int = 0,
) -> WindowedDataset:
    """
    Multi-step examples: window [i, i+W) -> closes of [i+W, i+W+P).

    Args:
        values: (n_bars, n_features) normalized features
        window_size: Bars per input window
        prediction_days: Horizon length P
        target_index: Column of the close in ``values``

    Returns:
        WindowedDataset with (N, P) targets, N = n_bars - window_size - P + 1
    """
    values = _as_2d(values)
    n_bars = len(values)
    n_examples = n_bars - window_size - prediction_days + 1

    if window_size < 1 or prediction_days < 1 or n_examples <= 0:
        raise _insufficient(n_bars, window_size, prediction_days)

    close = values[:, target_index]
    inputs = np.stack([values[i : i + window_size] for i in range(n_examples)])
    targets = np.stack(
        [close[i + window_size : i + window_size + prediction_days] for i in range(n_examples)]
    )

    logger.info(
        f"Created {n_examples} direct windows: window={window_size}, "
        f"horizon={prediction_days}, features={values.shape[1]}"
    )

    return WindowedDataset(
        inputs=inputs.astype(np.float32),
        targets=targets.astype(np.float32),
        indices=np.arange(n_examples),
    )


def create_windows(
    values: np.ndarray,
    window_size: int,
    prediction_days: int,
    regime: Regime,
    target_index: int = 0,
) -> WindowedDataset:
    """Dispatch to the windowing scheme of the regime."""
    if regime is Regime.ITERATIVE:
        return create_iterative_windows(values, window_size, target_index)
    if regime is Regime.DIRECT:
        return create_direct_windows(values, window_size, prediction_days, target_index)
    raise ValueError(f"Unknown regime: {regime}")


def train_test_split(
    dataset: WindowedDataset,
    train_ratio: float = 0.8,
) -> Tuple[WindowedDataset, WindowedDataset]:
    """
    Chronological split: the test partition is always the most recent examples.

    STRICT TIME ORDERING: no shuffling across the boundary.

    Returns:
        (train, test)
    """
    if not 0.0 < train_ratio < 1.0:
        raise ValueError(f"train_ratio must be in (0, 1), got {train_ratio}")

    n = len(dataset)
    split_index = math.floor(n * train_ratio)

    train = dataset[:split_index]
    test = dataset[split_index:]

    if len(train) == 0 or len(test) == 0:
        raise EmptyPartitionError(
            f"Train/test split of {n} windows left an empty partition "
            f"(train={len(train)}, test={len(test)}). "
            f"Provide more history or reduce the window size.",
            n_train=len(train),
            n_test=len(test),
        )

    logger.info(f"Time split: train={len(train)}, test={len(test)} (ratio: {train_ratio:.2f})")

    return train, test
