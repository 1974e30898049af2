"""
Tests for sliding windows and the chronological split.

Windows must never use future data: a window's target lies strictly after
its input bars, and every test window lies after every train window.
"""

import numpy as np
import pytest

from stock_forecast.config import Regime
from stock_forecast.errors import EmptyPartitionError, InsufficientDataError
from stock_forecast.features import (
    create_direct_windows,
    create_iterative_windows,
    create_windows,
    train_test_split,
)


class TestIterativeWindows:
    """Single-step windows."""

    def setup_method(self):
        self.values = np.linspace(0.0, 1.0, 50, dtype=np.float32)

    def test_count_and_shapes(self):
        dataset = create_iterative_windows(self.values, window_size=10)

        assert len(dataset) == 40
        assert dataset.inputs.shape == (40, 10, 1)
        assert dataset.targets.shape == (40, 1)
        assert dataset.output_size == 1

    def test_target_follows_window(self):
        dataset = create_iterative_windows(self.values, window_size=10)

        for i in [0, 17, 39]:
            assert np.allclose(dataset.inputs[i, :, 0], self.values[i : i + 10])
            assert dataset.targets[i, 0] == pytest.approx(self.values[i + 10])

    def test_target_index_selects_close(self):
        values = np.stack([np.zeros(20), np.arange(20.0), np.ones(20)], axis=-1)
        dataset = create_iterative_windows(values, window_size=5, target_index=1)

        assert dataset.n_features == 3
        assert np.allclose(dataset.targets[:, 0], np.arange(5.0, 20.0))

    def test_too_few_bars_raise(self):
        with pytest.raises(InsufficientDataError) as exc_info:
            create_iterative_windows(np.zeros(59), window_size=60)

        assert exc_info.value.n_bars == 59
        assert "window" in str(exc_info.value)

    def test_exactly_window_size_bars_raise(self):
        with pytest.raises(InsufficientDataError):
            create_iterative_windows(np.zeros(10), window_size=10)


class TestDirectWindows:
    """Multi-step windows."""

    def setup_method(self):
        self.values = np.arange(50.0, dtype=np.float32)

    def test_count_and_shapes(self):
        dataset = create_direct_windows(self.values, window_size=10, prediction_days=5)

        assert len(dataset) == 36
        assert dataset.inputs.shape == (36, 10, 1)
        assert dataset.targets.shape == (36, 5)

    def test_targets_are_next_closes(self):
        dataset = create_direct_windows(self.values, window_size=10, prediction_days=5)

        assert np.allclose(dataset.targets[0], [10, 11, 12, 13, 14])
        assert np.allclose(dataset.targets[-1], [45, 46, 47, 48, 49])
        assert (dataset.targets.min(axis=1) > dataset.inputs[:, :, 0].max(axis=1)).all()

    @pytest.mark.parametrize(
        "n_bars,window_size,prediction_days",
        [(14, 10, 5), (30, 30, 1), (10, 5, 6)],
    )
    def test_shorter_than_window_plus_horizon_raises(self, n_bars, window_size, prediction_days):
        with pytest.raises(InsufficientDataError) as exc_info:
            create_direct_windows(np.zeros(n_bars), window_size, prediction_days)

        assert exc_info.value.required == window_size + prediction_days

    def test_single_example_at_boundary(self):
        dataset = create_direct_windows(np.arange(15.0), window_size=10, prediction_days=5)
        assert len(dataset) == 1


def test_create_windows_dispatches_on_regime():
    values = np.arange(40.0)

    assert create_windows(values, 10, 5, Regime.ITERATIVE).output_size == 1
    assert create_windows(values, 10, 5, Regime.DIRECT).output_size == 5


class TestTrainTestSplit:
    """Chronological split."""

    def setup_method(self):
        # 110 bars, window 10 -> 100 examples
        self.dataset = create_iterative_windows(np.arange(110.0), window_size=10)

    def test_sizes(self):
        train, test = train_test_split(self.dataset, train_ratio=0.8)

        assert len(train) == 80
        assert len(test) == 20

    def test_no_temporal_leakage(self):
        train, test = train_test_split(self.dataset, train_ratio=0.8)

        assert train.indices.max() < test.indices.min()
        assert np.array_equal(np.concatenate([train.indices, test.indices]), np.arange(100))

    def test_floor_of_split_index(self):
        dataset = create_iterative_windows(np.arange(17.0), window_size=10)  # 7 examples
        train, test = train_test_split(dataset, train_ratio=0.8)

        assert (len(train), len(test)) == (5, 2)

    def test_empty_train_partition_raises(self):
        dataset = create_iterative_windows(np.arange(11.0), window_size=10)  # 1 example

        with pytest.raises(EmptyPartitionError) as exc_info:
            train_test_split(dataset, train_ratio=0.8)

        assert exc_info.value.n_train == 0

    @pytest.mark.parametrize("ratio", [0.0, 1.0, -0.5, 1.5])
    def test_invalid_ratio_raises(self, ratio):
        with pytest.raises(ValueError):
            train_test_split(self.dataset, train_ratio=ratio)
