"""Tests for the LSTM regressor and its training wrapper."""

import numpy as np
import pandas as pd
import pytest
import torch
import torch.nn as nn

from stock_forecast.config import Regime
from stock_forecast.errors import TrainingError
from stock_forecast.features import FeatureNormalizer, create_direct_windows, create_iterative_windows
from stock_forecast.models import ForecastModel, LSTMRegressor


class TestLSTMRegressor:
    """Network shapes."""

    @pytest.mark.parametrize("input_size,output_size", [(1, 1), (5, 1), (13, 5)])
    def test_output_shape(self, input_size, output_size):
        model = LSTMRegressor(input_size=input_size, output_size=output_size)
        out = model(torch.randn(4, 30, input_size))

        assert out.shape == (4, output_size)

    def test_dense_head(self):
        model = LSTMRegressor(input_size=13, output_size=1, dense_size=25)

        assert isinstance(model.head, nn.Sequential)
        assert model.head[0].out_features == 25
        assert isinstance(model.head[1], nn.ReLU)

    def test_plain_head(self):
        assert isinstance(LSTMRegressor(input_size=1).head, nn.Linear)

    def test_invalid_sizes_raise(self):
        with pytest.raises(ValueError):
            LSTMRegressor(input_size=0)
        with pytest.raises(ValueError):
            LSTMRegressor(input_size=1, output_size=0)


class TestForecastModel:
    """Training loop, evaluation, rollout and release."""

    def setup_method(self):
        closes = 100.0 + np.sin(np.linspace(0, 6 * np.pi, 120)) * 10
        self.df = pd.DataFrame({"close": closes})
        self.normalizer = FeatureNormalizer(["close"])
        self.values = self.normalizer.fit_transform(self.df)
        self.dataset = create_iterative_windows(self.values, window_size=10)

    def test_fit_reports_every_epoch(self):
        seen = []
        with ForecastModel(input_size=1, device="cpu") as model:
            history = model.fit(
                self.dataset.inputs,
                self.dataset.targets,
                epochs=3,
                batch_size=16,
                on_epoch_end=lambda epoch, loss: seen.append((epoch, loss)),
            )

        assert [epoch for epoch, _ in seen] == [1, 2, 3]
        assert all(np.isfinite(loss) and loss >= 0 for _, loss in seen)
        assert history["epoch"] == [1, 2, 3]

    def test_should_stop_ends_training_early(self):
        seen = []
        with ForecastModel(input_size=1, device="cpu") as model:
            model.fit(
                self.dataset.inputs,
                self.dataset.targets,
                epochs=10,
                batch_size=16,
                on_epoch_end=lambda epoch, loss: seen.append(epoch),
                should_stop=lambda: len(seen) >= 2,
            )

        assert seen == [1, 2]

    def test_non_finite_loss_raises(self):
        targets = self.dataset.targets.copy()
        targets[:] = np.nan

        with ForecastModel(input_size=1, device="cpu") as model:
            with pytest.raises(TrainingError, match="diverged"):
                model.fit(self.dataset.inputs, targets, epochs=1, batch_size=16)

    def test_evaluate_returns_price_scale_rmse(self):
        with ForecastModel(input_size=1, device="cpu") as model:
            model.fit(self.dataset.inputs, self.dataset.targets, epochs=2, batch_size=16)
            rmse = model.evaluate(self.dataset.inputs, self.dataset.targets, self.normalizer)
            metrics = model.evaluate_metrics(self.dataset.inputs, self.dataset.targets, self.normalizer)

        assert np.isfinite(rmse)
        assert rmse >= 0
        assert metrics["rmse"] == pytest.approx(rmse)

    def test_iterative_rollout(self):
        with ForecastModel(input_size=1, device="cpu") as model:
            model.fit(self.dataset.inputs, self.dataset.targets, epochs=2, batch_size=16)
            prices = model.predict_future(self.values[-10:], self.normalizer, 5, Regime.ITERATIVE)

        assert prices.shape == (5,)
        assert np.isfinite(prices).all()

    def test_iterative_rollout_multi_feature(self):
        df = pd.DataFrame({"close": self.df["close"], "volume": np.arange(120.0)})
        normalizer = FeatureNormalizer(["volume", "close"])
        values = normalizer.fit_transform(df)
        dataset = create_iterative_windows(values, 10, target_index=normalizer.target_index)

        with ForecastModel(input_size=2, device="cpu") as model:
            model.fit(dataset.inputs, dataset.targets, epochs=1, batch_size=16)
            prices = model.predict_future(values[-10:], normalizer, 3, Regime.ITERATIVE)

        assert prices.shape == (3,)

    def test_direct_forecast(self):
        dataset = create_direct_windows(self.values, window_size=10, prediction_days=5)

        with ForecastModel(input_size=1, output_size=5, device="cpu") as model:
            model.fit(dataset.inputs, dataset.targets, epochs=2, batch_size=16)
            prices = model.predict_future(self.values[-10:], self.normalizer, 5, Regime.DIRECT)

            with pytest.raises(ValueError):
                model.predict_future(self.values[-10:], self.normalizer, 3, Regime.DIRECT)

        assert prices.shape == (5,)
        assert np.isfinite(prices).all()

    def test_untrained_model_predicts_last_close(self):
        with ForecastModel(input_size=1, output_size=5, device="cpu") as model:
            predictions = model.predict(self.dataset.inputs)

        expected = np.repeat(self.dataset.inputs[:, -1, :], 5, axis=1)
        assert np.allclose(predictions, expected)

    def test_trend_continues_past_fitted_range(self):
        # normalized ramp 0..1; the next values lie above the fitted maximum
        values = np.linspace(0.0, 1.0, 200, dtype=np.float32)
        normalizer = FeatureNormalizer(["close"]).fit(pd.DataFrame({"close": values}))
        dataset = create_iterative_windows(values, window_size=20)

        with ForecastModel(input_size=1, device="cpu") as model:
            model.fit(dataset.inputs, dataset.targets, epochs=10, batch_size=32)
            prices = model.predict_future(values[-20:], normalizer, 5, Regime.ITERATIVE)

        assert model.step_scale == pytest.approx(1.0 / 199, rel=1e-3)
        assert prices[0] > 1.0
        assert (np.diff(prices) > 0).all()

    def test_step_scale_of_flat_windows(self):
        flat = np.full((8, 10, 1), 0.5, dtype=np.float32)

        with ForecastModel(input_size=1, device="cpu") as model:
            model.fit(flat, np.full((8, 1), 0.5), epochs=1, batch_size=4)
            assert model.step_scale == 1.0
            assert np.allclose(model.predict(flat), 0.5, atol=0.05)

    def test_target_index_out_of_range(self):
        with pytest.raises(ValueError):
            ForecastModel(input_size=2, target_index=2, device="cpu")

    def test_predict_shapes(self):
        with ForecastModel(input_size=1, output_size=5, device="cpu") as model:
            assert model.predict(self.dataset.inputs).shape == (len(self.dataset), 5)

    def test_same_seed_same_predictions(self):
        outputs = []
        for _ in range(2):
            with ForecastModel(input_size=1, device="cpu", seed=7) as model:
                model.fit(self.dataset.inputs, self.dataset.targets, epochs=1, batch_size=16)
                outputs.append(model.predict(self.dataset.inputs))

        assert np.allclose(outputs[0], outputs[1])

    def test_close_releases_model(self):
        model = ForecastModel(input_size=1, device="cpu")
        model.close()

        assert model.released
        with pytest.raises(RuntimeError):
            model.predict(self.dataset.inputs)
        with pytest.raises(RuntimeError):
            model.fit(self.dataset.inputs, self.dataset.targets, epochs=1, batch_size=16)

        # second close is a no-op
        model.close()
