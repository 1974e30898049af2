"""Training, evaluation and horizon forecasting for the LSTM regressor."""

import math
from typing import Callable, Dict, List, Optional

import numpy as np
import torch
import torch.nn as nn
from loguru import logger
from torch.utils.data import DataLoader, TensorDataset
from tqdm import tqdm

from ..config import DEVICE, SEED, Regime
from ..errors import TrainingError
from ..evaluation import point_forecast_metrics, root_mean_squared_error
from ..features.normalization import FeatureNormalizer
from .base import BaseForecaster
from .lstm_regressor import LSTMRegressor


class ForecastModel(BaseForecaster):
    """
    One run's LSTM regressor together with its optimizer.

    Handles the mini-batch MSE training loop, held-out evaluation on price
    scale and the iterative or direct future forecast. The instance is not
    shareable across runs: close() drops the network and optimizer, and any
    later use raises RuntimeError.

    The network regresses the change of the close relative to the last close
    of its input window, in units of the mean absolute one-step change seen
    in the training windows. predict() adds the change back, so callers only
    ever see normalized closes. A trend therefore continues past the range
    the normalizer was fitted on.
    """

    def __init__(
        self,
        input_size: int,
        output_size: int = 1,
        learning_rate: float = 1e-3,
        hidden_size: int = 50,
        dropout: float = 0.2,
        dense_size: Optional[int] = None,
        device: str = DEVICE,
        seed: int = SEED,
        target_index: int = 0,
    ):
        """
        Initialize model and optimizer.

        Args:
            input_size: Features per timestep
            output_size: 1 for iterative, prediction_days for direct
            learning_rate: Adam learning rate
            hidden_size: Units per LSTM layer
            dropout: Dropout after each LSTM layer
            dense_size: Optional hidden dense layer width
            device: 'cuda' or 'cpu'
            seed: Random seed for reproducibility
            target_index: Column of the close in the input windows
        """
        if not 0 <= target_index < input_size:
            raise ValueError(f"target_index {target_index} out of range for {input_size} features")

        self.device = device
        self.seed = seed
        self.target_index = target_index
        # Size of one "unit" of predicted change; set from the training windows
        self.step_scale = 1.0

        # Set seeds for reproducibility
        torch.manual_seed(seed)
        np.random.seed(seed)
        if torch.cuda.is_available():
            torch.cuda.manual_seed_all(seed)

        self.model: Optional[LSTMRegressor] = LSTMRegressor(
            input_size=input_size,
            output_size=output_size,
            hidden_size=hidden_size,
            dropout=dropout,
            dense_size=dense_size,
        ).to(device)
        self.optimizer: Optional[torch.optim.Optimizer] = torch.optim.Adam(
            self.model.parameters(), lr=learning_rate
        )
        self.loss_fn = nn.MSELoss()
        self.history: Dict[str, List] = {"train_loss": [], "epoch": []}

        logger.info(f"Initialized ForecastModel on device: {device}, lr={learning_rate}")

    @property
    def output_size(self) -> int:
        return self._require_model().output_size

    @property
    def released(self) -> bool:
        return self.model is None

    def fit(
        self,
        inputs: np.ndarray,
        targets: np.ndarray,
        epochs: int,
        batch_size: int,
        on_epoch_end: Optional[Callable[[int, float], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> Dict[str, List]:
        """
        Train with shuffled mini-batches and MSE loss.

        Raises:
            TrainingError: if the loss becomes NaN/Inf
        """
        self._require_model()
        inputs = np.asarray(inputs, dtype=np.float32)
        self.step_scale = self._fit_step_scale(inputs)
        residuals = self._to_residuals(inputs, targets)
        loader = self._create_dataloader(inputs, residuals, batch_size, shuffle=True)

        logger.info(
            f"Starting training for {epochs} epochs on {len(inputs)} windows "
            f"(batch_size={batch_size})"
        )

        for epoch in range(1, epochs + 1):
            train_loss = self._train_epoch(loader, epoch)

            self.history["train_loss"].append(train_loss)
            self.history["epoch"].append(epoch)
            logger.info(f"Epoch {epoch}/{epochs} - Train Loss: {train_loss:.6f}")

            if on_epoch_end is not None:
                on_epoch_end(epoch, train_loss)

            if should_stop is not None and should_stop() and epoch < epochs:
                logger.warning(f"Training stopped by caller after epoch {epoch}/{epochs}")
                break

        del loader
        logger.info("Training complete")
        return self.history

    def _train_epoch(self, loader: DataLoader, epoch: int) -> float:
        """Run one training epoch, return the mean batch loss."""
        model = self._require_model()
        model.train()
        total_loss = 0.0
        n_batches = 0

        for batch_x, batch_y in tqdm(loader, desc=f"Epoch {epoch}", leave=False):
            batch_x = batch_x.to(self.device)
            batch_y = batch_y.to(self.device)

            predictions = model(batch_x)
            loss = self.loss_fn(predictions, batch_y)

            if not torch.isfinite(loss):
                raise TrainingError(
                    f"Training diverged at epoch {epoch}: loss={loss.item()}. "
                    f"Try a smaller learning rate."
                )

            self.optimizer.zero_grad()
            loss.backward()

            # Gradient clipping to prevent exploding gradients
            torch.nn.utils.clip_grad_norm_(model.parameters(), max_norm=10.0)

            self.optimizer.step()

            total_loss += loss.item()
            n_batches += 1

        mean_loss = total_loss / max(n_batches, 1)
        if not math.isfinite(mean_loss):
            raise TrainingError(f"Non-finite training loss at epoch {epoch}: {mean_loss}")
        return mean_loss

    def predict(self, inputs: np.ndarray, batch_size: int = 256) -> np.ndarray:
        """Normalized predictions, (N, output_size)."""
        model = self._require_model()
        model.eval()
        inputs = np.asarray(inputs, dtype=np.float32)

        outputs = []
        with torch.no_grad():
            for start in range(0, len(inputs), batch_size):
                batch = torch.from_numpy(inputs[start : start + batch_size]).to(self.device)
                outputs.append(model(batch).cpu().numpy())
                del batch

        if not outputs:
            return np.empty((0, model.output_size), dtype=np.float32)
        changes = np.concatenate(outputs, axis=0)
        return (self._anchor(inputs) + changes * self.step_scale).astype(np.float32)

    def _anchor(self, inputs: np.ndarray) -> np.ndarray:
        """Last close of every window, (N, 1)."""
        return inputs[:, -1, self.target_index][:, None].astype(np.float64)

    def _fit_step_scale(self, inputs: np.ndarray) -> float:
        """Mean absolute one-step change of the close over the training windows."""
        closes = inputs[:, :, self.target_index].astype(np.float64)
        if closes.shape[1] < 2:
            return 1.0

        scale = float(np.mean(np.abs(np.diff(closes, axis=1))))
        if not np.isfinite(scale) or scale < 1e-8:
            logger.info("Flat training windows; predicting changes on unit scale")
            return 1.0
        return scale

    def _to_residuals(self, inputs: np.ndarray, targets: np.ndarray) -> np.ndarray:
        targets = np.asarray(targets, dtype=np.float64)
        if targets.ndim == 1:
            targets = targets[:, None]
        if len(targets) != len(inputs):
            raise ValueError(f"inputs ({len(inputs)}) and targets ({len(targets)}) differ in length")
        return ((targets - self._anchor(inputs)) / self.step_scale).astype(np.float32)

    def evaluate(
        self,
        inputs: np.ndarray,
        targets: np.ndarray,
        normalizer: FeatureNormalizer,
    ) -> float:
        """
        RMSE on price scale over every (example, horizon step) pair.
        """
        actual, predicted = self._denormalized_pairs(inputs, targets, normalizer)
        rmse = root_mean_squared_error(actual, predicted)
        logger.info(f"Held-out RMSE: {rmse:.4f} over {actual.size} values")
        return rmse

    def evaluate_metrics(
        self,
        inputs: np.ndarray,
        targets: np.ndarray,
        normalizer: FeatureNormalizer,
    ) -> Dict[str, float]:
        """RMSE, MAE and MAPE on price scale."""
        actual, predicted = self._denormalized_pairs(inputs, targets, normalizer)
        metrics = point_forecast_metrics(actual, predicted)
        logger.info(
            f"Held-out metrics: rmse={metrics['rmse']:.4f}, "
            f"mae={metrics['mae']:.4f}, mape={metrics['mape']:.2f}%"
        )
        return metrics

    def _denormalized_pairs(self, inputs, targets, normalizer):
        predicted = self.predict(inputs)
        targets = np.asarray(targets, dtype=np.float32).reshape(predicted.shape)
        return (
            normalizer.inverse_transform_close(targets),
            normalizer.inverse_transform_close(predicted),
        )

    def predict_future(
        self,
        last_window: np.ndarray,
        normalizer: FeatureNormalizer,
        prediction_days: int,
        regime: Regime,
    ) -> np.ndarray:
        """
        Forecast the next prediction_days closes on price scale.

        Iterative: each one-step prediction is appended to the window (oldest
        step dropped) and fed back, so errors compound along the horizon.
        Direct: a single inference returns the whole horizon.

        Args:
            last_window: (window_size, n_features) most recent normalized bars
            normalizer: Fitted normalizer of this run
            prediction_days: Horizon length
            regime: Regime.ITERATIVE or Regime.DIRECT

        Returns:
            (prediction_days,) forecast prices
        """
        window = np.asarray(last_window, dtype=np.float32)
        if window.ndim == 1:
            window = window[:, None]

        if regime is Regime.DIRECT:
            if self.output_size != prediction_days:
                raise ValueError(
                    f"Direct model emits {self.output_size} steps, "
                    f"{prediction_days} requested"
                )
            normalized = self.predict(window[None])[0]

        elif regime is Regime.ITERATIVE:
            if self.output_size != 1:
                raise ValueError("Iterative rollout needs a single-output model")

            if window.shape[1] > 1:
                # KNOWN LIMITATION: only the close is fed back; the other
                # features of the appended step repeat the last observed bar
                logger.warning(
                    f"Iterative rollout over {window.shape[1]} features: "
                    f"non-close features are carried forward, not re-derived"
                )

            target_index = normalizer.target_index
            normalized = np.empty(prediction_days, dtype=np.float32)
            current = window.copy()

            for step in range(prediction_days):
                value = float(self.predict(current[None])[0, 0])
                normalized[step] = value

                next_bar = current[-1].copy()
                next_bar[target_index] = value
                current = np.concatenate([current[1:], next_bar[None]], axis=0)

        else:
            raise ValueError(f"Unknown regime: {regime}")

        prices = normalizer.inverse_transform_close(normalized)
        logger.info(f"Forecast ({regime.value}, {prediction_days} days): {np.round(prices, 2).tolist()}")
        return prices

    def close(self):
        """Drop network, optimizer state and cached device memory."""
        if self.model is None:
            return

        self.optimizer.state.clear()
        self.model.to("cpu")
        self.model = None
        self.optimizer = None

        if str(self.device).startswith("cuda") and torch.cuda.is_available():
            torch.cuda.empty_cache()

        logger.info("Released ForecastModel resources")

    def _require_model(self) -> LSTMRegressor:
        if self.model is None:
            raise RuntimeError("ForecastModel has been released; build a new one per run")
        return self.model

    def _create_dataloader(
        self,
        inputs: np.ndarray,
        targets: np.ndarray,
        batch_size: int,
        shuffle: bool,
    ) -> DataLoader:
        """Create PyTorch DataLoader from numpy arrays."""
        x = torch.FloatTensor(np.asarray(inputs, dtype=np.float32))
        y = torch.FloatTensor(np.asarray(targets, dtype=np.float32))

        if len(x) != len(y):
            raise ValueError(f"inputs ({len(x)}) and targets ({len(y)}) differ in length")

        dataset = TensorDataset(x, y)
        generator = torch.Generator().manual_seed(self.seed)
        return DataLoader(dataset, batch_size=batch_size, shuffle=shuffle, generator=generator)
