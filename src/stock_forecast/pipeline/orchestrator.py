"""
Training orchestrator: bars in, dated forecast out.

idle -> feature_engineering -> normalizing -> windowing -> splitting
     -> training (epoch 1..N) -> evaluating -> forecasting -> done

Any failure ends the run in ``failed``; nothing is retried and no partial
forecast is returned.
"""

import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from loguru import logger

from ..config import DEVICE, SEED, ForecastConfig, ForecastVariant
from ..data.calendar import next_business_days
from ..errors import (
    ForecastError,
    InsufficientDataError,
    RunCancelledError,
    RunInProgressError,
    TrainingError,
)
from ..features import (
    FeatureNormalizer,
    create_windows,
    engineer_features,
    get_feature_columns,
    train_test_split,
)
from ..models import ForecastModel
from .progress import PipelinePhase, ProgressEvent, ProgressObserver, notify_observer

# Width of the hidden dense layer of the indicator-fed model
DENSE_UNITS = 25

_MODEL_PHASES = (PipelinePhase.TRAINING, PipelinePhase.EVALUATING, PipelinePhase.FORECASTING)


@dataclass
class ForecastPoint:
    date: date
    price: float


@dataclass
class ForecastResult:
    """Outcome of one successful run."""

    points: List[ForecastPoint]
    rmse: float
    metrics: Dict[str, float] = field(default_factory=dict)
    train_loss: List[float] = field(default_factory=list)
    variant: ForecastVariant = field(default_factory=ForecastVariant)

    @property
    def prices(self) -> List[float]:
        return [p.price for p in self.points]

    @property
    def dates(self) -> List[date]:
        return [p.date for p in self.points]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"date": self.dates, "price": self.prices})


class ForecastPipeline:
    """
    Runs the forecasting stages in order and reports progress.

    Each run builds and releases its own normalizer, datasets and model.
    One instance executes at most one run at a time.
    """

    def __init__(
        self,
        config: Optional[ForecastConfig] = None,
        variant: Optional[ForecastVariant] = None,
        device: str = DEVICE,
        seed: int = SEED,
    ):
        self.config = config or ForecastConfig()
        self.variant = variant or ForecastVariant()
        self.device = device
        self.seed = seed
        self.phase = PipelinePhase.IDLE
        self._lock = threading.Lock()

    def run(
        self,
        bars: pd.DataFrame,
        on_progress: Optional[ProgressObserver] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ForecastResult:
        """
        Execute one forecasting run.

        Args:
            bars: Price bars [date, open, high, low, close, volume]
            on_progress: Receives a ProgressEvent at every checkpoint
            cancel_event: When set, the run stops at the next epoch/stage boundary

        Returns:
            ForecastResult

        Raises:
            InsufficientDataError, EmptyPartitionError, TrainingError,
            RunCancelledError, RunInProgressError
        """
        if not self._lock.acquire(blocking=False):
            raise RunInProgressError("A forecast run is already in progress. Wait for it to finish.")
        try:
            self.phase = PipelinePhase.IDLE
            return self._run(bars, on_progress, cancel_event)
        finally:
            self._lock.release()

    def _run(self, bars, on_progress, cancel_event) -> ForecastResult:
        config = self.config
        variant = self.variant
        epoch = 0
        rmse = None
        model: Optional[ForecastModel] = None

        def emit(phase: PipelinePhase, loss=None, message=None):
            self.phase = phase
            event = ProgressEvent(
                current_epoch=epoch,
                total_epochs=config.epochs,
                loss=loss,
                rmse=rmse,
                phase=phase,
                message=message,
            )
            notify_observer(on_progress, event)

        def check_cancelled():
            if cancel_event is not None and cancel_event.is_set():
                raise RunCancelledError("Forecast run cancelled; the result was discarded.")

        logger.info(
            f"Starting forecast run: variant={variant.describe()}, config={config.to_dict()}, "
            f"bars={0 if bars is None else len(bars)}"
        )

        try:
            # 1. Enriched bars
            emit(PipelinePhase.FEATURE_ENGINEERING)
            if bars is None or len(bars) == 0:
                raise InsufficientDataError("No price bars supplied.", n_bars=0)
            df = engineer_features(bars, variant.feature_set)
            check_cancelled()

            # 2. Scalers
            emit(PipelinePhase.NORMALIZING)
            normalizer = FeatureNormalizer(get_feature_columns(variant.feature_set))
            values = normalizer.fit_transform(df)
            check_cancelled()

            # 3. Window examples
            emit(PipelinePhase.WINDOWING)
            dataset = create_windows(
                values,
                window_size=config.window_size,
                prediction_days=config.prediction_days,
                regime=variant.regime,
                target_index=normalizer.target_index,
            )
            check_cancelled()

            # 4. Chronological split
            emit(PipelinePhase.SPLITTING)
            train, test = train_test_split(dataset, train_ratio=config.train_ratio)
            check_cancelled()

            # 5. Training
            emit(PipelinePhase.TRAINING)
            model = ForecastModel(
                input_size=normalizer.n_features,
                output_size=dataset.output_size,
                learning_rate=config.learning_rate,
                dense_size=DENSE_UNITS if variant.uses_indicators else None,
                device=self.device,
                seed=self.seed,
                target_index=normalizer.target_index,
            )

            def on_epoch_end(completed: int, loss: float):
                nonlocal epoch
                epoch = completed
                emit(PipelinePhase.TRAINING, loss=loss)

            history = model.fit(
                train.inputs,
                train.targets,
                epochs=config.epochs,
                batch_size=config.batch_size,
                on_epoch_end=on_epoch_end,
                should_stop=cancel_event.is_set if cancel_event is not None else None,
            )
            check_cancelled()

            # 6. Held-out evaluation on price scale
            emit(PipelinePhase.EVALUATING)
            metrics = model.evaluate_metrics(test.inputs, test.targets, normalizer)
            rmse = metrics["rmse"]
            if not np.isfinite(rmse):
                raise TrainingError(f"Evaluation produced a non-finite RMSE ({rmse})")
            check_cancelled()

            # 7. Future horizon
            emit(PipelinePhase.FORECASTING)
            prices = model.predict_future(
                values[-config.window_size :],
                normalizer,
                prediction_days=config.prediction_days,
                regime=variant.regime,
            )
            if not np.all(np.isfinite(prices)):
                raise TrainingError("Forecast contains non-finite values")
            dates = next_business_days(df["date"].iloc[-1], config.prediction_days)

            result = ForecastResult(
                points=[ForecastPoint(date=d, price=float(p)) for d, p in zip(dates, prices)],
                rmse=rmse,
                metrics=metrics,
                train_loss=list(history["train_loss"]),
                variant=variant,
            )

            emit(PipelinePhase.DONE)
            logger.info(f"Forecast run complete: rmse={rmse:.4f}, prices={np.round(prices, 2).tolist()}")
            return result

        except ForecastError as e:
            logger.error(f"Forecast run failed in {self.phase.value}: {e}")
            emit(PipelinePhase.FAILED, message=str(e))
            raise

        except Exception as e:
            failed_in = self.phase
            logger.error(f"Forecast run failed in {failed_in.value}: {e!r}")
            if failed_in in _MODEL_PHASES:
                error = TrainingError(f"Model {failed_in.value} failed: {e}")
                emit(PipelinePhase.FAILED, message=str(error))
                raise error from e
            emit(PipelinePhase.FAILED, message=str(e))
            raise

        finally:
            if model is not None:
                model.close()


def run_forecast(
    bars: pd.DataFrame,
    config: Optional[ForecastConfig] = None,
    on_progress: Optional[ProgressObserver] = None,
    variant: Optional[ForecastVariant] = None,
    device: str = DEVICE,
) -> ForecastResult:
    """Run the full pipeline once and return the dated forecast."""
    pipeline = ForecastPipeline(config=config, variant=variant, device=device)
    return pipeline.run(bars, on_progress=on_progress)
