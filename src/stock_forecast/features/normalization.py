"""Per-feature min/max normalization into [0, 1]."""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

import numpy as np
import pandas as pd
from loguru import logger


@dataclass(frozen=True)
class Scaler:
    """Min/max of one feature. range is never 0."""

    min: float
    max: float

    @property
    def range(self) -> float:
        span = self.max - self.min
        return span if span != 0 else 1.0

    def transform(self, values):
        return (values - self.min) / self.range

    def inverse_transform(self, values):
        return values * self.range + self.min


class FeatureNormalizer:
    """
    Fits one Scaler per active feature and maps bars into [0, 1].

    Only the target column is ever mapped back to price scale; the model
    predicts closes only.
    """

    def __init__(self, feature_columns: List[str], target_column: str = "close"):
        if target_column not in feature_columns:
            raise ValueError(f"target_column '{target_column}' must be one of {feature_columns}")

        self.feature_columns = list(feature_columns)
        self.target_column = target_column
        self.scalers: Optional[Dict[str, Scaler]] = None

    @property
    def target_index(self) -> int:
        """Position of the target column in transformed feature vectors."""
        return self.feature_columns.index(self.target_column)

    @property
    def n_features(self) -> int:
        return len(self.feature_columns)

    def fit(self, df: pd.DataFrame) -> "FeatureNormalizer":
        """Compute min and max of every feature over all bars."""
        self._check_columns(df)
        if df.empty:
            raise ValueError("Cannot fit normalizer on empty DataFrame")

        self.scalers = {
            col: Scaler(min=float(df[col].min()), max=float(df[col].max()))
            for col in self.feature_columns
        }

        constant = [col for col, s in self.scalers.items() if s.max == s.min]
        if constant:
            logger.info(f"Constant features normalized with unit range: {constant}")

        return self

    def transform(self, df: pd.DataFrame) -> np.ndarray:
        """
        Map every bar to its normalized feature vector.

        Returns:
            (n_bars, n_features) float32 array
        """
        scalers = self._require_fitted()
        self._check_columns(df)

        columns = [
            scalers[col].transform(df[col].to_numpy(dtype=np.float64))
            for col in self.feature_columns
        ]
        return np.stack(columns, axis=-1).astype(np.float32)

    def fit_transform(self, df: pd.DataFrame) -> np.ndarray:
        return self.fit(df).transform(df)

    def transform_close(self, values: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        scaler = self._require_fitted()[self.target_column]
        return scaler.transform(np.asarray(values, dtype=np.float64))

    def inverse_transform_close(self, values: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
        """Map normalized close values back to price scale."""
        scaler = self._require_fitted()[self.target_column]
        return scaler.inverse_transform(np.asarray(values, dtype=np.float64))

    def _require_fitted(self) -> Dict[str, Scaler]:
        if self.scalers is None:
            raise ValueError("FeatureNormalizer is not fitted; call fit() first")
        return self.scalers

    def _check_columns(self, df: pd.DataFrame):
        missing = [c for c in self.feature_columns if c not in df.columns]
        if missing:
            raise ValueError(f"Missing feature columns: {missing}")
