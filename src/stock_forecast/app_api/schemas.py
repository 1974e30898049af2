"""Pydantic schemas for API requests and responses."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from ..config import DISCLAIMER, FeatureSet, ForecastConfig, ForecastVariant, Regime


class ForecastRequest(BaseModel):
    """Request schema for a forecasting run. Ranges are enforced here, not in the core."""

    symbol: str = Field(..., description="Stock code, e.g. '7203' or '7203.T'")
    window_size: int = Field(30, ge=10, le=60, description="Bars per input window")
    epochs: int = Field(50, ge=10, le=200, description="Training epochs")
    learning_rate: float = Field(0.001, ge=0.0001, le=0.01, description="Adam learning rate")
    batch_size: int = Field(32, ge=16, le=64, description="Mini-batch size")
    prediction_days: int = Field(5, ge=1, le=5, description="Business days to forecast")
    regime: Regime = Field(Regime.ITERATIVE, description="'iterative' or 'direct'")
    feature_set: FeatureSet = Field(FeatureSet.CLOSE, description="'close', 'ohlcv' or 'indicators'")

    @field_validator("symbol")
    @classmethod
    def symbol_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("symbol must not be blank")
        return value

    def to_config(self) -> ForecastConfig:
        return ForecastConfig(
            window_size=self.window_size,
            epochs=self.epochs,
            learning_rate=self.learning_rate,
            batch_size=self.batch_size,
            prediction_days=self.prediction_days,
        )

    def to_variant(self) -> ForecastVariant:
        return ForecastVariant(regime=self.regime, feature_set=self.feature_set)


class ForecastPointSchema(BaseModel):
    date: str
    price: float


class ForecastResponse(BaseModel):
    """Response schema for forecasts."""

    symbol: str
    company_name: str
    regime: str
    feature_set: str
    n_bars: int
    last_close: float
    points: List[ForecastPointSchema]
    rmse: float
    metrics: Dict[str, float]
    train_loss: List[float]
    disclaimer: str = DISCLAIMER


class ProgressEventSchema(BaseModel):
    """One progress line of /forecast/stream."""

    current_epoch: int
    total_epochs: int
    loss: Optional[float] = None
    rmse: Optional[float] = None
    phase: str
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    detail: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str


class SymbolMatch(BaseModel):
    symbol: str
    description: str
    type: str


class SymbolSearchResponse(BaseModel):
    """Result of /symbols/search."""

    query: str
    results: List[SymbolMatch]
