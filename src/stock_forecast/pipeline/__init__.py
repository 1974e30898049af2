"""Forecast orchestration module."""

from .orchestrator import ForecastPipeline, ForecastPoint, ForecastResult, run_forecast
from .progress import PipelinePhase, ProgressEvent, notify_observer
from .runner import ForecastRun, run_forecast_async

__all__ = [
    "PipelinePhase",
    "ProgressEvent",
    "notify_observer",
    "ForecastPoint",
    "ForecastResult",
    "ForecastPipeline",
    "run_forecast",
    "ForecastRun",
    "run_forecast_async",
]
