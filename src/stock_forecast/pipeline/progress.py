"""Pipeline phases and the progress events emitted while a run advances."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from loguru import logger


class PipelinePhase(str, Enum):
    """Run states, in execution order. FAILED is reachable from any state."""

    IDLE = "idle"
    FEATURE_ENGINEERING = "feature_engineering"
    NORMALIZING = "normalizing"
    WINDOWING = "windowing"
    SPLITTING = "splitting"
    TRAINING = "training"
    EVALUATING = "evaluating"
    FORECASTING = "forecasting"
    DONE = "done"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (PipelinePhase.DONE, PipelinePhase.FAILED)


@dataclass(frozen=True)
class ProgressEvent:
    """Snapshot of a run's progress. Not retained by the pipeline."""

    current_epoch: int
    total_epochs: int
    loss: Optional[float]
    rmse: Optional[float]
    phase: PipelinePhase
    message: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["phase"] = self.phase.value
        return data


ProgressObserver = Callable[[ProgressEvent], None]


def notify_observer(observer: Optional[ProgressObserver], event: ProgressEvent):
    """Deliver an event; a failing observer is logged and otherwise ignored."""
    if observer is None:
        return
    try:
        observer(event)
    except Exception as e:
        logger.warning(f"Progress observer raised {e!r} on {event.phase.value}; continuing")
