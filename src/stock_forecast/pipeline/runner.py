"""
Asyncio front-end for forecast runs.

The synchronous pipeline runs in a worker thread; its progress events are
handed to the event loop through an asyncio.Queue, so the host loop is never
blocked and the pipeline never waits on a slow consumer.

    run = ForecastRun(bars, config).start()
    async for event in run.events():
        ...
    result = await run.result()
"""

import asyncio
import threading
from typing import AsyncIterator, Callable, Optional

import pandas as pd
from loguru import logger

from ..config import ForecastConfig, ForecastVariant
from ..errors import RunInProgressError
from .orchestrator import ForecastPipeline, ForecastResult
from .progress import ProgressEvent, ProgressObserver, notify_observer

# Marks the end of the event stream
_END = object()


class ForecastRun:
    """A single forecasting run observable from asyncio code."""

    def __init__(
        self,
        bars: pd.DataFrame,
        config: Optional[ForecastConfig] = None,
        variant: Optional[ForecastVariant] = None,
        pipeline: Optional[ForecastPipeline] = None,
    ):
        self.pipeline = pipeline or ForecastPipeline(config=config, variant=variant)
        self._bars = bars
        self._cancel_event = threading.Event()
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Future] = None
        self._events_claimed = False

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def start(self) -> "ForecastRun":
        """Launch the pipeline in a worker thread. Must be called inside a running loop."""
        if self._task is not None:
            raise RunInProgressError("This forecast run has already been started.")

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        self._queue = queue

        def publish(event: ProgressEvent):
            loop.call_soon_threadsafe(queue.put_nowait, event)

        self._task = asyncio.ensure_future(
            asyncio.to_thread(self.pipeline.run, self._bars, publish, self._cancel_event)
        )
        # Scheduled after every publish() of the worker, so it closes the stream
        self._task.add_done_callback(lambda _: queue.put_nowait(_END))
        return self

    def add_done_callback(self, callback: Callable[["ForecastRun"], None]):
        """Call ``callback(run)`` once the worker has finished, whatever the outcome."""
        if self._task is None:
            raise RuntimeError("Forecast run has not been started")
        self._task.add_done_callback(lambda _: callback(self))

    async def events(self) -> AsyncIterator[ProgressEvent]:
        """
        Progress events in emission order; ends when the run finishes.

        The stream has a single consumer and can be iterated once; a second
        iteration raises RuntimeError.
        """
        if self._events_claimed:
            raise RuntimeError("Progress events of this run have already been consumed")
        self._events_claimed = True

        if self._task is None:
            self.start()

        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item

    async def result(self) -> ForecastResult:
        """
        Wait for the forecast.

        Cancelling the awaiting task does not interrupt the epoch in flight;
        it flags the run so it stops at the next boundary and its result is
        discarded.
        """
        if self._task is None:
            self.start()

        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            self.cancel()
            raise

    def cancel(self):
        """Ask the run to stop at the next epoch or stage boundary."""
        if not self._cancel_event.is_set() and not self.done():
            logger.info("Cancellation requested for forecast run")
        self._cancel_event.set()


async def run_forecast_async(
    bars: pd.DataFrame,
    config: Optional[ForecastConfig] = None,
    on_progress: Optional[ProgressObserver] = None,
    variant: Optional[ForecastVariant] = None,
) -> ForecastResult:
    """Run the pipeline off the event loop, relaying progress to ``on_progress``."""
    run = ForecastRun(bars, config=config, variant=variant).start()
    async for event in run.events():
        notify_observer(on_progress, event)
    return await run.result()
