import asyncio
import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

from app.core import schemas
from app.core.config import settings
from app.core.exceptions import (
    ForecastBusyError,
    InsufficientDataError,
    TrainingError,
    TrainingInterrupted,
)
from app.core.forecast.metrics import holdout_errors, next_periods
from app.core.forecast.scaling import MinMaxScaling


# -----------------------------------------------------------------------------
# FORECAST ORCHESTRATION
# Purpose: monthly totals -> normalized series -> trained GRU -> holdout check
# -> forecast -> events for the client.
# Training is blocking and runs in a worker thread; events cross back to the
# event loop through a queue.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)

WINDOW_SIZE = 12
ERROR_THRESHOLD = 0.005
MODEL_KIND = "GRUTimeStep Neural Network"

_DONE = object()


@dataclass
class TrainingStats:
    iterations: int
    error: Optional[float]


def default_model_factory():
    """Build the production GRU model (TensorFlow is imported on first use)."""
    from app.core.forecast.model import GRUTimeStep

    return GRUTimeStep(
        hidden_units=settings.GRU_HIDDEN_UNITS,
        learning_rate=settings.GRU_LEARNING_RATE,
    )


class TrainingSlots:
    """Caps how many forecasts train at once in this process."""

    def __init__(self, limit: int):
        self.limit = limit
        self.active = 0
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            if self.active >= self.limit:
                raise ForecastBusyError()
            self.active += 1

    def release(self) -> None:
        with self._lock:
            self.active = max(self.active - 1, 0)


training_slots = TrainingSlots(settings.FORECAST_MAX_CONCURRENT)


class SalesForecaster:
    """
    One forecast request.

    Construction validates the history and fits the scaling, so problems
    surface before any response is started. `stream()` then does the work and
    yields events, always ending with exactly one `complete` or `error`.
    """

    def __init__(
        self,
        history: Sequence[Dict[str, Any]],
        months_ahead: int,
        iterations: int,
        model_factory: Callable = default_model_factory,
        progress_every: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        on_finished: Optional[Callable[[], None]] = None,
    ):
        if len(history) < WINDOW_SIZE + 1:
            raise InsufficientDataError(WINDOW_SIZE + 1)

        self.history = sorted(history, key=lambda period: (period["year"], period["month"]))
        self.months_ahead = months_ahead
        self.iterations = iterations
        self.model_factory = model_factory
        self.progress_every = progress_every or settings.FORECAST_PROGRESS_EVERY
        self.timeout_seconds = timeout_seconds or settings.FORECAST_TIMEOUT_SECONDS
        self.on_finished = on_finished
        self.started = False
        self._finished = False
        self._finish_lock = threading.Lock()

        totals = [float(period["total_sales"]) for period in self.history]
        self.scaling = MinMaxScaling.fit(totals)
        self.series = self.scaling.normalize(totals)

    def _finish(self) -> None:
        with self._finish_lock:
            if self._finished:
                return
            self._finished = True
        if self.on_finished is not None:
            self.on_finished()

    def abandon(self) -> None:
        """
        Called when the response is done with this forecast.

        If `stream()` never got going there is no training to wait for, so
        `on_finished` runs now. Otherwise it runs when the training thread
        exits.
        """
        if not self.started:
            self._finish()

    # ------------------------------------------------------------------
    # Blocking part (worker thread)
    # ------------------------------------------------------------------
    def _progress_event(self, iteration: int, error: float) -> schemas.ProgressEvent:
        return schemas.ProgressEvent(
            iterations=iteration,
            total_iterations=self.iterations,
            progress=math.floor(iteration / self.iterations * 100 + 0.5),
            error=error,
        )

    def _validate(self, model) -> schemas.ValidationEvent:
        cut = len(self.series) - self.months_ahead
        actual = self.series[cut:]
        predicted = model.forecast(self.series[:cut], self.months_ahead)
        mse, mape = holdout_errors(actual, predicted)

        logger.info(f"Validation metrics: MSE {mse:.4f}, MAPE {mape:.2f}%")
        return schemas.ValidationEvent(mse=f"{mse:.4f}", mape=f"{mape:.2f}")

    def _predictions(self, forecast: List[float]) -> List[schemas.Prediction]:
        last = self.history[-1]
        values = self.scaling.denormalize(forecast)
        periods = next_periods(last["year"], last["month"], self.months_ahead)

        return [
            schemas.Prediction(
                year=year,
                month=month,
                month_name=month_name,
                # Half up, not banker's rounding
                predicted_sales=math.floor(value + 0.5),
            )
            for (year, month, month_name), value in zip(periods, values)
        ]

    def run(
        self,
        emit: Callable[[Any], None],
        should_stop: Callable[[], bool],
    ) -> schemas.CompleteEvent:
        """Train, validate and forecast. Intermediate events go through `emit`."""

        def on_iteration(iteration: int, error: float) -> None:
            if iteration == 1 or iteration % self.progress_every == 0:
                emit(self._progress_event(iteration, error))

        logger.info(
            f"Training GRU time-step model with {len(self.series)} data points "
            f"for up to {self.iterations} iterations..."
        )
        model = self.model_factory()
        stats = model.train(
            self.series,
            iterations=self.iterations,
            error_threshold=ERROR_THRESHOLD,
            on_iteration=on_iteration,
            should_stop=should_stop,
        )
        logger.info(
            f"Training finished after {stats.iterations} iterations (error {stats.error})"
        )

        if len(self.series) > self.months_ahead:
            emit(self._validate(model))
        else:
            logger.info("Not enough data to compute validation metrics.")

        forecast = model.forecast(self.series, self.months_ahead)
        if len(forecast) != self.months_ahead:
            raise TrainingError(
                message=f"Model returned {len(forecast)} values for a "
                f"{self.months_ahead} month horizon"
            )
        predictions = self._predictions(forecast)

        for prediction in predictions:
            logger.info(
                f"Predicted {prediction.month_name} {prediction.year}: "
                f"{prediction.predicted_sales:,}"
            )

        return schemas.CompleteEvent(
            predictions=predictions,
            model_info=schemas.ModelInfo(
                type=MODEL_KIND,
                training_data_points=len(self.series),
                iterations=self.iterations,
                iterations_run=stats.iterations,
                training_error=stats.error,
            ),
        )

    # ------------------------------------------------------------------
    # Async side
    # ------------------------------------------------------------------
    async def stream(self) -> AsyncIterator[schemas.ForecastEvent]:
        """
        Yield forecast events as they are produced.

        Closing the generator early (client went away) sets the cancel flag;
        the model sees it at its next iteration and stops. Running past
        `timeout_seconds` stops training the same way and ends the stream
        with an error event. `on_finished` runs once the training thread has
        exited, not when the generator closes.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue = asyncio.Queue()
        cancelled = threading.Event()
        deadline = time.monotonic() + self.timeout_seconds

        def emit(event) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        def should_stop() -> bool:
            return cancelled.is_set() or time.monotonic() >= deadline

        async def work():
            try:
                return await asyncio.to_thread(self.run, emit, should_stop)
            finally:
                queue.put_nowait(_DONE)
                self._finish()

        self.started = True
        task = asyncio.create_task(work())
        finished = False
        try:
            while True:
                event = await queue.get()
                if event is _DONE:
                    break
                yield event

            try:
                terminal = task.result()
            except TrainingInterrupted as error:
                logger.warning(
                    f"Training timed out after {error.iterations} iterations "
                    f"({self.timeout_seconds:g}s limit)"
                )
                terminal = schemas.ErrorEvent(
                    message=f"Training exceeded the {self.timeout_seconds:g} second "
                    f"time limit after {error.iterations} iterations"
                )
            except Exception as error:
                logger.exception(f"Error in sales prediction: {error}")
                terminal = schemas.ErrorEvent(message=str(error))

            finished = True
            yield terminal
        finally:
            if not finished:
                cancelled.set()
                task.add_done_callback(_discard_result)
                logger.warning("Forecast stream closed early; stopping training")


def _discard_result(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.info(f"Abandoned forecast ended with: {task.exception()}")
