from typing import Callable, List, Optional, Sequence

import numpy as np
from tensorflow.keras.callbacks import Callback
from tensorflow.keras.layers import GRU, Dense, Input
from tensorflow.keras.models import Sequential
from tensorflow.keras.optimizers import Adam

from app.core.exceptions import TrainingError, TrainingInterrupted
from app.core.forecast.orchestrator import TrainingStats


class _IterationHook(Callback):
    """Reports every epoch and stops on the error threshold or on request."""

    def __init__(
        self,
        error_threshold: float,
        on_iteration: Optional[Callable[[int, float], None]],
        should_stop: Optional[Callable[[], bool]],
    ):
        super().__init__()
        self.error_threshold = error_threshold
        self.on_iteration = on_iteration
        self.should_stop = should_stop
        self.iterations = 0
        self.error: Optional[float] = None
        self.interrupted = False

    def on_epoch_end(self, epoch, logs=None):
        logs = logs or {}
        self.iterations = epoch + 1
        self.error = float(logs.get("loss", 0.0))

        if self.on_iteration is not None:
            self.on_iteration(self.iterations, self.error)

        if self.should_stop is not None and self.should_stop():
            self.interrupted = True
            self.model.stop_training = True
        elif self.error <= self.error_threshold:
            self.model.stop_training = True


class GRUTimeStep:
    """
    Single-series GRU that learns to predict each value from the ones before it.

    One training iteration is one epoch over the whole series (inputs are
    values[:-1], targets values[1:]). Forecasting feeds the series back in and
    appends each prediction before predicting the next one.
    """

    def __init__(self, hidden_units: int = 20, learning_rate: float = 0.01):
        self.hidden_units = hidden_units
        self.learning_rate = learning_rate
        self._model = None

    def _build(self):
        model = Sequential()
        model.add(Input(shape=(None, 1)))
        model.add(GRU(self.hidden_units, return_sequences=True))
        model.add(Dense(1))
        model.compile(optimizer=Adam(learning_rate=self.learning_rate), loss="mse")
        return model

    @staticmethod
    def _as_batch(values: Sequence[float]) -> np.ndarray:
        return np.asarray(values, dtype="float32").reshape(1, len(values), 1)

    def train(
        self,
        series: Sequence[float],
        iterations: int,
        error_threshold: float,
        on_iteration: Optional[Callable[[int, float], None]] = None,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> TrainingStats:
        if len(series) < 2:
            raise TrainingError(message="Need at least two points to train on")

        self._model = self._build()
        hook = _IterationHook(error_threshold, on_iteration, should_stop)
        self._model.fit(
            self._as_batch(series[:-1]),
            self._as_batch(series[1:]),
            epochs=iterations,
            batch_size=1,
            shuffle=False,
            verbose=0,
            callbacks=[hook],
        )

        if hook.interrupted:
            raise TrainingInterrupted(hook.iterations)
        return TrainingStats(iterations=hook.iterations, error=hook.error)

    def forecast(self, series: Sequence[float], steps: int) -> List[float]:
        if self._model is None:
            raise TrainingError(message="Model must be trained before forecasting")

        values = list(series)
        predictions = []
        for _ in range(steps):
            output = self._model.predict(self._as_batch(values), verbose=0)
            next_value = float(output[0, -1, 0])
            predictions.append(next_value)
            values.append(next_value)
        return predictions
