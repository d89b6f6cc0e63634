from typing import Optional


class SalesAPIError(Exception):
    """
    Base error for the sales API.

    `error` is the client-facing text. `message` is optional extra detail that
    is only rendered when a route chooses to expose it.
    """

    status_code = 500
    default_error = "Internal server error"

    def __init__(self, error: Optional[str] = None, message: Optional[str] = None):
        self.error = error or self.default_error
        self.message = message
        super().__init__(message or self.error)


class InvalidParameterError(SalesAPIError):
    status_code = 400
    default_error = "Invalid query parameter"


class DataAccessError(SalesAPIError):
    """Query or connection failure. Detail is logged, not returned."""

    status_code = 500


class InsufficientDataError(SalesAPIError):
    status_code = 400

    def __init__(self, required_points: int):
        self.required_points = required_points
        super().__init__(
            f"Not enough data for prediction. "
            f"Need at least {required_points} months of history."
        )


class ForecastBusyError(SalesAPIError):
    status_code = 429
    default_error = "A forecast is already being trained. Try again later."


class TrainingError(SalesAPIError):
    """Failure once the event stream is open; reported as an `error` event."""

    default_error = "Training failed"


class TrainingInterrupted(TrainingError):
    """Raised by a model when its stop check fires mid-training."""

    def __init__(self, iterations: int):
        self.iterations = iterations
        super().__init__(f"Training stopped after {iterations} iterations")
