import calendar
from typing import Iterator, Sequence, Tuple


def holdout_errors(
    actual: Sequence[float], predicted: Sequence[float]
) -> Tuple[float, float]:
    """
    Mean squared error and mean absolute percentage error (in percent).

    MAPE only averages points whose actual value is non-zero; MSE uses all of
    them. With no usable point MAPE is 0.
    """
    if len(actual) != len(predicted):
        raise ValueError(
            f"Got {len(predicted)} predictions for {len(actual)} actual values"
        )
    if not actual:
        raise ValueError("Holdout window is empty")

    squared = 0.0
    percentage = 0.0
    nonzero = 0
    for true_value, guess in zip(actual, predicted):
        error = guess - true_value
        squared += error * error
        if true_value != 0:
            percentage += abs(error / true_value)
            nonzero += 1

    mse = squared / len(actual)
    mape = (percentage / nonzero) * 100 if nonzero else 0.0
    return mse, mape


def next_periods(year: int, month: int, count: int) -> Iterator[Tuple[int, int, str]]:
    """Yield the `count` (year, month, month_name) periods after `year`/`month`."""
    for _ in range(count):
        month += 1
        if month > 12:
            month = 1
            year += 1
        yield year, month, calendar.month_name[month]
