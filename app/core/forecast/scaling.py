from typing import List, Sequence

import numpy as np
from sklearn.preprocessing import MinMaxScaler


def _column(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype="float64").reshape(-1, 1)


class MinMaxScaling:
    """
    Min-max rescaling to [0, 1] that remembers how to undo itself.

    A flat series has no spread; MinMaxScaler treats its range as 1, so every
    value normalizes to 0 and still round-trips.
    """

    def __init__(self, scaler: MinMaxScaler):
        self._scaler = scaler

    @classmethod
    def fit(cls, values: Sequence[float]) -> "MinMaxScaling":
        if len(values) == 0:
            raise ValueError("Cannot fit scaling to an empty series")
        scaler = MinMaxScaler()
        scaler.fit(_column(values))
        return cls(scaler)

    @property
    def minimum(self) -> float:
        return float(self._scaler.data_min_[0])

    @property
    def maximum(self) -> float:
        return float(self._scaler.data_max_[0])

    @property
    def range(self) -> float:
        return (self.maximum - self.minimum) or 1.0

    def normalize(self, values: Sequence[float]) -> List[float]:
        return self._scaler.transform(_column(values)).ravel().tolist()

    def denormalize(self, values: Sequence[float]) -> List[float]:
        return self._scaler.inverse_transform(_column(values)).ravel().tolist()
