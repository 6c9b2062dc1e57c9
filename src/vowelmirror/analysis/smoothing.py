from __future__ import annotations

from collections import deque
from typing import Deque, Mapping, Sequence

import numpy as np

DEFAULT_ALPHA = 0.5
DEFAULT_HISTORY_SIZE = 5


class ExponentialSmoother:
    """Exponential moving average over one vector stream.

    ``alpha`` weights the previous smoothed value: ``alpha=0`` passes samples
    through untouched, values close to 1 smooth heavily. One instance per
    independent stream; call :meth:`reset` when the stream restarts.
    """

    def __init__(self, alpha: float = DEFAULT_ALPHA, history_size: int = DEFAULT_HISTORY_SIZE) -> None:
        if not 0.0 <= alpha < 1.0:
            raise ValueError(f"alpha must be in [0, 1), got: {alpha}")
        if history_size < 0:
            raise ValueError(f"history_size must be >= 0, got: {history_size}")
        self.alpha = float(alpha)
        self.history_size = int(history_size)
        self._state: np.ndarray | None = None
        self._history: Deque[np.ndarray] = deque(maxlen=self.history_size)

    @property
    def state(self) -> np.ndarray | None:
        return None if self._state is None else self._state.copy()

    @property
    def history(self) -> list[np.ndarray]:
        return [sample.copy() for sample in self._history]

    def update(
        self,
        sample: Sequence[float] | np.ndarray,
        passthrough: np.ndarray | None = None,
    ) -> np.ndarray:
        """Fold ``sample`` into the stream; elements flagged in ``passthrough`` are taken verbatim."""
        values = np.asarray(sample, dtype=np.float64).reshape(-1)
        if self._state is None:
            smoothed = values.copy()
        else:
            if values.shape != self._state.shape:
                raise ValueError(
                    f"Sample shape {values.shape} does not match stream shape {self._state.shape}"
                )
            smoothed = self._state * self.alpha + values * (1.0 - self.alpha)
            if passthrough is not None:
                mask = np.asarray(passthrough, dtype=bool).reshape(-1)
                smoothed[mask] = values[mask]

        self._state = smoothed
        if self.history_size > 0:
            self._history.append(smoothed.copy())
        return smoothed.copy()

    def reset(self) -> None:
        self._state = None
        self._history.clear()


class ScoreSmoother:
    """Smooths a named score map (e.g. blendshapes) over a fixed key order.

    Keys missing from a sample keep their previous smoothed value; keys seen
    for the first time pass through unmodified.
    """

    def __init__(
        self,
        names: Sequence[str],
        alpha: float = DEFAULT_ALPHA,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        if not names:
            raise ValueError("names must not be empty")
        self.names = list(dict.fromkeys(names))
        self._smoother = ExponentialSmoother(alpha=alpha, history_size=history_size)
        self._seen = np.zeros((len(self.names),), dtype=bool)

    @property
    def alpha(self) -> float:
        return self._smoother.alpha

    @property
    def history(self) -> list[dict[str, float]]:
        return [self._to_mapping(sample) for sample in self._smoother.history]

    def _to_mapping(self, values: np.ndarray) -> dict[str, float]:
        return {name: float(values[idx]) for idx, name in enumerate(self.names) if self._seen[idx]}

    def update(self, scores: Mapping[str, float]) -> dict[str, float]:
        previous = self._smoother.state
        present = np.asarray([name in scores for name in self.names], dtype=bool)
        sample = np.asarray([float(scores.get(name, np.nan)) for name in self.names], dtype=np.float64)

        if previous is None:
            smoothed = self._smoother.update(np.nan_to_num(sample, nan=0.0))
        else:
            # Absent keys hold their value; newly seen keys must not be blended with zero.
            filled = np.where(present, sample, previous)
            smoothed = self._smoother.update(filled, passthrough=present & ~self._seen)

        self._seen |= present
        return self._to_mapping(smoothed)

    def reset(self) -> None:
        self._smoother.reset()
        self._seen[:] = False
