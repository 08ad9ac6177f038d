from __future__ import annotations

from typing import Sequence

import numpy as np


class FixedParameterSource:
    """Hands out the same vector every episode and keeps the scores it is sent."""

    def __init__(self, vector: Sequence[float]):
        self.vector = np.asarray(vector, dtype=float).reshape(-1)
        self.scores: list[list[float]] = []

    def step(self, dt: float, state) -> np.ndarray:
        return self.vector.copy()

    def end_episode(self, scores: Sequence[float]) -> None:
        self.scores.append([float(s) for s in scores])


class UniformRandomSource:
    """
    Seeded random search over the unit hypercube.

    Each episode draws a fresh vector; `best()` returns the highest-displacement
    (vector, scores) pair seen so far, ties broken by lower energy use.
    """

    def __init__(self, length: int, seed: int = 0):
        if length <= 0:
            raise ValueError(f"Parameter vector length must be positive, got {length}.")
        self.length = int(length)
        self.rng = np.random.default_rng(seed)
        self.history: list[tuple[np.ndarray, list[float]]] = []
        self._pending: np.ndarray | None = None

    def step(self, dt: float, state) -> np.ndarray:
        self._pending = self.rng.uniform(0.0, 1.0, size=self.length)
        return self._pending.copy()

    def end_episode(self, scores: Sequence[float]) -> None:
        if self._pending is None:
            raise RuntimeError("end_episode called before a parameter vector was issued.")
        self.history.append((self._pending, [float(s) for s in scores]))
        self._pending = None

    def best(self) -> tuple[np.ndarray, list[float]] | None:
        if not self.history:
            return None
        # Energy is <= 0, so a larger value means less spent.
        return max(self.history, key=lambda item: (item[1][0], item[1][1]))
