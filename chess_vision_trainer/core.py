from __future__ import annotations

import math
import random
from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit.

    Every random decision in a session (origin, target ratio, draws, shuffle)
    goes through one of these, so a fixed seed replays the same session.
    """

    def __init__(self, seed: int) -> None:
        self._seed = int(seed)
        self._rng = random.Random(self._seed)

    @property
    def seed(self) -> int:
        return self._seed

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def shuffled(self, seq: Sequence[T]) -> list[T]:
        values = list(seq)
        # Fisher-Yates, driven by randint so the stream stays explicit.
        for i in range(len(values) - 1, 0, -1):
            j = int(self.randint(0, i))
            values[i], values[j] = values[j], values[i]
        return values


def round_half_up(x: float) -> int:
    # Halves round up, not to even.
    return int(math.floor(x + 0.5))
