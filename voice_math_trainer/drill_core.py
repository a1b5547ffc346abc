from __future__ import annotations

import math
import random
from collections.abc import MutableSequence, Sequence
from typing import TypeVar

T = TypeVar("T")


class SeededRng:
    """Simple seeded RNG wrapper to keep deterministic streams explicit."""

    def __init__(self, seed: int | None = None) -> None:
        self._rng = random.Random(seed)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)

    def choice(self, seq: Sequence[T]) -> T:
        return self._rng.choice(seq)

    def shuffle(self, items: MutableSequence[T]) -> None:
        self._rng.shuffle(items)


def round_half_up(x: float) -> int:
    # Percentages shown to the learner: 62.5 -> 63, not banker's rounding.
    return int(math.floor(x + 0.5))
