from __future__ import annotations

from collections.abc import Iterable

from .drill_core import SeededRng
from .errors import InvalidConfiguration
from .math_types import (
    MAX_FIXED_FACTOR,
    MIN_FIXED_FACTOR,
    RANDOM_FACTOR_RANGE,
    Difficulty,
    Operation,
    Task,
)


class TaskGenerator:
    """Deterministic producer of arithmetic tasks.

    Invariants, at every difficulty:

    * subtraction never goes negative (``operand2 <= operand1``);
    * division is exact (``operand1 == operand2 * answer``) with a divisor >= 2;
    * multiplication never uses a zero factor.

    ``fixed_factor=None`` selects random-factor multiplication, where both
    factors are drawn independently from 1-9.
    """

    def __init__(self, *, seed: int | None = None) -> None:
        self._rng = SeededRng(seed)

    def generate(
        self,
        operation: Operation,
        difficulty: Difficulty,
        *,
        fixed_factor: int | None = None,
    ) -> Task:
        if operation is Operation.ADDITION:
            lo, hi = difficulty.number_range
            a = self._rng.randint(lo, hi)
            b = self._rng.randint(lo, hi)
            return Task(operation, a, b, a + b)

        if operation is Operation.SUBTRACTION:
            lo, hi = difficulty.number_range
            a = self._rng.randint(lo, hi)
            b = self._rng.randint(lo, a)
            return Task(operation, a, b, a - b)

        if operation is Operation.MULTIPLICATION:
            if fixed_factor is None:
                lo, hi = RANDOM_FACTOR_RANGE
                a = self._rng.randint(lo, hi)
                b = self._rng.randint(lo, hi)
                return Task(operation, a, b, a * b)
            _check_fixed_factor(fixed_factor)
            lo, hi = difficulty.profile.table_range
            b = self._rng.randint(lo, hi)
            return Task(operation, fixed_factor, b, fixed_factor * b)

        # Division: build the dividend from divisor * quotient so it is exact.
        lo, hi = difficulty.multiplication_range
        divisor = self._rng.randint(2, hi)
        quotient = self._rng.randint(lo, hi)
        return Task(operation, divisor * quotient, divisor, quotient)

    def generate_session(
        self,
        tasks_count: int,
        operations: Iterable[Operation],
        difficulty: Difficulty,
        *,
        fixed_factor: int | None = None,
    ) -> list[Task]:
        # Sorted so a given seed yields the same run regardless of set ordering.
        ops = sorted(set(operations))
        if not ops:
            raise InvalidConfiguration("at least one operation must be selected")
        if tasks_count < 0:
            raise InvalidConfiguration("tasks_count must be >= 0")
        if fixed_factor is not None:
            _check_fixed_factor(fixed_factor)

        tasks = [
            self.generate(self._rng.choice(ops), difficulty, fixed_factor=fixed_factor)
            for _ in range(tasks_count)
        ]
        self._rng.shuffle(tasks)
        return tasks


def _check_fixed_factor(factor: int) -> None:
    if not (MIN_FIXED_FACTOR <= factor <= MAX_FIXED_FACTOR):
        raise InvalidConfiguration(
            f"fixed_factor must be in [{MIN_FIXED_FACTOR}, {MAX_FIXED_FACTOR}], got {factor}"
        )
