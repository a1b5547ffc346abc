from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .drill_core import round_half_up
from .math_types import Outcome, TaskResult


@dataclass(frozen=True, slots=True)
class SessionSummary:
    """Final (or frozen-at-end) summary of one drill run."""

    total: int
    correct: int
    incorrect: int
    timed_out: int
    skipped: int
    accuracy_pct: int
    mean_response_time_s: float | None
    median_response_time_s: float | None
    results: tuple[TaskResult, ...] = ()


EMPTY_SUMMARY = SessionSummary(
    total=0,
    correct=0,
    incorrect=0,
    timed_out=0,
    skipped=0,
    accuracy_pct=0,
    mean_response_time_s=None,
    median_response_time_s=None,
)


def accuracy_percent(correct: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(correct / total * 100.0)


def summarize_results(results: Sequence[TaskResult]) -> SessionSummary:
    counts = {outcome: 0 for outcome in Outcome}
    for r in results:
        counts[r.outcome] += 1

    total = len(results)
    correct = counts[Outcome.CORRECT]

    rts = sorted(r.response_time_s for r in results)
    mean_rt: float | None
    median_rt: float | None
    if not rts:
        mean_rt = None
        median_rt = None
    else:
        mean_rt = sum(rts) / float(len(rts))
        mid = len(rts) // 2
        if len(rts) % 2 == 1:
            median_rt = rts[mid]
        else:
            median_rt = (rts[mid - 1] + rts[mid]) / 2.0

    return SessionSummary(
        total=total,
        correct=correct,
        incorrect=counts[Outcome.INCORRECT],
        timed_out=counts[Outcome.TIMEOUT],
        skipped=counts[Outcome.SKIPPED],
        accuracy_pct=accuracy_percent(correct, total),
        mean_response_time_s=mean_rt,
        median_response_time_s=median_rt,
        results=tuple(results),
    )
