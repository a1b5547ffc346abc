from __future__ import annotations

from dataclasses import dataclass

import pytest

from voice_math_trainer.event_loop import EventLoop


@dataclass
class FakeClock:
    t: float = 0.0

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)


def test_call_soon_runs_in_fifo_order() -> None:
    loop = EventLoop(FakeClock())
    seen: list[int] = []
    for i in range(3):
        loop.call_soon(seen.append, i)
    assert loop.run_pending() == 3
    assert seen == [0, 1, 2]


def test_timers_fire_only_when_due_and_in_deadline_order() -> None:
    clock = FakeClock()
    loop = EventLoop(clock)
    seen: list[str] = []
    loop.call_later(2.0, seen.append, "late")
    loop.call_later(1.0, seen.append, "early")

    clock.advance(0.5)
    loop.run_pending()
    assert seen == []

    clock.advance(2.0)
    loop.run_pending()
    assert seen == ["early", "late"]


def test_cancelled_timer_never_runs_and_cancel_is_idempotent() -> None:
    clock = FakeClock()
    loop = EventLoop(clock)
    seen: list[str] = []
    handle = loop.call_later(1.0, seen.append, "x")
    handle.cancel()
    handle.cancel()
    assert loop.pending_timers() == 0
    clock.advance(5.0)
    loop.run_pending()
    assert seen == []


def test_callbacks_scheduled_while_running_wait_for_next_round() -> None:
    loop = EventLoop(FakeClock())
    seen: list[str] = []

    def first() -> None:
        seen.append("first")
        loop.call_soon(seen.append, "second")

    loop.call_soon(first)
    assert loop.run_pending() == 1
    assert seen == ["first"]
    loop.run_pending()
    assert seen == ["first", "second"]


def test_run_pending_is_not_reentrant() -> None:
    loop = EventLoop(FakeClock())
    errors: list[Exception] = []

    def nested() -> None:
        try:
            loop.run_pending()
        except RuntimeError as exc:
            errors.append(exc)

    loop.call_soon(nested)
    loop.run_pending()
    assert len(errors) == 1


def test_run_until_idle_drains_chained_callbacks() -> None:
    loop = EventLoop(FakeClock())
    seen: list[int] = []

    def chain(n: int) -> None:
        seen.append(n)
        if n < 4:
            loop.call_soon(chain, n + 1)

    loop.call_soon(chain, 0)
    loop.run_until_idle()
    assert seen == [0, 1, 2, 3, 4]


def test_negative_delay_is_treated_as_due_now() -> None:
    clock = FakeClock()
    loop = EventLoop(clock)
    seen: list[str] = []
    loop.call_later(-1.0, seen.append, "now")
    loop.run_pending()
    assert seen == ["now"]


@pytest.mark.parametrize("delay", [0.0, 0.8])
def test_timer_due_exactly_at_deadline(delay: float) -> None:
    clock = FakeClock()
    loop = EventLoop(clock)
    seen: list[str] = []
    loop.call_later(delay, seen.append, "x")
    clock.advance(delay)
    loop.run_pending()
    assert seen == ["x"]
