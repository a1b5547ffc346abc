"""Single-threaded cooperative event loop driven by an injected clock.

Speech completions, transcripts and timers all funnel through one ready
queue, so no two events are ever processed interleaved.  ``run_pending``
is called from the owner's frame/tick loop (the pygame shell calls it
once per frame; tests call it after advancing a fake clock).
"""

from __future__ import annotations

import heapq
import itertools
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

from .clock import Clock

logger = logging.getLogger(__name__)


class TimerHandle:
    __slots__ = ("deadline_s", "_seq", "_callback", "_args", "_cancelled")

    def __init__(self, deadline_s: float, seq: int, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.deadline_s = deadline_s
        self._seq = seq
        self._callback = callback
        self._args = args
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def _run(self) -> None:
        if not self._cancelled:
            self._callback(*self._args)

    def __lt__(self, other: TimerHandle) -> bool:
        return (self.deadline_s, self._seq) < (other.deadline_s, other._seq)


class EventLoop:
    def __init__(self, clock: Clock) -> None:
        self._clock = clock
        self._ready: deque[TimerHandle] = deque()
        self._timers: list[TimerHandle] = []
        self._seq = itertools.count()
        self._running = False

    @property
    def clock(self) -> Clock:
        return self._clock

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        handle = TimerHandle(self._clock.now(), next(self._seq), callback, args)
        self._ready.append(handle)
        return handle

    def call_later(self, delay_s: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        deadline = self._clock.now() + max(0.0, float(delay_s))
        handle = TimerHandle(deadline, next(self._seq), callback, args)
        heapq.heappush(self._timers, handle)
        return handle

    def pending_timers(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def run_pending(self) -> int:
        """Run due timers and queued callbacks; return how many ran.

        Only callbacks ready at entry run now. Anything they schedule waits
        for the next call, as in asyncio's loop iterations.
        """

        if self._running:
            raise RuntimeError("run_pending() is not re-entrant")

        now = self._clock.now()
        while self._timers and self._timers[0].deadline_s <= now:
            handle = heapq.heappop(self._timers)
            if not handle.cancelled:
                self._ready.append(handle)

        ran = 0
        self._running = True
        try:
            for _ in range(len(self._ready)):
                handle = self._ready.popleft()
                if handle.cancelled:
                    continue
                handle._run()
                ran += 1
        finally:
            self._running = False
        return ran

    def run_until_idle(self, *, max_rounds: int = 1000) -> None:
        """Drain the ready queue without advancing time (tests, shutdown)."""

        for _ in range(max_rounds):
            if not self._ready:
                return
            self.run_pending()
        logger.warning("event loop still busy after %d rounds", max_rounds)
