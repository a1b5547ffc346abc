"""Half-duplex speak -> listen -> judge state machine for one task at a time.

::

    IDLE -> SPEAKING -> AWAITING_ANSWER -> EVALUATING -> IDLE
                              \\-> TIMED_OUT -> IDLE

Exactly one voice session is active at a time.  Every asynchronous input
(speech completion, transcripts, backend failures, the debounce and the
answer timeout) carries the id of the voice session that produced it, and
anything tagged with another id is dropped.  Starting, repeating, skipping
or aborting always tears the previous session down first: timers cancelled,
recognition closed, buffered partial text cleared.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from .config import VoiceTiming
from .errors import VoiceBackendError
from .event_loop import EventLoop, TimerHandle
from .math_types import Language, Outcome, Task
from .number_words import extract_number
from .speech import (
    BackendFailure,
    EventSink,
    FinalTranscript,
    PartialTranscript,
    SpeechEvent,
    SpeechFinished,
    SpeechInput,
    SpeechOutput,
)

logger = logging.getLogger(__name__)

DEFAULT_ANSWER_TIMEOUT_S = 20.0


class VoicePhase(StrEnum):
    IDLE = "idle"
    SPEAKING = "speaking"
    AWAITING_ANSWER = "awaiting_answer"
    EVALUATING = "evaluating"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class Verdict:
    task: Task
    outcome: Outcome
    raw_text: str
    answer: int | None
    response_time_s: float
    error: VoiceBackendError | None = None


VerdictHandler = Callable[[Verdict], None]


@dataclass(slots=True)
class _VoiceSession:
    session_id: int
    language: Language
    speaking: bool = False
    listening: bool = False
    pending_text: str = ""
    timeout: TimerHandle | None = None
    debounce: TimerHandle | None = None
    answer_deadline_s: float | None = None


class VoiceInteractionController:
    def __init__(
        self,
        *,
        output: SpeechOutput,
        recognizer: SpeechInput,
        loop: EventLoop,
        timing: VoiceTiming | None = None,
    ) -> None:
        self._output = output
        self._input = recognizer
        self._loop = loop
        self._clock = loop.clock
        self._timing = timing if timing is not None else VoiceTiming()

        self._ids = itertools.count(1)
        self._phase = VoicePhase.IDLE
        self._session: _VoiceSession | None = None
        self._task: Task | None = None
        self._language = Language.RU
        self._answer_timeout_s = DEFAULT_ANSWER_TIMEOUT_S
        self._presented_at_s = 0.0
        # Set when the question is first heard in full; a repeat does not move it.
        self._answer_deadline_s: float | None = None
        self._last_heard = ""
        self._on_verdict: VerdictHandler | None = None

    def set_verdict_handler(self, handler: VerdictHandler | None) -> None:
        self._on_verdict = handler

    @property
    def phase(self) -> VoicePhase:
        return self._phase

    @property
    def current_task(self) -> Task | None:
        return self._task

    @property
    def session_id(self) -> int | None:
        return None if self._session is None else self._session.session_id

    @property
    def microphone_active(self) -> bool:
        return self._session is not None and self._session.listening

    @property
    def last_heard(self) -> str:
        return self._last_heard

    def answer_time_remaining_s(self) -> float | None:
        session = self._session
        if session is None or session.answer_deadline_s is None:
            return None
        return max(0.0, session.answer_deadline_s - self._clock.now())

    # -- Commands ---------------------------------------------------------

    def begin_task(self, task: Task, language: Language, *, answer_timeout_s: float | None = None) -> None:
        if self._phase is not VoicePhase.IDLE:
            logger.warning("begin_task while %s; abandoning the previous task", self._phase.value)
        # Unconditional: a stale recognizer left wired up would score the old question.
        self._teardown(force=True)

        self._task = task
        self._language = language
        if answer_timeout_s is not None:
            self._answer_timeout_s = float(answer_timeout_s)
        self._presented_at_s = self._clock.now()
        self._answer_deadline_s = None
        self._last_heard = ""
        self._start_voice_session()

    def repeat_current(self) -> bool:
        if self._task is None or self._phase not in (VoicePhase.SPEAKING, VoicePhase.AWAITING_ANSWER):
            return False
        logger.debug("repeating task %s", self._task.display_text)
        # A fresh voice session: the interrupted utterance's completion becomes stale.
        # The answer deadline from the first full hearing still applies.
        self._teardown()
        self._start_voice_session()
        return True

    def skip_current(self) -> bool:
        if self._task is None:
            return False
        self._resolve(Outcome.SKIPPED, raw_text="", answer=None)
        return True

    def abort(self) -> None:
        self._teardown(force=True)
        self._task = None
        self._answer_deadline_s = None
        self._last_heard = ""
        self._set_phase(VoicePhase.IDLE)

    # -- Session plumbing -------------------------------------------------

    def _start_voice_session(self) -> None:
        assert self._task is not None
        session = _VoiceSession(session_id=next(self._ids), language=self._language)
        self._session = session
        self._set_phase(VoicePhase.SPEAKING)

        emit = self._emitter(session.session_id)
        session.speaking = True
        try:
            self._output.speak(self._task.spoken_text(self._language), self._language.tag, emit)
        except VoiceBackendError as exc:
            emit(BackendFailure(exc))

    def _open_recognition(self, session: _VoiceSession) -> None:
        # The microphone is shared: close any open session before opening another.
        if session.listening:
            self._input.cancel()
            session.listening = False
        session.pending_text = ""
        emit = self._emitter(session.session_id)
        session.listening = True
        try:
            self._input.start_listening(session.language.tag, emit)
        except VoiceBackendError as exc:
            session.listening = False
            emit(BackendFailure(exc))

    def _emitter(self, session_id: int) -> EventSink:
        def emit(event: SpeechEvent) -> None:
            self._loop.call_soon(self._dispatch, session_id, event)

        return emit

    def _is_current(self, session_id: int) -> bool:
        return self._session is not None and self._session.session_id == session_id

    def _dispatch(self, session_id: int, event: SpeechEvent) -> None:
        session = self._session
        if session is None or session.session_id != session_id:
            logger.debug("dropping stale %s from voice session %d", type(event).__name__, session_id)
            return

        if isinstance(event, SpeechFinished):
            self._on_speech_finished(session)
        elif isinstance(event, PartialTranscript):
            self._on_partial(session, event.text)
        elif isinstance(event, FinalTranscript):
            self._on_final(session, event.text)
        elif isinstance(event, BackendFailure):
            self._on_backend_failure(event.error)

    # -- Event handlers ---------------------------------------------------

    def _on_speech_finished(self, session: _VoiceSession) -> None:
        session.speaking = False
        if self._phase is not VoicePhase.SPEAKING:
            return
        self._set_phase(VoicePhase.AWAITING_ANSWER)
        now = self._clock.now()
        if self._answer_deadline_s is None:
            self._answer_deadline_s = now + self._answer_timeout_s
        session.answer_deadline_s = self._answer_deadline_s
        session.timeout = self._loop.call_later(self._answer_deadline_s - now, self._on_timeout, session.session_id)
        self._open_recognition(session)

    def _on_partial(self, session: _VoiceSession, text: str) -> None:
        if self._phase is not VoicePhase.AWAITING_ANSWER:
            return
        if session.debounce is not None:
            session.debounce.cancel()
            session.debounce = None
        text = text.strip()
        if text == "":
            # The recognizer (or the user) took everything back.
            session.pending_text = ""
            self._last_heard = ""
            return
        self._last_heard = text
        session.pending_text = text
        session.debounce = self._loop.call_later(self._timing.debounce_s, self._on_debounce, session.session_id)

    def _on_debounce(self, session_id: int) -> None:
        if not self._is_current(session_id) or self._phase is not VoicePhase.AWAITING_ANSWER:
            return
        session = self._session
        assert session is not None
        session.debounce = None
        self._evaluate(session, session.pending_text)

    def _on_final(self, session: _VoiceSession, text: str) -> None:
        if self._phase is not VoicePhase.AWAITING_ANSWER:
            return
        session.listening = False
        if session.debounce is not None:
            session.debounce.cancel()
            session.debounce = None
        text = text.strip()
        if text:
            self._last_heard = text
        if not self._evaluate(session, text):
            # Recognizer closed without a number; keep listening until the timeout.
            self._open_recognition(session)

    def _on_timeout(self, session_id: int) -> None:
        if not self._is_current(session_id) or self._phase is not VoicePhase.AWAITING_ANSWER:
            return
        self._set_phase(VoicePhase.TIMED_OUT)
        session = self._session
        assert session is not None
        session.timeout = None
        self._resolve(Outcome.TIMEOUT, raw_text=session.pending_text, answer=None)

    def _on_backend_failure(self, error: VoiceBackendError) -> None:
        if self._task is None:
            return
        logger.warning("voice backend failure during %s: %s", self._phase.value, error)
        self._resolve(Outcome.TIMEOUT, raw_text="", answer=None, error=error)

    def _evaluate(self, session: _VoiceSession, text: str) -> bool:
        value = extract_number(text, session.language) if text else None
        if value is None:
            if text:
                logger.debug("no number in %r; still listening", text)
            return False
        assert self._task is not None
        self._set_phase(VoicePhase.EVALUATING)
        outcome = Outcome.CORRECT if value == self._task.correct_answer else Outcome.INCORRECT
        self._resolve(outcome, raw_text=text, answer=value)
        return True

    def _resolve(
        self,
        outcome: Outcome,
        *,
        raw_text: str,
        answer: int | None,
        error: VoiceBackendError | None = None,
    ) -> None:
        task = self._task
        assert task is not None
        self._teardown()
        self._task = None
        self._set_phase(VoicePhase.IDLE)
        self._answer_deadline_s = None

        verdict = Verdict(
            task=task,
            outcome=outcome,
            raw_text=raw_text,
            answer=answer,
            response_time_s=max(0.0, self._clock.now() - self._presented_at_s),
            error=error,
        )
        logger.info("%s -> %s (heard %r)", task.display_text, outcome.value, raw_text)
        if self._on_verdict is not None:
            self._on_verdict(verdict)

    def _teardown(self, *, force: bool = False) -> None:
        session = self._session
        self._session = None
        if session is not None:
            for handle in (session.timeout, session.debounce):
                if handle is not None:
                    handle.cancel()
            session.timeout = None
            session.debounce = None
            session.pending_text = ""
            logger.debug("voice session %d torn down", session.session_id)
        if force or (session is not None and session.listening):
            self._input.cancel()
        if force or (session is not None and session.speaking):
            self._output.stop()

    def _set_phase(self, phase: VoicePhase) -> None:
        if phase is not self._phase:
            logger.debug("voice phase %s -> %s", self._phase.value, phase.value)
        self._phase = phase
