from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum

from .clock import Clock
from .config import SessionConfig, VoiceTiming
from .drill_core import SeededRng
from .event_loop import EventLoop, TimerHandle
from .localization import Localization
from .math_types import Language, Outcome, Task, TaskResult
from .results import EMPTY_SUMMARY, SessionSummary, accuracy_percent, summarize_results
from .speech import SpeechInput, SpeechOutput
from .task_generator import TaskGenerator
from .voice_controller import Verdict, VoiceInteractionController, VoicePhase

logger = logging.getLogger(__name__)

PASSING_PERCENT = 70


class SessionPhase(StrEnum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """View model for the presentation layer (pure data)."""

    phase: SessionPhase
    voice_phase: VoicePhase
    question_text: str
    task_number: int
    tasks_total: int
    correct: int
    answered: int
    status_message: str
    status_type: str
    microphone_active: bool
    last_heard: str
    answer_time_remaining_s: float | None
    summary: SessionSummary | None = None


class SessionController:
    """Runs a fixed-length drill: NOT_STARTED -> RUNNING -> COMPLETED.

    Tasks are generated up front.  Each one is handed to the voice
    controller for a single speak/listen/judge cycle; its verdict is
    recorded exactly once and the next task follows after a short pacing
    delay.  ``end()`` may be called at any time and freezes the run.
    """

    def __init__(
        self,
        *,
        voice: VoiceInteractionController,
        generator: TaskGenerator,
        loop: EventLoop,
        timing: VoiceTiming | None = None,
        localization: Localization | None = None,
        seed: int | None = None,
    ) -> None:
        self._voice = voice
        self._generator = generator
        self._loop = loop
        self._clock: Clock = loop.clock
        self._timing = timing if timing is not None else VoiceTiming()
        self._strings = localization if localization is not None else Localization()
        self._feedback_rng = SeededRng(seed)

        self._phase = SessionPhase.NOT_STARTED
        self._config: SessionConfig | None = None
        self._tasks: list[Task] = []
        self._index = 0
        self._correct = 0
        self._answered = 0
        self._results: list[TaskResult] = []
        self._summary: SessionSummary | None = None
        self._pending_next: TimerHandle | None = None
        self._status_message = ""
        self._status_type = ""

        self._voice.set_verdict_handler(self._on_verdict)

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def config(self) -> SessionConfig | None:
        return self._config

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    @property
    def results(self) -> tuple[TaskResult, ...]:
        return tuple(self._results)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def voice(self) -> VoiceInteractionController:
        return self._voice

    @property
    def summary(self) -> SessionSummary | None:
        return self._summary

    @property
    def language(self) -> Language:
        return Language.RU if self._config is None else self._config.language

    def start(self, config: SessionConfig) -> None:
        config.validate()
        if self._phase is SessionPhase.RUNNING:
            raise RuntimeError("Session already running")

        tasks = self._generator.generate_session(
            config.tasks_count,
            config.operations,
            config.difficulty,
            fixed_factor=config.fixed_factor,
        )

        self._config = config
        self._tasks = tasks
        self._index = 0
        self._correct = 0
        self._answered = 0
        self._results = []
        self._summary = None
        self._status_message = ""
        self._status_type = ""
        self._phase = SessionPhase.RUNNING
        logger.info(
            "session started: %d tasks, %s, %s, limit %.0fs",
            len(tasks),
            config.difficulty.value,
            ",".join(sorted(op.value for op in config.operations)),
            config.time_limit_s,
        )
        self._present_current()

    def end(self) -> SessionSummary:
        if self._phase is SessionPhase.NOT_STARTED:
            return EMPTY_SUMMARY
        if self._phase is SessionPhase.RUNNING:
            self._complete()
        assert self._summary is not None
        return self._summary

    def repeat_current(self) -> bool:
        if self._phase is not SessionPhase.RUNNING:
            return False
        return self._voice.repeat_current()

    def skip_current(self) -> bool:
        if self._phase is not SessionPhase.RUNNING:
            return False
        return self._voice.skip_current()

    def update(self) -> None:
        """Process due timers and queued speech events."""
        self._loop.run_pending()

    def snapshot(self) -> SessionSnapshot:
        total = len(self._tasks)
        question = ""
        if self._phase is SessionPhase.RUNNING and self._index < total:
            question = self._tasks[self._index].display_text
        return SessionSnapshot(
            phase=self._phase,
            voice_phase=self._voice.phase,
            question_text=question,
            task_number=min(self._index + 1, total),
            tasks_total=total,
            correct=self._correct,
            answered=self._answered,
            status_message=self._status_message,
            status_type=self._status_type,
            microphone_active=self._voice.microphone_active,
            last_heard=self._voice.last_heard,
            answer_time_remaining_s=self._voice.answer_time_remaining_s(),
            summary=self._summary,
        )

    def _present_current(self) -> None:
        self._pending_next = None
        if self._phase is not SessionPhase.RUNNING:
            return
        if self._index >= len(self._tasks):
            self._complete()
            return
        assert self._config is not None
        task = self._tasks[self._index]
        self._status_message = ""
        self._status_type = ""
        logger.debug("presenting task %d/%d: %s", self._index + 1, len(self._tasks), task.display_text)
        self._voice.begin_task(task, self._config.language, answer_timeout_s=self._config.time_limit_s)

    def _on_verdict(self, verdict: Verdict) -> None:
        if self._phase is not SessionPhase.RUNNING:
            return
        if self._index >= len(self._tasks) or verdict.task is not self._tasks[self._index]:
            logger.debug("ignoring verdict for a task that is not current")
            return

        self._results.append(
            TaskResult(
                task=verdict.task,
                raw_text=verdict.raw_text,
                answer=verdict.answer,
                outcome=verdict.outcome,
                response_time_s=verdict.response_time_s,
            )
        )
        self._answered += 1
        if verdict.outcome is Outcome.CORRECT:
            self._correct += 1
        self._set_feedback(verdict)

        self._index += 1
        if self._index >= len(self._tasks):
            self._complete()
            return
        self._pending_next = self._loop.call_later(self._timing.pacing_delay_s, self._present_current)

    def _set_feedback(self, verdict: Verdict) -> None:
        lang = self.language
        outcome = verdict.outcome
        if outcome is Outcome.CORRECT:
            message = self._feedback_rng.choice(self._strings.praise_options(lang))
        else:
            message = self._strings.text(outcome.value, lang, answer=verdict.task.correct_answer)
        self._status_message = message
        self._status_type = outcome.feedback_type

    def _complete(self) -> None:
        if self._pending_next is not None:
            self._pending_next.cancel()
            self._pending_next = None
        self._voice.abort()
        self._phase = SessionPhase.COMPLETED

        summary = summarize_results(self._results)
        self._summary = summary
        percent = accuracy_percent(self._correct, self._answered)
        self._status_message = self._strings.text(
            "final", self.language, correct=self._correct, total=self._answered, percent=percent
        )
        self._status_type = "success" if self._answered > 0 and percent >= PASSING_PERCENT else "warning"
        logger.info("session completed: %d/%d (%d%%)", self._correct, self._answered, percent)


def build_voice_drill(
    *,
    output: SpeechOutput,
    recognizer: SpeechInput,
    clock: Clock,
    seed: int | None = None,
    timing: VoiceTiming | None = None,
) -> SessionController:
    """Wire one event loop, voice controller, generator and session controller."""

    timing = timing if timing is not None else VoiceTiming()
    loop = EventLoop(clock)
    voice = VoiceInteractionController(output=output, recognizer=recognizer, loop=loop, timing=timing)
    return SessionController(
        voice=voice,
        generator=TaskGenerator(seed=seed),
        loop=loop,
        timing=timing,
        seed=seed,
    )
