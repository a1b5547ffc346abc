"""Pygame UI shell for the voice math trainer.

Deterministic timing/scoring/RNG/state lives in the core modules; this
layer only renders ``SessionSnapshot``s and forwards commands.  Answers
are spoken into a Vosk recognizer when ``VOICE_MATH_VOSK_MODEL_DIR`` points
at installed models; otherwise they are typed and Enter submits them.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

import pygame

from .clock import Clock, RealClock
from .config import AppSettings, SessionConfig
from .localization import Localization
from .math_types import (
    MAX_FIXED_FACTOR,
    MAX_TASKS_COUNT,
    MAX_TIME_LIMIT_S,
    MIN_FIXED_FACTOR,
    MIN_TASKS_COUNT,
    MIN_TIME_LIMIT_S,
    Difficulty,
    Language,
    Operation,
)
from .session_controller import SessionController, SessionPhase, SessionSnapshot, build_voice_drill
from .speech import OfflineTtsSpeechOutput, SpeechInput, TypedSpeechInput, VoskSpeechInput
from .voice_controller import VoicePhase

logger = logging.getLogger(__name__)

WINDOW_SIZE = (960, 540)
TARGET_FPS = 60

_STATUS_COLORS = {
    "success": (120, 230, 150),
    "error": (240, 120, 120),
    "warning": (240, 200, 110),
}


class Screen(Protocol):
    def handle_event(self, event: pygame.event.Event) -> None: ...
    def update(self) -> None: ...
    def render(self, surface: pygame.Surface) -> None: ...


@dataclass(frozen=True, slots=True)
class MenuItem:
    label: Callable[[], str]
    action: Callable[[], None]
    adjust: Callable[[int], None] | None = None


@dataclass(slots=True)
class DrillSettings:
    operations: set[Operation] = field(default_factory=lambda: {Operation.ADDITION})
    difficulty: Difficulty = Difficulty.EASY
    tasks_count: int = Difficulty.EASY.default_tasks_count
    time_limit_s: float = Difficulty.EASY.default_time_limit_s
    fixed_factor: int | None = None
    language: Language = Language.RU

    def to_config(self) -> SessionConfig:
        return SessionConfig(
            operations=frozenset(self.operations),
            difficulty=self.difficulty,
            tasks_count=self.tasks_count,
            time_limit_s=self.time_limit_s,
            language=self.language,
            fixed_factor=self.fixed_factor if Operation.MULTIPLICATION in self.operations else None,
        )


class App:
    def __init__(self, surface: pygame.Surface, font: pygame.font.Font) -> None:
        self._surface = surface
        self._font = font
        self._screens: list[Screen] = []
        self._running = True

    @property
    def running(self) -> bool:
        return self._running

    @property
    def font(self) -> pygame.font.Font:
        return self._font

    def push(self, screen: Screen) -> None:
        self._screens.append(screen)

    def pop(self) -> None:
        # Never pop the last/root screen; root handles its own quit/back behavior.
        if len(self._screens) > 1:
            self._screens.pop()

    def quit(self) -> None:
        self._running = False

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type == pygame.QUIT:
            self.quit()
            return
        if not self._screens:
            return
        self._screens[-1].handle_event(event)

    def update(self) -> None:
        if self._screens:
            self._screens[-1].update()

    def render(self) -> None:
        if not self._screens:
            return
        self._screens[-1].render(self._surface)


class MenuScreen:
    def __init__(self, app: App, title: str, items: list[MenuItem], *, is_root: bool = False) -> None:
        self._app = app
        self._title = title
        self._items = items
        self._selected = 0
        self._is_root = is_root
        self._title_font = pygame.font.Font(None, 42)
        self._item_font = pygame.font.Font(None, 32)
        self._hint_font = pygame.font.Font(None, 22)

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return
        key = event.key
        if key in (pygame.K_UP, pygame.K_w):
            self._move(-1)
        elif key in (pygame.K_DOWN, pygame.K_s):
            self._move(1)
        elif key in (pygame.K_LEFT, pygame.K_a):
            self._adjust(-1)
        elif key in (pygame.K_RIGHT, pygame.K_d):
            self._adjust(1)
        elif key in (pygame.K_RETURN, pygame.K_KP_ENTER, pygame.K_SPACE):
            self._items[self._selected].action()
        elif key in (pygame.K_ESCAPE, pygame.K_BACKSPACE):
            if self._is_root:
                self._app.quit()
            else:
                self._app.pop()

    def update(self) -> None:
        return

    def _move(self, delta: int) -> None:
        if self._items:
            self._selected = (self._selected + delta) % len(self._items)

    def _adjust(self, delta: int) -> None:
        if not self._items:
            return
        adjust = self._items[self._selected].adjust
        if adjust is not None:
            adjust(delta)

    def render(self, surface: pygame.Surface) -> None:
        w, h = surface.get_size()
        surface.fill((3, 9, 48))

        title = self._title_font.render(self._title, True, (238, 245, 255))
        surface.blit(title, title.get_rect(midtop=(w // 2, 28)))

        row_h = max(30, min(42, (h - 140) // max(1, len(self._items))))
        y = 90
        for idx, item in enumerate(self._items):
            row = pygame.Rect(60, y, w - 120, row_h - 4)
            selected = idx == self._selected
            pygame.draw.rect(surface, (244, 248, 255) if selected else (9, 20, 106), row)
            color = (14, 26, 74) if selected else (238, 245, 255)
            text = self._item_font.render(item.label(), True, color)
            surface.blit(text, (row.x + 12, row.y + (row.h - text.get_height()) // 2))
            y += row_h

        footer = "Up/Down: Move  |  Left/Right: Change  |  Enter: Select  |  Esc: Back"
        foot = self._hint_font.render(footer, True, (186, 200, 224))
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


class DrillScreen:
    def __init__(
        self,
        app: App,
        *,
        config: SessionConfig,
        clock: Clock,
        output: OfflineTtsSpeechOutput,
        seed: int,
        voice_input: VoskSpeechInput | None = None,
    ) -> None:
        self._app = app
        self._output = output
        self._voice_input = voice_input
        self._typed: TypedSpeechInput | None = None
        recognizer: SpeechInput
        if voice_input is None:
            self._typed = TypedSpeechInput()
            recognizer = self._typed
        else:
            recognizer = voice_input
        self._strings = Localization()
        self._session: SessionController = build_voice_drill(
            output=output,
            recognizer=recognizer,
            clock=clock,
            seed=seed,
        )
        self._session.start(config)

        self._big_font = pygame.font.Font(None, 96)
        self._mid_font = pygame.font.Font(None, 40)
        self._small_font = pygame.font.Font(None, 26)

    @property
    def session(self) -> SessionController:
        return self._session

    def handle_event(self, event: pygame.event.Event) -> None:
        if event.type != pygame.KEYDOWN:
            return

        if self._session.phase is SessionPhase.COMPLETED:
            self._app.pop()
            return

        if event.key == pygame.K_ESCAPE:
            self._session.end()
        elif event.key == pygame.K_F1:
            self._session.repeat_current()
        elif event.key == pygame.K_F2:
            self._session.skip_current()
        elif self._typed is None:
            return
        elif event.key in (pygame.K_RETURN, pygame.K_KP_ENTER):
            self._typed.submit()
        elif event.key == pygame.K_BACKSPACE:
            self._typed.backspace()
        elif event.unicode and event.unicode.isprintable():
            self._typed.type_text(event.unicode)

    def update(self) -> None:
        self._output.update()
        if self._voice_input is not None:
            self._voice_input.update()
        self._session.update()

    def render(self, surface: pygame.Surface) -> None:
        snap = self._session.snapshot()
        w, h = surface.get_size()
        surface.fill((6, 8, 30))
        lang = self._session.language

        header = self._strings.text("task_of", lang, index=snap.task_number, total=snap.tasks_total)
        score = f"{snap.correct}/{snap.answered}"
        surface.blit(self._small_font.render(header, True, (186, 200, 224)), (30, 20))
        score_surf = self._small_font.render(score, True, (186, 200, 224))
        surface.blit(score_surf, score_surf.get_rect(topright=(w - 30, 20)))

        if snap.phase is SessionPhase.COMPLETED:
            self._render_results(surface, snap)
            return

        question = self._big_font.render(snap.question_text, True, (238, 245, 255))
        surface.blit(question, question.get_rect(center=(w // 2, h // 3)))

        self._render_voice_state(surface, snap)

        if snap.status_message:
            color = _STATUS_COLORS.get(snap.status_type, (238, 245, 255))
            status = self._mid_font.render(snap.status_message, True, color)
            surface.blit(status, status.get_rect(center=(w // 2, int(h * 0.72))))

        answer_hint = "Type + Enter: answer" if self._typed is not None else "Say the answer"
        hint = f"{answer_hint}  |  F1: Repeat  |  F2: Skip  |  Esc: Finish"
        foot = self._small_font.render(hint, True, (140, 150, 170))
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))

    def _render_voice_state(self, surface: pygame.Surface, snap: SessionSnapshot) -> None:
        w, h = surface.get_size()
        lang = self._session.language
        if snap.voice_phase is VoicePhase.SPEAKING:
            line = self._strings.text("speaking", lang)
        elif snap.microphone_active:
            line = self._strings.text("listening", lang)
            if snap.answer_time_remaining_s is not None:
                line = f"{line}  {snap.answer_time_remaining_s:0.0f}s"
        else:
            line = ""

        mic_color = (120, 230, 150) if snap.microphone_active else (90, 90, 110)
        pygame.draw.circle(surface, mic_color, (w // 2 - 220, int(h * 0.52)), 10)
        if line:
            text = self._small_font.render(line, True, (186, 200, 224))
            surface.blit(text, (w // 2 - 200, int(h * 0.52) - text.get_height() // 2))

        typed = "" if self._typed is None else self._typed.buffer
        heard = typed or snap.last_heard
        if heard:
            text = self._mid_font.render(heard, True, (238, 245, 255))
            surface.blit(text, text.get_rect(center=(w // 2, int(h * 0.60))))

    def _render_results(self, surface: pygame.Surface, snap: SessionSnapshot) -> None:
        w, h = surface.get_size()
        color = _STATUS_COLORS.get(snap.status_type, (238, 245, 255))
        title = self._mid_font.render(snap.status_message, True, color)
        surface.blit(title, title.get_rect(center=(w // 2, h // 4)))

        summary = snap.summary
        if summary is not None:
            rt = "n/a" if summary.mean_response_time_s is None else f"{summary.mean_response_time_s:.2f}s"
            lines = [
                f"Correct: {summary.correct}   Incorrect: {summary.incorrect}",
                f"Timeouts: {summary.timed_out}   Skipped: {summary.skipped}",
                f"Mean response time: {rt}",
            ]
            y = h // 4 + 60
            for line in lines:
                text = self._small_font.render(line, True, (238, 245, 255))
                surface.blit(text, text.get_rect(center=(w // 2, y)))
                y += 34

        foot = self._small_font.render("Press any key to return to the menu", True, (140, 150, 170))
        surface.blit(foot, foot.get_rect(midbottom=(w // 2, h - 12)))


def _cycle(values: list, current: object, delta: int) -> object:
    idx = values.index(current) if current in values else 0
    return values[(idx + delta) % len(values)]


def _settings_items(app: App, settings: DrillSettings) -> list[MenuItem]:
    def toggle(op: Operation) -> Callable[[], None]:
        def action() -> None:
            if op in settings.operations:
                settings.operations.discard(op)
            else:
                settings.operations.add(op)

        return action

    def op_label(op: Operation) -> Callable[[], str]:
        return lambda: f"[{'x' if op in settings.operations else ' '}] {op.value.title()} ({op.symbol})"

    def adjust_difficulty(delta: int) -> None:
        settings.difficulty = _cycle(list(Difficulty), settings.difficulty, delta)
        settings.tasks_count = settings.difficulty.default_tasks_count
        settings.time_limit_s = settings.difficulty.default_time_limit_s

    def adjust_tasks(delta: int) -> None:
        settings.tasks_count = max(MIN_TASKS_COUNT, min(MAX_TASKS_COUNT, settings.tasks_count + delta))

    def adjust_time(delta: int) -> None:
        settings.time_limit_s = max(MIN_TIME_LIMIT_S, min(MAX_TIME_LIMIT_S, settings.time_limit_s + 5.0 * delta))

    def adjust_factor(delta: int) -> None:
        factors: list[int | None] = [None, *range(MIN_FIXED_FACTOR, MAX_FIXED_FACTOR + 1)]
        settings.fixed_factor = _cycle(factors, settings.fixed_factor, delta)

    def adjust_language(delta: int) -> None:
        settings.language = _cycle(list(Language), settings.language, delta)

    items = [MenuItem(op_label(op), toggle(op)) for op in Operation]
    items.extend(
        [
            MenuItem(lambda: f"Difficulty: {settings.difficulty.value}", lambda: adjust_difficulty(1), adjust_difficulty),
            MenuItem(lambda: f"Problems: {settings.tasks_count}", lambda: adjust_tasks(1), adjust_tasks),
            MenuItem(lambda: f"Time per problem: {settings.time_limit_s:.0f}s", lambda: adjust_time(1), adjust_time),
            MenuItem(
                lambda: f"Multiplier: {'random' if settings.fixed_factor is None else settings.fixed_factor}",
                lambda: adjust_factor(1),
                adjust_factor,
            ),
            MenuItem(lambda: f"Language: {settings.language.value}", lambda: adjust_language(1), adjust_language),
            MenuItem(lambda: "Back", app.pop),
        ]
    )
    return items


def _new_seed() -> int:
    return random.SystemRandom().randint(1, 2**31 - 1)


def run(
    *,
    max_frames: int | None = None,
    event_injector: Callable[[int], None] | None = None,
    settings: AppSettings | None = None,
) -> int:
    settings = settings if settings is not None else AppSettings.from_env()

    pygame.init()
    pygame.display.set_caption("Voice Math Trainer")
    surface = pygame.display.set_mode(WINDOW_SIZE, pygame.RESIZABLE)

    font = pygame.font.Font(None, 36)
    frame_clock = pygame.time.Clock()

    app = App(surface=surface, font=font)
    real_clock = RealClock()
    output = OfflineTtsSpeechOutput(real_clock, enabled=settings.tts_enabled, forced_backend=settings.tts_backend)
    logger.info("speech output backend: %s", output.backend or "silent")
    voice_input: VoskSpeechInput | None = None
    if VoskSpeechInput.available(settings.vosk_model_dir):
        voice_input = VoskSpeechInput(settings.vosk_model_dir)
        logger.info("speech input: vosk models in %s", settings.vosk_model_dir)
    else:
        logger.info("speech input: keyboard (set VOICE_MATH_VOSK_MODEL_DIR and install the voice extra)")

    drill_settings = DrillSettings(language=settings.language)
    settings_menu = MenuScreen(app, "Settings", _settings_items(app, drill_settings))

    def start_drill() -> None:
        if not drill_settings.operations:
            logger.warning("no operation selected; opening settings")
            app.push(settings_menu)
            return
        app.push(
            DrillScreen(
                app,
                config=drill_settings.to_config(),
                clock=real_clock,
                output=output,
                seed=_new_seed(),
                voice_input=voice_input,
            )
        )

    main_items = [
        MenuItem(lambda: "Start drill", start_drill),
        MenuItem(lambda: "Settings", lambda: app.push(settings_menu)),
        MenuItem(lambda: "Quit", app.quit),
    ]
    app.push(MenuScreen(app, "Voice Math Trainer", main_items, is_root=True))

    frame = 0
    try:
        while app.running:
            if event_injector is not None:
                event_injector(frame)

            for event in pygame.event.get():
                app.handle_event(event)

            app.update()
            app.render()

            pygame.display.flip()

            frame += 1
            if max_frames is not None and frame >= max_frames:
                break

            frame_clock.tick(TARGET_FPS)
    finally:
        output.stop()
        if voice_input is not None:
            voice_input.cancel()
        pygame.quit()

    return 0
