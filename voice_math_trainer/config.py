from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .errors import InvalidConfiguration
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


@dataclass(frozen=True, slots=True)
class SessionConfig:
    operations: frozenset[Operation]
    difficulty: Difficulty
    tasks_count: int
    time_limit_s: float
    language: Language = Language.RU
    # None selects random-factor multiplication.
    fixed_factor: int | None = None

    @classmethod
    def for_difficulty(
        cls,
        difficulty: Difficulty,
        *,
        operations: Iterable[Operation] = (Operation.ADDITION,),
        language: Language = Language.RU,
        fixed_factor: int | None = None,
    ) -> SessionConfig:
        return cls(
            operations=frozenset(operations),
            difficulty=difficulty,
            tasks_count=difficulty.default_tasks_count,
            time_limit_s=difficulty.default_time_limit_s,
            language=language,
            fixed_factor=fixed_factor,
        )

    def validate(self) -> None:
        if not self.operations:
            raise InvalidConfiguration("at least one operation must be selected")
        if not (MIN_TASKS_COUNT <= self.tasks_count <= MAX_TASKS_COUNT):
            raise InvalidConfiguration(
                f"tasks_count must be in [{MIN_TASKS_COUNT}, {MAX_TASKS_COUNT}], got {self.tasks_count}"
            )
        if not (MIN_TIME_LIMIT_S <= self.time_limit_s <= MAX_TIME_LIMIT_S):
            raise InvalidConfiguration(
                f"time_limit_s must be in [{MIN_TIME_LIMIT_S:g}, {MAX_TIME_LIMIT_S:g}], got {self.time_limit_s}"
            )
        if self.fixed_factor is not None and not (MIN_FIXED_FACTOR <= self.fixed_factor <= MAX_FIXED_FACTOR):
            raise InvalidConfiguration(
                f"fixed_factor must be in [{MIN_FIXED_FACTOR}, {MAX_FIXED_FACTOR}], got {self.fixed_factor}"
            )


@dataclass(frozen=True, slots=True)
class VoiceTiming:
    # Quiet period after the last partial transcript before it is evaluated.
    debounce_s: float = 0.8
    # Pause between a verdict and the next question so feedback does not overlap it.
    pacing_delay_s: float = 1.5

    def __post_init__(self) -> None:
        if self.debounce_s < 0:
            raise ValueError("debounce_s must be >= 0")
        if self.pacing_delay_s < 0:
            raise ValueError("pacing_delay_s must be >= 0")


@dataclass(frozen=True, slots=True)
class AppSettings:
    language: Language = Language.RU
    tts_enabled: bool = True
    tts_backend: str = ""
    # Directory with one Vosk model per language (ru/, en/); empty means typed answers.
    vosk_model_dir: str = ""
    log_level: int = logging.INFO

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AppSettings:
        env = os.environ if environ is None else environ

        raw_lang = env.get("VOICE_MATH_LANGUAGE", "ru").strip().lower()
        language = Language(raw_lang) if raw_lang in {l.value for l in Language} else Language.RU

        level = logging.getLevelName(env.get("VOICE_MATH_LOG_LEVEL", "INFO").strip().upper())
        if not isinstance(level, int):
            level = logging.INFO

        return cls(
            language=language,
            tts_enabled=env.get("VOICE_MATH_DISABLE_TTS", "0") != "1",
            tts_backend=env.get("VOICE_MATH_TTS_BACKEND", "").strip().lower(),
            vosk_model_dir=env.get("VOICE_MATH_VOSK_MODEL_DIR", "").strip(),
            log_level=level,
        )
