"""Value types shared by the task generator, the voice controller and the UI.

Operations are a closed enumeration carrying their own display symbol and
spoken-word phrasing per language; nothing downstream re-interprets the
symbol string as a lookup key.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

MIN_TASKS_COUNT = 5
MAX_TASKS_COUNT = 50
MIN_TIME_LIMIT_S = 5.0
MAX_TIME_LIMIT_S = 60.0

MIN_FIXED_FACTOR = 1
MAX_FIXED_FACTOR = 9
RANDOM_FACTOR_RANGE = (1, 9)


class Language(StrEnum):
    RU = "ru"
    EN = "en"

    @property
    def tag(self) -> str:
        """BCP-47 tag handed to speech backends."""
        return _LANGUAGE_TAGS[self]


_LANGUAGE_TAGS: dict[Language, str] = {
    Language.RU: "ru-RU",
    Language.EN: "en-US",
}


class Operation(StrEnum):
    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    DIVISION = "division"

    @property
    def symbol(self) -> str:
        return _SYMBOLS[self]

    def spoken_word(self, language: Language) -> str:
        return _SPOKEN_WORDS[self][language]


_SYMBOLS: dict[Operation, str] = {
    Operation.ADDITION: "+",
    Operation.SUBTRACTION: "−",
    Operation.MULTIPLICATION: "×",
    Operation.DIVISION: "÷",
}

_SPOKEN_WORDS: dict[Operation, dict[Language, str]] = {
    Operation.ADDITION: {Language.EN: "plus", Language.RU: "плюс"},
    Operation.SUBTRACTION: {Language.EN: "minus", Language.RU: "минус"},
    Operation.MULTIPLICATION: {Language.EN: "multiply by", Language.RU: "умножить на"},
    Operation.DIVISION: {Language.EN: "divide by", Language.RU: "разделить на"},
}


@dataclass(frozen=True, slots=True)
class DifficultyProfile:
    number_range: tuple[int, int]
    multiplication_range: tuple[int, int]
    # Second operand range when the multiplication table factor is fixed.
    table_range: tuple[int, int]
    default_tasks_count: int
    default_time_limit_s: float


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @property
    def profile(self) -> DifficultyProfile:
        return _PROFILES[self]

    @property
    def number_range(self) -> tuple[int, int]:
        return self.profile.number_range

    @property
    def multiplication_range(self) -> tuple[int, int]:
        return self.profile.multiplication_range

    @property
    def default_tasks_count(self) -> int:
        return self.profile.default_tasks_count

    @property
    def default_time_limit_s(self) -> float:
        return self.profile.default_time_limit_s


_PROFILES: dict[Difficulty, DifficultyProfile] = {
    Difficulty.EASY: DifficultyProfile(
        number_range=(1, 10),
        multiplication_range=(1, 9),
        table_range=(1, 9),
        default_tasks_count=10,
        default_time_limit_s=20.0,
    ),
    Difficulty.MEDIUM: DifficultyProfile(
        number_range=(1, 50),
        multiplication_range=(1, 99),
        table_range=(1, 12),
        default_tasks_count=15,
        default_time_limit_s=15.0,
    ),
    Difficulty.HARD: DifficultyProfile(
        number_range=(1, 100),
        multiplication_range=(10, 99),
        table_range=(1, 15),
        default_tasks_count=20,
        default_time_limit_s=10.0,
    ),
}


class Outcome(StrEnum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"

    @property
    def feedback_type(self) -> str:
        if self is Outcome.CORRECT:
            return "success"
        if self is Outcome.INCORRECT:
            return "error"
        return "warning"


@dataclass(frozen=True, slots=True)
class Task:
    operation: Operation
    operand1: int
    operand2: int
    correct_answer: int

    @property
    def display_text(self) -> str:
        return f"{self.operand1} {self.operation.symbol} {self.operand2} = ?"

    def spoken_text(self, language: Language) -> str:
        # Spoken phrasing never includes the symbol or an equals sign.
        return f"{self.operand1} {self.operation.spoken_word(language)} {self.operand2}"


@dataclass(frozen=True, slots=True)
class TaskResult:
    task: Task
    raw_text: str
    answer: int | None
    outcome: Outcome
    response_time_s: float

    @property
    def is_correct(self) -> bool:
        return self.outcome is Outcome.CORRECT
