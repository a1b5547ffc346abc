from __future__ import annotations

from .math_types import Language

_STRINGS: dict[Language, dict[str, str]] = {
    Language.EN: {
        "incorrect": "Correct answer: {answer}",
        "timeout": "Time's up! Answer: {answer}",
        "skipped": "Skipped! Answer: {answer}",
        "final": "Result: {correct}/{total} ({percent}%)",
        "listening": "Listening for your answer...",
        "speaking": "Listen to the question...",
        "task_of": "Problem {index} of {total}",
    },
    Language.RU: {
        "incorrect": "Правильный ответ: {answer}",
        "timeout": "Время вышло! Ответ: {answer}",
        "skipped": "Пропущено! Ответ: {answer}",
        "final": "Результат: {correct}/{total} ({percent}%)",
        "listening": "Слушаю ваш ответ...",
        "speaking": "Слушайте вопрос...",
        "task_of": "Задача {index} из {total}",
    },
}

_PRAISE: dict[Language, tuple[str, ...]] = {
    Language.EN: ("Excellent!", "Correct!", "Great!", "Awesome!", "Perfect!"),
    Language.RU: ("Отлично!", "Правильно!", "Молодец!", "Супер!", "Здорово!"),
}


class Localization:
    """Pure ``key, language -> display string`` lookup."""

    def text(self, key: str, language: Language, **values: object) -> str:
        template = _STRINGS[language].get(key)
        if template is None:
            return key.upper()
        return template.format(**values)

    def praise_options(self, language: Language) -> tuple[str, ...]:
        return _PRAISE[language]
