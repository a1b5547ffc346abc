"""Extract a spoken integer answer from a recognizer transcript.

Number words are composed on whole word tokens: a hundreds group
("two hundred", "one hundred and", "двести"), then tens, then units, so
"сто двадцать один" reads as 121.  The longest phrase anywhere in the
text wins; with no number words the first bare digit sequence is used.
Word matching on tokens rather than substrings keeps "два" from matching
inside "двадцать".
"""

from __future__ import annotations

import re

from .math_types import Language

_UNITS: dict[Language, dict[str, int]] = {
    Language.EN: {
        "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4,
        "five": 5, "six": 6, "seven": 7, "eight": 8, "nine": 9,
        "ten": 10, "eleven": 11, "twelve": 12, "thirteen": 13,
        "fourteen": 14, "fifteen": 15, "sixteen": 16, "seventeen": 17,
        "eighteen": 18, "nineteen": 19,
    },
    Language.RU: {
        "ноль": 0, "один": 1, "одна": 1, "два": 2, "две": 2, "три": 3,
        "четыре": 4, "пять": 5, "шесть": 6, "семь": 7, "восемь": 8,
        "девять": 9, "десять": 10, "одиннадцать": 11, "двенадцать": 12,
        "тринадцать": 13, "четырнадцать": 14, "пятнадцать": 15,
        "шестнадцать": 16, "семнадцать": 17, "восемнадцать": 18,
        "девятнадцать": 19,
    },
}

_TENS: dict[Language, dict[str, int]] = {
    Language.EN: {
        "twenty": 20, "thirty": 30, "forty": 40, "fifty": 50,
        "sixty": 60, "seventy": 70, "eighty": 80, "ninety": 90,
    },
    Language.RU: {
        "двадцать": 20, "тридцать": 30, "сорок": 40, "пятьдесят": 50,
        "шестьдесят": 60, "семьдесят": 70, "восемьдесят": 80, "девяносто": 90,
    },
}

_RU_HUNDREDS: dict[str, int] = {
    "сто": 100, "двести": 200, "триста": 300, "четыреста": 400, "пятьсот": 500,
    "шестьсот": 600, "семьсот": 700, "восемьсот": 800, "девятьсот": 900,
}

# Words that can precede "hundred": "a hundred", "two hundred", ...
_EN_HUNDRED_MULTIPLIERS: dict[str, int] = {
    "a": 1,
    **{word: value for word, value in _UNITS[Language.EN].items() if 1 <= value <= 9},
}

_TOKEN_RE = re.compile(r"[^\W\d_]+|\d+")
_DIGITS_RE = re.compile(r"\d+")


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower().replace("ё", "е"))


def _hundreds_at(tokens: list[str], i: int, language: Language) -> tuple[int, int]:
    """Return ``(value, tokens used)`` for a hundreds group at ``i``; ``(0, 0)`` if none."""

    if language is Language.RU:
        value = _RU_HUNDREDS.get(tokens[i])
        return (0, 0) if value is None else (value, 1)
    if tokens[i] == "hundred":
        return 100, 1
    if i + 1 < len(tokens) and tokens[i + 1] == "hundred":
        multiplier = _EN_HUNDRED_MULTIPLIERS.get(tokens[i])
        if multiplier is not None:
            return multiplier * 100, 2
    return 0, 0


def _below_hundred_at(tokens: list[str], i: int, language: Language, *, allow_zero: bool) -> tuple[int, int]:
    if i >= len(tokens):
        return 0, 0
    units = _UNITS[language]
    tens = _TENS[language].get(tokens[i])
    if tens is not None:
        if i + 1 < len(tokens):
            unit = units.get(tokens[i + 1])
            if unit is not None and 1 <= unit <= 9:
                return tens + unit, 2
        return tens, 1
    unit = units.get(tokens[i])
    if unit is None or (unit == 0 and not allow_zero):
        return 0, 0
    return unit, 1


def _phrase_at(tokens: list[str], i: int, language: Language) -> tuple[int, int]:
    hundreds, used = _hundreds_at(tokens, i, language)
    if not used:
        return _below_hundred_at(tokens, i, language, allow_zero=True)

    j = i + used
    if language is Language.EN and j < len(tokens) and tokens[j] == "and":
        j += 1
    rest, rest_used = _below_hundred_at(tokens, j, language, allow_zero=False)
    if not rest_used:
        return hundreds, used
    return hundreds + rest, j + rest_used - i


def extract_number(text: str, language: Language | None = None) -> int | None:
    """Return the integer spoken in ``text`` or ``None`` if there is none.

    ``language=None`` searches every supported language.  Among word
    phrases the longest wins, the earliest on a tie.
    """

    languages = list(Language) if language is None else [language]
    tokens = tokenize(text)

    best_value: int | None = None
    best_len = 0
    for i in range(len(tokens)):
        for lang in languages:
            value, used = _phrase_at(tokens, i, lang)
            if used > best_len:
                best_value, best_len = value, used
    if best_value is not None:
        return best_value

    match = _DIGITS_RE.search(text)
    if match is None:
        return None
    return int(match.group())
