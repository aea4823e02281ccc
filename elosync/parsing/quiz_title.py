"""
Quiz title parser.

Quiz titles carry their classification inline:

    [<Type>] [<Type>] ... <Lesson name> <<Difficulty>> (<Class>)

Only the leading bracketed types are required. Examples:

    [READING][ART] Unit 3 <8.5> (9)   -> types READING, ART; lesson "Unit 3"; 8.5; class 9
    [MATH] Calculus 1                 -> types MATH; lesson "Calculus 1"
    Unit 3                            -> not rated (no types)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

from loguru import logger

_LEADING_TAGS = re.compile(r"^\s*((?:\[[^\[\]]*\]\s*)+)")
_TAG = re.compile(r"\[([^\[\]]*)\]")

# Tried in order against the text that follows the tags.
_LESSON_DIFFICULTY_CLASS = re.compile(r"^(?P<lesson>.*?)\s*<(?P<difficulty>[^<>]*)>\s*\(\s*(?P<klass>-?\d+)\s*\)$")
_LESSON_DIFFICULTY = re.compile(r"^(?P<lesson>.*?)\s*<(?P<difficulty>[^<>]*)>$")
_LESSON_CLASS = re.compile(r"^(?P<lesson>.*?)\s*\(\s*(?P<klass>-?\d+)\s*\)$")


@dataclass(frozen=True)
class ParsedQuizTitle:
    """Structured metadata extracted from a quiz title."""

    types: list[str] = field(default_factory=list)
    lesson: str | None = None
    difficulty: float | None = None
    class_level: int | None = None


def _parse_difficulty(raw: str) -> float | None:
    """Return the difficulty as a finite float, or None if it is not one."""
    try:
        value = float(raw.strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def split_type_tags(title: str) -> tuple[list[str], str]:
    """
    Split the leading [TAG] tokens from a title.

    Returns:
        (types, remaining_text). types is empty when the title has no leading tags.
    """
    match = _LEADING_TAGS.match(title or "")
    if not match:
        return [], (title or "").strip()

    types = [tag.strip() for tag in _TAG.findall(match.group(1)) if tag.strip()]
    return types, title[match.end():].strip()


def parse_quiz_title(title: str) -> ParsedQuizTitle | None:
    """
    Parse a quiz title into types, lesson, difficulty and class.

    Args:
        title: Free-text quiz title from Canvas

    Returns:
        ParsedQuizTitle, or None if the quiz has no type tags or carries a
        difficulty that is not a number. Quizzes that fail to parse are
        excluded from rating.
    """
    types, remaining = split_type_tags(title)
    if not types:
        logger.debug(f"Skipping quiz {title!r} - no types found in brackets")
        return None

    difficulty: float | None = None
    class_level: int | None = None
    lesson = remaining

    for pattern in (_LESSON_DIFFICULTY_CLASS, _LESSON_DIFFICULTY, _LESSON_CLASS):
        match = pattern.match(remaining)
        if not match:
            continue

        groups = match.groupdict()
        lesson = groups["lesson"]
        if groups.get("difficulty") is not None:
            difficulty = _parse_difficulty(groups["difficulty"])
            if difficulty is None:
                logger.debug(f"Skipping quiz {title!r} - invalid difficulty: {groups['difficulty']!r}")
                return None
        if groups.get("klass") is not None:
            class_level = int(groups["klass"])
        break

    return ParsedQuizTitle(
        types=types,
        lesson=lesson.strip() or None,
        difficulty=difficulty,
        class_level=class_level,
    )
