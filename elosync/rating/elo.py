"""
Dual ELO rating engine.

Each scored attempt is treated as a match between a student and a question:

    expected = 1 / (1 + 10^((R_q - R_u) / 400))

The observed accuracy is remapped non-linearly before comparison so that
near-perfect scores carry more signal than near-zero ones. K-factors decay
with experience (student attempts, question submissions) and are further
damped for ratings that are already far from the baseline.

Everything here is pure: no I/O, deterministic for given inputs.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

BASELINE_RATING = 1500.0
RATING_FLOOR = 1000.0
ELO_SCALE = 400.0

# Student K-factor: (USER_K_BASE * e^(-attempts / USER_K_DECAY) + USER_K_MIN) * stability
USER_K_BASE = 100.0
USER_K_DECAY = 25.0
USER_K_MIN = 20.0
USER_STABILITY_RANGE = (0.5, 1.5)

# Question K-factor: (QUESTION_K_BASE * e^(-submissions / QUESTION_K_DECAY) + QUESTION_K_MIN) * stability
QUESTION_K_BASE = 60.0
QUESTION_K_DECAY = 40.0
QUESTION_K_MIN = 10.0
QUESTION_STABILITY_RANGE = (0.5, 1.0)

STABILITY_SPAN = 1000.0
MAX_SURPRISE_BONUS = 0.5
ZERO_ACCURACY_MIN_PENALTY = -10


@dataclass(frozen=True)
class RatingUpdate:
    """Outcome of rating a single attempt."""

    new_user_rating: float
    new_question_rating: float
    rating_change: int
    question_rating_change: int
    expected: float
    performance: float


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity (52.5 -> 53, -52.5 -> -52)."""
    return math.floor(value + 0.5)


def expected_score(user_rating: float, question_rating: float) -> float:
    """Logistic probability that the student 'beats' the question."""
    return 1.0 / (1.0 + math.pow(10.0, (question_rating - user_rating) / ELO_SCALE))


def transform_accuracy(accuracy: float) -> float:
    """
    Remap accuracy in [0, 1] to a performance score in [0, 1].

    The lower half is linear; the upper half is compressed with a 1.5 power so
    that gains between 0.8 and 0.9 move ratings more than gains between 0.1
    and 0.2. The curve is continuous at 0.5.
    """
    accuracy = _clamp(accuracy, 0.0, 1.0)
    if accuracy <= 0.5:
        return (2.0 * accuracy) * 0.5
    return 0.5 + math.pow(2.0 * (accuracy - 0.5), 1.5) * 0.5


def user_stability(user_rating: float) -> float:
    """Damp changes for high ratings, amplify them for low ones."""
    low, high = USER_STABILITY_RANGE
    return _clamp(1.0 - (user_rating - BASELINE_RATING) / STABILITY_SPAN, low, high)


def question_stability(question_rating: float) -> float:
    """Questions far from the baseline are assumed well calibrated and move slower."""
    low, high = QUESTION_STABILITY_RANGE
    return _clamp(1.0 - abs(question_rating - BASELINE_RATING) / STABILITY_SPAN, low, high)


def user_k_factor(attempts: int, user_rating: float = BASELINE_RATING) -> float:
    """K-factor for a student with `attempts` recorded attempts."""
    base = USER_K_BASE * math.exp(-max(attempts, 0) / USER_K_DECAY) + USER_K_MIN
    return base * user_stability(user_rating)


def question_k_factor(submissions: int, question_rating: float = BASELINE_RATING) -> float:
    """K-factor for a question with `submissions` recorded attempts."""
    base = QUESTION_K_BASE * math.exp(-max(submissions, 0) / QUESTION_K_DECAY) + QUESTION_K_MIN
    return base * question_stability(question_rating)


def update_ratings(
    user_rating: float,
    question_rating: float,
    accuracy: float,
    user_attempts: int,
    question_submissions: int,
) -> RatingUpdate:
    """
    Compute new ratings for one scored attempt.

    Args:
        user_rating: Student rating before the attempt
        question_rating: Question rating before the attempt
        accuracy: score / max_score (clamped to [0, 1])
        user_attempts: Attempts the student already has in the course
        question_submissions: Attempts already recorded for the question

    Returns:
        RatingUpdate. rating_change is the signed change computed for the
        student; both new ratings are floored at RATING_FLOOR, so the applied
        delta can be smaller near the floor.
    """
    accuracy = _clamp(accuracy, 0.0, 1.0)
    expected = expected_score(user_rating, question_rating)
    performance = transform_accuracy(accuracy)
    performance_diff = performance - expected
    surprise = 1.0 + min(MAX_SURPRISE_BONUS, abs(performance_diff))

    k_user = user_k_factor(user_attempts, user_rating)
    k_question = question_k_factor(question_submissions, question_rating)

    rating_change = round_half_up(k_user * surprise * performance_diff)
    if accuracy == 0.0:
        rating_change = min(rating_change, ZERO_ACCURACY_MIN_PENALTY)
    question_rating_change = round_half_up(-k_question * surprise * performance_diff)

    return RatingUpdate(
        new_user_rating=max(RATING_FLOOR, user_rating + rating_change),
        new_question_rating=max(RATING_FLOOR, question_rating + question_rating_change),
        rating_change=rating_change,
        question_rating_change=question_rating_change,
        expected=expected,
        performance=performance,
    )
