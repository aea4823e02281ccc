from .elo import (
    BASELINE_RATING,
    RATING_FLOOR,
    RatingUpdate,
    expected_score,
    question_k_factor,
    transform_accuracy,
    update_ratings,
    user_k_factor,
)

__all__ = [
    "BASELINE_RATING",
    "RATING_FLOOR",
    "RatingUpdate",
    "expected_score",
    "question_k_factor",
    "transform_accuracy",
    "update_ratings",
    "user_k_factor",
]
