# SQLAlchemy models
from .base import Base
from .ranking import (
    DEFAULT_RATING,
    Attempt,
    Course,
    Question,
    Student,
    SyncWatermark,
)

__all__ = [
    # Base
    "Base",
    # Ranking
    "DEFAULT_RATING",
    "Course",
    "Student",
    "Question",
    "Attempt",
    "SyncWatermark",
]
