"""
Canvas LMS integration.

Components:
- client: async Canvas REST client with Link-header pagination
- models: typed records for courses, members, quizzes, submissions, profiles
"""

from .client import CanvasClient
from .models import CanvasCourse, CanvasMember, CanvasQuiz, CanvasSubmission, UserProfile

__all__ = [
    "CanvasClient",
    "CanvasCourse",
    "CanvasMember",
    "CanvasQuiz",
    "CanvasSubmission",
    "UserProfile",
]
