"""
Typed records for the Canvas payloads consumed by the sync engine.

Only the fields the sync needs are kept; everything else in the JSON is
ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a Canvas ISO-8601 timestamp ("2024-03-01T10:00:00Z") into an aware datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _optional_float(value: Any) -> float | None:
    # bool is an int subclass; Canvas never sends booleans for scores
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


@dataclass(frozen=True)
class CanvasCourse:
    """A course visible to the API token."""

    id: str
    name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanvasCourse:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or data.get("course_code") or f"Course {data['id']}",
        )


@dataclass(frozen=True)
class CanvasMember:
    """A student enrolled in a course."""

    id: str
    name: str
    short_name: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanvasMember:
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            short_name=data.get("short_name") or "",
        )


@dataclass(frozen=True)
class CanvasQuiz:
    """Quiz metadata."""

    id: str
    title: str
    points_possible: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanvasQuiz:
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            points_possible=_optional_float(data.get("points_possible")),
        )


@dataclass(frozen=True)
class CanvasSubmission:
    """A quiz submission as returned by the quiz submissions endpoint."""

    id: str
    quiz_id: str
    user_id: str
    workflow_state: str
    finished_at: datetime | None
    score: float | None
    quiz_points_possible: float | None
    updated_at: datetime | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CanvasSubmission:
        return cls(
            id=str(data["id"]),
            quiz_id=str(data.get("quiz_id", "")),
            user_id=str(data.get("user_id", "")),
            workflow_state=data.get("workflow_state") or "",
            finished_at=parse_timestamp(data.get("finished_at")),
            score=_optional_float(data.get("score")),
            quiz_points_possible=_optional_float(data.get("quiz_points_possible")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )

    @property
    def is_complete(self) -> bool:
        """Finished, in the complete workflow state, and carrying a numeric score."""
        return (
            self.workflow_state == "complete"
            and self.finished_at is not None
            and self.score is not None
            and self.quiz_points_possible is not None
        )


@dataclass(frozen=True)
class UserProfile:
    """Display names from /users/:id/profile."""

    name: str = ""
    short_name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        return cls(
            name=data.get("name") or "",
            short_name=data.get("short_name") or "",
        )
