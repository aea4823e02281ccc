"""
Read-side queries over ratings: course leaderboards, practice
recommendations and sync status.

Recommendations target questions slightly above the student's rating
(rating + RECOMMENDATION_OFFSET) that the student has not attempted yet.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from elosync.db.gateway import as_utc
from elosync.db.models import DEFAULT_RATING, Attempt, Course, Question, Student, SyncWatermark

RECOMMENDATION_OFFSET = 100.0


@dataclass(frozen=True)
class RankingEntry:
    rank: int
    student_id: str
    name: str
    short_name: str
    rating: float
    attempts: int


@dataclass(frozen=True)
class Recommendation:
    quiz_id: str
    title: str
    types: list[str]
    rating: float
    lesson: str | None = None


@dataclass(frozen=True)
class SyncStatusInfo:
    course_id: str
    course_name: str | None
    last_sync: datetime | None

    @property
    def status(self) -> str:
        return "Synced" if self.last_sync else "Never synced"

    def to_dict(self) -> dict:
        return {
            "course_id": self.course_id,
            "course_name": self.course_name,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "status": self.status,
        }


async def get_course_ranking(
    session: AsyncSession,
    course_id: str,
    limit: int | None = None,
) -> list[RankingEntry]:
    """Students of a course ordered by rating (highest first)."""
    attempts = func.count(Attempt.id).label("attempts")
    stmt = (
        select(Student, attempts)
        .outerjoin(Attempt, Attempt.student_pk == Student.id)
        .where(Student.course_id == course_id)
        .group_by(Student.id)
        .order_by(Student.rating.desc(), Student.student_id)
    )
    if limit:
        stmt = stmt.limit(limit)

    rows = (await session.execute(stmt)).all()
    return [
        RankingEntry(
            rank=index,
            student_id=student.student_id,
            name=student.name,
            short_name=student.short_name,
            rating=student.rating,
            attempts=int(count),
        )
        for index, (student, count) in enumerate(rows, start=1)
    ]


async def get_recommendations(
    session: AsyncSession,
    course_id: str,
    student_id: str,
    type_tag: str | None = None,
    count: int = 3,
) -> list[Recommendation]:
    """
    Unattempted questions closest to the student's rating + RECOMMENDATION_OFFSET.

    Args:
        session: Database session
        course_id: Canvas course id
        student_id: Canvas user id
        type_tag: Restrict to questions carrying this type tag
        count: Number of recommendations

    Returns:
        Recommendations, best match first. Unknown students are treated as
        new (default rating, nothing attempted).
    """
    student = await session.scalar(
        select(Student).where(Student.student_id == student_id, Student.course_id == course_id)
    )
    user_rating = student.rating if student else DEFAULT_RATING

    stmt = select(Question).where(Question.course_id == course_id)
    if student is not None:
        attempted = select(Attempt.question_pk).where(Attempt.student_pk == student.id)
        stmt = stmt.where(Question.id.not_in(attempted))

    # types is a JSON list; filter in Python to stay portable across backends
    questions = [
        q for q in (await session.scalars(stmt)).all()
        if type_tag is None or type_tag in (q.types or [])
    ]

    target = user_rating + RECOMMENDATION_OFFSET
    questions.sort(key=lambda q: (abs(q.rating - target), q.quiz_id))
    return [
        Recommendation(
            quiz_id=q.quiz_id,
            title=q.title,
            types=list(q.types or []),
            rating=q.rating,
            lesson=q.lesson,
        )
        for q in questions[:count]
    ]


async def get_recommendations_by_type(
    session: AsyncSession,
    course_id: str,
    student_id: str,
    count: int = 3,
) -> dict[str, list[Recommendation]]:
    """Recommendations grouped by every type tag used in the course."""
    type_lists = (await session.scalars(select(Question.types).where(Question.course_id == course_id))).all()
    tags = sorted({tag for types in type_lists for tag in (types or [])})
    return {
        tag: await get_recommendations(session, course_id, student_id, type_tag=tag, count=count)
        for tag in tags
    }


async def get_sync_status(session: AsyncSession, course_id: str) -> SyncStatusInfo:
    """Last successful sync time for a course."""
    course = await session.get(Course, course_id)
    watermark = await session.get(SyncWatermark, course_id)
    return SyncStatusInfo(
        course_id=course_id,
        course_name=course.name if course else None,
        last_sync=as_utc(watermark.last_sync) if watermark else None,
    )
