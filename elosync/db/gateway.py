"""
Persistence gateway for the sync engine.

The orchestrator talks to storage only through PersistenceGateway:

- idempotent upserts for courses, students and questions
- existence checks for attempts
- one transactional unit that records an attempt and applies both rating updates
- watermark reads and writes

SqlAlchemyGateway is the production implementation. Uniqueness of
(student, question) attempts is enforced by the database constraint, so a
duplicate insert that slips past the existence check is rolled back and
reported as "already recorded".
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TypeVar

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from elosync.db.models import DEFAULT_RATING, Attempt, Course, Question, Student, SyncWatermark
from elosync.errors import PersistenceError
from elosync.parsing.quiz_title import ParsedQuizTitle
from elosync.rating.elo import RatingUpdate


@dataclass(frozen=True)
class AttemptDraft:
    """A qualifying submission ready to be recorded."""

    student_pk: int
    question_pk: int
    submission_id: str
    score: float
    max_score: float
    submitted_at: datetime | None


@dataclass(frozen=True)
class RatingInputs:
    """Current state read inside the attempt transaction."""

    user_rating: float
    question_rating: float
    user_attempts: int
    question_submissions: int


RatingFn = Callable[[RatingInputs], RatingUpdate]

T = TypeVar("T")


@dataclass(frozen=True)
class AttemptOutcome:
    """What a recorded attempt changed."""

    attempt_id: int
    rating_change: float
    old_user_rating: float
    new_user_rating: float
    old_question_rating: float
    new_question_rating: float
    question_submissions: int


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PersistenceGateway(ABC):
    """Data-access contract consumed by SyncService."""

    @abstractmethod
    async def upsert_course(self, course_id: str, name: str) -> None:
        """Create the course or update its name."""

    @abstractmethod
    async def get_student(self, course_id: str, student_id: str) -> Student | None:
        """Look up a student by Canvas user id within a course."""

    @abstractmethod
    async def upsert_student(
        self,
        course_id: str,
        student_id: str,
        name: str = "",
        short_name: str = "",
    ) -> Student:
        """Create the student at the default rating or refresh changed, non-empty names."""

    @abstractmethod
    async def upsert_question(
        self,
        course_id: str,
        quiz_id: str,
        title: str,
        parsed: ParsedQuizTitle,
    ) -> Question:
        """Create the question or update its metadata. Never touches rating or submission count."""

    @abstractmethod
    async def find_attempt(self, student_pk: int, question_pk: int) -> Attempt | None:
        """Return the recorded attempt for (student, question), if any."""

    @abstractmethod
    async def create_attempt_and_update_ratings(
        self,
        draft: AttemptDraft,
        rate: RatingFn,
    ) -> AttemptOutcome | None:
        """
        Record an attempt and apply rating updates as one transaction.

        Reads the current ratings and counts, calls `rate` with them, then
        updates the student rating, updates the question rating, increments
        the question submission count and inserts the attempt.

        Returns:
            AttemptOutcome, or None if an attempt for (student, question)
            already exists (nothing is written).

        Raises:
            PersistenceError: The transaction failed and was rolled back.
        """

    @abstractmethod
    async def get_watermark(self, course_id: str) -> datetime | None:
        """Last successful sync time for a course (None if never synced)."""

    @abstractmethod
    async def set_watermark(self, course_id: str, timestamp: datetime) -> None:
        """Record a successful sync time for a course."""


class SqlAlchemyGateway(PersistenceGateway):
    """PersistenceGateway backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_factory is None:
            from elosync.db.database import get_session_factory

            session_factory = get_session_factory()
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncGenerator[AsyncSession, None]:
        """Session with a transaction that commits on success and rolls back on error."""
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except SQLAlchemyError as e:
                raise PersistenceError(str(e)) from e

    async def _upsert(self, work: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Run a select-then-insert-or-update unit of work.

        If another writer inserts the same row between our select and insert,
        the unique constraint rejects ours; the work is then run once more and
        takes the update path against the row that won.
        """
        try:
            async with self._transaction() as session:
                return await work(session)
        except PersistenceError as e:
            if not isinstance(e.__cause__, IntegrityError):
                raise
            logger.debug(f"Row created concurrently, retrying as update: {e}")

        async with self._transaction() as session:
            return await work(session)

    # =========================================================================
    # UPSERTS
    # =========================================================================

    async def upsert_course(self, course_id: str, name: str) -> None:
        async def work(session: AsyncSession) -> None:
            course = await session.get(Course, course_id)
            if course is None:
                session.add(Course(id=course_id, name=name))
                await session.flush()
                logger.info(f"Created course {course_id} ({name})")
            elif name and course.name != name:
                course.name = name

        await self._upsert(work)

    async def get_student(self, course_id: str, student_id: str) -> Student | None:
        async with self._transaction() as session:
            return await self._select_student(session, course_id, student_id)

    async def upsert_student(
        self,
        course_id: str,
        student_id: str,
        name: str = "",
        short_name: str = "",
    ) -> Student:
        async def work(session: AsyncSession) -> Student:
            student = await self._select_student(session, course_id, student_id)
            if student is None:
                student = Student(
                    student_id=student_id,
                    course_id=course_id,
                    name=name,
                    short_name=short_name,
                    rating=DEFAULT_RATING,
                )
                session.add(student)
                await session.flush()
                logger.debug(f"Created student {student_id} in course {course_id}")
                return student

            if name and student.name != name:
                student.name = name
            if short_name and student.short_name != short_name:
                student.short_name = short_name
            return student

        return await self._upsert(work)

    async def upsert_question(
        self,
        course_id: str,
        quiz_id: str,
        title: str,
        parsed: ParsedQuizTitle,
    ) -> Question:
        async def work(session: AsyncSession) -> Question:
            question = await session.scalar(
                select(Question).where(Question.quiz_id == quiz_id, Question.course_id == course_id)
            )
            if question is None:
                question = Question(
                    quiz_id=quiz_id,
                    course_id=course_id,
                    rating=DEFAULT_RATING,
                    submission_count=0,
                )
                session.add(question)
                logger.info(f"Created question {quiz_id} ({title}) in course {course_id}")

            question.title = title
            question.types = list(parsed.types)
            question.lesson = parsed.lesson
            question.difficulty = parsed.difficulty
            question.class_level = parsed.class_level
            await session.flush()
            return question

        return await self._upsert(work)

    # =========================================================================
    # ATTEMPTS
    # =========================================================================

    async def find_attempt(self, student_pk: int, question_pk: int) -> Attempt | None:
        async with self._transaction() as session:
            return await session.scalar(
                select(Attempt).where(Attempt.student_pk == student_pk, Attempt.question_pk == question_pk)
            )

    async def create_attempt_and_update_ratings(
        self,
        draft: AttemptDraft,
        rate: RatingFn,
    ) -> AttemptOutcome | None:
        try:
            async with self._transaction() as session:
                student = await session.get(Student, draft.student_pk, with_for_update=True)
                question = await session.get(Question, draft.question_pk, with_for_update=True)
                if student is None or question is None:
                    raise PersistenceError(
                        f"Missing student {draft.student_pk} or question {draft.question_pk}"
                    )

                existing = await session.scalar(
                    select(Attempt.id).where(
                        Attempt.student_pk == draft.student_pk,
                        Attempt.question_pk == draft.question_pk,
                    )
                )
                if existing is not None:
                    return None

                inputs = RatingInputs(
                    user_rating=student.rating,
                    question_rating=question.rating,
                    user_attempts=await self._count_attempts(session, student.id),
                    question_submissions=question.submission_count,
                )
                update = rate(inputs)

                student.rating = update.new_user_rating
                question.rating = update.new_question_rating
                question.submission_count = Question.submission_count + 1
                attempt = Attempt(
                    student_pk=draft.student_pk,
                    question_pk=draft.question_pk,
                    submission_id=draft.submission_id,
                    score=draft.score,
                    max_score=draft.max_score,
                    submitted_at=draft.submitted_at,
                    rating_change=update.rating_change,
                )
                session.add(attempt)
                await session.flush()

                return AttemptOutcome(
                    attempt_id=attempt.id,
                    rating_change=update.rating_change,
                    old_user_rating=inputs.user_rating,
                    new_user_rating=update.new_user_rating,
                    old_question_rating=inputs.question_rating,
                    new_question_rating=update.new_question_rating,
                    question_submissions=inputs.question_submissions + 1,
                )
        except PersistenceError as e:
            if isinstance(e.__cause__, IntegrityError):
                logger.debug(
                    f"Attempt for student {draft.student_pk} / question {draft.question_pk} "
                    "already recorded; rolled back"
                )
                return None
            raise

    # =========================================================================
    # WATERMARKS
    # =========================================================================

    async def get_watermark(self, course_id: str) -> datetime | None:
        async with self._transaction() as session:
            watermark = await session.get(SyncWatermark, course_id)
            return as_utc(watermark.last_sync) if watermark else None

    async def set_watermark(self, course_id: str, timestamp: datetime) -> None:
        async def work(session: AsyncSession) -> None:
            watermark = await session.get(SyncWatermark, course_id)
            if watermark is None:
                session.add(SyncWatermark(course_id=course_id, last_sync=timestamp))
                await session.flush()
            else:
                watermark.last_sync = timestamp

        await self._upsert(work)

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    @staticmethod
    async def _select_student(session: AsyncSession, course_id: str, student_id: str) -> Student | None:
        return await session.scalar(
            select(Student).where(Student.student_id == student_id, Student.course_id == course_id)
        )

    @staticmethod
    async def _count_attempts(session: AsyncSession, student_pk: int) -> int:
        count = await session.scalar(select(func.count(Attempt.id)).where(Attempt.student_pk == student_pk))
        return int(count or 0)
