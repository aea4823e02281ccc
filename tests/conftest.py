"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests:
in-memory Canvas and persistence doubles for the sync engine, and
in-memory and file-backed SQLite databases for the SQLAlchemy layer.
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from elosync.canvas.models import (  # noqa: E402
    CanvasCourse,
    CanvasMember,
    CanvasQuiz,
    CanvasSubmission,
    UserProfile,
)
from elosync.db.gateway import AttemptOutcome, PersistenceGateway, RatingInputs  # noqa: E402
from elosync.db.models import DEFAULT_RATING, Attempt, Question, Student  # noqa: E402
from elosync.errors import PersistenceError, RemoteAPIError  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory database)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


def ts(value: str) -> datetime:
    """Parse "2024-03-01T10:00:00" as a UTC datetime."""
    return datetime.fromisoformat(value).replace(tzinfo=timezone.utc)


def make_submission(
    submission_id: str,
    quiz_id: str,
    user_id: str,
    score: float | None = 8.0,
    points: float | None = 10.0,
    state: str = "complete",
    finished_at: str | None = "2024-03-01T10:00:00",
    updated_at: str = "2024-03-01T10:00:00",
) -> CanvasSubmission:
    """Build a Canvas submission with sensible defaults."""
    return CanvasSubmission(
        id=submission_id,
        quiz_id=quiz_id,
        user_id=user_id,
        workflow_state=state,
        finished_at=ts(finished_at) if finished_at else None,
        score=score,
        quiz_points_possible=points,
        updated_at=ts(updated_at),
    )


# ========================================
# Canvas double
# ========================================


class FakeCanvas:
    """
    In-memory stand-in for CanvasClient.

    Submissions are filtered by updated_at >= since, like the server-side
    updated_since filter. Set `fail_on` to make a method raise RemoteAPIError.
    """

    def __init__(self) -> None:
        self.courses: dict[str, CanvasCourse] = {}
        self.members: dict[str, list[CanvasMember]] = {}
        self.quizzes: dict[str, list[CanvasQuiz]] = {}
        self.submissions: dict[str, list[CanvasSubmission]] = {}
        self.profiles: dict[str, UserProfile] = {}
        self.fail_on: set[str] = set()
        self.fail_profiles_for: set[str] = set()
        self.since_calls: list[tuple[str, datetime]] = []
        self.profile_calls: list[str] = []

    def add_course(self, course_id: str, name: str = "Course") -> None:
        self.courses[course_id] = CanvasCourse(id=course_id, name=name)
        self.members.setdefault(course_id, [])
        self.quizzes.setdefault(course_id, [])

    def _check(self, method: str) -> None:
        if method in self.fail_on:
            raise RemoteAPIError(f"/fake/{method}", status=500, detail="Internal Server Error")

    async def fetch_courses(self) -> list[CanvasCourse]:
        self._check("fetch_courses")
        return list(self.courses.values())

    async def fetch_course(self, course_id: str) -> CanvasCourse:
        self._check("fetch_course")
        if course_id not in self.courses:
            raise RemoteAPIError(f"/api/v1/courses/{course_id}", status=404, detail="Not Found")
        return self.courses[course_id]

    async def fetch_course_members(self, course_id: str) -> list[CanvasMember]:
        self._check("fetch_course_members")
        return list(self.members.get(course_id, []))

    async def fetch_quizzes(self, course_id: str) -> list[CanvasQuiz]:
        self._check("fetch_quizzes")
        return list(self.quizzes.get(course_id, []))

    async def fetch_submissions_since(
        self, course_id: str, quiz_id: str, since: datetime
    ) -> list[CanvasSubmission]:
        self._check("fetch_submissions_since")
        self.since_calls.append((quiz_id, since))
        return [
            s for s in self.submissions.get(quiz_id, [])
            if s.updated_at is None or s.updated_at >= since
        ]

    async def fetch_user_profile(self, user_id: str) -> UserProfile:
        self.profile_calls.append(user_id)
        if user_id in self.fail_profiles_for:
            raise RemoteAPIError(f"/api/v1/users/{user_id}/profile", status=404, detail="Not Found")
        return self.profiles.get(user_id, UserProfile(name=f"User {user_id}", short_name=user_id))


# ========================================
# Persistence double
# ========================================


class InMemoryGateway(PersistenceGateway):
    """
    Dict-backed PersistenceGateway.

    Set `fail_attempts_for` to submission ids whose attempt transaction should
    raise PersistenceError (nothing is written for them).
    """

    def __init__(self) -> None:
        self.courses: dict[str, str] = {}
        self.students: dict[tuple[str, str], Student] = {}
        self.questions: dict[tuple[str, str], Question] = {}
        self.attempts: dict[tuple[int, int], Attempt] = {}
        self.watermarks: dict[str, datetime] = {}
        self.fail_attempts_for: set[str] = set()
        self.fail_watermark = False
        self._next_id = 0

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def upsert_course(self, course_id: str, name: str) -> None:
        self.courses[course_id] = name

    async def get_student(self, course_id: str, student_id: str) -> Student | None:
        return self.students.get((course_id, student_id))

    async def upsert_student(self, course_id, student_id, name="", short_name=""):
        student = self.students.get((course_id, student_id))
        if student is None:
            student = Student(
                id=self._id(),
                student_id=student_id,
                course_id=course_id,
                name=name,
                short_name=short_name,
                rating=DEFAULT_RATING,
            )
            self.students[(course_id, student_id)] = student
            return student
        if name:
            student.name = name
        if short_name:
            student.short_name = short_name
        return student

    async def upsert_question(self, course_id, quiz_id, title, parsed):
        question = self.questions.get((course_id, quiz_id))
        if question is None:
            question = Question(
                id=self._id(),
                quiz_id=quiz_id,
                course_id=course_id,
                rating=DEFAULT_RATING,
                submission_count=0,
            )
            self.questions[(course_id, quiz_id)] = question
        question.title = title
        question.types = list(parsed.types)
        question.lesson = parsed.lesson
        question.difficulty = parsed.difficulty
        question.class_level = parsed.class_level
        return question

    async def find_attempt(self, student_pk: int, question_pk: int) -> Attempt | None:
        return self.attempts.get((student_pk, question_pk))

    def _count_attempts(self, student_pk: int) -> int:
        return sum(1 for s_pk, _ in self.attempts if s_pk == student_pk)

    async def create_attempt_and_update_ratings(self, draft, rate):
        if draft.submission_id in self.fail_attempts_for:
            raise PersistenceError(f"injected failure for submission {draft.submission_id}")
        if (draft.student_pk, draft.question_pk) in self.attempts:
            return None

        student = next(s for s in self.students.values() if s.id == draft.student_pk)
        question = next(q for q in self.questions.values() if q.id == draft.question_pk)
        inputs = RatingInputs(
            user_rating=student.rating,
            question_rating=question.rating,
            user_attempts=self._count_attempts(student.id),
            question_submissions=question.submission_count,
        )
        update = rate(inputs)

        student.rating = update.new_user_rating
        question.rating = update.new_question_rating
        question.submission_count += 1
        attempt = Attempt(
            id=self._id(),
            student_pk=draft.student_pk,
            question_pk=draft.question_pk,
            submission_id=draft.submission_id,
            score=draft.score,
            max_score=draft.max_score,
            submitted_at=draft.submitted_at,
            rating_change=update.rating_change,
        )
        self.attempts[(draft.student_pk, draft.question_pk)] = attempt
        return AttemptOutcome(
            attempt_id=attempt.id,
            rating_change=update.rating_change,
            old_user_rating=inputs.user_rating,
            new_user_rating=update.new_user_rating,
            old_question_rating=inputs.question_rating,
            new_question_rating=update.new_question_rating,
            question_submissions=question.submission_count,
        )

    async def get_watermark(self, course_id: str) -> datetime | None:
        return self.watermarks.get(course_id)

    async def set_watermark(self, course_id: str, timestamp: datetime) -> None:
        if self.fail_watermark:
            raise PersistenceError("injected watermark failure")
        self.watermarks[course_id] = timestamp


# ========================================
# Fixtures
# ========================================


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fake_canvas():
    """Canvas double with one course (id "101")."""
    canvas = FakeCanvas()
    canvas.add_course("101", "Biology 9")
    return canvas


@pytest.fixture
def memory_gateway():
    """Dict-backed persistence gateway."""
    return InMemoryGateway()


@pytest.fixture
def submission_factory():
    """Factory for CanvasSubmission records."""
    return make_submission


async def _sqlite_session_factory(url: str):
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from elosync.db.database import create_engine_for_url
    from elosync.db.models import Base

    engine = create_engine_for_url(url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)
    return engine, factory


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory SQLite database with all tables created."""
    engine, factory = await _sqlite_session_factory("sqlite+aiosqlite:///:memory:")
    yield factory

    await engine.dispose()


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """
    SQLite database file with all tables created.

    Each session gets its own connection, so concurrent writers really
    interleave (the in-memory database shares one connection).
    """
    engine, factory = await _sqlite_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'elosync.db'}")
    yield factory

    await engine.dispose()
