"""
Sync Service - Orchestrates Canvas → database synchronization and rating updates.

Core responsibilities:
- Upsert course metadata and course membership
- Parse quiz titles and upsert questions (metadata only)
- Fetch submissions updated since the course watermark
- Skip incomplete and already-recorded submissions
- Apply ELO updates and record attempts, one transaction per submission
- Advance the watermark to the sync start time only after a clean run

Per-course state machine:

    IDLE → FETCHING_COURSE_META → SYNCING_MEMBERS → FETCHING_QUIZZES
         → PROCESSING_QUIZ_BATCH → COMMITTING → IDLE
    (any state) → ABORTED on an unrecoverable error
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, TypeVar

from loguru import logger

from config import get_settings
from elosync.canvas.client import CanvasClient
from elosync.canvas.models import CanvasMember, CanvasQuiz, CanvasSubmission, UserProfile
from elosync.db.gateway import AttemptDraft, PersistenceGateway, RatingInputs
from elosync.db.models import Question
from elosync.errors import CourseSyncError, RemoteAPIError
from elosync.parsing.quiz_title import parse_quiz_title
from elosync.rating.elo import RatingUpdate, update_ratings

T = TypeVar("T")

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SyncState(str, Enum):
    """States of a single course sync."""

    IDLE = "idle"
    FETCHING_COURSE_META = "fetching_course_meta"
    SYNCING_MEMBERS = "syncing_members"
    FETCHING_QUIZZES = "fetching_quizzes"
    PROCESSING_QUIZ_BATCH = "processing_quiz_batch"
    COMMITTING = "committing"
    ABORTED = "aborted"


class SyncStats:
    """Statistics for a course sync."""

    def __init__(self) -> None:
        self.members_synced = 0
        self.quizzes_found = 0
        self.quizzes_processed = 0
        self.quizzes_skipped = 0
        self.submissions_seen = 0
        self.attempts_created = 0
        self.students_created = 0
        self.skipped_incomplete = 0
        self.skipped_duplicate = 0
        self.profile_failures = 0
        self.start_time = datetime.now(timezone.utc)
        self.end_time: datetime | None = None

    def finish(self) -> None:
        """Mark sync as finished."""
        self.end_time = datetime.now(timezone.utc)

    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        end = self.end_time or datetime.now(timezone.utc)
        return (end - self.start_time).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/API responses."""
        return {
            "members_synced": self.members_synced,
            "quizzes_found": self.quizzes_found,
            "quizzes_processed": self.quizzes_processed,
            "quizzes_skipped": self.quizzes_skipped,
            "submissions_seen": self.submissions_seen,
            "attempts_created": self.attempts_created,
            "students_created": self.students_created,
            "skipped_incomplete": self.skipped_incomplete,
            "skipped_duplicate": self.skipped_duplicate,
            "profile_failures": self.profile_failures,
            "duration_seconds": round(self.duration_seconds(), 2),
        }


@dataclass
class SyncResult:
    """Aggregate result of syncing every course."""

    success: bool
    message: str
    courses_succeeded: int = 0
    courses_failed: int = 0
    stats: dict[str, dict[str, Any]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "courses_succeeded": self.courses_succeeded,
            "courses_failed": self.courses_failed,
            "stats": self.stats,
            "errors": self.errors,
        }


@dataclass
class SyncRunContext:
    """
    State scoped to one sync_course call.

    The profile cache and student-id map are append-only and keyed by Canvas
    user id.
    """

    course_id: str
    started_at: datetime
    watermark: datetime = EPOCH
    state: SyncState = SyncState.IDLE
    history: list[SyncState] = field(default_factory=lambda: [SyncState.IDLE])
    stats: SyncStats = field(default_factory=SyncStats)
    profiles: dict[str, UserProfile] = field(default_factory=dict)
    students: dict[str, int] = field(default_factory=dict)


class SyncService:
    """
    Orchestrates Canvas → database synchronization.

    Features:
    - Incremental sync per course (updated_since watermark)
    - Idempotent re-sync (attempt dedup + unique constraint)
    - Bounded concurrency for quizzes and submissions
    - Per-submission transactions for rating updates
    - Overlapping syncs of one course run one after the other; rating
      updates for the same student or question are serialized across runs
    - Sequential multi-course sync with an aggregate result
    """

    def __init__(
        self,
        canvas: CanvasClient | None = None,
        gateway: PersistenceGateway | None = None,
        concurrency: int | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize sync service.

        Args:
            canvas: CanvasClient instance (created if not provided)
            gateway: PersistenceGateway (SqlAlchemyGateway if not provided)
            concurrency: Batch size for concurrent quiz/submission work
            clock: Source of the sync start time (UTC)
        """
        settings = get_settings()
        if gateway is None:
            from elosync.db.gateway import SqlAlchemyGateway

            gateway = SqlAlchemyGateway()
        self._canvas = canvas or CanvasClient()
        self._gateway = gateway
        self._concurrency = max(1, concurrency or settings.sync_concurrency)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks: dict[tuple[str, str], asyncio.Lock] = {}
        self.last_run: SyncRunContext | None = None

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def sync_course(self, course_id: str, full_sync: bool = False) -> SyncStats:
        """
        Sync one course.

        Args:
            course_id: Canvas course id
            full_sync: Ignore the stored watermark and fetch from the epoch

        Returns:
            SyncStats for the run

        Raises:
            CourseSyncError: The sync aborted; the watermark was not advanced
        """
        course_lock = self._lock_for("course", course_id)
        if course_lock.locked():
            logger.info(f"Sync for course {course_id} already running; waiting for it to finish")
        async with course_lock:
            return await self._sync_course(course_id, full_sync)

    async def sync_all_courses(self, full_sync: bool = False) -> SyncResult:
        """
        Sync every course returned by Canvas, one course at a time.

        Never raises: per-course failures are counted and reported in the
        message.
        """
        try:
            courses = await self._canvas.fetch_courses()
        except Exception as e:  # Intentionally broad - reported in the result, never raised
            message = f"Failed to fetch courses: {e}"
            logger.error(message)
            return SyncResult(success=False, message=message)

        result = SyncResult(success=True, message="")
        for course in courses:
            try:
                stats = await self.sync_course(course.id, full_sync=full_sync)
                result.courses_succeeded += 1
                result.stats[course.id] = stats.to_dict()
            except CourseSyncError as e:
                result.courses_failed += 1
                result.errors[course.id] = str(e.cause)

        result.success = result.courses_failed == 0
        result.message = (
            f"Synced {result.courses_succeeded} of {len(courses)} courses"
            + (f"; {result.courses_failed} failed" if result.courses_failed else "")
        )
        if result.errors:
            details = "; ".join(f"{cid}: {err}" for cid, err in result.errors.items())
            result.message += f" ({details})"

        log = logger.info if result.success else logger.warning
        log(result.message)
        return result

    # =========================================================================
    # INTERNAL HELPERS
    # =========================================================================

    async def _sync_course(self, course_id: str, full_sync: bool) -> SyncStats:
        run = SyncRunContext(course_id=course_id, started_at=self._clock())
        self.last_run = run
        logger.info(f"Starting {'full' if full_sync else 'incremental'} sync for course {course_id}")

        try:
            self._transition(run, SyncState.FETCHING_COURSE_META)
            course = await self._canvas.fetch_course(course_id)
            await self._gateway.upsert_course(course_id, course.name)

            self._transition(run, SyncState.SYNCING_MEMBERS)
            await self._sync_members(run)

            if not full_sync:
                run.watermark = await self._gateway.get_watermark(course_id) or EPOCH
            logger.info(f"Course {course_id}: fetching submissions updated since {run.watermark.isoformat()}")

            self._transition(run, SyncState.FETCHING_QUIZZES)
            quizzes = await self._canvas.fetch_quizzes(course_id)
            run.stats.quizzes_found = len(quizzes)
            logger.info(f"Found {len(quizzes)} quizzes in course {course_id}")

            self._transition(run, SyncState.PROCESSING_QUIZ_BATCH)
            await self._process_with_concurrency(quizzes, lambda quiz: self._sync_quiz(run, quiz))

            self._transition(run, SyncState.COMMITTING)
            await self._gateway.set_watermark(course_id, run.started_at)
            self._transition(run, SyncState.IDLE)
        except Exception as e:  # Intentionally broad - any failure aborts the course
            failed_state = run.state
            self._transition(run, SyncState.ABORTED)
            run.stats.finish()
            logger.error(f"Sync aborted for course {course_id} during {failed_state.value}: {e}")
            raise CourseSyncError(course_id, failed_state.value, e) from e

        run.stats.finish()
        logger.info(f"Sync complete for course {course_id}: {run.stats.to_dict()}")
        return run.stats

    def _lock_for(self, kind: str, key: Any) -> asyncio.Lock:
        """Lock shared by every run of this service. No await between lookup and insert."""
        return self._locks.setdefault((kind, str(key)), asyncio.Lock())

    def _transition(self, run: SyncRunContext, state: SyncState) -> None:
        logger.debug(f"Course {run.course_id}: {run.state.value} -> {state.value}")
        run.state = state
        run.history.append(state)

    async def _sync_members(self, run: SyncRunContext) -> None:
        members = await self._canvas.fetch_course_members(run.course_id)

        async def upsert(member: CanvasMember) -> None:
            student = await self._gateway.upsert_student(
                run.course_id, member.id, member.name, member.short_name
            )
            run.students[member.id] = student.id
            run.stats.members_synced += 1

        await self._process_with_concurrency(members, upsert)
        logger.info(f"Synced {len(members)} members for course {run.course_id}")

    async def _sync_quiz(self, run: SyncRunContext, quiz: CanvasQuiz) -> None:
        parsed = parse_quiz_title(quiz.title)
        if parsed is None:
            run.stats.quizzes_skipped += 1
            logger.info(f"Skipping quiz {quiz.id} {quiz.title!r} - title has no type tags")
            return

        question = await self._gateway.upsert_question(run.course_id, quiz.id, quiz.title, parsed)

        submissions = await self._canvas.fetch_submissions_since(run.course_id, quiz.id, run.watermark)
        if not submissions:
            logger.debug(f"No new submissions for quiz {quiz.id}")
            return

        run.stats.quizzes_processed += 1
        logger.info(f"Processing {len(submissions)} submissions for quiz {quiz.title!r} ({', '.join(parsed.types)})")
        await self._process_with_concurrency(
            submissions,
            lambda submission: self._process_submission(run, question, submission),
        )

    async def _process_submission(
        self,
        run: SyncRunContext,
        question: Question,
        submission: CanvasSubmission,
    ) -> None:
        run.stats.submissions_seen += 1

        if not submission.is_complete or submission.quiz_points_possible <= 0:
            logger.debug(f"Skipping submission {submission.id} - incomplete or unscored")
            run.stats.skipped_incomplete += 1
            return

        student_pk = await self._resolve_student(run, submission.user_id)

        if await self._gateway.find_attempt(student_pk, question.id) is not None:
            logger.debug(f"Student {submission.user_id} already has an attempt on quiz {question.quiz_id}")
            run.stats.skipped_duplicate += 1
            return

        accuracy = submission.score / submission.quiz_points_possible

        def rate(inputs: RatingInputs) -> RatingUpdate:
            return update_ratings(
                inputs.user_rating,
                inputs.question_rating,
                accuracy,
                inputs.user_attempts,
                inputs.question_submissions,
            )

        draft = AttemptDraft(
            student_pk=student_pk,
            question_pk=question.id,
            submission_id=submission.id,
            score=submission.score,
            max_score=submission.quiz_points_possible,
            submitted_at=submission.finished_at,
        )

        # Fixed order (student, then question) across all tasks and runs
        async with self._lock_for("student", student_pk), self._lock_for("question", question.id):
            outcome = await self._gateway.create_attempt_and_update_ratings(draft, rate)

        if outcome is None:
            run.stats.skipped_duplicate += 1
            return

        run.stats.attempts_created += 1
        logger.info(
            f"Rating change for student {submission.user_id}: "
            f"{outcome.old_user_rating:.0f} -> {outcome.new_user_rating:.0f} "
            f"({outcome.rating_change:+.0f}); quiz {question.quiz_id}: "
            f"{outcome.old_question_rating:.0f} -> {outcome.new_question_rating:.0f}"
        )

    async def _resolve_student(self, run: SyncRunContext, student_id: str) -> int:
        """Return the student's primary key, creating the student on first sight."""
        async with self._lock_for("resolve", f"{run.course_id}:{student_id}"):
            if student_id in run.students:
                return run.students[student_id]

            student = await self._gateway.get_student(run.course_id, student_id)
            if student is None:
                profile = await self._get_profile(run, student_id)
                student = await self._gateway.upsert_student(
                    run.course_id, student_id, profile.name, profile.short_name
                )
                run.stats.students_created += 1
                logger.info(f"Created student {student_id} ({profile.name or 'unknown'}) in course {run.course_id}")

            run.students[student_id] = student.id
            return student.id

    async def _get_profile(self, run: SyncRunContext, student_id: str) -> UserProfile:
        """Profile lookup cached for the run. Failures yield an empty placeholder."""
        if student_id in run.profiles:
            return run.profiles[student_id]

        try:
            profile = await self._canvas.fetch_user_profile(student_id)
        except RemoteAPIError as e:
            logger.warning(f"Failed to fetch profile for user {student_id}: {e}")
            run.stats.profile_failures += 1
            profile = UserProfile()

        run.profiles[student_id] = profile
        return profile

    async def _process_with_concurrency(
        self,
        items: Sequence[T],
        processor: Callable[[T], Awaitable[None]],
    ) -> None:
        """
        Run `processor` over items in batches of at most `concurrency`.

        Each batch settles completely before the first failure (if any) is
        re-raised, so no work is left running in the background.
        """
        for start in range(0, len(items), self._concurrency):
            batch = items[start:start + self._concurrency]
            results = await asyncio.gather(*(processor(item) for item in batch), return_exceptions=True)
            failures = [r for r in results if isinstance(r, BaseException)]
            if failures:
                for extra in failures[1:]:
                    logger.error(f"Additional failure in batch: {extra}")
                raise failures[0]
