"""
Rating tables.

Implements:
- Course: Canvas course metadata
- Student: per-course student with a current rating
- Question: per-course quiz with parsed title metadata, rating and submission count
- Attempt: one scored, completed submission per (student, question)
- SyncWatermark: last successful sync time per course

Ratings on Student and Question are only written together with a new
Attempt, inside one transaction (see elosync.db.gateway).
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

DEFAULT_RATING = 1500.0


class Course(Base):
    """A Canvas course. Never deleted by the sync."""

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    # Relationships
    students: Mapped[list[Student]] = relationship(back_populates="course")
    questions: Mapped[list[Question]] = relationship(back_populates="course")


class Student(Base):
    """A student's standing within one course."""

    __tablename__ = "students"
    __table_args__ = (UniqueConstraint("student_id", "course_id", name="uq_students_student_course"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(Text, nullable=False)  # Canvas user id
    course_id: Mapped[str] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    short_name: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_RATING)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    # Relationships
    course: Mapped[Course] = relationship(back_populates="students")
    attempts: Mapped[list[Attempt]] = relationship(back_populates="student")


class Question(Base):
    """
    A rated quiz.

    types holds the bracketed tags from the title (e.g. ["READING", "ART"]).
    rating and submission_count are owned by the rating update path; metadata
    upserts never touch them.
    """

    __tablename__ = "questions"
    __table_args__ = (UniqueConstraint("quiz_id", "course_id", name="uq_questions_quiz_course"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quiz_id: Mapped[str] = mapped_column(Text, nullable=False)  # Canvas quiz id
    course_id: Mapped[str] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    types: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    lesson: Mapped[str | None] = mapped_column(Text)
    difficulty: Mapped[float | None] = mapped_column(Float)
    class_level: Mapped[int | None] = mapped_column(Integer)
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=DEFAULT_RATING)
    submission_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )

    # Relationships
    course: Mapped[Course] = relationship(back_populates="questions")
    attempts: Mapped[list[Attempt]] = relationship(back_populates="question")


class Attempt(Base):
    """A recorded attempt. At most one per (student, question); immutable."""

    __tablename__ = "attempts"
    __table_args__ = (UniqueConstraint("student_pk", "question_pk", name="uq_attempts_student_question"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_pk: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    question_pk: Mapped[int] = mapped_column(ForeignKey("questions.id", ondelete="CASCADE"), nullable=False)
    submission_id: Mapped[str | None] = mapped_column(Text)  # Canvas quiz submission id
    score: Mapped[float] = mapped_column(Float, nullable=False)
    max_score: Mapped[float] = mapped_column(Float, nullable=False)
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    rating_change: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now())

    # Relationships
    student: Mapped[Student] = relationship(back_populates="attempts")
    question: Mapped[Question] = relationship(back_populates="attempts")


class SyncWatermark(Base):
    """Sync start time of the last course sync that completed without a fatal error."""

    __tablename__ = "sync_watermarks"

    course_id: Mapped[str] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"), primary_key=True)
    last_sync: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=func.now(), onupdate=func.now()
    )
