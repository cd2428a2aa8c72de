"""Persistent models for coding questions, their test cases, and grading history."""

import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base

DEFAULT_LANGUAGES = ['python', 'javascript', 'java', 'cpp']


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Difficulty(str, enum.Enum):
    easy = 'easy'
    medium = 'medium'
    hard = 'hard'


class SubmissionStatus(str, enum.Enum):
    pending = 'pending'
    running = 'running'
    accepted = 'accepted'
    wrong_answer = 'wrong_answer'
    runtime_error = 'runtime_error'
    time_limit_exceeded = 'time_limit_exceeded'
    memory_limit_exceeded = 'memory_limit_exceeded'
    compilation_error = 'compilation_error'


class ProgressStatus(str, enum.Enum):
    attempted = 'attempted'
    solved = 'solved'
    bookmarked = 'bookmarked'


class Question(Base):
    __tablename__ = 'coding_questions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    difficulty: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    constraints: Mapped[str] = mapped_column(Text, default='')
    input_format: Mapped[str] = mapped_column(Text, default='')
    output_format: Mapped[str] = mapped_column(Text, default='')
    time_limit_ms: Mapped[int] = mapped_column(Integer, default=2000)
    memory_limit_mb: Mapped[int] = mapped_column(Integer, default=256)
    supported_languages: Mapped[List[str]] = mapped_column(
        JSON, default=lambda: list(DEFAULT_LANGUAGES))
    sample_input: Mapped[str] = mapped_column(Text, default='')
    sample_output: Mapped[str] = mapped_column(Text, default='')
    explanation: Mapped[str] = mapped_column(Text, default='')
    tags: Mapped[List[str]] = mapped_column(JSON, default=list)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    test_cases: Mapped[List['TestCase']] = relationship(
        back_populates='question',
        cascade='all, delete-orphan',
        order_by='TestCase.position',
    )
    submissions: Mapped[List['Submission']] = relationship(
        back_populates='question', cascade='all, delete-orphan')
    progress: Mapped[List['PracticeProgress']] = relationship(
        back_populates='question', cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Question(id={self.id}, title={self.title!r}, difficulty={self.difficulty})>'

    @property
    def max_score(self) -> int:
        return sum(tc.weight for tc in self.test_cases)

    def sample_cases(self) -> List['TestCase']:
        return [tc for tc in self.test_cases if tc.is_sample]


class TestCase(Base):
    __tablename__ = 'coding_test_cases'
    __test__ = False  # not a pytest class

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    question_id: Mapped[int] = mapped_column(
        ForeignKey('coding_questions.id', ondelete='CASCADE'), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    input: Mapped[str] = mapped_column(Text, nullable=False, default='')
    expected_output: Mapped[str] = mapped_column(Text, nullable=False)
    is_sample: Mapped[bool] = mapped_column(Boolean, default=False)
    weight: Mapped[int] = mapped_column(Integer, default=10)

    question: Mapped[Question] = relationship(back_populates='test_cases')

    def __repr__(self):
        visibility = 'sample' if self.is_sample else 'hidden'
        return f'<TestCase(question_id={self.question_id}, position={self.position}, {visibility})>'


class Submission(Base):
    __tablename__ = 'coding_submissions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    question_id: Mapped[int] = mapped_column(
        ForeignKey('coding_questions.id', ondelete='CASCADE'), nullable=False)
    test_attempt_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    language: Mapped[str] = mapped_column(String(20), nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=SubmissionStatus.pending.value)
    test_cases_passed: Mapped[int] = mapped_column(Integer, default=0)
    total_test_cases: Mapped[int] = mapped_column(Integer, default=0)
    score: Mapped[int] = mapped_column(Integer, default=0)
    max_score: Mapped[int] = mapped_column(Integer, default=0)
    execution_time_ms: Mapped[int] = mapped_column(Integer, default=0)
    memory_used_kb: Mapped[Optional[int]] = mapped_column(Integer)
    test_results: Mapped[list] = mapped_column(JSON, default=list)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    question: Mapped[Question] = relationship(back_populates='submissions')

    __table_args__ = (
        Index('idx_submissions_student_question', 'student_id', 'question_id'),
    )

    def __repr__(self):
        return (f'<Submission(id={self.id}, student_id={self.student_id!r}, '
                f'question_id={self.question_id}, status={self.status})>')


class PracticeProgress(Base):
    __tablename__ = 'practice_coding_progress'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    question_id: Mapped[int] = mapped_column(
        ForeignKey('coding_questions.id', ondelete='CASCADE'), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default=ProgressStatus.attempted.value)
    best_score: Mapped[int] = mapped_column(Integer, default=0)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    last_attempted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    solved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    question: Mapped[Question] = relationship(back_populates='progress')

    __table_args__ = (
        UniqueConstraint('student_id', 'question_id', name='uq_progress_student_question'),
    )
