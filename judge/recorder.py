import logging
from typing import Optional, Sequence, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import RecordingError
from .models import PracticeProgress, ProgressStatus, Question, Submission, SubmissionStatus, utcnow
from .runner import CaseResult
from .scorer import ScoreResult

logger = logging.getLogger(__name__)


def _average_time(results: Sequence[CaseResult]) -> int:
    if not results:
        return 0
    return round(sum(r.execution_time_ms for r in results) / len(results))


def _peak_memory(results: Sequence[CaseResult]) -> Optional[int]:
    seen = [r.memory_kb for r in results if r.memory_kb is not None]
    return max(seen) if seen else None


def _first_error(results: Sequence[CaseResult]) -> Optional[str]:
    for r in results:
        if r.error:
            return r.error
    return None


def get_progress(session: Session, student_id: str, question_id: int) -> Optional[PracticeProgress]:
    return session.scalars(
        select(PracticeProgress).where(
            PracticeProgress.student_id == student_id,
            PracticeProgress.question_id == question_id,
        )
    ).first()


def _ensure_progress(session: Session, student_id: str, question_id: int,
                     status: ProgressStatus) -> Tuple[PracticeProgress, bool]:
    """Return the progress row and whether this call created it."""
    progress = get_progress(session, student_id, question_id)
    if progress is not None:
        return progress, False

    progress = PracticeProgress(
        student_id=student_id,
        question_id=question_id,
        status=status.value,
        best_score=0,
        attempts=0,
    )
    try:
        with session.begin_nested():
            session.add(progress)
            session.flush()
    except IntegrityError:
        # a concurrent submission inserted the row first
        progress = get_progress(session, student_id, question_id)
        if progress is None:
            raise
        return progress, False
    return progress, True


def update_progress(session: Session, student_id: str, question_id: int,
                    status: SubmissionStatus, score: int) -> PracticeProgress:
    now = utcnow()
    progress, _ = _ensure_progress(session, student_id, question_id, ProgressStatus.attempted)
    if status == SubmissionStatus.accepted and progress.status != ProgressStatus.solved.value:
        progress.status = ProgressStatus.solved.value
        progress.solved_at = now
    progress.best_score = max(score, progress.best_score or 0)
    progress.attempts = (progress.attempts or 0) + 1
    progress.last_attempted_at = now
    return progress


def record(
    session: Session,
    student_id: str,
    question: Question,
    language: str,
    code: str,
    results: Sequence[CaseResult],
    score_result: ScoreResult,
    test_attempt_id: Optional[str] = None,
) -> int:
    """
    Persist a graded submission and fold it into the student's practice progress.

    Returns the new submission id. Raises RecordingError if the write fails; the
    session is rolled back in that case.
    """
    submission = Submission(
        student_id=student_id,
        question_id=question.id,
        test_attempt_id=test_attempt_id,
        language=language,
        code=code,
        status=score_result.status.value,
        test_cases_passed=score_result.passed_count,
        total_test_cases=score_result.total_count,
        score=score_result.score,
        max_score=score_result.max_score,
        execution_time_ms=_average_time(results),
        memory_used_kb=_peak_memory(results),
        test_results=[r.to_dict() for r in results],
        error_message=_first_error(results),
    )
    try:
        session.add(submission)
        update_progress(session, student_id, question.id, score_result.status, score_result.score)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise RecordingError(f'could not record submission: {e}') from e

    logger.debug('recorded submission %s for student %s', submission.id, student_id)
    return submission.id


def bookmark(session: Session, student_id: str, question_id: int) -> PracticeProgress:
    try:
        progress, created = _ensure_progress(session, student_id, question_id,
                                             ProgressStatus.bookmarked)
        if not created and progress.status != ProgressStatus.solved.value:
            progress.status = ProgressStatus.bookmarked.value
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise
    return progress
