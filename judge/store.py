import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .errors import QuestionNotFoundError
from .models import Question, TestCase
from .schemas import QuestionCreate, QuestionUpdate, TestCaseIn

logger = logging.getLogger(__name__)


def _build_cases(cases: List[TestCaseIn]) -> List[TestCase]:
    return [
        TestCase(
            position=i,
            input=tc.input,
            expected_output=tc.expected_output,
            is_sample=tc.is_sample,
            weight=tc.weight,
        )
        for i, tc in enumerate(cases)
    ]


def list_questions(session: Session) -> List[Tuple[Question, int]]:
    counts = (
        select(TestCase.question_id, func.count(TestCase.id).label('n'))
        .group_by(TestCase.question_id)
        .subquery()
    )
    rows = session.execute(
        select(Question, func.coalesce(counts.c.n, 0))
        .outerjoin(counts, counts.c.question_id == Question.id)
        .order_by(Question.created_at.desc(), Question.id.desc())
    ).all()
    return [(q, n) for q, n in rows]


def get_question(session: Session, question_id: int) -> Question:
    question = session.scalars(
        select(Question)
        .options(selectinload(Question.test_cases))
        .where(Question.id == question_id)
    ).first()
    if question is None:
        raise QuestionNotFoundError(question_id)
    return question


def create_question(session: Session, data: QuestionCreate,
                    created_by: Optional[str] = None) -> Question:
    fields = data.model_dump(exclude={'test_cases'})
    fields['difficulty'] = data.difficulty.value
    question = Question(**fields, created_by=created_by)
    question.test_cases = _build_cases(data.test_cases)
    session.add(question)
    session.commit()
    logger.info('created question %s with %d test cases', question.id, len(data.test_cases))
    return question


def update_question(session: Session, question_id: int, data: QuestionUpdate) -> Question:
    """Apply the given fields; a supplied test case list replaces the existing one."""
    question = get_question(session, question_id)
    fields = data.model_dump(exclude_unset=True, exclude={'test_cases'})
    if fields.get('difficulty') is not None:
        fields['difficulty'] = data.difficulty.value
    for name, value in fields.items():
        if value is not None:
            setattr(question, name, value)
    if data.test_cases is not None:
        question.test_cases = []
        session.flush()
        question.test_cases = _build_cases(data.test_cases)
    session.commit()
    logger.info('updated question %s', question_id)
    return question


def delete_question(session: Session, question_id: int) -> None:
    question = get_question(session, question_id)
    session.delete(question)
    session.commit()
    logger.info('deleted question %s', question_id)
