import pytest
from pydantic import ValidationError
from sqlalchemy import select

from judge import recorder
from judge.errors import QuestionNotFoundError
from judge.models import PracticeProgress, TestCase as TestCaseRow
from judge.schemas import QuestionCreate, QuestionUpdate, TestCaseIn as CaseIn
from judge.store import (
    create_question, delete_question, get_question, list_questions, update_question,
)


def new_question(**overrides):
    fields = dict(
        title='Reverse',
        description='Reverse a string.',
        difficulty='medium',
        test_cases=[
            CaseIn(input='abc', expected_output='cba', is_sample=True, weight=30),
            CaseIn(input='xy', expected_output='yx', weight=70),
        ],
    )
    fields.update(overrides)
    return QuestionCreate(**fields)


class TestValidation:
    def test_negative_weight_rejected(self):
        with pytest.raises(ValidationError):
            CaseIn(input='1', expected_output='1', weight=-1)

    def test_all_zero_weights_rejected(self):
        with pytest.raises(ValidationError):
            new_question(test_cases=[CaseIn(input='1', expected_output='1', weight=0)])

    def test_unknown_difficulty_rejected(self):
        with pytest.raises(ValidationError):
            new_question(difficulty='insane')

    def test_languages_normalised(self):
        q = new_question(supported_languages=[' Python', 'python', 'CPP'])
        assert q.supported_languages == ['python', 'cpp']

    def test_empty_language_list_rejected(self):
        with pytest.raises(ValidationError):
            new_question(supported_languages=[' '])

    def test_camel_case_payload_accepted(self):
        q = QuestionCreate.model_validate({
            'title': 't', 'description': 'd', 'timeLimitMs': 500,
            'testCases': [{'input': '1', 'expectedOutput': '1', 'isSample': True}],
        })
        assert q.time_limit_ms == 500
        assert q.test_cases[0].is_sample is True
        assert q.test_cases[0].weight == 10


def test_create_and_get_keeps_declaration_order(session):
    created = create_question(session, new_question(), created_by='fac')

    question = get_question(session, created.id)
    assert question.created_by == 'fac'
    assert [tc.input for tc in question.test_cases] == ['abc', 'xy']
    assert question.max_score == 100
    assert [tc.input for tc in question.sample_cases()] == ['abc']


def test_get_missing_question(session):
    with pytest.raises(QuestionNotFoundError):
        get_question(session, 999)


def test_list_counts_test_cases(session):
    create_question(session, new_question(title='first'))
    create_question(session, new_question(title='second', test_cases=[]))

    listed = {q.title: n for q, n in list_questions(session)}
    assert listed == {'first': 2, 'second': 0}


def test_update_fields_only(session):
    created = create_question(session, new_question())
    update_question(session, created.id, QuestionUpdate(title='Reverse it', time_limit_ms=900))

    question = get_question(session, created.id)
    assert question.title == 'Reverse it'
    assert question.time_limit_ms == 900
    assert len(question.test_cases) == 2


def test_update_replaces_test_cases(session):
    created = create_question(session, new_question())
    update_question(session, created.id, QuestionUpdate(test_cases=[
        CaseIn(input='q', expected_output='q', is_sample=True, weight=5),
    ]))

    question = get_question(session, created.id)
    assert [(tc.input, tc.weight) for tc in question.test_cases] == [('q', 5)]
    assert len(session.scalars(select(TestCaseRow)).all()) == 1


def test_delete_cascades(session):
    created = create_question(session, new_question())
    recorder.bookmark(session, 'stu', created.id)

    delete_question(session, created.id)

    with pytest.raises(QuestionNotFoundError):
        get_question(session, created.id)
    assert session.scalars(select(TestCaseRow)).all() == []
    assert session.scalars(select(PracticeProgress)).all() == []
