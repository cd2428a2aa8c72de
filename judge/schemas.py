from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .models import DEFAULT_LANGUAGES, Difficulty

HIDDEN = '[Hidden]'


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _normalise_languages(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return value
    langs = []
    for lang in value:
        lang = lang.strip().lower()
        if lang and lang not in langs:
            langs.append(lang)
    if not langs:
        raise ValueError('at least one language is required')
    return langs


class TestCaseIn(ApiModel):
    input: str = ''
    expected_output: str
    is_sample: bool = False
    weight: int = Field(default=10, ge=0)


class TestCaseOut(TestCaseIn):
    id: int


class QuestionBase(ApiModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    difficulty: Difficulty = Difficulty.medium
    constraints: str = ''
    input_format: str = ''
    output_format: str = ''
    time_limit_ms: int = Field(default=2000, gt=0, le=60000)
    memory_limit_mb: int = Field(default=256, gt=0, le=4096)
    supported_languages: List[str] = Field(default_factory=lambda: list(DEFAULT_LANGUAGES))
    sample_input: str = ''
    sample_output: str = ''
    explanation: str = ''
    tags: List[str] = Field(default_factory=list)

    @field_validator('supported_languages')
    @classmethod
    def languages_lowercase(cls, value):
        return _normalise_languages(value)


def _check_weights(cases: Optional[List[TestCaseIn]]):
    if cases and sum(tc.weight for tc in cases) <= 0:
        raise ValueError('test case weights must add up to a positive total score')


class QuestionCreate(QuestionBase):
    test_cases: List[TestCaseIn] = Field(default_factory=list)

    @model_validator(mode='after')
    def validate_weights(self):
        _check_weights(self.test_cases)
        return self


class QuestionUpdate(ApiModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, min_length=1)
    difficulty: Optional[Difficulty] = None
    constraints: Optional[str] = None
    input_format: Optional[str] = None
    output_format: Optional[str] = None
    time_limit_ms: Optional[int] = Field(default=None, gt=0, le=60000)
    memory_limit_mb: Optional[int] = Field(default=None, gt=0, le=4096)
    supported_languages: Optional[List[str]] = None
    sample_input: Optional[str] = None
    sample_output: Optional[str] = None
    explanation: Optional[str] = None
    tags: Optional[List[str]] = None
    test_cases: Optional[List[TestCaseIn]] = None

    @field_validator('supported_languages')
    @classmethod
    def languages_lowercase(cls, value):
        return _normalise_languages(value)

    @model_validator(mode='after')
    def validate_weights(self):
        _check_weights(self.test_cases)
        return self


class QuestionSummary(ApiModel):
    id: int
    title: str
    difficulty: str
    tags: List[str]
    created_at: Optional[datetime] = None
    test_cases_count: int = 0


class QuestionDetail(QuestionBase):
    id: int
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    max_score: int = 0
    test_cases: List[TestCaseOut] = Field(default_factory=list)


class RunRequest(ApiModel):
    question_id: int
    code: str = Field(min_length=1)
    language: str = Field(min_length=1)


class SubmitRequest(RunRequest):
    test_attempt_id: Optional[str] = None


class TestResult(ApiModel):
    test_case_number: int
    passed: bool
    status: str
    input: Optional[str] = None
    expected_output: Optional[str] = None
    actual_output: Optional[str] = None
    error: Optional[str] = None
    execution_time_ms: int = 0


class RunResponse(ApiModel):
    output: str
    test_results: List[TestResult]


class SubmitResponse(ApiModel):
    submission_id: Optional[int] = None
    status: str
    score: int
    max_score: int
    test_cases_passed: int
    total_test_cases: int
    test_results: List[TestResult]


class SubmissionOut(ApiModel):
    id: int
    question_id: int
    test_attempt_id: Optional[str] = None
    language: str
    code: str
    status: str
    test_cases_passed: int
    total_test_cases: int
    score: int
    max_score: int
    execution_time_ms: int
    memory_used_kb: Optional[int] = None
    error_message: Optional[str] = None
    submitted_at: datetime


class PracticeQuestion(ApiModel):
    id: int
    title: str
    difficulty: str
    tags: List[str]
    status: str = 'not_attempted'
    best_score: Optional[int] = None
    attempts: Optional[int] = None


class PracticeStats(ApiModel):
    total: int
    solved: int
    attempted: int
    easy: int
    medium: int
    hard: int


class PracticeOverview(ApiModel):
    questions: List[PracticeQuestion]
    stats: PracticeStats


class ProgressOut(ApiModel):
    question_id: int
    status: str
    best_score: int
    attempts: int
    last_attempted_at: Optional[datetime] = None
    solved_at: Optional[datetime] = None


class ImportFailure(ApiModel):
    title: str
    error: str


class ImportResult(ApiModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    errors: List[ImportFailure] = Field(default_factory=list)


class LanguageInfo(ApiModel):
    language: str
    implemented: bool
