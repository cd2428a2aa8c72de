from dataclasses import dataclass
from typing import Sequence

from .models import SubmissionStatus
from .runner import CaseResult, CaseStatus

# Most specific failure first. Applied across all cases of a submission.
FAILURE_PRECEDENCE = [
    (CaseStatus.compilation_error, SubmissionStatus.compilation_error),
    (CaseStatus.runtime_error, SubmissionStatus.runtime_error),
    (CaseStatus.timeout, SubmissionStatus.time_limit_exceeded),
    (CaseStatus.memory_error, SubmissionStatus.memory_limit_exceeded),
]


@dataclass
class ScoreResult:
    status: SubmissionStatus
    score: int
    max_score: int
    passed_count: int
    total_count: int


def derive_status(results: Sequence[CaseResult]) -> SubmissionStatus:
    if results and all(r.passed for r in results):
        return SubmissionStatus.accepted
    seen = {r.status for r in results}
    for case_status, submission_status in FAILURE_PRECEDENCE:
        if case_status.value in seen:
            return submission_status
    return SubmissionStatus.wrong_answer


def score(results: Sequence[CaseResult], test_cases: Sequence) -> ScoreResult:
    """
    Partial credit: the score is the summed weight of the passed cases.

    `results` and `test_cases` are parallel sequences in declaration order.
    """
    if len(results) != len(test_cases):
        raise ValueError(f'{len(results)} results for {len(test_cases)} test cases')

    earned = sum(tc.weight or 0 for r, tc in zip(results, test_cases) if r.passed)
    total = sum(tc.weight or 0 for tc in test_cases)
    return ScoreResult(
        status=derive_status(results),
        score=earned,
        max_score=total,
        passed_count=sum(1 for r in results if r.passed),
        total_count=len(results),
    )
