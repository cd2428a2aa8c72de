"""
Test case runner: executes a submission against a question's test cases.

Cases are run in declaration order and never short-circuited, so partial
credit can be computed from the full result list.
"""

import enum
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from .errors import NoTestCasesError
from .executor import ExecutionOutcome, Executor

ERROR_EXCERPT = 500


class Mode(str, enum.Enum):
    run = 'run'
    submit = 'submit'


class CaseStatus(str, enum.Enum):
    passed = 'passed'
    failed = 'failed'
    timeout = 'timeout'
    runtime_error = 'runtime_error'
    memory_error = 'memory_error'
    compilation_error = 'compilation_error'


@dataclass
class CaseResult:
    test_case_number: int
    passed: bool
    status: str
    input: str
    expected_output: str
    is_sample: bool
    weight: int
    actual_output: Optional[str] = None
    error: Optional[str] = None
    execution_time_ms: int = 0
    memory_kb: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def outputs_match(actual: str, expected: str) -> bool:
    """Exact match after dropping trailing whitespace and newlines on both sides."""
    return actual.rstrip() == expected.rstrip()


def select_cases(test_cases: Sequence, mode: Mode) -> List:
    if mode == Mode.run:
        cases = [tc for tc in test_cases if tc.is_sample]
        if not cases:
            raise NoTestCasesError('no sample test cases found for this question')
    else:
        cases = list(test_cases)
        if not cases:
            raise NoTestCasesError('no test cases found for this question')
    return cases


def _classify(outcome: ExecutionOutcome, expected: str):
    if outcome.compile_error:
        return CaseStatus.compilation_error
    if outcome.timed_out:
        return CaseStatus.timeout
    if outcome.memory_exceeded:
        return CaseStatus.memory_error
    if outcome.exit_error:
        return CaseStatus.runtime_error
    if outputs_match(outcome.stdout, expected):
        return CaseStatus.passed
    return CaseStatus.failed


def run_cases(
    question,
    test_cases: Sequence,
    code: str,
    language: str,
    executor: Executor,
) -> List[CaseResult]:
    """
    Execute `code` once per test case and compare against the expected output.

    `test_cases` is already filtered for the mode (see `select_cases`). Language
    problems raise before any case runs; execution problems are reported per case.
    """
    runtime = executor.runtime_for(language, question.supported_languages)
    diagnostic = runtime.check(code)

    results = []
    for i, tc in enumerate(test_cases, start=1):
        if diagnostic is not None:
            outcome = ExecutionOutcome(stderr=diagnostic, compile_error=True)
        else:
            outcome = runtime.run(code, tc.input or '', question.time_limit_ms,
                                  question.memory_limit_mb)

        status = _classify(outcome, tc.expected_output)
        passed = status == CaseStatus.passed
        result = CaseResult(
            test_case_number=i,
            passed=passed,
            status=status.value,
            input=tc.input or '',
            expected_output=tc.expected_output,
            is_sample=bool(tc.is_sample),
            weight=tc.weight or 0,
            execution_time_ms=outcome.elapsed_ms,
            memory_kb=outcome.memory_kb,
        )
        if not passed:
            result.actual_output = outcome.stdout
        if not outcome.ok:
            result.error = outcome.stderr.strip()[:ERROR_EXCERPT] or None
        results.append(result)

    return results
