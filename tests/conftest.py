import sys
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from judge.config import Settings
from judge.database import init_db, make_engine, make_session_factory
from judge.executor import Executor
from judge.main import create_app
from judge.sandbox import ProcessSandbox

SUM_SOLUTION = 'a = int(input())\nb = int(input())\nprint(a + b)\n'

SUM_CASES = [
    {'input': '5\n10', 'expected_output': '15', 'is_sample': True, 'weight': 20},
    {'input': '100\n200', 'expected_output': '300', 'is_sample': True, 'weight': 20},
    {'input': '0\n0', 'expected_output': '0', 'is_sample': False, 'weight': 20},
    {'input': '999\n1', 'expected_output': '1000', 'is_sample': False, 'weight': 20},
    {'input': '50\n50', 'expected_output': '100', 'is_sample': False, 'weight': 20},
]


def sum_question_payload(**overrides):
    payload = {
        'title': 'Sum of Two Numbers',
        'description': 'Read two integers on separate lines and print their sum.',
        'difficulty': 'easy',
        'timeLimitMs': 2000,
        'memoryLimitMb': 256,
        'supportedLanguages': ['python', 'javascript'],
        'sampleInput': '5\n10',
        'sampleOutput': '15',
        'tags': ['math'],
        'testCases': [
            {'input': c['input'], 'expectedOutput': c['expected_output'],
             'isSample': c['is_sample'], 'weight': c['weight']}
            for c in SUM_CASES
        ],
    }
    payload.update(overrides)
    return payload


class FakeSandbox:
    """Answers from a stdin -> result table instead of running anything."""

    def __init__(self, answers=None, default=None):
        self.answers = answers or {}
        self.default = default or {'stdout': '', 'stderr': '', 'exit_code': 0}
        self.calls = []

    def run(self, source, stdin, timeout_sec, memory_limit_mb):
        self.calls.append(stdin)
        raw = {'stdout': '', 'stderr': '', 'exit_code': 0, 'timed_out': False,
               'memory_exceeded': False, 'elapsed_ms': 3}
        raw.update(self.answers.get(stdin, self.default))
        return raw


def make_case(input='', expected_output='', is_sample=False, weight=10):
    return SimpleNamespace(input=input, expected_output=expected_output,
                           is_sample=is_sample, weight=weight)


def make_question(languages=('python',), time_limit_ms=1000, memory_limit_mb=256):
    return SimpleNamespace(id=1, supported_languages=list(languages),
                           time_limit_ms=time_limit_ms, memory_limit_mb=memory_limit_mb)


@pytest.fixture
def session():
    engine = make_engine('sqlite://')
    init_db(engine)
    factory = make_session_factory(engine)
    db = factory()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def settings():
    return Settings(database_url='sqlite://', sandbox='process', allow_unsafe_sandbox=True)


@pytest.fixture
def executor():
    return Executor(ProcessSandbox(python_exe=sys.executable))


@pytest.fixture
def client(settings, executor):
    app = create_app(settings, executor=executor)
    with TestClient(app) as c:
        c.headers.update({'X-User-Id': 'student-1'})
        yield c


@pytest.fixture
def sum_question(client):
    response = client.post('/questions', json=sum_question_payload())
    assert response.status_code == 201
    return response.json()
