"""
End-to-end tests for the HTTP interface.

Submissions run through the real process sandbox against an in-memory
database.
"""

import io
import json
from unittest.mock import patch

from conftest import SUM_SOLUTION, sum_question_payload
from judge.errors import RecordingError


def run(client, question_id, code, language='python'):
    return client.post('/run', json={'questionId': question_id, 'code': code,
                                     'language': language})


def submit(client, question_id, code, language='python', **extra):
    body = {'questionId': question_id, 'code': code, 'language': language}
    body.update(extra)
    return client.post('/submit', json=body)


class TestQuestions:
    def test_detail_hides_hidden_cases(self, client, sum_question):
        response = client.get(f"/questions/{sum_question['id']}")

        assert response.status_code == 200
        body = response.json()
        assert body['title'] == 'Sum of Two Numbers'
        assert body['timeLimitMs'] == 2000
        assert body['maxScore'] == 100
        assert [tc['input'] for tc in body['testCases']] == ['5\n10', '100\n200']
        assert all(tc['isSample'] for tc in body['testCases'])

    def test_unknown_question(self, client):
        assert client.get('/questions/4242').status_code == 404

    def test_list_questions(self, client, sum_question):
        [summary] = client.get('/questions').json()
        assert summary['testCasesCount'] == 5
        assert summary['difficulty'] == 'easy'

    def test_create_rejects_zero_total_weight(self, client):
        payload = sum_question_payload(testCases=[
            {'input': '1', 'expectedOutput': '1', 'weight': 0},
        ])
        assert client.post('/questions', json=payload).status_code == 422

    def test_update_and_delete(self, client, sum_question):
        qid = sum_question['id']
        response = client.put(f'/questions/{qid}', json={'title': 'Add Two Numbers'})
        assert response.status_code == 200
        assert response.json()['title'] == 'Add Two Numbers'

        assert client.delete(f'/questions/{qid}').status_code == 200
        assert client.get(f'/questions/{qid}').status_code == 404
        assert client.delete(f'/questions/{qid}').status_code == 404

    def test_missing_identity_header(self, client):
        client.headers.pop('X-User-Id')
        assert client.get('/questions').status_code == 401

    def test_import_upload(self, client):
        data = json.dumps([{'title': 'Imported', 'description': 'From a file',
                            'test_cases': [{'input': '', 'expected_output': 'hi',
                                            'is_sample': True}]}]).encode()
        response = client.post('/questions/import',
                               files={'file': ('questions.json', io.BytesIO(data),
                                               'application/json')})

        assert response.status_code == 200
        assert response.json() == {'total': 1, 'successful': 1, 'failed': 0, 'errors': []}

    def test_import_rejects_unknown_file_type(self, client):
        response = client.post('/questions/import',
                               files={'file': ('questions.txt', io.BytesIO(b'x'), 'text/plain')})
        assert response.status_code == 400


class TestRun:
    def test_runs_only_sample_cases(self, client, sum_question):
        response = run(client, sum_question['id'], SUM_SOLUTION)

        assert response.status_code == 200
        body = response.json()
        assert body['output'] == 'All sample test cases passed!'
        results = body['testResults']
        assert [r['testCaseNumber'] for r in results] == [1, 2]
        assert all(r['passed'] for r in results)
        assert {r['input'] for r in results} == {'5\n10', '100\n200'}

    def test_failing_code_still_returns_200(self, client, sum_question):
        response = run(client, sum_question['id'], 'print(0)\n')

        assert response.status_code == 200
        body = response.json()
        assert body['output'] == 'Some test cases failed. Check the results below.'
        assert body['testResults'][0]['actualOutput'] == '0\n'
        assert body['testResults'][0]['expectedOutput'] == '15'

    def test_run_is_idempotent(self, client, sum_question):
        first = run(client, sum_question['id'], 'print(int(input()) * 2)\n').json()
        second = run(client, sum_question['id'], 'print(int(input()) * 2)\n').json()

        def strip_timing(body):
            return [{k: v for k, v in r.items() if k != 'executionTimeMs'}
                    for r in body['testResults']]

        assert strip_timing(first) == strip_timing(second)

    def test_run_never_records_a_submission(self, client, sum_question):
        run(client, sum_question['id'], SUM_SOLUTION)
        assert client.get(f"/submissions/{sum_question['id']}").json() == []

    def test_question_without_samples(self, client):
        payload = sum_question_payload(testCases=[
            {'input': '1\n1', 'expectedOutput': '2', 'isSample': False, 'weight': 10},
        ])
        qid = client.post('/questions', json=payload).json()['id']

        response = run(client, qid, SUM_SOLUTION)
        assert response.status_code == 400
        assert 'sample' in response.json()['detail']

    def test_language_errors_are_4xx(self, client, sum_question):
        qid = sum_question['id']
        assert run(client, qid, SUM_SOLUTION, language='cobol').status_code == 400
        assert run(client, qid, SUM_SOLUTION, language='java').status_code == 400

        not_implemented = run(client, qid, 'console.log(15)', language='javascript')
        assert not_implemented.status_code == 400
        assert 'not implemented' in not_implemented.json()['detail']

    def test_malformed_request(self, client):
        assert client.post('/run', json={'code': 'print(1)'}).status_code == 422

    def test_unknown_question(self, client):
        assert run(client, 999, SUM_SOLUTION).status_code == 404


class TestSubmit:
    def test_sum_of_two_numbers_is_accepted(self, client, sum_question):
        response = submit(client, sum_question['id'], SUM_SOLUTION)

        assert response.status_code == 200
        body = response.json()
        assert body['status'] == 'accepted'
        assert body['score'] == 100
        assert body['maxScore'] == 100
        assert body['testCasesPassed'] == 5
        assert body['totalTestCases'] == 5
        assert body['submissionId'] is not None

    def test_hidden_cases_are_masked(self, client, sum_question):
        body = submit(client, sum_question['id'], 'print(input())\n').json()

        hidden = body['testResults'][2:]
        assert all(r['input'] == '[Hidden]' for r in hidden)
        assert all(r['expectedOutput'] == '[Hidden]' for r in hidden)
        assert all(r['actualOutput'] is None for r in hidden)
        assert body['testResults'][0]['input'] == '5\n10'

    def test_partial_credit(self, client, sum_question):
        # wrong whenever the first number is zero or odd
        code = 'a = int(input())\nb = int(input())\nprint(a + b if a and a % 2 == 0 else -1)\n'
        body = submit(client, sum_question['id'], code).json()

        assert body['status'] == 'wrong_answer'
        assert body['testCasesPassed'] == 2
        assert body['score'] == 40

    def test_syntax_error(self, client, sum_question):
        body = submit(client, sum_question['id'], 'print(\n').json()

        assert body['status'] == 'compilation_error'
        assert body['score'] == 0

    def test_runtime_error(self, client, sum_question):
        body = submit(client, sum_question['id'], 'raise SystemExit(3)\n').json()
        assert body['status'] == 'runtime_error'

    def test_memory_error_on_stderr_does_not_fail_correct_output(self, client, sum_question):
        code = "import sys\nprint('caught MemoryError earlier', file=sys.stderr)\n" + SUM_SOLUTION
        body = submit(client, sum_question['id'], code).json()

        assert body['status'] == 'accepted'
        assert body['score'] == 100

    def test_hidden_data_cannot_be_read_from_disk(self, client, sum_question, tmp_path):
        stolen = tmp_path / 'judge.db'
        stolen.write_text('1000')
        body = submit(client, sum_question['id'], f'print(open({str(stolen)!r}).read())\n').json()

        assert body['status'] == 'runtime_error'
        assert body['score'] == 0

    def test_timeout_does_not_hang_request(self, client):
        payload = sum_question_payload(timeLimitMs=1000, testCases=[
            {'input': '1\n1', 'expectedOutput': '2', 'isSample': True, 'weight': 50},
            {'input': '2\n2', 'expectedOutput': '4', 'isSample': False, 'weight': 50},
        ])
        qid = client.post('/questions', json=payload).json()['id']
        code = 'a = int(input())\nb = int(input())\nwhile a == 2:\n    pass\nprint(a + b)\n'

        body = submit(client, qid, code).json()

        assert body['status'] == 'time_limit_exceeded'
        assert body['score'] == 50
        assert [r['status'] for r in body['testResults']] == ['passed', 'timeout']

    def test_history_and_progress(self, client, sum_question):
        qid = sum_question['id']
        submit(client, qid, 'print(0)\n', testAttemptId='attempt-7')
        submit(client, qid, SUM_SOLUTION)

        history = client.get(f'/submissions/{qid}').json()
        assert [s['status'] for s in history] == ['accepted', 'wrong_answer']
        assert history[1]['testAttemptId'] == 'attempt-7'

        practice = client.get('/practice/questions').json()
        assert practice['questions'][0]['status'] == 'solved'
        assert practice['questions'][0]['bestScore'] == 100
        assert practice['questions'][0]['attempts'] == 2
        assert practice['stats'] == {'total': 1, 'solved': 1, 'attempted': 0,
                                     'easy': 1, 'medium': 0, 'hard': 0}

    def test_history_is_per_student(self, client, sum_question):
        qid = sum_question['id']
        submit(client, qid, SUM_SOLUTION)

        client.headers['X-User-Id'] = 'student-2'
        assert client.get(f'/submissions/{qid}').json() == []
        assert client.get('/practice/questions').json()['questions'][0]['status'] == 'not_attempted'

    def test_recording_failure_still_returns_grade(self, client, sum_question):
        with patch('judge.main.recorder.record', side_effect=RecordingError('db down')):
            response = submit(client, sum_question['id'], SUM_SOLUTION)

        assert response.status_code == 500
        body = response.json()
        assert body['status'] == 'accepted'
        assert body['score'] == 100
        assert body['submissionId'] is None
        assert 'error' in body


def test_bookmark(client, sum_question):
    qid = sum_question['id']
    response = client.post(f'/practice/questions/{qid}/bookmark')

    assert response.status_code == 200
    assert response.json()['status'] == 'bookmarked'
    assert client.post('/practice/questions/999/bookmark').status_code == 404


def test_languages(client):
    listing = {l['language']: l['implemented'] for l in client.get('/languages').json()}
    assert listing['python'] is True
    assert listing['java'] is False
