"""
Bulk question import from uploaded .json, .csv or .zip files.

Each question is validated and saved on its own, so one bad entry does not
stop the rest of the batch.
"""

import csv
import io
import json
import logging
import zipfile
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import InvalidQuestionError
from .schemas import ImportFailure, ImportResult, QuestionCreate
from .store import create_question

logger = logging.getLogger(__name__)

IMPORT_DEFAULTS = {
    'difficulty': 'medium',
    'time_limit_ms': 3000,
    'memory_limit_mb': 512,
}
IMPORT_WEIGHT = 1


def _csv_rows(text: str) -> List[Dict[str, Any]]:
    questions = []
    for row in csv.DictReader(io.StringIO(text)):
        question = {
            'title': row.get('title') or '',
            'description': row.get('description') or '',
            'difficulty': (row.get('difficulty') or 'medium').strip().lower(),
            'constraints': row.get('constraints') or '',
            'input_format': row.get('input_format') or '',
            'output_format': row.get('output_format') or '',
            'sample_input': row.get('sample_input') or '',
            'sample_output': row.get('sample_output') or '',
            'explanation': row.get('explanation') or '',
            'tags': [t.strip() for t in (row.get('tags') or '').split(',') if t.strip()],
            'test_cases': [],
        }
        for column, field in (('time_limit', 'time_limit_ms'), ('memory_limit', 'memory_limit_mb')):
            try:
                question[field] = int(row.get(column) or '')
            except ValueError:
                pass
        if row.get('test_cases'):
            try:
                question['test_cases'] = json.loads(row['test_cases'])
            except json.JSONDecodeError:
                logger.warning('ignoring unparsable test_cases for %r', question['title'])
        questions.append(question)
    return questions


def parse_buffer(data: bytes, filename: str) -> List[Dict[str, Any]]:
    """Turn one uploaded file into raw question dicts. Zip members other than .json/.csv are skipped."""
    name = filename.lower()
    if name.endswith('.json'):
        try:
            loaded = json.loads(data.decode('utf-8-sig'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidQuestionError(f'invalid JSON in {filename}: {e}') from e
        return loaded if isinstance(loaded, list) else [loaded]
    if name.endswith('.csv'):
        return _csv_rows(data.decode('utf-8-sig'))
    if name.endswith('.zip'):
        questions = []
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                for entry in zf.infolist():
                    if entry.is_dir():
                        continue
                    if entry.filename.lower().endswith(('.json', '.csv')):
                        questions.extend(parse_buffer(zf.read(entry), entry.filename))
        except zipfile.BadZipFile as e:
            raise InvalidQuestionError(f'invalid zip archive {filename}') from e
        return questions
    raise InvalidQuestionError(f'unsupported file type: {filename}')


def _normalise(raw: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(raw)
    # original field names from exported files
    if 'time_limit' in data and 'time_limit_ms' not in data:
        data['time_limit_ms'] = data.pop('time_limit')
    if 'memory_limit' in data and 'memory_limit_mb' not in data:
        data['memory_limit_mb'] = data.pop('memory_limit')
    for key, value in IMPORT_DEFAULTS.items():
        if not data.get(key):
            data[key] = value
    if isinstance(data['difficulty'], str):
        data['difficulty'] = data['difficulty'].strip().lower()
    cases = data.get('test_cases') or data.get('testCases') or []
    data.pop('testCases', None)
    data['test_cases'] = [
        {
            'input': tc.get('input', ''),
            'expected_output': tc.get('expected_output', tc.get('expectedOutput')),
            'is_sample': bool(tc.get('is_sample', tc.get('isSample', False))),
            'weight': tc.get('weight') or IMPORT_WEIGHT,
        }
        for tc in cases if isinstance(tc, dict)
    ]
    return data


def import_questions(session: Session, questions: List[Dict[str, Any]],
                     created_by: Optional[str] = None) -> ImportResult:
    result = ImportResult(total=len(questions))
    for raw in questions:
        title = str(raw.get('title') or 'Unknown') if isinstance(raw, dict) else 'Unknown'
        try:
            if not isinstance(raw, dict):
                raise InvalidQuestionError('question entry must be an object')
            if not raw.get('title') or not raw.get('description'):
                raise InvalidQuestionError('Title and description are required')
            data = QuestionCreate.model_validate(_normalise(raw))
            create_question(session, data, created_by=created_by)
            result.successful += 1
        except (InvalidQuestionError, ValidationError) as e:
            result.failed += 1
            result.errors.append(ImportFailure(title=title, error=str(e)))
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception('failed to save imported question %r', title)
            result.failed += 1
            result.errors.append(ImportFailure(title=title, error=str(e)))
    logger.info('import finished: %d ok, %d failed', result.successful, result.failed)
    return result
