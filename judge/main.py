import logging
import logging.config
from contextlib import asynccontextmanager
from typing import Iterator, List, Optional

from fastapi import Depends, FastAPI, File, Header, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import importer, recorder, store
from .config import Settings, logging_config
from .database import init_db, make_engine, make_session_factory
from .errors import QuestionNotFoundError, RecordingError, SandboxUnavailableError
from .executor import Executor
from .models import Difficulty, PracticeProgress, ProgressStatus, Question, Submission
from .runner import CaseResult, Mode, run_cases, select_cases
from .schemas import (
    HIDDEN, ImportResult, LanguageInfo, PracticeOverview, PracticeQuestion, PracticeStats,
    ProgressOut, QuestionCreate, QuestionDetail, QuestionSummary, QuestionUpdate, RunRequest,
    RunResponse, SubmissionOut, SubmitRequest, SubmitResponse, TestCaseOut, TestResult,
)
from .scorer import score

logger = logging.getLogger(__name__)

RECENT_SUBMISSIONS = 10


def get_db(request: Request) -> Iterator[Session]:
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


def get_executor(request: Request) -> Executor:
    return request.app.state.executor


def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail='missing X-User-Id header')
    return x_user_id


def _public_result(r: CaseResult) -> TestResult:
    """Hidden cases never expose their input, expected output or what the code printed."""
    if r.is_sample:
        return TestResult(
            test_case_number=r.test_case_number,
            passed=r.passed,
            status=r.status,
            input=r.input,
            expected_output=r.expected_output,
            actual_output=r.actual_output,
            error=r.error,
            execution_time_ms=r.execution_time_ms,
        )
    return TestResult(
        test_case_number=r.test_case_number,
        passed=r.passed,
        status=r.status,
        input=HIDDEN,
        expected_output=HIDDEN,
        execution_time_ms=r.execution_time_ms,
    )


def _detail(question: Question) -> QuestionDetail:
    detail = QuestionDetail.model_validate(question)
    detail.test_cases = [TestCaseOut.model_validate(tc) for tc in question.sample_cases()]
    return detail


def _grade(db: Session, executor: Executor, req: RunRequest, mode: Mode):
    try:
        question = store.get_question(db, req.question_id)
        cases = select_cases(question.test_cases, mode)
        results = run_cases(question, cases, req.code, req.language, executor)
    except QuestionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SandboxUnavailableError as e:
        logger.error('sandbox unavailable: %s', e)
        raise HTTPException(status_code=503, detail='code execution is unavailable')
    return question, cases, results


def create_app(settings: Optional[Settings] = None, executor: Optional[Executor] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.config.dictConfig(logging_config(settings))

    engine = make_engine(settings.database_url, echo=False)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        init_db(engine)
        yield
        engine.dispose()

    app = FastAPI(title='Coding Question Judge', lifespan=lifespan)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.executor = executor or Executor.from_settings(settings)

    @app.get('/health')
    def health():
        return {'status': 'ok', 'sandbox': settings.sandbox}

    @app.get('/languages', response_model=List[LanguageInfo])
    def languages(executor: Executor = Depends(get_executor)):
        return [LanguageInfo(language=rt.language.value, implemented=rt.implemented)
                for rt in executor.languages()]

    @app.get('/questions', response_model=List[QuestionSummary])
    def list_questions(db: Session = Depends(get_db), user: str = Depends(current_user)):
        return [
            QuestionSummary(id=q.id, title=q.title, difficulty=q.difficulty, tags=q.tags or [],
                            created_at=q.created_at, test_cases_count=n)
            for q, n in store.list_questions(db)
        ]

    @app.get('/questions/{question_id}', response_model=QuestionDetail)
    def get_question(question_id: int, db: Session = Depends(get_db),
                     user: str = Depends(current_user)):
        try:
            return _detail(store.get_question(db, question_id))
        except QuestionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @app.post('/questions', response_model=QuestionDetail, status_code=201)
    def create_question(data: QuestionCreate, db: Session = Depends(get_db),
                        user: str = Depends(current_user)):
        return _detail(store.create_question(db, data, created_by=user))

    @app.put('/questions/{question_id}', response_model=QuestionDetail)
    def update_question(question_id: int, data: QuestionUpdate, db: Session = Depends(get_db),
                        user: str = Depends(current_user)):
        try:
            return _detail(store.update_question(db, question_id, data))
        except QuestionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @app.delete('/questions/{question_id}')
    def delete_question(question_id: int, db: Session = Depends(get_db),
                        user: str = Depends(current_user)):
        try:
            store.delete_question(db, question_id)
        except QuestionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return {'message': 'Question deleted successfully'}

    @app.post('/questions/import', response_model=ImportResult)
    def import_questions(file: UploadFile = File(...), db: Session = Depends(get_db),
                         user: str = Depends(current_user)):
        try:
            questions = importer.parse_buffer(file.file.read(), file.filename or '')
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return importer.import_questions(db, questions, created_by=user)

    @app.post('/run', response_model=RunResponse)
    def run_code(req: RunRequest, db: Session = Depends(get_db),
                 executor: Executor = Depends(get_executor),
                 user: str = Depends(current_user)):
        question, _, results = _grade(db, executor, req, Mode.run)
        all_passed = all(r.passed for r in results)
        logger.info('run question=%s language=%s passed=%d/%d', question.id, req.language,
                    sum(r.passed for r in results), len(results))
        return RunResponse(
            output=('All sample test cases passed!' if all_passed
                    else 'Some test cases failed. Check the results below.'),
            test_results=[_public_result(r) for r in results],
        )

    @app.post('/submit', response_model=SubmitResponse)
    def submit_code(req: SubmitRequest, db: Session = Depends(get_db),
                    executor: Executor = Depends(get_executor),
                    user: str = Depends(current_user)):
        question, cases, results = _grade(db, executor, req, Mode.submit)
        outcome = score(results, cases)
        response = SubmitResponse(
            status=outcome.status.value,
            score=outcome.score,
            max_score=outcome.max_score,
            test_cases_passed=outcome.passed_count,
            total_test_cases=outcome.total_count,
            test_results=[_public_result(r) for r in results],
        )
        logger.info('submit question=%s student=%s language=%s status=%s score=%d/%d',
                    question.id, user, req.language, outcome.status.value,
                    outcome.score, outcome.max_score)
        try:
            response.submission_id = recorder.record(
                db, user, question, req.language, req.code, results, outcome,
                test_attempt_id=req.test_attempt_id,
            )
        except RecordingError:
            logger.exception('submission for question %s by %s was graded but not saved',
                             question.id, user)
            content = response.model_dump(mode='json', by_alias=True)
            content['error'] = 'submission could not be saved'
            return JSONResponse(status_code=500, content=content)
        return response

    @app.get('/submissions/{question_id}', response_model=List[SubmissionOut])
    def list_submissions(question_id: int, db: Session = Depends(get_db),
                         user: str = Depends(current_user)):
        return db.scalars(
            select(Submission)
            .where(Submission.student_id == user, Submission.question_id == question_id)
            .order_by(Submission.submitted_at.desc(), Submission.id.desc())
            .limit(RECENT_SUBMISSIONS)
        ).all()

    @app.get('/practice/questions', response_model=PracticeOverview)
    def practice_questions(db: Session = Depends(get_db), user: str = Depends(current_user)):
        questions = db.scalars(select(Question).order_by(Question.id)).all()
        progress = db.scalars(
            select(PracticeProgress).where(PracticeProgress.student_id == user)).all()
        by_question = {p.question_id: p for p in progress}

        items = []
        for q in questions:
            p = by_question.get(q.id)
            items.append(PracticeQuestion(
                id=q.id, title=q.title, difficulty=q.difficulty, tags=q.tags or [],
                status=p.status if p else 'not_attempted',
                best_score=p.best_score if p else None,
                attempts=p.attempts if p else None,
            ))

        stats = PracticeStats(
            total=len(questions),
            solved=sum(1 for p in progress if p.status == ProgressStatus.solved.value),
            attempted=sum(1 for p in progress if p.status == ProgressStatus.attempted.value),
            easy=sum(1 for q in questions if q.difficulty == Difficulty.easy.value),
            medium=sum(1 for q in questions if q.difficulty == Difficulty.medium.value),
            hard=sum(1 for q in questions if q.difficulty == Difficulty.hard.value),
        )
        return PracticeOverview(questions=items, stats=stats)

    @app.post('/practice/questions/{question_id}/bookmark', response_model=ProgressOut)
    def bookmark(question_id: int, db: Session = Depends(get_db),
                 user: str = Depends(current_user)):
        try:
            store.get_question(db, question_id)
            return recorder.bookmark(db, user, question_id)
        except QuestionNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except SQLAlchemyError:
            db.rollback()
            logger.exception('could not bookmark question %s for %s', question_id, user)
            raise HTTPException(status_code=500, detail='could not save bookmark')

    return app


app = create_app()
