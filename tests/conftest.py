"""
Shared fixtures: in-memory SQLite, fake clock and in-memory stores
"""
import os

# Must be set before quiz_engine.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["RATE_LIMIT_PER_MINUTE"] = "100000"
os.environ["RATE_LIMIT_PER_HOUR"] = "1000000"
os.environ["SESSION_TICK_SECONDS"] = "3600"

import dataclasses
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient

from quiz_engine.database import Base, SessionLocal, engine
from quiz_engine.domain import (
    AnswerOption, AttemptRecord, GeneralScope, QuestionDefinition, QuestionType, QuizDefinition,
)
from quiz_engine.exceptions import NotFoundError, PersistenceError
from quiz_engine.main import app
from quiz_engine.api.quizzes import get_session_registry
from quiz_engine.services.attempt_ledger import SqlAttemptLedger
from quiz_engine.services.question_bank import SqlQuestionBank
from quiz_engine.services.quiz_session import QuizSession
from quiz_engine.services.session_registry import SessionRegistry


class FakeClock:
    """Manually advanced clock"""

    def __init__(self):
        self.now = datetime(2024, 3, 1, 9, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class InMemoryQuestionBank:
    def __init__(self):
        self.quizzes: Dict[UUID, tuple] = {}

    def add(self, quiz: QuizDefinition, questions: List[QuestionDefinition]) -> None:
        self.quizzes[quiz.id] = (quiz, list(questions))

    def load(self, quiz_id: UUID):
        if quiz_id not in self.quizzes:
            raise NotFoundError(f"Quiz {quiz_id} not found")
        quiz, questions = self.quizzes[quiz_id]
        return quiz, list(questions)


class InMemoryLedger:
    """Attempt ledger that can be told to fail the next writes"""

    def __init__(self):
        self.records: List[AttemptRecord] = []
        self.fail_next = 0
        self.write_calls = 0
        self._lock = threading.Lock()

    def list_attempts(self, quiz_id: UUID, learner_id: UUID) -> List[AttemptRecord]:
        with self._lock:
            matching = [
                r for r in self.records if r.quiz_id == quiz_id and r.learner_id == learner_id
            ]
        return sorted(matching, key=lambda r: r.submitted_at, reverse=True)

    def create_attempt(self, record: AttemptRecord) -> AttemptRecord:
        with self._lock:
            self.write_calls += 1
            if self.fail_next > 0:
                self.fail_next -= 1
                raise PersistenceError("database unavailable")
            for stored in self.records:
                if record.id is not None and stored.id == record.id:
                    return stored
            stored = dataclasses.replace(record, id=record.id or uuid4())
            self.records.append(stored)
            return stored


def make_quiz(**overrides) -> QuizDefinition:
    fields = dict(
        id=uuid4(),
        title="Foundations",
        passing_score=70,
        max_attempts=1,
        scope=GeneralScope(),
    )
    fields.update(overrides)
    return QuizDefinition(**fields)


def make_question(quiz_id: UUID, order_index: int, question_type=QuestionType.SHORT_ANSWER,
                  points: int = 1, correct_answer: Optional[str] = None, options=()) -> QuestionDefinition:
    return QuestionDefinition(
        id=uuid4(),
        quiz_id=quiz_id,
        question_text=f"Question {order_index + 1}",
        question_type=question_type,
        points=points,
        order_index=order_index,
        options=tuple(options),
        correct_answer=correct_answer,
    )


def mixed_questions(quiz_id: UUID) -> List[QuestionDefinition]:
    """Four questions worth 10 points: mc(4), true_false(2), short(3), long(1)"""
    return [
        make_question(
            quiz_id, 0, QuestionType.MULTIPLE_CHOICE, points=4,
            options=[AnswerOption("Paris", True), AnswerOption("Rome"), AnswerOption("Madrid")],
        ),
        make_question(quiz_id, 1, QuestionType.TRUE_FALSE, points=2, correct_answer="true"),
        make_question(quiz_id, 2, QuestionType.SHORT_ANSWER, points=3, correct_answer="Photosynthesis"),
        make_question(quiz_id, 3, QuestionType.LONG_ANSWER, points=1),
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def question_bank():
    return InMemoryQuestionBank()


@pytest.fixture
def ledger():
    return InMemoryLedger()


@pytest.fixture
def quiz_factory(question_bank):
    """Register a quiz in the in-memory bank and return (quiz, questions)"""

    def factory(questions=None, **overrides):
        quiz = make_quiz(**overrides)
        questions = questions(quiz.id) if callable(questions) else (questions or mixed_questions(quiz.id))
        question_bank.add(quiz, questions)
        return quiz, questions

    return factory


@pytest.fixture
def session_factory(question_bank, ledger, clock):
    """Create and load a QuizSession against the in-memory stores"""

    def factory(quiz_id: UUID, learner_id: Optional[UUID] = None) -> QuizSession:
        session = QuizSession(quiz_id, learner_id or uuid4(), question_bank, ledger, clock=clock)
        session.load()
        return session

    return factory


@pytest.fixture(autouse=True)
def setup_database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def registry():
    return SessionRegistry(
        question_bank=SqlQuestionBank(SessionLocal),
        ledger=SqlAttemptLedger(SessionLocal),
        tick_seconds=3600,
    )


@pytest.fixture
def client(registry):
    app.dependency_overrides[get_session_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
