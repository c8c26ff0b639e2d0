"""
Question bank - read-only access to a quiz and its ordered questions
"""
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quiz_engine.domain import (
    AnswerOption, QuestionDefinition, QuestionType, QuizDefinition,
    scope_columns, scope_from_columns,
)
from quiz_engine.exceptions import NotFoundError, PersistenceError
from quiz_engine.models import Quiz, QuizQuestion
from quiz_engine.utils.cache import CacheService

logger = logging.getLogger(__name__)

LoadedQuiz = Tuple[QuizDefinition, List[QuestionDefinition]]


class QuestionBank(Protocol):
    """What a session needs from the store holding quiz definitions"""

    def load(self, quiz_id: UUID) -> LoadedQuiz:
        ...


def quiz_to_definition(quiz: Quiz) -> QuizDefinition:
    return QuizDefinition(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        instructions=quiz.instructions,
        time_limit=quiz.time_limit,
        passing_score=quiz.passing_score,
        max_attempts=quiz.max_attempts,
        is_active=quiz.is_active,
        scope=quiz.scope,
    )


def question_to_definition(question: QuizQuestion) -> QuestionDefinition:
    return QuestionDefinition(
        id=question.id,
        quiz_id=question.quiz_id,
        question_text=question.question_text,
        question_type=QuestionType(question.question_type),
        points=question.points,
        order_index=question.order_index,
        options=tuple(
            AnswerOption(text=str(option.get("text", "")), correct=bool(option.get("correct", False)))
            for option in (question.options or [])
        ),
        correct_answer=question.correct_answer,
    )


def _serialize(quiz: QuizDefinition, questions: List[QuestionDefinition]) -> Dict[str, Any]:
    columns = scope_columns(quiz.scope)
    return {
        "quiz": {
            "id": str(quiz.id),
            "title": quiz.title,
            "description": quiz.description,
            "instructions": quiz.instructions,
            "time_limit": quiz.time_limit,
            "passing_score": quiz.passing_score,
            "max_attempts": quiz.max_attempts,
            "is_active": quiz.is_active,
            "quiz_type": columns["quiz_type"],
            "course_id": str(columns["course_id"]) if columns["course_id"] else None,
            "program_id": str(columns["program_id"]) if columns["program_id"] else None,
            "bible_school_context": columns["bible_school_context"],
        },
        "questions": [
            {
                "id": str(q.id),
                "question_text": q.question_text,
                "question_type": q.question_type.value,
                "points": q.points,
                "order_index": q.order_index,
                "options": [{"text": o.text, "correct": o.correct} for o in q.options],
                "correct_answer": q.correct_answer,
            }
            for q in questions
        ],
    }


def _deserialize(payload: Dict[str, Any]) -> LoadedQuiz:
    raw = payload["quiz"]
    quiz_id = UUID(raw["id"])
    quiz = QuizDefinition(
        id=quiz_id,
        title=raw["title"],
        description=raw.get("description"),
        instructions=raw.get("instructions"),
        time_limit=raw.get("time_limit"),
        passing_score=raw["passing_score"],
        max_attempts=raw["max_attempts"],
        is_active=raw.get("is_active", True),
        scope=scope_from_columns(
            raw["quiz_type"],
            UUID(raw["course_id"]) if raw.get("course_id") else None,
            UUID(raw["program_id"]) if raw.get("program_id") else None,
            raw.get("bible_school_context"),
        ),
    )
    questions = [
        QuestionDefinition(
            id=UUID(q["id"]),
            quiz_id=quiz_id,
            question_text=q["question_text"],
            question_type=QuestionType(q["question_type"]),
            points=q["points"],
            order_index=q["order_index"],
            options=tuple(AnswerOption(**o) for o in q.get("options") or []),
            correct_answer=q.get("correct_answer"),
        )
        for q in payload["questions"]
    ]
    return quiz, questions


class SqlQuestionBank:
    """
    SQLAlchemy-backed question bank with an optional redis read-through cache

    Opens its own database session per call so it can be used from the
    session timer as well as from request handlers.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        cache: Optional[CacheService] = None,
    ):
        self.session_factory = session_factory
        self.cache = cache

    def load(self, quiz_id: UUID) -> LoadedQuiz:
        """
        Load a quiz and its questions ordered by order_index

        Raises:
            NotFoundError: quiz missing or without questions
            PersistenceError: store unreachable
        """
        if self.cache is not None:
            cached = self.cache.get(CacheService.quiz_key(quiz_id))
            if cached:
                try:
                    return _deserialize(cached)
                except (KeyError, ValueError, TypeError) as e:
                    logger.warning(f"Discarding malformed cache entry for quiz {quiz_id}: {e}")
                    self.cache.invalidate_quiz(quiz_id)

        try:
            with self.session_factory() as db:
                quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
                if quiz is None:
                    raise NotFoundError(f"Quiz {quiz_id} not found")

                rows = (
                    db.query(QuizQuestion)
                    .filter(QuizQuestion.quiz_id == quiz_id)
                    .order_by(QuizQuestion.order_index)
                    .all()
                )
                definition = quiz_to_definition(quiz)
                questions = [question_to_definition(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to load quiz {quiz_id}: {str(e)}")
            raise PersistenceError(f"Could not load quiz {quiz_id}", cause=e) from e

        if not questions:
            raise NotFoundError(f"Quiz {quiz_id} has no questions")

        logger.info(f"Loaded quiz {quiz_id} with {len(questions)} questions")

        if self.cache is not None:
            self.cache.set(CacheService.quiz_key(quiz_id), _serialize(definition, questions))

        return definition, questions
