"""
Quiz definition manager - administrator CRUD over quizzes and questions

Scope columns are always written from the scope variant, so switching
quiz_type clears the fields that no longer apply. Every write drops the
cached definition of the affected quiz.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from quiz_engine.domain import QuestionType, QuizType, scope_columns
from quiz_engine.exceptions import NotFoundError, PersistenceError, QuizValidationError
from quiz_engine.models import Quiz, QuizQuestion
from quiz_engine.schemas.quiz import OptionSchema, QuestionCreate, QuizCreate
from quiz_engine.utils.cache import CacheService, cache_service

logger = logging.getLogger(__name__)

TRUE_FALSE_VALUES = ("true", "false")


def normalize_question_fields(
    question_type: QuestionType,
    options: Optional[Sequence[OptionSchema]],
    correct_answer: Optional[str],
) -> Dict[str, Any]:
    """
    Keep only the answer-key fields that apply to the question type

    Raises:
        QuizValidationError: answer key missing or malformed
    """
    if question_type == QuestionType.MULTIPLE_CHOICE:
        cleaned = [
            {"text": option.text.strip(), "correct": bool(option.correct)}
            for option in (options or [])
        ]
        if len(cleaned) < 2:
            raise QuizValidationError("Multiple choice questions need at least two options")
        if any(not option["text"] for option in cleaned):
            raise QuizValidationError("Option text cannot be empty")
        correct_count = sum(1 for option in cleaned if option["correct"])
        if correct_count > 1:
            raise QuizValidationError("Only one option can be marked correct")
        if correct_count == 0:
            logger.warning("Multiple choice question saved without a correct option")
        return {"options": cleaned, "correct_answer": None}

    if question_type == QuestionType.TRUE_FALSE:
        value = (correct_answer or "").strip().lower()
        if value not in TRUE_FALSE_VALUES:
            raise QuizValidationError("True/false questions need correct_answer 'true' or 'false'")
        return {"options": None, "correct_answer": value}

    if question_type == QuestionType.SHORT_ANSWER:
        value = (correct_answer or "").strip()
        if not value:
            raise QuizValidationError("Short answer questions need a correct_answer")
        return {"options": None, "correct_answer": value}

    # long_answer is graded by hand
    return {"options": None, "correct_answer": None}


class QuizDefinitionService:
    """CRUD surface for administrators"""

    def __init__(self, cache: Optional[CacheService] = None):
        self.cache = cache if cache is not None else cache_service

    # --- Quizzes ---

    def get_quiz(self, db: Session, quiz_id: UUID) -> Quiz:
        quiz = db.query(Quiz).filter(Quiz.id == quiz_id).first()
        if quiz is None:
            raise NotFoundError(f"Quiz {quiz_id} not found")
        return quiz

    def list_quizzes(
        self,
        db: Session,
        search: Optional[str] = None,
        quiz_type: Optional[QuizType] = None,
        course_id: Optional[UUID] = None,
        program_id: Optional[UUID] = None,
        active_only: bool = False,
    ) -> List[Quiz]:
        """All quizzes, newest first, optionally filtered"""
        query = db.query(Quiz)

        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(or_(
                func.lower(Quiz.title).like(pattern),
                func.lower(func.coalesce(Quiz.description, "")).like(pattern),
            ))
        if quiz_type is not None:
            query = query.filter(Quiz.quiz_type == quiz_type.value)
        if course_id is not None:
            query = query.filter(Quiz.course_id == course_id)
        if program_id is not None:
            query = query.filter(Quiz.program_id == program_id)
        if active_only:
            query = query.filter(Quiz.is_active.is_(True))

        return query.order_by(Quiz.created_at.desc()).all()

    def list_for_context(
        self,
        db: Session,
        course_id: Optional[UUID] = None,
        program_id: Optional[UUID] = None,
        bible_school_context: Optional[str] = None,
        general: bool = False,
    ) -> List[Quiz]:
        """
        Active quizzes a learner sees in one context

        A course listing also includes program quizzes narrowed to that course.

        Raises:
            QuizValidationError: not exactly one context given
        """
        given = [
            course_id is not None,
            program_id is not None,
            bible_school_context is not None,
            general,
        ]
        if sum(given) != 1:
            raise QuizValidationError(
                "Specify exactly one of course_id, program_id, bible_school_context or general"
            )

        query = db.query(Quiz).filter(Quiz.is_active.is_(True))
        if course_id is not None:
            query = query.filter(Quiz.course_id == course_id)
        elif program_id is not None:
            query = query.filter(
                Quiz.quiz_type == QuizType.PROGRAM.value, Quiz.program_id == program_id
            )
        elif bible_school_context is not None:
            query = query.filter(
                Quiz.quiz_type == QuizType.BIBLE_SCHOOL.value,
                Quiz.bible_school_context == bible_school_context,
            )
        else:
            query = query.filter(Quiz.quiz_type == QuizType.GENERAL.value)

        return query.order_by(Quiz.created_at.desc()).all()

    def create_quiz(self, db: Session, data: QuizCreate) -> Quiz:
        quiz = Quiz(**self._quiz_fields(data))
        self._commit(db, quiz, "create quiz")
        logger.info(f"Quiz created: {quiz.id} ({quiz.quiz_type})")
        return quiz

    def update_quiz(self, db: Session, quiz_id: UUID, data: QuizCreate) -> Quiz:
        quiz = self.get_quiz(db, quiz_id)
        previous_type = quiz.quiz_type
        for key, value in self._quiz_fields(data).items():
            setattr(quiz, key, value)
        self._commit(db, quiz, "update quiz")
        self.cache.invalidate_quiz(quiz_id)
        if previous_type != quiz.quiz_type:
            logger.info(f"Quiz {quiz_id} scope changed: {previous_type} -> {quiz.quiz_type}")
        logger.info(f"Quiz updated: {quiz_id}")
        return quiz

    def delete_quiz(self, db: Session, quiz_id: UUID) -> None:
        """Delete a quiz and its questions; attempts stay on record"""
        quiz = self.get_quiz(db, quiz_id)
        try:
            db.delete(quiz)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete quiz {quiz_id}: {str(e)}")
            raise PersistenceError("Could not delete quiz", cause=e) from e
        self.cache.invalidate_quiz(quiz_id)
        logger.info(f"Quiz deleted: {quiz_id}")

    @staticmethod
    def _quiz_fields(data: QuizCreate) -> Dict[str, Any]:
        title = data.title.strip()
        if not title:
            raise QuizValidationError("Quiz title cannot be empty")
        fields = {
            "title": title,
            "description": data.description,
            "instructions": data.instructions,
            "time_limit": data.time_limit,
            "passing_score": data.passing_score,
            "max_attempts": data.max_attempts,
            "is_active": data.is_active,
        }
        fields.update(scope_columns(data.scope.to_domain()))
        return fields

    # --- Questions ---

    def list_questions(self, db: Session, quiz_id: UUID) -> List[QuizQuestion]:
        self.get_quiz(db, quiz_id)
        return (
            db.query(QuizQuestion)
            .filter(QuizQuestion.quiz_id == quiz_id)
            .order_by(QuizQuestion.order_index)
            .all()
        )

    def get_question(self, db: Session, question_id: UUID) -> QuizQuestion:
        question = db.query(QuizQuestion).filter(QuizQuestion.id == question_id).first()
        if question is None:
            raise NotFoundError(f"Question {question_id} not found")
        return question

    def add_question(self, db: Session, quiz_id: UUID, data: QuestionCreate) -> QuizQuestion:
        self.get_quiz(db, quiz_id)

        order_index = data.order_index
        if order_index is None:
            order_index = self._next_order_index(db, quiz_id)
        else:
            self._ensure_order_free(db, quiz_id, order_index)

        question = QuizQuestion(
            quiz_id=quiz_id,
            question_text=data.question_text.strip(),
            question_type=data.question_type.value,
            points=data.points,
            order_index=order_index,
            **normalize_question_fields(data.question_type, data.options, data.correct_answer),
        )
        self._commit(db, question, "add question")
        self.cache.invalidate_quiz(quiz_id)
        logger.info(f"Question {question.id} added to quiz {quiz_id} at {order_index}")
        return question

    def update_question(self, db: Session, question_id: UUID, data: QuestionCreate) -> QuizQuestion:
        question = self.get_question(db, question_id)

        if data.order_index is not None and data.order_index != question.order_index:
            self._ensure_order_free(db, question.quiz_id, data.order_index)
            question.order_index = data.order_index

        fields = normalize_question_fields(data.question_type, data.options, data.correct_answer)
        question.question_text = data.question_text.strip()
        question.question_type = data.question_type.value
        question.points = data.points
        question.options = fields["options"]
        question.correct_answer = fields["correct_answer"]

        self._commit(db, question, "update question")
        self.cache.invalidate_quiz(question.quiz_id)
        logger.info(f"Question updated: {question_id}")
        return question

    def delete_question(self, db: Session, question_id: UUID) -> None:
        question = self.get_question(db, question_id)
        quiz_id = question.quiz_id
        try:
            db.delete(question)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete question {question_id}: {str(e)}")
            raise PersistenceError("Could not delete question", cause=e) from e
        self.cache.invalidate_quiz(quiz_id)
        logger.info(f"Question deleted: {question_id}")

    def move_question(self, db: Session, question_id: UUID, direction: str) -> List[QuizQuestion]:
        """
        Swap a question with its neighbour in display order

        Moving the first question up or the last one down changes nothing.
        """
        question = self.get_question(db, question_id)
        query = db.query(QuizQuestion).filter(QuizQuestion.quiz_id == question.quiz_id)
        if direction == "up":
            neighbour = (
                query.filter(QuizQuestion.order_index < question.order_index)
                .order_by(QuizQuestion.order_index.desc())
                .first()
            )
        elif direction == "down":
            neighbour = (
                query.filter(QuizQuestion.order_index > question.order_index)
                .order_by(QuizQuestion.order_index.asc())
                .first()
            )
        else:
            raise QuizValidationError(f"Unknown direction: {direction}")

        if neighbour is not None:
            current_index, neighbour_index = question.order_index, neighbour.order_index
            try:
                # Park on a free slot first, (quiz_id, order_index) is unique
                question.order_index = self._next_order_index(db, question.quiz_id)
                db.flush()
                neighbour.order_index = current_index
                db.flush()
                question.order_index = neighbour_index
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to move question {question_id}: {str(e)}")
                raise PersistenceError("Could not reorder questions", cause=e) from e
            self.cache.invalidate_quiz(question.quiz_id)
            logger.info(f"Question {question_id} moved {direction}")

        return self.list_questions(db, question.quiz_id)

    @staticmethod
    def _next_order_index(db: Session, quiz_id: UUID) -> int:
        highest = (
            db.query(func.max(QuizQuestion.order_index))
            .filter(QuizQuestion.quiz_id == quiz_id)
            .scalar()
        )
        return 0 if highest is None else highest + 1

    @staticmethod
    def _ensure_order_free(db: Session, quiz_id: UUID, order_index: int) -> None:
        taken = (
            db.query(QuizQuestion.id)
            .filter(QuizQuestion.quiz_id == quiz_id, QuizQuestion.order_index == order_index)
            .first()
        )
        if taken is not None:
            raise QuizValidationError(f"Position {order_index} is already used in this quiz")

    @staticmethod
    def _commit(db: Session, instance: Any, action: str) -> None:
        try:
            db.add(instance)
            db.commit()
            db.refresh(instance)
        except IntegrityError as e:
            db.rollback()
            logger.error(f"Rejected {action}: {str(e)}")
            raise QuizValidationError(f"Could not {action}: constraint violated") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to {action}: {str(e)}")
            raise PersistenceError(f"Could not {action}", cause=e) from e


# Global instance
quiz_definition_service = QuizDefinitionService()
