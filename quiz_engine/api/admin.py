"""
Quiz definition management API endpoints (administrators)
"""
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from uuid import UUID
import logging

from quiz_engine.database import get_db
from quiz_engine.domain import QuizType
from quiz_engine.models import Quiz, QuizQuestion
from quiz_engine.schemas.quiz import (
    OptionSchema,
    QuestionCreate,
    QuestionMove,
    QuestionResponse,
    QuizCreate,
    QuizResponse,
    QuizUpdate,
    ScopeResponse,
)
from quiz_engine.schemas.review import AttemptReviewRequest
from quiz_engine.schemas.session import AttemptResponse
from quiz_engine.services.attempt_review_service import attempt_review_service
from quiz_engine.services.quiz_definition_service import quiz_definition_service
from quiz_engine.services.results_service import to_attempt_response


router = APIRouter(prefix="/api/admin/quizzes", tags=["quiz-admin"])
logger = logging.getLogger(__name__)


def _quiz_response(quiz: Quiz) -> QuizResponse:
    return QuizResponse(
        id=quiz.id,
        title=quiz.title,
        description=quiz.description,
        instructions=quiz.instructions,
        time_limit=quiz.time_limit,
        passing_score=quiz.passing_score,
        max_attempts=quiz.max_attempts,
        is_active=quiz.is_active,
        scope=ScopeResponse(
            quiz_type=quiz.quiz_type,
            course_id=quiz.course_id,
            program_id=quiz.program_id,
            bible_school_context=quiz.bible_school_context,
        ),
        question_count=len(quiz.questions),
        total_points=sum(q.points for q in quiz.questions),
        created_at=quiz.created_at,
    )


def _question_response(question: QuizQuestion) -> QuestionResponse:
    return QuestionResponse(
        id=question.id,
        quiz_id=question.quiz_id,
        question_text=question.question_text,
        question_type=question.question_type,
        options=[OptionSchema(**option) for option in (question.options or [])],
        correct_answer=question.correct_answer,
        points=question.points,
        order_index=question.order_index,
    )


# --- Quizzes ---


@router.post("/", response_model=QuizResponse, status_code=201)
async def create_quiz(data: QuizCreate, db: Session = Depends(get_db)):
    """
    Create a quiz

    The scope is a tagged union on quiz_type; only the fields of the
    selected variant are accepted.
    """
    quiz = quiz_definition_service.create_quiz(db, data)
    return _quiz_response(quiz)


@router.get("/", response_model=List[QuizResponse])
async def list_quizzes(
    search: Optional[str] = None,
    quiz_type: Optional[QuizType] = None,
    course_id: Optional[UUID] = None,
    program_id: Optional[UUID] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    """List quizzes, newest first; search matches title or description"""
    quizzes = quiz_definition_service.list_quizzes(
        db,
        search=search,
        quiz_type=quiz_type,
        course_id=course_id,
        program_id=program_id,
        active_only=active_only,
    )
    return [_quiz_response(quiz) for quiz in quizzes]


@router.get("/{quiz_id}", response_model=QuizResponse)
async def get_quiz(quiz_id: UUID, db: Session = Depends(get_db)):
    """Get one quiz definition"""
    return _quiz_response(quiz_definition_service.get_quiz(db, quiz_id))


@router.put("/{quiz_id}", response_model=QuizResponse)
async def update_quiz(quiz_id: UUID, data: QuizUpdate, db: Session = Depends(get_db)):
    """
    Replace a quiz definition

    Changing quiz_type clears the scope fields of the previous type.
    """
    quiz = quiz_definition_service.update_quiz(db, quiz_id, data)
    return _quiz_response(quiz)


@router.delete("/{quiz_id}", status_code=204)
async def delete_quiz(quiz_id: UUID, db: Session = Depends(get_db)):
    """Delete a quiz and its questions; learner attempts are retained"""
    quiz_definition_service.delete_quiz(db, quiz_id)
    return Response(status_code=204)


# --- Questions ---


@router.get("/{quiz_id}/questions", response_model=List[QuestionResponse])
async def list_questions(quiz_id: UUID, db: Session = Depends(get_db)):
    """Questions of a quiz in display order, with answer keys"""
    questions = quiz_definition_service.list_questions(db, quiz_id)
    return [_question_response(q) for q in questions]


@router.post("/{quiz_id}/questions", response_model=QuestionResponse, status_code=201)
async def add_question(quiz_id: UUID, data: QuestionCreate, db: Session = Depends(get_db)):
    """Add a question; it goes to the end unless order_index is given"""
    question = quiz_definition_service.add_question(db, quiz_id, data)
    return _question_response(question)


@router.put("/questions/{question_id}", response_model=QuestionResponse)
async def update_question(question_id: UUID, data: QuestionCreate, db: Session = Depends(get_db)):
    """Replace a question; answer-key fields that do not fit its type are cleared"""
    question = quiz_definition_service.update_question(db, question_id, data)
    return _question_response(question)


@router.delete("/questions/{question_id}", status_code=204)
async def delete_question(question_id: UUID, db: Session = Depends(get_db)):
    """Delete a question"""
    quiz_definition_service.delete_question(db, question_id)
    return Response(status_code=204)


@router.post("/questions/{question_id}/move", response_model=List[QuestionResponse])
async def move_question(question_id: UUID, move: QuestionMove, db: Session = Depends(get_db)):
    """Swap a question with its neighbour; returns the reordered list"""
    questions = quiz_definition_service.move_question(db, question_id, move.direction)
    return [_question_response(q) for q in questions]


# --- Attempts review ---


@router.get("/{quiz_id}/attempts", response_model=List[AttemptResponse])
async def list_attempts(
    quiz_id: UUID,
    graded: Literal["all", "graded", "ungraded"] = Query("all"),
    db: Session = Depends(get_db),
):
    """All learners' attempts on a quiz, most recent first"""
    attempts = attempt_review_service.list_quiz_attempts(db, quiz_id, graded)
    return [to_attempt_response(a) for a in attempts]


@router.post("/attempts/{attempt_id}/review", response_model=AttemptResponse)
async def review_attempt(
    attempt_id: UUID, request: AttemptReviewRequest, db: Session = Depends(get_db)
):
    """
    Grade an attempt by hand

    - Awarded points are clamped to each question's maximum
    - Questions without awarded points keep their automatic score
    - Percentage and pass/fail are recomputed from the reviewed total
    """
    record = attempt_review_service.review_attempt(db, attempt_id, request)
    return to_attempt_response(record)
