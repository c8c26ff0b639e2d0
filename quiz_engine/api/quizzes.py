"""
Quiz taking API endpoints (learners)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from quiz_engine.database import get_db
from quiz_engine.domain import QuestionDefinition, QuestionType
from quiz_engine.schemas.session import (
    AnswerSubmission,
    LearnerQuestion,
    LearnerQuizListItem,
    NavigateRequest,
    QuizResultsResponse,
    SessionQuizInfo,
    SessionResponse,
    SessionStart,
)
from quiz_engine.services.question_bank import quiz_to_definition
from quiz_engine.services.quiz_definition_service import TRUE_FALSE_VALUES, quiz_definition_service
from quiz_engine.services.quiz_session import QuizSession, SessionState
from quiz_engine.services.results_service import (
    ResultsService, summarize_attempts, to_attempt_response,
)
from quiz_engine.services.session_registry import SessionRegistry, session_registry


router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)


def get_session_registry() -> SessionRegistry:
    return session_registry


def get_results_service(
    registry: SessionRegistry = Depends(get_session_registry),
) -> ResultsService:
    return ResultsService(registry.question_bank, registry.ledger)


def _learner_question(question: QuestionDefinition) -> LearnerQuestion:
    if question.question_type == QuestionType.MULTIPLE_CHOICE:
        options = [option.text for option in question.options]
    elif question.question_type == QuestionType.TRUE_FALSE:
        options = list(TRUE_FALSE_VALUES)
    else:
        options = []
    return LearnerQuestion(
        id=question.id,
        question_text=question.question_text,
        question_type=question.question_type,
        options=options,
        points=question.points,
        order_index=question.order_index,
    )


def _session_response(session: QuizSession) -> SessionResponse:
    quiz = session.quiz
    questions = session.questions
    answers = session.answers
    current = session.current_question
    remaining = session.remaining_seconds()
    error = session.last_error if session.state is SessionState.SUBMITTING else None

    return SessionResponse(
        session_id=session.id,
        state=session.state.value,
        quiz=SessionQuizInfo(
            id=quiz.id,
            title=quiz.title,
            description=quiz.description,
            instructions=quiz.instructions,
            time_limit=quiz.time_limit,
            passing_score=quiz.passing_score,
            total_questions=len(questions),
            total_points=sum(q.points for q in questions),
        ),
        current_index=session.current_index,
        current_question=_learner_question(current) if current else None,
        questions=[_learner_question(q) for q in questions],
        answers=answers,
        answered_count=sum(1 for value in answers.values() if value not in (None, "")),
        remaining_seconds=max(0, remaining) if remaining is not None else None,
        started_at=session.started_at,
        submit_reason=session.submit_reason.value if session.submit_reason else None,
        retryable_error=error.message if error else None,
        attempt=to_attempt_response(session.attempt) if session.attempt else None,
    )


# --- Listing ---


@router.get("/", response_model=List[LearnerQuizListItem])
async def list_available_quizzes(
    course_id: Optional[UUID] = None,
    program_id: Optional[UUID] = None,
    bible_school_context: Optional[str] = None,
    general: bool = False,
    learner_id: Optional[UUID] = None,
    db: Session = Depends(get_db),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Active quizzes for one context

    Give exactly one of course_id, program_id, bible_school_context or
    general=true. With learner_id each item carries the learner's attempt
    count and best attempt.
    """
    quizzes = quiz_definition_service.list_for_context(
        db,
        course_id=course_id,
        program_id=program_id,
        bible_school_context=bible_school_context,
        general=general,
    )

    items = []
    for quiz in quizzes:
        summary = None
        if learner_id is not None:
            attempts = registry.ledger.list_attempts(quiz.id, learner_id)
            summary = summarize_attempts(quiz_to_definition(quiz), attempts)
        items.append(LearnerQuizListItem(
            id=quiz.id,
            title=quiz.title,
            description=quiz.description,
            time_limit=quiz.time_limit,
            passing_score=quiz.passing_score,
            quiz_type=quiz.quiz_type,
            summary=summary,
        ))
    return items


# --- Sessions ---


@router.post("/{quiz_id}/sessions", response_model=SessionResponse, status_code=201)
async def start_session(
    quiz_id: UUID,
    request: SessionStart,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """
    Start taking a quiz

    - Resumes the learner's unfinished session if one exists
    - Refused with 409 once every allowed attempt is used
    - Timed quizzes submit themselves when the countdown reaches zero
    """
    session = registry.start(quiz_id, request.learner_id)
    return _session_response(session)


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: UUID, registry: SessionRegistry = Depends(get_session_registry)
):
    """Current state of a session, including remaining time"""
    session = registry.get(session_id)
    session.tick()
    return _session_response(session)


@router.put("/sessions/{session_id}/answers/{question_id}", response_model=SessionResponse)
async def answer_question(
    session_id: UUID,
    question_id: UUID,
    submission: AnswerSubmission,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Record or replace the answer to one question"""
    session = registry.get(session_id)
    session.answer(str(question_id), submission.value)
    return _session_response(session)


@router.post("/sessions/{session_id}/navigate", response_model=SessionResponse)
async def navigate(
    session_id: UUID,
    request: NavigateRequest,
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Move to any question by index"""
    session = registry.get(session_id)
    session.navigate(request.index)
    return _session_response(session)


@router.post("/sessions/{session_id}/submit", response_model=SessionResponse)
async def submit_session(
    session_id: UUID, registry: SessionRegistry = Depends(get_session_registry)
):
    """
    Submit the answers

    Submitting an already completed session returns the stored attempt.
    If the attempt could not be saved the answers are kept and the call
    can simply be repeated.
    """
    session = registry.get(session_id)
    session.tick()
    session.submit()
    logger.info(f"Session {session_id} submitted by learner {session.learner_id}")
    return _session_response(session)


# --- Results ---


@router.get("/{quiz_id}/results", response_model=QuizResultsResponse)
async def get_results(
    quiz_id: UUID,
    learner_id: UUID,
    results: ResultsService = Depends(get_results_service),
):
    """Latest attempt with per-question outcome, best attempt and history"""
    return results.results_for(quiz_id, learner_id)
