"""
Pydantic schemas for taking a quiz and reading results
"""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from quiz_engine.domain import QuestionType


class SessionStart(BaseModel):
    """Start (or resume) a quiz session"""
    learner_id: UUID


class AnswerSubmission(BaseModel):
    """Answer for one question; multiple_choice answers carry the option text"""
    value: Optional[str] = Field(None, max_length=20000)


class NavigateRequest(BaseModel):
    """Move the current-question pointer"""
    index: int = Field(..., ge=0)


class LearnerQuestion(BaseModel):
    """Question as shown to a learner, without its answer key"""
    id: UUID
    question_text: str
    question_type: QuestionType
    options: List[str] = []
    points: int
    order_index: int


class SessionQuizInfo(BaseModel):
    """Quiz header shown while taking it"""
    id: UUID
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    time_limit: Optional[int] = None
    passing_score: int
    total_questions: int
    total_points: int


class AttemptResponse(BaseModel):
    """A finalized attempt"""
    id: UUID
    quiz_id: UUID
    learner_id: UUID
    answers: Dict[str, Any]
    score: int
    total_points: int
    percentage: int
    passed: bool
    time_taken: int
    submitted_at: datetime
    needs_review: bool
    is_graded: bool
    reviewed_score: Optional[int] = None
    reviewed_percentage: Optional[int] = None
    reviewed_passed: Optional[bool] = None
    feedback: Optional[str] = None
    question_feedback: Dict[str, str] = {}


class SessionResponse(BaseModel):
    """Snapshot of a quiz session"""
    session_id: UUID
    state: Literal["loading", "in_progress", "submitting", "completed"]
    quiz: SessionQuizInfo
    current_index: int
    current_question: Optional[LearnerQuestion] = None
    questions: List[LearnerQuestion]
    answers: Dict[str, Any]
    answered_count: int
    remaining_seconds: Optional[int] = None
    started_at: Optional[datetime] = None
    submit_reason: Optional[str] = None
    retryable_error: Optional[str] = None
    attempt: Optional[AttemptResponse] = None


class AttemptSummary(BaseModel):
    """Learner's attempt status for one quiz in a listing"""
    attempts_used: int
    max_attempts: int
    can_take: bool
    best_attempt: Optional[AttemptResponse] = None


class LearnerQuizListItem(BaseModel):
    """Active quiz available to a learner"""
    id: UUID
    title: str
    description: Optional[str] = None
    time_limit: Optional[int] = None
    passing_score: int
    quiz_type: str
    summary: Optional[AttemptSummary] = None


class QuestionResult(BaseModel):
    """Per-question outcome of the latest attempt"""
    question_id: UUID
    question_text: str
    question_type: QuestionType
    user_answer: Optional[Any] = None
    correct_answer: Optional[str] = None
    is_correct: bool
    points: int
    awarded_points: Optional[int] = None
    feedback: Optional[str] = None


class QuizResultsResponse(BaseModel):
    """Results view: latest attempt, best attempt and history"""
    quiz_id: UUID
    quiz_title: str
    passing_score: int
    attempts_used: int
    max_attempts: int
    can_retake: bool
    latest_attempt: AttemptResponse
    best_attempt: AttemptResponse
    question_results: List[QuestionResult]
    history: List[AttemptResponse]
