"""
Pydantic schemas for quiz definitions (administrator side)
"""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Annotated, List, Literal, Optional, Union
from uuid import UUID

from quiz_engine.config import settings
from quiz_engine.domain import (
    BibleSchoolScope, CourseScope, GeneralScope, ProgramScope, QuestionType, QuizScope,
)


# --- Scope: one schema per quiz_type, extra fields rejected ---


class CourseScopeSchema(BaseModel):
    """Quiz restricted to one course"""
    quiz_type: Literal["course"] = "course"
    course_id: UUID

    class Config:
        extra = "forbid"

    def to_domain(self) -> QuizScope:
        return CourseScope(course_id=self.course_id)


class ProgramScopeSchema(BaseModel):
    """Quiz restricted to a program, optionally to one course within it"""
    quiz_type: Literal["program"] = "program"
    program_id: UUID
    course_id: Optional[UUID] = None

    class Config:
        extra = "forbid"

    def to_domain(self) -> QuizScope:
        return ProgramScope(program_id=self.program_id, course_id=self.course_id)


class BibleSchoolScopeSchema(BaseModel):
    """Quiz for the general curriculum track, tagged with a free-form context"""
    quiz_type: Literal["bible_school"] = "bible_school"
    bible_school_context: Optional[str] = Field(None, max_length=100)

    class Config:
        extra = "forbid"

    def to_domain(self) -> QuizScope:
        return BibleSchoolScope(tag=self.bible_school_context)


class GeneralScopeSchema(BaseModel):
    """Unscoped quiz"""
    quiz_type: Literal["general"] = "general"

    class Config:
        extra = "forbid"

    def to_domain(self) -> QuizScope:
        return GeneralScope()


ScopeSchema = Annotated[
    Union[CourseScopeSchema, ProgramScopeSchema, BibleSchoolScopeSchema, GeneralScopeSchema],
    Field(discriminator="quiz_type"),
]


class ScopeResponse(BaseModel):
    """Flattened scope as stored"""
    quiz_type: str
    course_id: Optional[UUID] = None
    program_id: Optional[UUID] = None
    bible_school_context: Optional[str] = None


# --- Quiz ---


class QuizCreate(BaseModel):
    """Request schema for creating a quiz"""
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    instructions: Optional[str] = None
    time_limit: Optional[int] = Field(None, ge=1, description="Minutes; omit for untimed")
    passing_score: int = Field(default_factory=lambda: settings.DEFAULT_PASSING_SCORE, ge=0, le=100)
    max_attempts: int = Field(default_factory=lambda: settings.DEFAULT_MAX_ATTEMPTS, ge=1)
    is_active: bool = True
    scope: ScopeSchema = Field(default_factory=GeneralScopeSchema)


class QuizUpdate(QuizCreate):
    """Full replacement of a quiz definition; the scope is replaced as a whole"""
    pass


class QuizResponse(BaseModel):
    """Quiz definition as seen by administrators"""
    id: UUID
    title: str
    description: Optional[str] = None
    instructions: Optional[str] = None
    time_limit: Optional[int] = None
    passing_score: int
    max_attempts: int
    is_active: bool
    scope: ScopeResponse
    question_count: int
    total_points: int
    created_at: Optional[datetime] = None


# --- Questions ---


class OptionSchema(BaseModel):
    """One multiple-choice option"""
    text: str = Field(..., max_length=1000)
    correct: bool = False


class QuestionCreate(BaseModel):
    """Request schema for adding or replacing a question"""
    question_text: str = Field(..., min_length=1)
    question_type: QuestionType
    options: Optional[List[OptionSchema]] = None
    correct_answer: Optional[str] = None
    points: int = Field(1, ge=1)
    order_index: Optional[int] = Field(None, ge=0, description="Defaults to the end of the quiz")


class QuestionResponse(BaseModel):
    """Question including its answer key"""
    id: UUID
    quiz_id: UUID
    question_text: str
    question_type: QuestionType
    options: List[OptionSchema] = []
    correct_answer: Optional[str] = None
    points: int
    order_index: int


class QuestionMove(BaseModel):
    """Swap a question with its neighbour"""
    direction: Literal["up", "down"]
