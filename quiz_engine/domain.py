"""
Domain types shared by the session engine, scoring and the stores
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Tuple, Union
from uuid import UUID


class QuizType(str, Enum):
    COURSE = "course"
    PROGRAM = "program"
    BIBLE_SCHOOL = "bible_school"
    GENERAL = "general"


class QuestionType(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"
    LONG_ANSWER = "long_answer"


# --- Quiz scope: one variant per quiz_type ---


@dataclass(frozen=True)
class CourseScope:
    course_id: UUID
    quiz_type: ClassVar[QuizType] = QuizType.COURSE


@dataclass(frozen=True)
class ProgramScope:
    """Program quiz, optionally narrowed to one course within the program"""

    program_id: UUID
    course_id: Optional[UUID] = None
    quiz_type: ClassVar[QuizType] = QuizType.PROGRAM


@dataclass(frozen=True)
class BibleSchoolScope:
    tag: Optional[str] = None
    quiz_type: ClassVar[QuizType] = QuizType.BIBLE_SCHOOL


@dataclass(frozen=True)
class GeneralScope:
    quiz_type: ClassVar[QuizType] = QuizType.GENERAL


QuizScope = Union[CourseScope, ProgramScope, BibleSchoolScope, GeneralScope]


def scope_columns(scope: QuizScope) -> Dict[str, Any]:
    """Flatten a scope into the four storage columns, clearing the ones that do not apply"""
    columns: Dict[str, Any] = {
        "quiz_type": scope.quiz_type.value,
        "course_id": None,
        "program_id": None,
        "bible_school_context": None,
    }
    if isinstance(scope, CourseScope):
        columns["course_id"] = scope.course_id
    elif isinstance(scope, ProgramScope):
        columns["program_id"] = scope.program_id
        columns["course_id"] = scope.course_id
    elif isinstance(scope, BibleSchoolScope):
        columns["bible_school_context"] = scope.tag
    return columns


def scope_from_columns(
    quiz_type: str,
    course_id: Optional[UUID],
    program_id: Optional[UUID],
    bible_school_context: Optional[str],
) -> QuizScope:
    """Rebuild the scope variant from stored columns"""
    kind = QuizType(quiz_type)
    if kind is QuizType.COURSE:
        if course_id is None:
            raise ValueError("course quiz without course_id")
        return CourseScope(course_id=course_id)
    if kind is QuizType.PROGRAM:
        if program_id is None:
            raise ValueError("program quiz without program_id")
        return ProgramScope(program_id=program_id, course_id=course_id)
    if kind is QuizType.BIBLE_SCHOOL:
        return BibleSchoolScope(tag=bible_school_context)
    return GeneralScope()


# --- Read-only snapshots handed to a session ---


@dataclass(frozen=True)
class AnswerOption:
    text: str
    correct: bool = False


@dataclass(frozen=True)
class QuizDefinition:
    id: UUID
    title: str
    passing_score: int
    max_attempts: int
    scope: QuizScope = field(default_factory=GeneralScope)
    description: Optional[str] = None
    instructions: Optional[str] = None
    time_limit: Optional[int] = None  # minutes
    is_active: bool = True

    @property
    def is_timed(self) -> bool:
        return self.time_limit is not None

    @property
    def total_seconds(self) -> Optional[int]:
        return self.time_limit * 60 if self.time_limit is not None else None


@dataclass(frozen=True)
class QuestionDefinition:
    id: UUID
    quiz_id: UUID
    question_text: str
    question_type: QuestionType
    points: int
    order_index: int
    options: Tuple[AnswerOption, ...] = ()
    correct_answer: Optional[str] = None

    def correct_option(self) -> Optional[AnswerOption]:
        """First option flagged correct, or None when the data flags none"""
        return next((option for option in self.options if option.correct), None)


# --- Attempt history ---


@dataclass(frozen=True)
class AttemptReview:
    """Manual grading stored next to an attempt; the attempt itself never changes"""

    score: int
    percentage: int
    passed: bool
    question_scores: Dict[str, int] = field(default_factory=dict)
    question_feedback: Dict[str, str] = field(default_factory=dict)
    feedback: Optional[str] = None
    graded_by: Optional[UUID] = None
    graded_at: Optional[datetime] = None


@dataclass(frozen=True)
class AttemptRecord:
    quiz_id: UUID
    learner_id: UUID
    answers: Dict[str, Any]
    score: int
    total_points: int
    percentage: int
    passed: bool
    time_taken: int  # seconds
    submitted_at: datetime
    started_at: Optional[datetime] = None
    needs_review: bool = False
    id: Optional[UUID] = None
    review: Optional[AttemptReview] = None

    @property
    def is_graded(self) -> bool:
        return self.review is not None

    @property
    def effective_percentage(self) -> int:
        return self.review.percentage if self.review else self.percentage

    @property
    def effective_passed(self) -> bool:
        return self.review.passed if self.review else self.passed
