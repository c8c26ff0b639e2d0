"""
Error taxonomy for the quiz engine

Every failure here is local to one quiz flow; the API layer maps each
type to a JSON response in quiz_engine.main.
"""
from typing import Optional
from uuid import UUID


class QuizEngineError(Exception):
    """Base class for all quiz engine errors"""

    error_code = "quiz_engine_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(QuizEngineError):
    """Quiz, question, attempt or session missing (or quiz has no questions)"""

    error_code = "not_found"


class AttemptLimitExceeded(QuizEngineError):
    """Learner already used every attempt allowed for a quiz"""

    error_code = "attempt_limit_exceeded"

    def __init__(
        self,
        quiz_id: UUID,
        attempts_used: int,
        max_attempts: int,
        learner_id: Optional[UUID] = None,
    ):
        super().__init__(
            f"Maximum attempts reached ({attempts_used}/{max_attempts}) for quiz {quiz_id}"
        )
        self.quiz_id = quiz_id
        self.learner_id = learner_id
        self.attempts_used = attempts_used
        self.max_attempts = max_attempts


class PersistenceError(QuizEngineError):
    """The backing store could not be read or rejected a write"""

    error_code = "persistence_error"

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class SessionStateError(QuizEngineError):
    """Operation not allowed in the session's current state"""

    error_code = "invalid_session_state"


class QuizValidationError(QuizEngineError):
    """Administrator input violates a quiz definition rule"""

    error_code = "validation_error"
