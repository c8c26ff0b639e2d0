"""
Quiz session state machine

One learner, one quiz: Loading -> InProgress -> Submitting -> Completed.
The manual submit and the timer-driven submit both go through submit(),
which is guarded by the session state so at most one attempt is
persisted per session.
"""
import logging
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

from quiz_engine.domain import AttemptRecord, QuestionDefinition, QuizDefinition
from quiz_engine.exceptions import (
    NotFoundError, PersistenceError, QuizValidationError, SessionStateError,
)
from quiz_engine.services.attempt_ledger import AttemptLedger
from quiz_engine.services.attempt_policy import ensure_can_start
from quiz_engine.services.grading_service import GradingResult, grading_service
from quiz_engine.services.question_bank import QuestionBank

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    LOADING = "loading"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"


class SubmitReason(str, Enum):
    MANUAL = "manual"
    TIMEOUT = "timeout"


StateListener = Callable[["QuizSession", SessionState], None]


class QuizSession:
    """In-memory state of one learner taking one quiz"""

    def __init__(
        self,
        quiz_id: UUID,
        learner_id: UUID,
        question_bank: QuestionBank,
        ledger: AttemptLedger,
        clock: Clock = utcnow,
    ) -> None:
        self.id: UUID = uuid4()
        self.quiz_id = quiz_id
        self.learner_id = learner_id
        self._question_bank = question_bank
        self._ledger = ledger
        self._clock = clock

        self._lock = threading.RLock()
        self._state = SessionState.LOADING
        self._listeners: List[StateListener] = []

        self._quiz: Optional[QuizDefinition] = None
        self._questions: List[QuestionDefinition] = []
        self._answers: Dict[str, Any] = {}
        self._current_index: int = 0
        self._started_at: Optional[datetime] = None
        self._total_seconds: Optional[int] = None

        self._submit_reason: Optional[SubmitReason] = None
        self._result: Optional[GradingResult] = None
        self._pending: Optional[AttemptRecord] = None
        self._attempt: Optional[AttemptRecord] = None
        self._last_error: Optional[PersistenceError] = None
        self._completed_at: Optional[datetime] = None

    # --- Lifecycle ---

    def load(self) -> None:
        """
        Load the quiz, apply the attempt-limit gate and start the clock

        Raises:
            NotFoundError: quiz missing, inactive or without questions
            AttemptLimitExceeded: learner has no attempts left
            PersistenceError: a store could not be read
        """
        with self._lock:
            if self._state is not SessionState.LOADING:
                raise SessionStateError("Session already loaded")

            quiz, questions = self._question_bank.load(self.quiz_id)
            if not quiz.is_active:
                raise NotFoundError(f"Quiz {self.quiz_id} is not available")
            if not questions:
                raise NotFoundError(f"Quiz {self.quiz_id} has no questions")

            ensure_can_start(
                quiz, self._ledger.list_attempts(self.quiz_id, self.learner_id), self.learner_id
            )

            self._quiz = quiz
            self._questions = sorted(questions, key=lambda q: q.order_index)
            self._started_at = self._clock()
            self._total_seconds = quiz.total_seconds
            self._transition(SessionState.IN_PROGRESS)

            logger.info(
                f"Session {self.id} started: quiz={self.quiz_id}, learner={self.learner_id}, "
                f"questions={len(self._questions)}, time_limit={quiz.time_limit}"
            )

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked after every state change"""
        self._listeners.append(listener)

    def _transition(self, state: SessionState) -> None:
        previous = self._state
        self._state = state
        if state is SessionState.COMPLETED:
            self._completed_at = self._clock()
        logger.debug(f"Session {self.id}: {previous.value} -> {state.value}")
        for listener in list(self._listeners):
            listener(self, state)

    # --- Learner operations ---

    def answer(self, question_id: str, value: Any) -> None:
        """Record or replace the answer for one question; correctness is not checked here"""
        with self._lock:
            self.tick()
            self._require_in_progress("answer")
            key = str(question_id)
            if not any(str(q.id) == key for q in self._questions):
                raise NotFoundError(f"Question {question_id} is not part of this quiz")
            self._answers[key] = value

    def navigate(self, index: int) -> QuestionDefinition:
        """Jump to any question; answering the current one first is not required"""
        with self._lock:
            self.tick()
            self._require_in_progress("navigate")
            if not 0 <= index < len(self._questions):
                raise QuizValidationError(
                    f"Question index {index} out of range (0..{len(self._questions) - 1})"
                )
            self._current_index = index
            return self._questions[index]

    def tick(self) -> Optional[AttemptRecord]:
        """
        Re-evaluate the countdown; submits automatically once time is up

        No-op for untimed quizzes and outside InProgress.
        """
        with self._lock:
            if self._state is not SessionState.IN_PROGRESS or self._total_seconds is None:
                return None
            if self.remaining_seconds() > 0:
                return None

            logger.info(f"Session {self.id}: time limit reached, submitting automatically")
            return self.submit(SubmitReason.TIMEOUT)

    def submit(self, reason: SubmitReason = SubmitReason.MANUAL) -> AttemptRecord:
        """
        Score the answers and persist exactly one attempt

        Repeated calls after completion return the stored attempt. If the
        write fails the session stays in Submitting with the scored answers
        kept, and calling submit() again retries the same write.

        Raises:
            SessionStateError: session never finished loading
            PersistenceError: the attempt could not be stored (retryable)
        """
        with self._lock:
            if self._state is SessionState.COMPLETED:
                logger.debug(f"Session {self.id}: submit ignored, already completed")
                return self._attempt
            if self._state is SessionState.LOADING:
                raise SessionStateError("Quiz has not been loaded")

            if self._state is SessionState.IN_PROGRESS:
                self._freeze(reason)

            try:
                attempt = self._ledger.create_attempt(self._pending)
            except PersistenceError as e:
                self._last_error = e
                logger.error(f"Session {self.id}: attempt not saved, answers kept for retry: {e}")
                raise

            self._attempt = attempt
            self._last_error = None
            self._transition(SessionState.COMPLETED)
            return attempt

    def _freeze(self, reason: SubmitReason) -> None:
        """Score the current answers and move to Submitting"""
        now = self._clock()
        result = grading_service.grade_quiz(self._questions, self._answers, self._quiz.passing_score)

        self._submit_reason = reason
        self._result = result
        self._pending = AttemptRecord(
            id=uuid4(),
            quiz_id=self.quiz_id,
            learner_id=self.learner_id,
            answers=dict(self._answers),
            score=result.earned,
            total_points=result.total_possible,
            percentage=result.percentage,
            passed=result.passed,
            time_taken=self._elapsed_seconds(now),
            needs_review=result.needs_review,
            started_at=self._started_at,
            submitted_at=now,
        )
        self._transition(SessionState.SUBMITTING)

    # --- Time ---

    def _elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        if self._started_at is None:
            return 0
        now = now or self._clock()
        return max(0, int((now - self._started_at).total_seconds()))

    def remaining_seconds(self) -> Optional[int]:
        """Seconds left, None for untimed quizzes; may be negative once overdue"""
        if self._total_seconds is None:
            return None
        return self._total_seconds - self._elapsed_seconds()

    # --- Read access ---

    def _require_in_progress(self, operation: str) -> None:
        if self._state is not SessionState.IN_PROGRESS:
            raise SessionStateError(
                f"Cannot {operation}: session is {self._state.value}"
            )

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def quiz(self) -> Optional[QuizDefinition]:
        return self._quiz

    @property
    def questions(self) -> List[QuestionDefinition]:
        return list(self._questions)

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_question(self) -> Optional[QuestionDefinition]:
        if not self._questions:
            return None
        return self._questions[self._current_index]

    @property
    def answers(self) -> Dict[str, Any]:
        return dict(self._answers)

    @property
    def started_at(self) -> Optional[datetime]:
        return self._started_at

    @property
    def completed_at(self) -> Optional[datetime]:
        return self._completed_at

    @property
    def submit_reason(self) -> Optional[SubmitReason]:
        return self._submit_reason

    @property
    def result(self) -> Optional[GradingResult]:
        return self._result

    @property
    def attempt(self) -> Optional[AttemptRecord]:
        return self._attempt

    @property
    def last_error(self) -> Optional[PersistenceError]:
        return self._last_error
