"""
Registry of live quiz sessions, one per learner per quiz
"""
import logging
import threading
from datetime import timedelta
from typing import Dict, Optional, Tuple
from uuid import UUID

from quiz_engine.config import settings
from quiz_engine.database import SessionLocal
from quiz_engine.exceptions import NotFoundError
from quiz_engine.services.attempt_ledger import AttemptLedger, SqlAttemptLedger
from quiz_engine.services.question_bank import QuestionBank, SqlQuestionBank
from quiz_engine.services.quiz_session import Clock, QuizSession, SessionState, utcnow
from quiz_engine.services.session_timer import SessionTimer
from quiz_engine.utils.cache import cache_service

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Creates, resumes and looks up quiz sessions"""

    def __init__(
        self,
        question_bank: QuestionBank,
        ledger: AttemptLedger,
        clock: Clock = utcnow,
        tick_seconds: Optional[float] = None,
        retention_seconds: Optional[int] = None,
        max_idle_seconds: Optional[int] = None,
    ):
        self.question_bank = question_bank
        self.ledger = ledger
        self.clock = clock
        self.tick_seconds = tick_seconds
        self.retention = timedelta(
            seconds=retention_seconds if retention_seconds is not None
            else settings.COMPLETED_SESSION_RETENTION_SECONDS
        )
        self.max_idle = timedelta(
            seconds=max_idle_seconds if max_idle_seconds is not None
            else settings.ABANDONED_SESSION_SECONDS
        )

        self._lock = threading.Lock()
        self._sessions: Dict[UUID, QuizSession] = {}
        self._live: Dict[Tuple[UUID, UUID], UUID] = {}
        self._timers: Dict[UUID, SessionTimer] = {}

    def start(self, quiz_id: UUID, learner_id: UUID) -> QuizSession:
        """
        Start a session, or resume the learner's unfinished one

        Raises:
            NotFoundError: quiz unavailable
            AttemptLimitExceeded: no attempts left
            PersistenceError: store unreachable
        """
        with self._lock:
            self._prune()

            existing = self._live_session(quiz_id, learner_id)
            if existing is not None:
                existing.tick()
                if existing.state is not SessionState.COMPLETED:
                    logger.info(f"Resuming session {existing.id} for learner {learner_id}")
                    return existing

            session = QuizSession(quiz_id, learner_id, self.question_bank, self.ledger, clock=self.clock)
            session.load()

            self._sessions[session.id] = session
            self._live[(quiz_id, learner_id)] = session.id
            self._start_timer(session)
            return session

    def get(self, session_id: UUID) -> QuizSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(f"Quiz session {session_id} not found")
        return session

    def timer_for(self, session_id: UUID) -> Optional[SessionTimer]:
        return self._timers.get(session_id)

    def _live_session(self, quiz_id: UUID, learner_id: UUID) -> Optional[QuizSession]:
        session_id = self._live.get((quiz_id, learner_id))
        if session_id is None:
            return None
        return self._sessions.get(session_id)

    def _start_timer(self, session: QuizSession) -> None:
        if session.quiz is None or not session.quiz.is_timed:
            return
        timer = SessionTimer(session, interval=self.tick_seconds)
        try:
            timer.start()
        except RuntimeError:
            # No event loop (sync caller): expiry is enforced by tick() on each request
            logger.debug(f"No running event loop, session {session.id} runs without background timer")
            return
        self._timers[session.id] = timer

    def _is_abandoned(self, session: QuizSession, now) -> bool:
        # Timed sessions end through tick(); only untimed ones can sit in progress forever
        return (
            session.state is SessionState.IN_PROGRESS
            and session.remaining_seconds() is None
            and session.started_at is not None
            and now - session.started_at > self.max_idle
        )

    def _prune(self) -> None:
        """
        Forget completed sessions once the retention window has passed, and
        untimed sessions left in progress longer than the idle cutoff
        """
        now = self.clock()
        expired = [
            session_id for session_id, session in self._sessions.items()
            if session.state is SessionState.COMPLETED
            and session.completed_at is not None
            and now - session.completed_at > self.retention
        ]
        abandoned = [
            session_id for session_id, session in self._sessions.items()
            if self._is_abandoned(session, now)
        ]
        for session_id in expired + abandoned:
            session = self._sessions.pop(session_id)
            self._timers.pop(session_id, None)
            key = (session.quiz_id, session.learner_id)
            if self._live.get(key) == session_id:
                del self._live[key]
        if expired:
            logger.debug(f"Pruned {len(expired)} completed sessions")
        if abandoned:
            logger.info(f"Dropped {len(abandoned)} abandoned sessions without submitting")


# Global instance
session_registry = SessionRegistry(
    question_bank=SqlQuestionBank(SessionLocal, cache_service),
    ledger=SqlAttemptLedger(SessionLocal),
)
