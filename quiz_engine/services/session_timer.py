"""
Background countdown for timed quiz sessions
"""
import asyncio
import logging
from typing import Optional

from quiz_engine.config import settings
from quiz_engine.exceptions import PersistenceError
from quiz_engine.services.quiz_session import QuizSession, SessionState

logger = logging.getLogger(__name__)


class SessionTimer:
    """
    Calls session.tick() every interval while the session is in progress

    The task is cancelled as soon as the session leaves InProgress, so no
    tick can fire after a manual submission.
    """

    def __init__(self, session: QuizSession, interval: Optional[float] = None):
        self.session = session
        self.interval = interval if interval is not None else settings.SESSION_TICK_SECONDS
        self._task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def start(self) -> None:
        """
        Schedule the ticking task on the running event loop

        Raises:
            RuntimeError: called without a running event loop
        """
        if self.session.quiz is None or not self.session.quiz.is_timed:
            return
        self._loop = asyncio.get_running_loop()
        self.session.add_listener(self._on_state_change)
        self._task = self._loop.create_task(self._run(), name=f"quiz-timer-{self.session.id}")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if not self.running:
            return
        # The listener may fire from a worker thread
        try:
            self._loop.call_soon_threadsafe(self._task.cancel)
        except RuntimeError:
            logger.debug(f"Event loop closed, timer for session {self.session.id} already gone")

    def _on_state_change(self, session: QuizSession, state: SessionState) -> None:
        if state is not SessionState.IN_PROGRESS:
            self.cancel()

    async def _run(self) -> None:
        while self.session.state is SessionState.IN_PROGRESS:
            await asyncio.sleep(self.interval)
            try:
                await asyncio.to_thread(self.session.tick)
            except PersistenceError as e:
                # Session stays in Submitting; the learner retries via submit()
                logger.error(f"Automatic submit failed for session {self.session.id}: {e}")
                return
