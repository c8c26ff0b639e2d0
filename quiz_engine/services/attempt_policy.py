"""
Attempt-limit gate and best-attempt selection
"""
import logging
from typing import Optional, Sequence
from uuid import UUID

from quiz_engine.domain import AttemptRecord, QuizDefinition
from quiz_engine.exceptions import AttemptLimitExceeded

logger = logging.getLogger(__name__)


def can_start(quiz: QuizDefinition, attempts: Sequence[AttemptRecord]) -> bool:
    return len(attempts) < quiz.max_attempts


def ensure_can_start(
    quiz: QuizDefinition,
    attempts: Sequence[AttemptRecord],
    learner_id: Optional[UUID] = None,
) -> None:
    """
    Refuse a new session once the learner used every allowed attempt

    Raises:
        AttemptLimitExceeded: attempt count reached quiz.max_attempts
    """
    if not can_start(quiz, attempts):
        logger.info(
            f"Attempt limit reached for quiz {quiz.id}: {len(attempts)}/{quiz.max_attempts}"
        )
        raise AttemptLimitExceeded(quiz.id, len(attempts), quiz.max_attempts, learner_id)


def best_attempt(attempts: Sequence[AttemptRecord]) -> Optional[AttemptRecord]:
    """
    Attempt with the highest percentage (reviewed percentage when graded)

    Ties go to the attempt listed first, i.e. the most recent one.
    """
    best = None
    for attempt in attempts:
        if best is None or attempt.effective_percentage > best.effective_percentage:
            best = attempt
    return best
