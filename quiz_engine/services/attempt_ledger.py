"""
Attempt ledger - append-only record of finalized quiz attempts
"""
import dataclasses
import logging
from typing import Callable, List, Protocol
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from quiz_engine.domain import AttemptRecord, AttemptReview
from quiz_engine.exceptions import PersistenceError
from quiz_engine.models import QuizAttempt, QuizAttemptReview

logger = logging.getLogger(__name__)


class AttemptLedger(Protocol):
    """What the engine needs from the attempt store"""

    def list_attempts(self, quiz_id: UUID, learner_id: UUID) -> List[AttemptRecord]:
        ...

    def create_attempt(self, record: AttemptRecord) -> AttemptRecord:
        """Store once per record.id; a repeated id returns the stored attempt"""
        ...


def review_to_record(review: QuizAttemptReview) -> AttemptReview:
    return AttemptReview(
        score=review.score,
        percentage=review.percentage,
        passed=review.passed,
        question_scores=dict(review.question_scores or {}),
        question_feedback=dict(review.question_feedback or {}),
        feedback=review.feedback,
        graded_by=review.graded_by,
        graded_at=review.graded_at,
    )


def attempt_to_record(attempt: QuizAttempt) -> AttemptRecord:
    return AttemptRecord(
        id=attempt.id,
        quiz_id=attempt.quiz_id,
        learner_id=attempt.learner_id,
        answers=dict(attempt.answers or {}),
        score=attempt.score,
        total_points=attempt.total_points,
        percentage=attempt.percentage,
        passed=attempt.passed,
        time_taken=attempt.time_taken,
        needs_review=attempt.needs_review,
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
        review=review_to_record(attempt.review) if attempt.review else None,
    )


class SqlAttemptLedger:
    """SQLAlchemy-backed ledger; one database session per operation"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def list_attempts(self, quiz_id: UUID, learner_id: UUID) -> List[AttemptRecord]:
        """Attempts of one learner on one quiz, most recent first"""
        try:
            with self.session_factory() as db:
                rows = (
                    db.query(QuizAttempt)
                    .options(selectinload(QuizAttempt.review))
                    .filter(
                        QuizAttempt.quiz_id == quiz_id,
                        QuizAttempt.learner_id == learner_id,
                    )
                    .order_by(QuizAttempt.submitted_at.desc())
                    .all()
                )
                return [attempt_to_record(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Failed to list attempts for quiz {quiz_id}: {str(e)}")
            raise PersistenceError("Could not read quiz attempts", cause=e) from e

    def create_attempt(self, record: AttemptRecord) -> AttemptRecord:
        """
        Persist a new attempt

        The row is keyed by record.id when the caller assigned one. If that
        id is already stored the stored attempt is returned and nothing is
        written, so resubmitting the same record never adds a second row.

        Raises:
            PersistenceError: store unreachable or write rejected
        """
        attempt_id = record.id or uuid4()
        try:
            with self.session_factory() as db:
                existing = (
                    db.query(QuizAttempt)
                    .options(selectinload(QuizAttempt.review))
                    .filter(QuizAttempt.id == attempt_id)
                    .first()
                )
                if existing is not None:
                    logger.info(f"Quiz attempt {attempt_id} already stored, not writing again")
                    return attempt_to_record(existing)

                attempt = QuizAttempt(
                    id=attempt_id,
                    quiz_id=record.quiz_id,
                    learner_id=record.learner_id,
                    answers=dict(record.answers),
                    score=record.score,
                    total_points=record.total_points,
                    percentage=record.percentage,
                    passed=record.passed,
                    time_taken=record.time_taken,
                    needs_review=record.needs_review,
                    started_at=record.started_at,
                    submitted_at=record.submitted_at,
                )
                try:
                    db.add(attempt)
                    db.commit()
                except SQLAlchemyError:
                    db.rollback()
                    raise
        except SQLAlchemyError as e:
            logger.error(f"Failed to save quiz attempt: {str(e)}")
            raise PersistenceError("Could not save quiz attempt", cause=e) from e

        logger.info(
            f"Quiz attempt saved: {attempt_id}, quiz={record.quiz_id}, "
            f"score={record.score}/{record.total_points} ({record.percentage}%)"
        )
        # Built from the committed values; no read-back after commit
        return dataclasses.replace(record, id=attempt_id)
