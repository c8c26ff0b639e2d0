"""
Manual review of quiz attempts

The attempt row is never modified; the review lives in its own table and
takes precedence over the automatic score wherever results are shown.
"""
import logging
from datetime import datetime, timezone
from typing import List, Literal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from quiz_engine.domain import AttemptRecord
from quiz_engine.exceptions import NotFoundError, PersistenceError, QuizValidationError
from quiz_engine.models import Quiz, QuizAttempt, QuizAttemptReview, QuizQuestion
from quiz_engine.schemas.review import AttemptReviewRequest
from quiz_engine.services.attempt_ledger import attempt_to_record
from quiz_engine.services.grading_service import grading_service
from quiz_engine.services.question_bank import question_to_definition

logger = logging.getLogger(__name__)

GradedFilter = Literal["all", "graded", "ungraded"]


class AttemptReviewService:
    """Lists attempts of a quiz and stores manual grading"""

    def list_quiz_attempts(
        self, db: Session, quiz_id: UUID, graded: GradedFilter = "all"
    ) -> List[AttemptRecord]:
        """Every learner's attempts on a quiz, most recent first"""
        query = (
            db.query(QuizAttempt)
            .options(selectinload(QuizAttempt.review))
            .filter(QuizAttempt.quiz_id == quiz_id)
        )
        if graded == "graded":
            query = query.filter(QuizAttempt.review.has())
        elif graded == "ungraded":
            query = query.filter(~QuizAttempt.review.has())

        rows = query.order_by(QuizAttempt.submitted_at.desc()).all()
        return [attempt_to_record(row) for row in rows]

    def review_attempt(
        self, db: Session, attempt_id: UUID, request: AttemptReviewRequest
    ) -> AttemptRecord:
        """
        Award points per question and store feedback

        Questions without awarded points keep their automatic score.

        Raises:
            NotFoundError: attempt or its quiz missing
            QuizValidationError: points given for a question outside the quiz
        """
        attempt = db.query(QuizAttempt).filter(QuizAttempt.id == attempt_id).first()
        if attempt is None:
            raise NotFoundError(f"Attempt {attempt_id} not found")

        quiz = db.query(Quiz).filter(Quiz.id == attempt.quiz_id).first()
        if quiz is None:
            raise NotFoundError(f"Quiz {attempt.quiz_id} no longer exists")

        questions = [
            question_to_definition(row)
            for row in db.query(QuizQuestion)
            .filter(QuizQuestion.quiz_id == quiz.id)
            .order_by(QuizQuestion.order_index)
            .all()
        ]
        known_ids = {str(q.id) for q in questions}

        overrides = {str(q_id): points for q_id, points in request.question_scores.items()}
        feedback = {str(q_id): text for q_id, text in request.question_feedback.items()}
        unknown = (set(overrides) | set(feedback)) - known_ids
        if unknown:
            raise QuizValidationError(
                f"Questions not part of quiz {quiz.id}: {', '.join(sorted(unknown))}"
            )

        result = grading_service.regrade_with_overrides(
            questions, attempt.answers or {}, overrides, quiz.passing_score
        )
        awarded = {grade.question_id: grade.points_earned for grade in result.breakdown}

        review = attempt.review or QuizAttemptReview(attempt_id=attempt.id)
        review.question_scores = awarded
        review.question_feedback = feedback
        review.feedback = request.feedback
        review.score = result.earned
        review.percentage = result.percentage
        review.passed = result.passed
        review.graded_by = request.graded_by
        review.graded_at = datetime.now(timezone.utc)

        try:
            db.add(review)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save review for attempt {attempt_id}: {str(e)}")
            raise PersistenceError("Could not save review", cause=e) from e

        db.refresh(attempt)
        logger.info(
            f"Attempt {attempt_id} reviewed by {request.graded_by}: "
            f"{result.earned}/{result.total_possible} ({result.percentage}%)"
        )
        return attempt_to_record(attempt)


# Global instance
attempt_review_service = AttemptReviewService()
