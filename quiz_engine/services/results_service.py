"""
Attempt summaries and results views for learners
"""
import logging
from typing import List
from uuid import UUID

from quiz_engine.domain import AttemptRecord, QuestionType, QuizDefinition
from quiz_engine.exceptions import NotFoundError
from quiz_engine.schemas.session import (
    AttemptResponse, AttemptSummary, QuestionResult, QuizResultsResponse,
)
from quiz_engine.services.attempt_ledger import AttemptLedger
from quiz_engine.services.attempt_policy import best_attempt, can_start
from quiz_engine.services.grading_service import grading_service
from quiz_engine.services.question_bank import QuestionBank

logger = logging.getLogger(__name__)


def to_attempt_response(record: AttemptRecord) -> AttemptResponse:
    review = record.review
    return AttemptResponse(
        id=record.id,
        quiz_id=record.quiz_id,
        learner_id=record.learner_id,
        answers=record.answers,
        score=record.score,
        total_points=record.total_points,
        percentage=record.percentage,
        passed=record.passed,
        time_taken=record.time_taken,
        submitted_at=record.submitted_at,
        needs_review=record.needs_review and not record.is_graded,
        is_graded=record.is_graded,
        reviewed_score=review.score if review else None,
        reviewed_percentage=review.percentage if review else None,
        reviewed_passed=review.passed if review else None,
        feedback=review.feedback if review else None,
        question_feedback=dict(review.question_feedback) if review else {},
    )


def summarize_attempts(quiz: QuizDefinition, attempts: List[AttemptRecord]) -> AttemptSummary:
    """Attempt count against the limit plus the best attempt so far"""
    best = best_attempt(attempts)
    return AttemptSummary(
        attempts_used=len(attempts),
        max_attempts=quiz.max_attempts,
        can_take=can_start(quiz, attempts),
        best_attempt=to_attempt_response(best) if best else None,
    )


class ResultsService:
    """Builds the results view from the question bank and the attempt ledger"""

    def __init__(self, question_bank: QuestionBank, ledger: AttemptLedger):
        self.question_bank = question_bank
        self.ledger = ledger

    def results_for(self, quiz_id: UUID, learner_id: UUID) -> QuizResultsResponse:
        """
        Latest attempt with per-question outcome, best attempt and history

        Raises:
            NotFoundError: quiz missing or learner has no attempts
        """
        quiz, questions = self.question_bank.load(quiz_id)
        attempts = self.ledger.list_attempts(quiz_id, learner_id)
        if not attempts:
            raise NotFoundError(f"No attempts for quiz {quiz_id}")

        latest = attempts[0]
        best = best_attempt(attempts)
        review = latest.review

        question_results = []
        for question in questions:
            q_id = str(question.id)
            user_answer = latest.answers.get(q_id)
            awarded = None
            if review is not None and q_id in review.question_scores:
                awarded = review.question_scores[q_id]
                is_correct = awarded >= question.points
            else:
                is_correct = grading_service.score_question(question, user_answer) > 0

            correct_answer = question.correct_answer
            if question.question_type == QuestionType.MULTIPLE_CHOICE:
                option = question.correct_option()
                correct_answer = option.text if option else None

            question_results.append(QuestionResult(
                question_id=question.id,
                question_text=question.question_text,
                question_type=question.question_type,
                user_answer=user_answer,
                correct_answer=correct_answer,
                is_correct=is_correct,
                points=question.points,
                awarded_points=awarded,
                feedback=review.question_feedback.get(q_id) if review else None,
            ))

        return QuizResultsResponse(
            quiz_id=quiz.id,
            quiz_title=quiz.title,
            passing_score=quiz.passing_score,
            attempts_used=len(attempts),
            max_attempts=quiz.max_attempts,
            can_retake=can_start(quiz, attempts),
            latest_attempt=to_attempt_response(latest),
            best_attempt=to_attempt_response(best),
            question_results=question_results,
            history=[to_attempt_response(a) for a in attempts],
        )
