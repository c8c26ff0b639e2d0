"""
Quiz grading service
multiple_choice / true_false: exact match
short_answer: exact match after trimming and case-folding
long_answer: never auto-scored, flagged for manual review
"""
import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from quiz_engine.domain import QuestionDefinition, QuestionType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuestionGrade:
    """Outcome for a single question"""
    question_id: str
    question_type: QuestionType
    user_answer: Any
    points_earned: int
    max_points: int
    is_correct: bool
    needs_review: bool = False


@dataclass(frozen=True)
class GradingResult:
    """Aggregate outcome for a whole submission"""
    earned: int
    total_possible: int
    percentage: int
    passed: bool
    breakdown: List[QuestionGrade] = field(default_factory=list)

    @property
    def needs_review(self) -> bool:
        """True when the score is provisional because of long-answer items"""
        return any(grade.needs_review for grade in self.breakdown)


def _normalize(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip().casefold()


def calculate_percentage(earned: int, total_possible: int) -> int:
    """
    Percentage rounded to the nearest integer (halves round up)

    A quiz worth nothing scores 0 rather than dividing by zero.
    """
    if total_possible <= 0:
        return 0
    return int(earned * 100 / total_possible + 0.5)


class GradingService:
    """
    Scores a submission question by question

    One rule per question type; unanswered questions score 0. There is no
    partial credit and no fuzzy matching.
    """

    def score_question(self, question: QuestionDefinition, user_answer: Any) -> int:
        """Points earned for one answer"""
        if question.question_type == QuestionType.MULTIPLE_CHOICE:
            return self._grade_multiple_choice(question, user_answer)
        if question.question_type == QuestionType.TRUE_FALSE:
            return self._grade_true_false(question, user_answer)
        if question.question_type == QuestionType.SHORT_ANSWER:
            return self._grade_short_answer(question, user_answer)
        # long_answer: manual review only
        return 0

    def grade_quiz(
        self,
        questions: Sequence[QuestionDefinition],
        answers: Mapping[str, Any],
        passing_score: int,
    ) -> GradingResult:
        """
        Grade a complete submission

        Args:
            questions: Ordered questions of the quiz
            answers: Learner answers {question_id: value}
            passing_score: Pass threshold in percent

        Returns:
            GradingResult with per-question breakdown
        """
        breakdown = []
        earned = 0
        total_possible = 0

        for question in questions:
            q_id = str(question.id)
            user_answer = answers.get(q_id)
            points = self.score_question(question, user_answer)

            earned += points
            total_possible += question.points

            breakdown.append(QuestionGrade(
                question_id=q_id,
                question_type=question.question_type,
                user_answer=user_answer,
                points_earned=points,
                max_points=question.points,
                is_correct=points == question.points,
                needs_review=question.question_type == QuestionType.LONG_ANSWER,
            ))

        percentage = calculate_percentage(earned, total_possible)
        result = GradingResult(
            earned=earned,
            total_possible=total_possible,
            percentage=percentage,
            passed=percentage >= passing_score,
            breakdown=breakdown,
        )

        logger.info(
            f"Quiz graded: {earned}/{total_possible} ({percentage}%), "
            f"passed={result.passed}, needs_review={result.needs_review}"
        )

        return result

    def regrade_with_overrides(
        self,
        questions: Sequence[QuestionDefinition],
        answers: Mapping[str, Any],
        overrides: Mapping[str, int],
        passing_score: int,
    ) -> GradingResult:
        """
        Grade again with manually awarded points taking precedence

        Awarded points are clamped to 0..question.points; questions without
        an override keep their automatic score.
        """
        automatic = self.grade_quiz(questions, answers, passing_score)
        breakdown = []
        earned = 0

        for grade in automatic.breakdown:
            points = grade.points_earned
            if grade.question_id in overrides:
                points = max(0, min(int(overrides[grade.question_id]), grade.max_points))
            earned += points
            breakdown.append(QuestionGrade(
                question_id=grade.question_id,
                question_type=grade.question_type,
                user_answer=grade.user_answer,
                points_earned=points,
                max_points=grade.max_points,
                is_correct=points == grade.max_points,
            ))

        percentage = calculate_percentage(earned, automatic.total_possible)
        return GradingResult(
            earned=earned,
            total_possible=automatic.total_possible,
            percentage=percentage,
            passed=percentage >= passing_score,
            breakdown=breakdown,
        )

    def _grade_multiple_choice(self, question: QuestionDefinition, user_answer: Any) -> int:
        correct_option = question.correct_option()
        if correct_option is None:
            logger.warning(f"Question {question.id} has no option flagged correct")
            return 0
        return question.points if user_answer == correct_option.text else 0

    def _grade_true_false(self, question: QuestionDefinition, user_answer: Any) -> int:
        if question.correct_answer is None:
            return 0
        return question.points if user_answer == question.correct_answer else 0

    def _grade_short_answer(self, question: QuestionDefinition, user_answer: Any) -> int:
        expected = _normalize(question.correct_answer)
        if expected is None:
            return 0
        return question.points if _normalize(user_answer) == expected else 0


# Global instance
grading_service = GradingService()
