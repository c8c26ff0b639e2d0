"""
Database models package
"""
from quiz_engine.models.quiz import Quiz, QuizQuestion
from quiz_engine.models.quiz_attempt import QuizAttempt, QuizAttemptReview

__all__ = ["Quiz", "QuizQuestion", "QuizAttempt", "QuizAttemptReview"]
