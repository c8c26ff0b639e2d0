"""
QuizAttempt model - finalized, scored submissions
"""
from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, Text, Uuid, func,
)
from sqlalchemy.orm import relationship
from quiz_engine.database import Base, JSONType
import uuid


class QuizAttempt(Base):
    """
    Quiz attempts table - append-only history of learner submissions

    quiz_id is not a foreign key: attempts stay on record
    after the quiz they belong to is deleted.
    """
    __tablename__ = "quiz_attempts"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_id = Column(Uuid, nullable=False, index=True)
    learner_id = Column(Uuid, nullable=False, index=True)
    answers = Column(JSONType, nullable=False, default=dict)  # {question_id: value}
    score = Column(Integer, nullable=False)
    total_points = Column(Integer, nullable=False)
    percentage = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    time_taken = Column(Integer, nullable=False)  # seconds
    needs_review = Column(Boolean, nullable=False, default=False)
    started_at = Column(DateTime(timezone=True))
    submitted_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    review = relationship(
        "QuizAttemptReview",
        back_populates="attempt",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<QuizAttempt(learner_id={self.learner_id}, quiz_id={self.quiz_id}, percentage={self.percentage})>"


class QuizAttemptReview(Base):
    """
    Manual grading of one attempt (per-question points and feedback)
    """
    __tablename__ = "quiz_attempt_reviews"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    attempt_id = Column(
        Uuid, ForeignKey("quiz_attempts.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    question_scores = Column(JSONType, nullable=False, default=dict)
    question_feedback = Column(JSONType, nullable=False, default=dict)
    feedback = Column(Text)
    score = Column(Integer, nullable=False)
    percentage = Column(Integer, nullable=False)
    passed = Column(Boolean, nullable=False)
    graded_by = Column(Uuid)
    graded_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    attempt = relationship("QuizAttempt", back_populates="review")

    def __repr__(self):
        return f"<QuizAttemptReview(attempt_id={self.attempt_id}, percentage={self.percentage})>"
