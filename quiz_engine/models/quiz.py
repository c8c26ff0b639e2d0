"""
Quiz and QuizQuestion models - administrator-defined assessments
"""
from sqlalchemy import (
    Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String,
    Text, UniqueConstraint, Uuid, func,
)
from sqlalchemy.orm import relationship
from quiz_engine.database import Base, JSONType
from quiz_engine.domain import scope_from_columns
import uuid


class Quiz(Base):
    """
    Quizzes table - one assessment with timing, pass policy and a scope

    The scope columns (course_id, program_id, bible_school_context) are
    derived from quiz_type; the check constraint rejects any combination
    that does not match it.
    """
    __tablename__ = "quizzes"
    __table_args__ = (
        CheckConstraint(
            "(quiz_type = 'course' AND course_id IS NOT NULL AND program_id IS NULL"
            " AND bible_school_context IS NULL)"
            " OR (quiz_type = 'program' AND program_id IS NOT NULL AND bible_school_context IS NULL)"
            " OR (quiz_type = 'bible_school' AND course_id IS NULL AND program_id IS NULL)"
            " OR (quiz_type = 'general' AND course_id IS NULL AND program_id IS NULL"
            " AND bible_school_context IS NULL)",
            name="ck_quizzes_scope",
        ),
        CheckConstraint("passing_score BETWEEN 0 AND 100", name="ck_quizzes_passing_score"),
        CheckConstraint("max_attempts >= 1", name="ck_quizzes_max_attempts"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    instructions = Column(Text)
    time_limit = Column(Integer)  # minutes, NULL = untimed
    passing_score = Column(Integer, nullable=False, default=70)
    max_attempts = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    quiz_type = Column(String(20), nullable=False, default="general")
    course_id = Column(Uuid, index=True)
    program_id = Column(Uuid, index=True)
    bible_school_context = Column(String(100))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    questions = relationship(
        "QuizQuestion",
        back_populates="quiz",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="QuizQuestion.order_index",
    )

    @property
    def scope(self):
        return scope_from_columns(
            self.quiz_type, self.course_id, self.program_id, self.bible_school_context
        )

    def __repr__(self):
        return f"<Quiz(id={self.id}, title={self.title}, quiz_type={self.quiz_type})>"


class QuizQuestion(Base):
    """
    Quiz questions table - owned by exactly one quiz, ordered by order_index
    """
    __tablename__ = "quiz_questions"
    __table_args__ = (
        UniqueConstraint("quiz_id", "order_index", name="uq_quiz_questions_order"),
        CheckConstraint("points >= 1", name="ck_quiz_questions_points"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    quiz_id = Column(
        Uuid, ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_text = Column(Text, nullable=False)
    question_type = Column(String(20), nullable=False)
    options = Column(JSONType)  # [{"text": "...", "correct": true}], multiple_choice only
    correct_answer = Column(Text)  # true_false / short_answer only
    points = Column(Integer, nullable=False, default=1)
    order_index = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    quiz = relationship("Quiz", back_populates="questions")

    def __repr__(self):
        return f"<QuizQuestion(id={self.id}, quiz_id={self.quiz_id}, order={self.order_index})>"
