"""
Pydantic schemas for manual review of attempts
"""
from pydantic import BaseModel, Field
from typing import Dict, Optional
from uuid import UUID


class AttemptReviewRequest(BaseModel):
    """Manual grading of one attempt"""
    graded_by: UUID
    question_scores: Dict[UUID, int] = Field(
        default_factory=dict, description="Awarded points per question id"
    )
    question_feedback: Dict[UUID, str] = Field(default_factory=dict)
    feedback: Optional[str] = Field(None, max_length=5000)
