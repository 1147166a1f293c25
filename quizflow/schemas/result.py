"""
Pydantic schemas for answers, results and auth-redirect snapshots
"""
from enum import Enum
from pydantic import BaseModel, Field
from typing import List, Optional

from quizflow.schemas.quiz import QuestionId, QuizType


class Answer(BaseModel):
    """Normalized answer record; one per question per attempt"""
    question_id: QuestionId
    type: QuizType
    raw_value: str
    is_correct: bool
    similarity: Optional[float] = Field(None, ge=0.0, le=1.0)
    hints_used: Optional[int] = Field(None, ge=0)
    time_spent_seconds: int = Field(0, ge=0)
    answered_at_epoch_ms: int

    class Config:
        frozen = True


class QuestionResult(BaseModel):
    """Grading details for a single question"""
    question_id: QuestionId
    user_answer: str
    correct_answer: str
    is_correct: bool
    similarity: Optional[float] = None

    class Config:
        frozen = True


class Result(BaseModel):
    """
    Immutable snapshot of an attempt's outcome.

    ``review_incorrect_ids`` and ``still_learning_ids`` are only populated for
    flashcard quizzes.
    """
    quiz_slug: str
    title: str
    quiz_type: QuizType
    score: int
    max_score: int
    percentage: int = Field(..., ge=0, le=100)
    per_question: List[QuestionResult]
    completed_at_iso: str
    review_incorrect_ids: List[QuestionId] = Field(default_factory=list)
    still_learning_ids: List[QuestionId] = Field(default_factory=list)

    class Config:
        frozen = True


class ResultSource(str, Enum):
    """Where a reconciled result came from"""
    BACKEND = "backend"
    COMPUTED = "computed"
    RESTORED = "restored"


class AuthRedirectSnapshot(BaseModel):
    """Session state carried across a sign-in redirect"""
    quiz_slug: str
    quiz_type: QuizType
    answers: List[Answer] = Field(default_factory=list)
    current_index: int = Field(0, ge=0)
    temp_result: Optional[Result] = None
    return_path: str


class SubmissionPayload(BaseModel):
    """What the submission backend accepts"""
    slug: str
    quiz_id: str
    quiz_type: QuizType
    answers: List[Answer]
    time_taken_seconds: int = Field(0, ge=0)
    user_id: Optional[str] = None
