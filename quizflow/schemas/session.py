"""
Pydantic schemas for the session API
"""
from pydantic import BaseModel, Field
from typing import Any, List, Optional

from quizflow.schemas.quiz import QuestionId, QuizType
from quizflow.schemas.result import Answer, Result, ResultSource

# Client key chosen by the browser; scopes recovery handles and snapshots
CLIENT_ID_PATTERN = "^[A-Za-z0-9_-]+$"


class SessionStart(BaseModel):
    """Request schema for starting or resuming an attempt"""
    quiz_slug: str
    quiz_type: QuizType
    client_id: str = Field(..., min_length=1, max_length=128, pattern=CLIENT_ID_PATTERN)


class OptionView(BaseModel):
    id: QuestionId
    text: str


class QuestionView(BaseModel):
    """Question as shown to the user; reference answers are never exposed"""
    id: QuestionId
    prompt: str
    type: QuizType
    options: List[OptionView] = Field(default_factory=list)
    code_snippet: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class SessionView(BaseModel):
    """Session state and the flags the UI renders from"""
    session_id: str
    quiz_slug: Optional[str]
    quiz_type: Optional[QuizType]
    quiz_title: str
    status: str
    current_index: int
    total_questions: int
    answered_count: int
    progress_percent: int
    current_question: Optional[QuestionView] = None
    is_loading: bool
    is_submitting: bool
    is_complete: bool
    has_error: bool
    error: Optional[str] = None
    pending_auth_required: bool
    temp_result: Optional[Result] = None


class AnswerRequest(BaseModel):
    """Schema for answering a question"""
    question_id: QuestionId
    value: Any = None
    time_spent_seconds: int = Field(0, ge=0)
    hints_used: Optional[int] = Field(None, ge=0)


class AnswerResponse(BaseModel):
    accepted: bool
    answer: Optional[Answer] = None
    feedback: Optional[str] = None  # closeness hint for blanks and open-ended answers
    session: SessionView


class CompleteRequest(BaseModel):
    """Finish an attempt; without a user id the attempt waits for sign-in"""
    user_id: Optional[str] = None
    return_path: Optional[str] = None


class CompletionResponse(BaseModel):
    session: SessionView
    result: Optional[Result] = None
    sign_in_url: Optional[str] = None


class SubmitRequest(BaseModel):
    user_id: Optional[str] = None


class AuthReturn(BaseModel):
    """Sent by the client once the sign-in provider hands control back"""
    quiz_slug: str
    quiz_type: QuizType
    client_id: str = Field(..., min_length=1, max_length=128, pattern=CLIENT_ID_PATTERN)
    user_id: str


class AuthReturnResponse(BaseModel):
    restored: bool
    session: SessionView
    result: Optional[Result] = None


class ResultResponse(BaseModel):
    """Reconciled result with its presentational extras"""
    result: Result
    source: ResultSource
    display_percentage: int
    feedback: str
