"""
Pydantic schemas for quizzes and questions
"""
from enum import Enum
from pydantic import AliasChoices, BaseModel, Field
from typing import List, Optional, Union

QuestionId = Union[str, int]


class QuizType(str, Enum):
    """Quiz format; decides which correctness rule applies"""
    MCQ = "mcq"
    CODE = "code"
    BLANKS = "blanks"
    OPENENDED = "openended"
    FLASHCARD = "flashcard"


class Option(BaseModel):
    """Selectable option for mcq and code questions"""
    id: QuestionId
    text: str = ""
    is_correct: Optional[bool] = Field(
        None, validation_alias=AliasChoices("is_correct", "isCorrect")
    )

    class Config:
        frozen = True


class Question(BaseModel):
    """
    A single question, immutable once loaded.

    Field names coming from quiz sources vary (``question`` vs ``prompt``,
    ``answer`` vs ``correctAnswer``); they are folded into one shape here.
    """
    id: QuestionId
    prompt: str = Field("", validation_alias=AliasChoices("prompt", "question", "text"))
    type: QuizType
    reference_answer: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "reference_answer", "referenceAnswer", "correct_answer", "correctAnswer", "answer"
        ),
    )
    acceptable_answers: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("acceptable_answers", "acceptableAnswers"),
    )
    options: List[Option] = Field(default_factory=list)
    correct_option_id: Optional[QuestionId] = Field(
        None, validation_alias=AliasChoices("correct_option_id", "correctOptionId")
    )
    code_snippet: Optional[str] = Field(
        None, validation_alias=AliasChoices("code_snippet", "codeSnippet")
    )
    tags: List[str] = Field(default_factory=list)
    similarity_threshold: Optional[float] = Field(
        None,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("similarity_threshold", "similarityThreshold"),
    )

    class Config:
        frozen = True


class QuizPayload(BaseModel):
    """What the quiz source hands to the session machine"""
    quiz_id: str
    slug: str
    title: str
    quiz_type: QuizType
    questions: List[Question]


class QuizCreate(BaseModel):
    """Request schema for registering a quiz"""
    slug: str = Field(..., min_length=1, max_length=255, pattern="^[a-z0-9][a-z0-9-]*$")
    title: str = Field(..., max_length=255)
    quiz_type: QuizType
    questions: List[Question]


class QuizResponse(BaseModel):
    """Response containing a stored quiz"""
    quiz_id: str
    slug: str
    title: str
    quiz_type: QuizType
    questions: List[Question]
    total_questions: int

    class Config:
        from_attributes = True
