"""
Quiz source and submission backend API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
import logging
from quizflow.database import get_db
from quizflow.errors import SubmissionFailure
from quizflow.schemas.quiz import QuizCreate, QuizResponse, QuizType
from quizflow.schemas.result import Result, SubmissionPayload
from quizflow.services.quiz_service import quiz_service
from quizflow.services.submission_service import submission_service


router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)


def _get_quiz_or_404(db: Session, quiz_type: QuizType, slug: str):
    quiz = quiz_service.get_quiz(db, slug)
    if not quiz or quiz.quiz_type != quiz_type.value:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz


@router.post("", response_model=QuizResponse, status_code=201)
async def create_quiz(data: QuizCreate, db: Session = Depends(get_db)):
    """
    Register a quiz

    - Slugs are unique
    - Questions are stored as given and validated again on every load
    """
    if quiz_service.get_quiz(db, data.slug):
        raise HTTPException(status_code=409, detail=f"Quiz {data.slug} already exists")

    try:
        quiz = quiz_service.create_quiz(db, data)
    except Exception as e:
        logger.error(f"Failed to create quiz: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to create quiz: {str(e)}")

    payload = quiz_service.to_payload(quiz)
    return QuizResponse(**payload.model_dump(), total_questions=len(payload.questions))


@router.get("/{quiz_type}/{slug}", response_model=QuizResponse)
async def get_quiz(quiz_type: QuizType, slug: str, db: Session = Depends(get_db)):
    """Quiz source: questions for a slug"""
    quiz = _get_quiz_or_404(db, quiz_type, slug)
    payload = quiz_service.to_payload(quiz)
    return QuizResponse(**payload.model_dump(), total_questions=len(payload.questions))


@router.post("/{quiz_type}/{slug}/submit", response_model=Result)
async def submit_quiz(
    quiz_type: QuizType, slug: str, submission: SubmissionPayload, db: Session = Depends(get_db)
):
    """
    Submission backend: store an attempt and return its canonical result

    Every answer is graded again against the stored question list;
    client-sent correctness is ignored.
    """
    if submission.slug != slug or submission.quiz_type != quiz_type:
        raise HTTPException(status_code=400, detail="Submission does not match the quiz in the URL")

    _get_quiz_or_404(db, quiz_type, slug)

    try:
        logger.info(f"Recording attempt on {slug} for user {submission.user_id}")
        return submission_service.record_attempt(db, submission)
    except SubmissionFailure as e:
        db.rollback()
        raise HTTPException(status_code=422, detail=e.message)
    except Exception as e:
        logger.error(f"Failed to submit quiz: {str(e)}")
        db.rollback()
        raise HTTPException(status_code=500, detail=f"Failed to submit quiz: {str(e)}")


@router.get("/{quiz_type}/{slug}/result", response_model=Result)
async def get_latest_result(
    quiz_type: QuizType, slug: str, user_id: Optional[str] = None, db: Session = Depends(get_db)
):
    """Most recent stored result for a user"""
    _get_quiz_or_404(db, quiz_type, slug)

    result = submission_service.latest_result(db, slug, user_id)
    if result is None:
        raise HTTPException(status_code=404, detail="No result found")
    return result
