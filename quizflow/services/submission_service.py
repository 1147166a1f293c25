"""
Quiz submission service and the database-backed submission backend
"""
import logging
from typing import Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizflow.database import SessionLocal
from quizflow.errors import SubmissionFailure
from quizflow.models import QuizAttempt
from quizflow.schemas.quiz import Question, QuizType
from quizflow.schemas.result import Answer, Result, SubmissionPayload
from quizflow.services.answer_store import answer_key
from quizflow.services.correctness_service import correctness_service
from quizflow.services.quiz_service import parse_questions, quiz_service
from quizflow.services.results_service import results_service

logger = logging.getLogger(__name__)


class SubmissionService:
    """
    Records submitted attempts.

    The canonical result is aggregated from the stored questions. Every
    submitted answer is graded again against its stored question with the
    same deterministic rules the session engine uses, so the preview and
    the stored score agree and client-sent correctness is never trusted.
    """

    def record_attempt(self, db: Session, payload: SubmissionPayload) -> Result:
        """
        Store an attempt and return its canonical result

        Args:
            db: Database session
            payload: Submitted attempt

        Returns:
            Canonical Result

        Raises:
            SubmissionFailure: unknown quiz or type mismatch
        """
        quiz = quiz_service.get_quiz(db, payload.slug)
        if not quiz:
            raise SubmissionFailure(f"Quiz not found: {payload.slug}")
        if quiz.quiz_type != payload.quiz_type.value:
            raise SubmissionFailure(
                f"Quiz {payload.slug} is a {quiz.quiz_type} quiz, not {payload.quiz_type.value}"
            )

        quiz_type = QuizType(quiz.quiz_type)
        questions = parse_questions(quiz.questions, default_type=quiz_type)
        answers = self.regrade(questions, payload.answers)
        result = results_service.aggregate(questions, answers, quiz_type, quiz.title, quiz.slug)

        attempt = QuizAttempt(
            quiz_id=quiz.id,
            user_id=payload.user_id,
            quiz_type=quiz.quiz_type,
            answers=[a.model_dump(mode="json") for a in answers],
            result=result.model_dump(mode="json"),
            score=result.score,
            max_score=result.max_score,
            percentage=result.percentage,
            time_taken_seconds=payload.time_taken_seconds,
        )
        db.add(attempt)
        db.commit()

        logger.info(
            f"Quiz attempt saved: {attempt.id}, {payload.slug} "
            f"score: {result.score}/{result.max_score}, user: {payload.user_id}"
        )
        return result

    def regrade(self, questions: List[Question], answers: List[Answer]) -> List[Answer]:
        """
        Grade submitted answers against the stored questions

        Answers for ids outside the quiz are dropped; the last answer for an
        id wins.
        """
        by_id = {answer_key(q.id): q for q in questions}
        graded: Dict[str, Answer] = {}
        for answer in answers:
            key = answer_key(answer.question_id)
            question = by_id.get(key)
            if question is None:
                logger.warning(f"Dropping submitted answer for unknown question {answer.question_id!r}")
                continue
            resolution = correctness_service.resolve(question, answer.raw_value, answer.hints_used)
            graded[key] = answer.model_copy(
                update={
                    "question_id": question.id,
                    "type": question.type,
                    "raw_value": resolution.normalized_user_answer,
                    "is_correct": resolution.is_correct,
                    "similarity": resolution.similarity,
                }
            )
        return list(graded.values())

    def latest_result(self, db: Session, slug: str, user_id: Optional[str]) -> Optional[Result]:
        """Most recent stored result for a user on a quiz"""
        quiz = quiz_service.get_quiz(db, slug)
        if not quiz:
            return None

        attempt = (
            db.query(QuizAttempt)
            .filter(QuizAttempt.quiz_id == quiz.id, QuizAttempt.user_id == user_id)
            .order_by(QuizAttempt.created_at.desc())
            .first()
        )
        if not attempt or not attempt.result:
            return None

        try:
            return Result.model_validate(attempt.result)
        except ValidationError as e:
            logger.error(f"Stored result for attempt {attempt.id} is malformed: {e.error_count()} errors")
            return None


class DatabaseSubmissionBackend:
    """Submission backend collaborator for the session machine"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def submit(self, payload: SubmissionPayload) -> Result:
        db = self.session_factory()
        try:
            return submission_service.record_attempt(db, payload)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store attempt for {payload.slug}: {str(e)}")
            db.rollback()
            raise SubmissionFailure(f"Failed to submit quiz: {str(e)}")
        finally:
            db.close()

    async def fetch_result(self, slug: str, user_id: Optional[str]) -> Optional[Result]:
        db = self.session_factory()
        try:
            return submission_service.latest_result(db, slug, user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch result for {slug}: {str(e)}")
            return None
        finally:
            db.close()


# Global instance
submission_service = SubmissionService()
