"""
Quiz storage service and the database-backed quiz source
"""
import logging
from typing import Any, Iterable, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quizflow.database import SessionLocal
from quizflow.errors import LoadFailure
from quizflow.models import Quiz
from quizflow.schemas.quiz import Question, QuizCreate, QuizPayload, QuizType

logger = logging.getLogger(__name__)


def parse_questions(items: Iterable[Any], default_type: Optional[QuizType] = None) -> List[Question]:
    """
    Validate raw question records, skipping the ones that cannot be used

    Args:
        items: Question dicts (or Question instances)
        default_type: Type for records that do not carry one

    Returns:
        Valid questions in their original order, first occurrence of each id
    """
    questions: List[Question] = []
    seen = set()

    for index, item in enumerate(items or []):
        if isinstance(item, Question):
            question = item
        else:
            if not isinstance(item, dict):
                logger.warning(f"Skipping question #{index}: not an object")
                continue
            data = dict(item)
            if default_type is not None and not data.get("type"):
                data["type"] = default_type.value
            try:
                question = Question.model_validate(data)
            except ValidationError as e:
                logger.warning(f"Skipping malformed question #{index}: {e.error_count()} errors")
                continue

        key = str(question.id).strip()
        if key in seen:
            logger.warning(f"Skipping duplicate question id {question.id}")
            continue
        seen.add(key)
        questions.append(question)

    return questions


class QuizService:
    """Service for storing and looking up quizzes"""

    def get_quiz(self, db: Session, slug: str) -> Optional[Quiz]:
        return db.query(Quiz).filter(Quiz.slug == slug).first()

    def create_quiz(self, db: Session, data: QuizCreate) -> Quiz:
        """
        Store a new quiz

        Args:
            db: Database session
            data: Validated quiz definition

        Returns:
            Stored quiz row
        """
        quiz = Quiz(
            slug=data.slug,
            title=data.title,
            quiz_type=data.quiz_type.value,
            questions=[q.model_dump(mode="json", exclude_none=True) for q in data.questions],
        )
        db.add(quiz)
        db.commit()
        db.refresh(quiz)

        logger.info(f"Quiz created: {quiz.slug} ({len(data.questions)} questions)")
        return quiz

    def to_payload(self, quiz: Quiz) -> QuizPayload:
        quiz_type = QuizType(quiz.quiz_type)
        return QuizPayload(
            quiz_id=quiz.id,
            slug=quiz.slug,
            title=quiz.title,
            quiz_type=quiz_type,
            questions=parse_questions(quiz.questions, default_type=quiz_type),
        )


class DatabaseQuizSource:
    """Quiz source collaborator for the session machine"""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def fetch_quiz(self, slug: str, quiz_type: Optional[Union[QuizType, str]] = None) -> QuizPayload:
        """
        Load a quiz by slug

        Raises:
            LoadFailure: quiz missing, of another type, or database unavailable
        """
        db = self.session_factory()
        try:
            quiz = quiz_service.get_quiz(db, slug)
            if not quiz:
                raise LoadFailure(f"Quiz not found: {slug}")
            if quiz_type is not None and quiz.quiz_type != QuizType(quiz_type).value:
                raise LoadFailure(f"Quiz {slug} is a {quiz.quiz_type} quiz, not {QuizType(quiz_type).value}")
            return quiz_service.to_payload(quiz)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load quiz {slug}: {str(e)}")
            raise LoadFailure(f"Quiz source unavailable: {str(e)}")
        except (ValueError, ValidationError) as e:
            logger.error(f"Malformed quiz {slug}: {str(e)}")
            raise LoadFailure(f"Quiz {slug} is malformed")
        finally:
            db.close()


# Global instance
quiz_service = QuizService()
