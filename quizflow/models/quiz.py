"""
Quiz model - stores quizzes served to the session engine
"""
from sqlalchemy import Column, String, TIMESTAMP, JSON, func
from quizflow.database import Base
import uuid


class Quiz(Base):
    """
    Quizzes table - one row per quiz slug, questions kept as JSON
    """
    __tablename__ = "quizzes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    quiz_type = Column(String(20), nullable=False)  # mcq, code, blanks, openended, flashcard
    questions = Column(JSON, nullable=False)  # Full question data
    created_at = Column(TIMESTAMP, server_default=func.now())

    def __repr__(self):
        return f"<Quiz(id={self.id}, slug={self.slug}, type={self.quiz_type})>"
