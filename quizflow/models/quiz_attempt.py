"""
QuizAttempt model - stores submitted attempts and their canonical result
"""
from sqlalchemy import Column, String, Integer, TIMESTAMP, JSON, ForeignKey, func
from datetime import datetime, timezone
from quizflow.database import Base
import uuid


class QuizAttempt(Base):
    """
    Quiz attempts table - stores user submissions and scoring results
    """
    __tablename__ = "quiz_attempts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    quiz_id = Column(String(36), ForeignKey("quizzes.id"), nullable=False, index=True)
    user_id = Column(String(255), nullable=True, index=True)
    quiz_type = Column(String(20), nullable=False)
    answers = Column(JSON)  # Normalized answers as submitted
    result = Column(JSON)  # Canonical Result document
    score = Column(Integer)
    max_score = Column(Integer)
    percentage = Column(Integer)
    time_taken_seconds = Column(Integer, default=0)
    created_at = Column(TIMESTAMP, default=lambda: datetime.now(timezone.utc), server_default=func.now())

    def __repr__(self):
        return f"<QuizAttempt(user_id={self.user_id}, quiz_id={self.quiz_id}, score={self.score}/{self.max_score})>"
