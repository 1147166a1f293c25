"""
Database models package
"""
from quizflow.models.quiz import Quiz
from quizflow.models.quiz_attempt import QuizAttempt

__all__ = ["Quiz", "QuizAttempt"]
