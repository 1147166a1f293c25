"""Shared fixtures: in-memory database and storage, fake collaborators."""

import asyncio
import os

# Settings are read at import time; point them at throwaway backends first.
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["STORAGE_BACKEND"] = "memory"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from quizflow.errors import LoadFailure, SubmissionFailure
from quizflow.schemas.quiz import Question, QuizPayload, QuizType
from quizflow.services.results_service import results_service
from quizflow.utils.storage import MemoryStorage


def mcq_questions():
    """Three single-choice questions whose correct options are A, B and C."""
    return [
        Question(
            id=i + 1,
            prompt=f"Question {i + 1}",
            type=QuizType.MCQ,
            options=[{"id": letter, "text": f"Option {letter}"} for letter in "ABCD"],
            correct_option_id=correct,
        )
        for i, correct in enumerate("ABC")
    ]


def flashcards(count=5):
    return [
        Question(id=f"card-{i}", prompt=f"Front {i}", type=QuizType.FLASHCARD, reference_answer=f"Back {i}")
        for i in range(count)
    ]


class FakeQuizSource:
    """Quiz source returning a fixed payload; can fail or block until released."""

    def __init__(self, questions, quiz_type=QuizType.MCQ, title="Capitals", fail=False):
        self.questions = list(questions)
        self.quiz_type = quiz_type
        self.title = title
        self.fail = fail
        self.calls = 0
        self.release = None

    async def fetch_quiz(self, slug, quiz_type=None):
        self.calls += 1
        if self.release is not None:
            await self.release.wait()
        else:
            await asyncio.sleep(0)
        if self.fail:
            raise LoadFailure(f"Quiz source unreachable for {slug}")
        return QuizPayload(
            quiz_id=f"id-{slug}",
            slug=slug,
            title=self.title,
            quiz_type=self.quiz_type,
            questions=self.questions,
        )


class FakeSubmissionBackend:
    """Submission backend that scores against its own copy of the questions."""

    def __init__(self, questions, fail=False):
        self.questions = list(questions)
        self.fail = fail
        self.calls = 0
        self.payloads = []
        self.release = None

    async def submit(self, payload):
        self.calls += 1
        self.payloads.append(payload)
        if self.release is not None:
            await self.release.wait()
        else:
            await asyncio.sleep(0)
        if self.fail:
            raise SubmissionFailure("Submission backend unavailable")
        return results_service.aggregate(
            self.questions, payload.answers, payload.quiz_type, "Canonical", payload.slug
        )

    async def fetch_result(self, slug, user_id):
        return None


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def questions():
    return mcq_questions()


@pytest.fixture
def quiz_source(questions):
    return FakeQuizSource(questions)


@pytest.fixture
def backend(questions):
    return FakeSubmissionBackend(questions)


class ReadOnlyStorage(MemoryStorage):
    """Storage whose writes always fail, like a full or unavailable store."""

    def set(self, key, value, ttl):
        return False
