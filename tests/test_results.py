"""Tests for result aggregation, hint penalties and reconciliation."""

import pytest

from quizflow.schemas.quiz import Question, QuizType
from quizflow.schemas.result import Answer, ResultSource
from quizflow.services.correctness_service import correctness_service
from quizflow.services.results_service import results_service, round_half_up

from conftest import flashcards, mcq_questions


def graded(question, raw_value, hints_used=None):
    resolution = correctness_service.resolve(question, raw_value, hints_used)
    return Answer(
        question_id=question.id,
        type=question.type,
        raw_value=resolution.normalized_user_answer,
        is_correct=resolution.is_correct,
        similarity=resolution.similarity,
        hints_used=hints_used,
        answered_at_epoch_ms=1_700_000_000_000,
    )


def open_question(qid=1, reference="Paris", tags=()):
    return Question(id=qid, prompt="Capital?", type=QuizType.OPENENDED, reference_answer=reference, tags=list(tags))


class TestAggregate:
    """Test aggregate()"""

    def test_mcq_scoring(self):
        questions = mcq_questions()
        answers = [graded(q, value) for q, value in zip(questions, "ABD")]

        result = results_service.aggregate(questions, answers, QuizType.MCQ, "Capitals", "capitals")

        assert result.score == 2
        assert result.max_score == 3
        assert result.percentage == 67
        assert [item.is_correct for item in result.per_question] == [True, True, False]
        assert result.per_question[2].user_answer == "D"
        assert result.per_question[2].correct_answer == "Option C"
        assert result.review_incorrect_ids == []
        assert result.still_learning_ids == []

    def test_unanswered_questions_count_as_incorrect(self):
        questions = mcq_questions()
        result = results_service.aggregate(questions, [graded(questions[0], "A")], QuizType.MCQ, "T", "t")

        assert result.score == 1
        assert result.max_score == 3
        assert result.per_question[1].user_answer == ""
        assert not result.per_question[1].is_correct

    def test_empty_quiz(self):
        result = results_service.aggregate([], [], QuizType.MCQ, "Empty", "empty")
        assert result.score == 0
        assert result.max_score == 0
        assert result.percentage == 0

    def test_percentage_rounds_half_up(self):
        questions = [open_question(i) for i in range(8)]
        result = results_service.aggregate(
            questions, [graded(questions[0], "Paris")], QuizType.OPENENDED, "T", "t"
        )
        assert result.percentage == 13

    def test_openended_similarity_is_carried(self):
        question = open_question()
        result = results_service.aggregate(
            [question], [graded(question, "paris ")], QuizType.OPENENDED, "T", "t"
        )
        assert result.score == 1
        assert result.per_question[0].similarity == pytest.approx(1.0)

    def test_uses_stored_correctness(self):
        questions = mcq_questions()
        # Graded wrong when answered; aggregation does not re-grade
        answer = graded(questions[0], "A").model_copy(update={"is_correct": False})
        result = results_service.aggregate(questions, [answer], QuizType.MCQ, "T", "t")
        assert result.score == 0

    def test_flashcard_review_sets(self):
        cards = flashcards()
        reports = ["correct", "incorrect", "still_learning", "correct", "incorrect"]
        answers = [graded(card, report) for card, report in zip(cards, reports)]

        result = results_service.aggregate(cards, answers, QuizType.FLASHCARD, "Cells", "cells")

        assert result.score == 2
        assert result.max_score == 5
        assert result.percentage == 40
        assert result.review_incorrect_ids == ["card-1", "card-4"]
        assert result.still_learning_ids == ["card-2"]

    def test_unanswered_flashcards_are_not_in_review_sets(self):
        cards = flashcards(3)
        result = results_service.aggregate(
            cards, [graded(cards[0], "incorrect")], QuizType.FLASHCARD, "Cells", "cells"
        )
        assert result.review_incorrect_ids == ["card-0"]
        assert result.still_learning_ids == []


class TestHintPenalty:
    """Test hint_penalty() and display_percentage()"""

    @pytest.mark.parametrize(
        "hints,expected",
        [(None, 0), (0, 0), (1, 5), (2, 13), (5, 60), (6, 80), (7, 100), (20, 100)],
    )
    def test_ladder(self, hints, expected):
        assert results_service.hint_penalty(hints, [5, 8, 12, 15, 20]) == expected

    def test_empty_ladder(self):
        assert results_service.hint_penalty(3, []) == 0

    def test_display_percentage_applies_penalty(self):
        question = open_question()
        answer = graded(question, "Paris", hints_used=1)
        result = results_service.aggregate([question], [answer], QuizType.OPENENDED, "T", "t")

        assert result.percentage == 100
        assert results_service.display_percentage(result, [answer], [5, 8, 12, 15, 20]) == 95
        assert answer.is_correct
        assert result.per_question[0].is_correct

    def test_incorrect_answers_carry_no_penalty(self):
        questions = [open_question(1), open_question(2)]
        answers = [graded(questions[0], "Paris"), graded(questions[1], "Berlin", hints_used=3)]
        result = results_service.aggregate(questions, answers, QuizType.OPENENDED, "T", "t")

        assert results_service.display_percentage(result, answers, [5, 8, 12, 15, 20]) == 50

    def test_choice_questions_are_not_penalized(self):
        questions = mcq_questions()
        answers = [graded(questions[0], "A", hints_used=3)]
        result = results_service.aggregate(questions, answers, QuizType.MCQ, "T", "t")

        assert results_service.display_percentage(result, answers, [5, 8, 12, 15, 20]) == result.percentage

    def test_round_half_up(self):
        assert round_half_up(12.5) == 13
        assert round_half_up(66.666) == 67
        assert round_half_up(0.49) == 0


class TestReconcile:
    """Test reconcile() priority"""

    def _result(self, title):
        return results_service.aggregate(mcq_questions(), [], QuizType.MCQ, title, "t")

    def test_fetched_wins(self):
        fetched, computed, restored = self._result("f"), self._result("c"), self._result("r")
        assert results_service.reconcile(computed, restored, fetched) == (fetched, ResultSource.BACKEND)

    def test_computed_before_restored(self):
        computed, restored = self._result("c"), self._result("r")
        assert results_service.reconcile(computed, restored) == (computed, ResultSource.COMPUTED)

    def test_restored_last(self):
        restored = self._result("r")
        assert results_service.reconcile(restored=restored) == (restored, ResultSource.RESTORED)

    def test_nothing_available(self):
        assert results_service.reconcile() is None


class TestFeedback:
    """Test weak_tags() and generate_feedback()"""

    def test_weak_tags(self):
        questions = [
            open_question(1, tags=["geography"]),
            open_question(2, tags=["geography", "history"]),
            open_question(3, tags=["history"]),
        ]
        answers = [graded(q, "Paris") for q in questions]
        result = results_service.aggregate(questions, answers, QuizType.OPENENDED, "T", "t")

        assert results_service.weak_tags(questions, result) == []
        answers[1] = graded(questions[1], "Rome")
        result = results_service.aggregate(questions, answers, QuizType.OPENENDED, "T", "t")
        assert results_service.weak_tags(questions, result) == ["geography", "history"]

    @pytest.mark.parametrize(
        "answers,opening",
        [
            ("ABC", "Excellent work!"),
            ("ABD", "Fair performance."),
            ("DDD", "Needs improvement."),
        ],
    )
    def test_bands(self, answers, opening):
        questions = mcq_questions()
        graded_answers = [graded(q, value) for q, value in zip(questions, answers)]
        result = results_service.aggregate(questions, graded_answers, QuizType.MCQ, "T", "t")
        assert results_service.generate_feedback(result).startswith(opening)

    def test_weak_tags_are_named(self):
        questions = mcq_questions()
        result = results_service.aggregate(questions, [], QuizType.MCQ, "T", "t")
        assert results_service.generate_feedback(result, ["loops"]).endswith("Focus on: loops.")

    def test_flashcard_feedback(self):
        cards = flashcards()
        reports = ["correct", "incorrect", "still_learning", "correct", "incorrect"]
        answers = [graded(card, report) for card, report in zip(cards, reports)]
        result = results_service.aggregate(cards, answers, QuizType.FLASHCARD, "Cells", "cells")

        assert results_service.generate_feedback(result) == (
            "You knew 2 of 5 cards. 3 cards are ready for review."
        )
