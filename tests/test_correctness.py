"""Tests for per-type correctness resolution."""

import pytest

from quizflow.schemas.quiz import Question, QuizType
from quizflow.services.correctness_service import correctness_service, extract_raw_answer


def capital_mcq(**overrides):
    data = {
        "id": "q1",
        "prompt": "Capital of France?",
        "type": "mcq",
        "options": [
            {"id": "a", "text": "Paris"},
            {"id": "b", "text": "Lyon"},
            {"id": "c", "text": "Nice"},
        ],
        "correct_option_id": "a",
    }
    data.update(overrides)
    return Question.model_validate(data)


class TestExtractRawAnswer:
    """Answers arrive under many field names; all collapse to one string."""

    @pytest.mark.parametrize(
        "raw",
        [
            "paris",
            "  paris ",
            {"selectedOptionId": "paris"},
            {"userAnswer": "paris"},
            {"text": "paris"},
            {"answer": "paris"},
        ],
    )
    def test_shapes(self, raw):
        assert extract_raw_answer(raw) == "paris"

    def test_list_is_joined(self):
        assert extract_raw_answer(["light", "energy"]) == "light energy"

    def test_none_and_empty_dict(self):
        assert extract_raw_answer(None) == ""
        assert extract_raw_answer({}) == ""

    def test_numbers_are_stringified(self):
        assert extract_raw_answer(3) == "3"


class TestChoice:
    """mcq and code questions match the designated correct option."""

    def test_correct_option(self):
        resolution = correctness_service.resolve(capital_mcq(), "a")
        assert resolution.is_correct
        assert resolution.normalized_user_answer == "a"
        assert resolution.similarity is None

    def test_case_insensitive_ids(self):
        assert correctness_service.resolve(capital_mcq(), "A").is_correct

    def test_option_text_maps_to_id(self):
        resolution = correctness_service.resolve(capital_mcq(), "Paris")
        assert resolution.is_correct
        assert resolution.normalized_user_answer == "a"

    @pytest.mark.parametrize(
        "options",
        [
            [{"id": "a", "text": "b"}, {"id": "b", "text": "Paris"}],
            [{"id": "b", "text": "Paris"}, {"id": "a", "text": "b"}],
        ],
    )
    def test_option_id_wins_over_matching_text(self, options):
        question = capital_mcq(options=options, correct_option_id="b")

        resolution = correctness_service.resolve(question, "b")

        assert resolution.is_correct
        assert resolution.normalized_user_answer == "b"

    def test_wrong_option(self):
        assert not correctness_service.resolve(capital_mcq(), "b").is_correct

    def test_numeric_and_string_ids_match(self):
        question = capital_mcq(
            options=[{"id": 1, "text": "Paris"}, {"id": 2, "text": "Lyon"}],
            correct_option_id=1,
        )
        assert correctness_service.resolve(question, "1").is_correct
        assert correctness_service.resolve(question, 1).is_correct

    def test_flagged_option(self):
        question = capital_mcq(
            options=[{"id": "a", "text": "Paris", "isCorrect": True}, {"id": "b", "text": "Lyon"}],
            correct_option_id=None,
        )
        assert correctness_service.resolve(question, "a").is_correct

    def test_reference_answer_naming_option_text(self):
        question = capital_mcq(correct_option_id=None, correctAnswer="Paris")
        assert correctness_service.correct_option_id(question) == "a"
        assert correctness_service.resolve(question, "a").is_correct

    def test_reference_answer_without_options(self):
        question = Question(id=1, prompt="Pick", type=QuizType.MCQ, reference_answer="A")
        assert correctness_service.resolve(question, "A").is_correct
        assert not correctness_service.resolve(question, "D").is_correct

    def test_dict_answer(self):
        assert correctness_service.resolve(capital_mcq(), {"selectedOptionId": "a"}).is_correct

    def test_code_questions_use_choice_rule(self):
        question = capital_mcq(type="code", codeSnippet="print(1)")
        assert question.code_snippet == "print(1)"
        assert correctness_service.resolve(question, "a").is_correct

    def test_empty_answer_is_incorrect(self):
        resolution = correctness_service.resolve(capital_mcq(), "")
        assert not resolution.is_correct
        assert resolution.normalized_user_answer == ""

    def test_no_correct_option_is_incorrect(self):
        question = capital_mcq(correct_option_id=None)
        assert not correctness_service.resolve(question, "a").is_correct

    def test_correct_answer_display_uses_option_text(self):
        assert correctness_service.correct_answer_display(capital_mcq()) == "Paris"


class TestFreeText:
    """blanks and openended questions use similarity against references."""

    def test_blanks_case_insensitive(self):
        question = Question(id=1, prompt="The powerhouse of the cell", type=QuizType.BLANKS, answer="mitochondria")
        resolution = correctness_service.resolve(question, "Mitochondria")
        assert resolution.is_correct
        assert resolution.similarity == 1.0

    def test_blanks_wrong_answer(self):
        question = Question(id=1, prompt="The powerhouse of the cell", type=QuizType.BLANKS, answer="mitochondria")
        resolution = correctness_service.resolve(question, "banana")
        assert not resolution.is_correct
        assert resolution.similarity < 0.6

    def test_openended_trailing_space_and_case(self):
        question = Question(id=1, prompt="Capital of France?", type=QuizType.OPENENDED, reference_answer="Paris")
        resolution = correctness_service.resolve(question, "paris ")
        assert resolution.is_correct
        assert resolution.similarity == pytest.approx(1.0)

    def test_openended_alternative_phrasing(self):
        question = Question(
            id=1,
            prompt="Nickname of Paris?",
            type=QuizType.OPENENDED,
            reference_answer="Paris",
            acceptable_answers=["City of Light"],
        )
        assert correctness_service.resolve(question, "the city of light").is_correct

    def test_openended_hints_do_not_change_correctness(self):
        question = Question(id=1, prompt="Capital of France?", type=QuizType.OPENENDED, reference_answer="Paris")
        assert correctness_service.resolve(question, "Paris", hints_used=4).is_correct

    def test_question_threshold_overrides_default(self):
        strict = Question(
            id=1, prompt="Capital?", type=QuizType.OPENENDED, reference_answer="Paris", similarity_threshold=0.95
        )
        lenient = Question(id=1, prompt="Capital?", type=QuizType.OPENENDED, reference_answer="Paris")
        assert not correctness_service.resolve(strict, "Pari").is_correct
        assert correctness_service.resolve(lenient, "Pari").is_correct

    def test_missing_reference_is_incorrect(self):
        question = Question(id=1, prompt="Explain", type=QuizType.OPENENDED)
        resolution = correctness_service.resolve(question, "some words")
        assert not resolution.is_correct
        assert resolution.normalized_user_answer == "some words"


class TestFlashcard:
    """Flashcard correctness is the user's self-report."""

    @pytest.mark.parametrize(
        "raw,token,correct",
        [
            ("correct", "correct", True),
            ("incorrect", "incorrect", False),
            ("still_learning", "still_learning", False),
            ("Still Learning", "still_learning", False),
            ("still-learning", "still_learning", False),
        ],
    )
    def test_valid_reports(self, raw, token, correct):
        card = Question(id="c1", prompt="Front", type=QuizType.FLASHCARD, reference_answer="Back")
        resolution = correctness_service.resolve(card, raw)
        assert resolution.normalized_user_answer == token
        assert resolution.is_correct is correct

    def test_invalid_report_is_incorrect(self):
        card = Question(id="c1", prompt="Front", type=QuizType.FLASHCARD)
        resolution = correctness_service.resolve(card, "maybe")
        assert not resolution.is_correct
        assert resolution.normalized_user_answer == ""

    def test_missing_report_is_incorrect(self):
        card = Question(id="c1", prompt="Front", type=QuizType.FLASHCARD)
        assert not correctness_service.resolve(card, None).is_correct
