"""
Per-type correctness resolution
mcq/code: exact option match
blanks/openended: similarity threshold
flashcard: validated self-report
"""
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from quizflow.config import settings
from quizflow.schemas.quiz import Question, QuizType
from quizflow.services.similarity_service import similarity_service

logger = logging.getLogger(__name__)

SELF_REPORT_CORRECT = "correct"
SELF_REPORT_INCORRECT = "incorrect"
SELF_REPORT_STILL_LEARNING = "still_learning"
SELF_REPORTS = (SELF_REPORT_CORRECT, SELF_REPORT_INCORRECT, SELF_REPORT_STILL_LEARNING)

# Keys under which clients have historically sent the user's answer
_ANSWER_KEYS = (
    "selectedOptionId",
    "selected_option_id",
    "userAnswer",
    "user_answer",
    "answer",
    "text",
    "value",
)


@dataclass(frozen=True)
class Resolution:
    is_correct: bool
    normalized_user_answer: str
    similarity: Optional[float] = None


def extract_raw_answer(raw_value: Any) -> str:
    """Collapse the many shapes a submitted answer can take into one string"""
    if raw_value is None:
        return ""
    if isinstance(raw_value, dict):
        for key in _ANSWER_KEYS:
            if raw_value.get(key) is not None:
                return extract_raw_answer(raw_value[key])
        return ""
    if isinstance(raw_value, (list, tuple)):
        return " ".join(extract_raw_answer(v) for v in raw_value).strip()
    return str(raw_value).strip()


def _id_key(value: Any) -> str:
    return str(value).strip().casefold()


class CorrectnessService:
    """
    Decides whether an answer is correct for its question type

    Strategy:
    - MCQ / Code: normalized selection equals the designated correct option
    - Blanks: similarity against the reference answer clears the threshold
    - Open-ended: best similarity over all acceptable answers clears the threshold
    - Flashcard: the user's self-report is taken as given
    """

    def resolve(
        self,
        question: Question,
        raw_value: Any,
        hints_used: Optional[int] = None,
    ) -> Resolution:
        """
        Resolve correctness for one answer

        Args:
            question: Question being answered
            raw_value: Value as submitted (string, list or dict)
            hints_used: Hints revealed before answering (open-ended only;
                never affects correctness)

        Returns:
            Resolution with normalized user answer
        """
        user_answer = extract_raw_answer(raw_value)

        if question.type in (QuizType.MCQ, QuizType.CODE):
            return self._resolve_choice(question, user_answer)
        elif question.type == QuizType.BLANKS:
            return self._resolve_text(question, user_answer, self._references(question))
        elif question.type == QuizType.OPENENDED:
            if hints_used:
                logger.debug(f"Question {question.id}: {hints_used} hints used")
            return self._resolve_text(question, user_answer, self._references(question))
        elif question.type == QuizType.FLASHCARD:
            return self._resolve_self_report(question, user_answer)

        logger.warning(f"Unknown question type for question {question.id}: {question.type}")
        return Resolution(False, user_answer)

    def correct_option_id(self, question: Question) -> Optional[str]:
        """Identifier of the designated correct option, if one can be found"""
        if question.correct_option_id is not None:
            return str(question.correct_option_id)

        flagged = [opt for opt in question.options if opt.is_correct]
        if flagged:
            return str(flagged[0].id)

        if question.reference_answer:
            reference = question.reference_answer.strip()
            for opt in question.options:
                if _id_key(opt.id) == _id_key(reference) or _id_key(opt.text) == _id_key(reference):
                    return str(opt.id)
            return reference

        return None

    def correct_answer_display(self, question: Question) -> str:
        """String shown as the correct answer in a result breakdown"""
        if question.type in (QuizType.MCQ, QuizType.CODE):
            correct = self.correct_option_id(question)
            if correct is None:
                return ""
            for opt in question.options:
                if _id_key(opt.id) == _id_key(correct):
                    return opt.text or str(opt.id)
            return correct
        return question.reference_answer or ""

    def _resolve_choice(self, question: Question, user_answer: str) -> Resolution:
        correct = self.correct_option_id(question)
        if not user_answer:
            return Resolution(False, "")

        # Option ids win over option texts; a selection sent as text is mapped back to its id
        selected = self._match_option(question, user_answer)

        if correct is None:
            logger.warning(f"Question {question.id} has no resolvable correct option")
            return Resolution(False, selected)

        return Resolution(_id_key(selected) == _id_key(correct), selected)

    @staticmethod
    def _match_option(question: Question, user_answer: str) -> str:
        key = _id_key(user_answer)
        for opt in question.options:
            if _id_key(opt.id) == key:
                return str(opt.id)
        for opt in question.options:
            if opt.text and _id_key(opt.text) == key:
                return str(opt.id)
        return user_answer

    def _resolve_text(self, question: Question, user_answer: str, references: List[str]) -> Resolution:
        if not references:
            logger.warning(f"Question {question.id} has no reference answer")
            return Resolution(False, user_answer, 0.0 if user_answer else None)
        if not user_answer:
            return Resolution(False, "", 0.0)

        similarity = similarity_service.best_score(user_answer, references)
        threshold = question.similarity_threshold
        if threshold is None:
            threshold = settings.SIMILARITY_THRESHOLD

        return Resolution(similarity_service.is_acceptable(similarity, threshold), user_answer, similarity)

    def _resolve_self_report(self, question: Question, user_answer: str) -> Resolution:
        token = user_answer.strip().lower().replace("-", "_").replace(" ", "_")
        if token not in SELF_REPORTS:
            logger.warning(f"Flashcard {question.id}: invalid self-report {user_answer!r}")
            return Resolution(False, "")
        return Resolution(token == SELF_REPORT_CORRECT, token)

    @staticmethod
    def _references(question: Question) -> List[str]:
        refs = [question.reference_answer] if question.reference_answer else []
        refs.extend(a for a in question.acceptable_answers if a)
        return refs


# Global instance
correctness_service = CorrectnessService()
