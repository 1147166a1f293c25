"""
Results aggregation service
Builds the normalized Result used for both the pre-auth preview and the
persisted outcome of an attempt.
"""
import logging
import math
from collections import defaultdict
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from quizflow.config import settings
from quizflow.schemas.quiz import Question, QuizType
from quizflow.schemas.result import Answer, QuestionResult, Result, ResultSource
from quizflow.services.answer_store import answer_key
from quizflow.services.correctness_service import (
    SELF_REPORT_INCORRECT,
    SELF_REPORT_STILL_LEARNING,
    correctness_service,
)

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class ResultsService:
    """Aggregates answers into results; never re-derives correctness"""

    # Hints only cost points on free-text questions
    HINTED_TYPES = (QuizType.OPENENDED, QuizType.BLANKS)

    def aggregate(
        self,
        questions: Sequence[Question],
        answers: Iterable[Answer],
        quiz_type: QuizType,
        title: str,
        slug: str,
    ) -> Result:
        """
        Build a Result from the questions and their latest answers

        Args:
            questions: Questions of the attempt, in display order
            answers: Latest answer per question (missing = unanswered)
            quiz_type: Quiz format
            title: Quiz title
            slug: Quiz slug

        Returns:
            Result stamped with the current time
        """
        by_id: Dict[str, Answer] = {answer_key(a.question_id): a for a in answers}

        per_question: List[QuestionResult] = []
        for question in questions:
            answer = by_id.get(answer_key(question.id))
            per_question.append(
                QuestionResult(
                    question_id=question.id,
                    user_answer=answer.raw_value if answer else "",
                    correct_answer=correctness_service.correct_answer_display(question),
                    is_correct=bool(answer and answer.is_correct),
                    similarity=answer.similarity if answer else None,
                )
            )

        score = sum(1 for item in per_question if item.is_correct)
        max_score = len(questions)
        percentage = round_half_up(100 * score / max_score) if max_score > 0 else 0

        review_ids: List = []
        still_learning_ids: List = []
        if quiz_type == QuizType.FLASHCARD:
            for item in per_question:
                if item.user_answer == SELF_REPORT_INCORRECT:
                    review_ids.append(item.question_id)
                elif item.user_answer == SELF_REPORT_STILL_LEARNING:
                    still_learning_ids.append(item.question_id)

        logger.info(f"Quiz aggregated: {slug} {score}/{max_score} ({percentage}%)")

        return Result(
            quiz_slug=slug,
            title=title,
            quiz_type=quiz_type,
            score=score,
            max_score=max_score,
            percentage=percentage,
            per_question=per_question,
            completed_at_iso=datetime.now(timezone.utc).isoformat(),
            review_incorrect_ids=review_ids,
            still_learning_ids=still_learning_ids,
        )

    def hint_penalty(self, hints_used: Optional[int], penalties: Optional[Sequence[int]] = None) -> int:
        """Percentage points lost for revealing ``hints_used`` hints (capped at 100)"""
        if not hints_used or hints_used <= 0:
            return 0
        ladder = list(penalties if penalties is not None else settings.HINT_PENALTIES)
        if not ladder:
            return 0

        total = sum(ladder[:hints_used])
        if hints_used > len(ladder):
            total += (hints_used - len(ladder)) * ladder[-1]
        return min(total, 100)

    def display_percentage(
        self,
        result: Result,
        answers: Iterable[Answer],
        penalties: Optional[Sequence[int]] = None,
    ) -> int:
        """
        Presentational percentage with hint penalties applied.

        Only the displayed number changes; ``is_correct`` in the result and in
        the stored answers stays as graded.
        """
        if result.max_score == 0:
            return 0

        by_id = {answer_key(a.question_id): a for a in answers}
        credit = 0.0
        for item in result.per_question:
            if not item.is_correct:
                continue
            answer = by_id.get(answer_key(item.question_id))
            penalty = 0
            if answer is not None and answer.type in self.HINTED_TYPES:
                penalty = self.hint_penalty(answer.hints_used, penalties)
            credit += 1 - penalty / 100

        return round_half_up(100 * credit / result.max_score)

    def reconcile(
        self,
        computed: Optional[Result] = None,
        restored: Optional[Result] = None,
        fetched: Optional[Result] = None,
    ) -> Optional[Tuple[Result, ResultSource]]:
        """Pick the most authoritative available result"""
        if fetched is not None:
            return fetched, ResultSource.BACKEND
        if computed is not None:
            return computed, ResultSource.COMPUTED
        if restored is not None:
            return restored, ResultSource.RESTORED
        return None

    def weak_tags(self, questions: Sequence[Question], result: Result) -> List[str]:
        """Tags whose questions were answered correctly less than 60% of the time"""
        correct_by_id = {answer_key(item.question_id): item.is_correct for item in result.per_question}
        tag_scores: Dict[str, List[float]] = defaultdict(list)
        for question in questions:
            for tag in question.tags:
                tag_scores[tag].append(1.0 if correct_by_id.get(answer_key(question.id)) else 0.0)

        return sorted(tag for tag, scores in tag_scores.items() if sum(scores) / len(scores) < 0.6)

    def generate_feedback(self, result: Result, weak_tags: Sequence[str] = ()) -> str:
        """Generate overall feedback message"""
        feedback_parts = []

        if result.quiz_type == QuizType.FLASHCARD:
            feedback_parts.append(f"You knew {result.score} of {result.max_score} cards.")
            to_review = len(result.review_incorrect_ids) + len(result.still_learning_ids)
            if to_review:
                feedback_parts.append(f"{to_review} cards are ready for review.")
            return " ".join(feedback_parts)

        if result.percentage >= 90:
            feedback_parts.append("Excellent work! Strong understanding across all topics.")
        elif result.percentage >= 75:
            feedback_parts.append("Good performance! You have a solid grasp of the material.")
        elif result.percentage >= 60:
            feedback_parts.append("Fair performance. Review the weak areas for improvement.")
        else:
            feedback_parts.append("Needs improvement. Focus on understanding core concepts.")

        if weak_tags:
            feedback_parts.append(f"Focus on: {', '.join(weak_tags)}.")

        return " ".join(feedback_parts)


# Global instance
results_service = ResultsService()
