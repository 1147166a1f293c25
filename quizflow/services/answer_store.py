"""
Per-session answer store
"""
from typing import Any, Dict, List, Optional, Sequence

from quizflow.schemas.quiz import Question
from quizflow.schemas.result import Answer


def answer_key(question_id: Any) -> str:
    """Question ids arrive as ints or strings; both address the same answer"""
    return str(question_id).strip()


class AnswerStore:
    """
    Latest answer per question for the active session.

    Lookup is by question id; ``all()`` follows question order so aggregation
    does not depend on the order the user answered in. Single answers are
    never removed; a retake clears the whole store.
    """

    def __init__(self, questions: Sequence[Question] = ()):
        self._order: List[str] = []
        self._answers: Dict[str, Answer] = {}
        self.bind(questions)

    def bind(self, questions: Sequence[Question]) -> None:
        """Set the question order used by ``all()``"""
        self._order = [answer_key(q.id) for q in questions]

    def put(self, answer: Answer) -> None:
        self._answers[answer_key(answer.question_id)] = answer

    def get(self, question_id: Any) -> Optional[Answer]:
        return self._answers.get(answer_key(question_id))

    def all(self) -> List[Answer]:
        ordered = [self._answers[k] for k in self._order if k in self._answers]
        # Answers for ids outside the bound order keep insertion order at the end
        known = set(self._order)
        ordered.extend(a for k, a in self._answers.items() if k not in known)
        return ordered

    def count(self) -> int:
        return len(self._answers)

    def clear(self) -> None:
        self._answers.clear()

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, question_id: Any) -> bool:
        return answer_key(question_id) in self._answers
