"""
Free-text similarity scoring for blanks and open-ended answers

Score = 70% character-sequence ratio + 30% reference-token recall,
computed on case-folded, punctuation-free, whitespace-collapsed text.
"""
import re
from difflib import SequenceMatcher
from typing import Iterable, List, Optional

from quizflow.config import settings

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class SimilarityService:
    """Deterministic string similarity in [0, 1]"""

    SEQUENCE_WEIGHT = 0.7
    TOKEN_WEIGHT = 0.3

    # A reference token counts as present when a candidate token is this close
    TOKEN_MATCH_RATIO = 0.8

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        if not text:
            return ""
        lowered = _PUNCTUATION.sub(" ", str(text).lower())
        return _WHITESPACE.sub(" ", lowered).strip()

    def score(self, candidate: Optional[str], reference: Optional[str]) -> float:
        """
        Compare a user answer to a reference answer

        Args:
            candidate: User's answer
            reference: Expected answer

        Returns:
            Similarity between 0.0 (unrelated or empty) and 1.0 (equal)
        """
        a = self.normalize(candidate)
        b = self.normalize(reference)

        if not a or not b:
            return 0.0
        if a == b:
            return 1.0

        ratio = SequenceMatcher(None, a, b).ratio()
        recall = self._token_recall(a.split(), b.split())

        blended = ratio * self.SEQUENCE_WEIGHT + recall * self.TOKEN_WEIGHT
        return round(min(max(blended, 0.0), 1.0), 4)

    def best_score(self, candidate: Optional[str], references: Iterable[Optional[str]]) -> float:
        """Highest score over several acceptable phrasings (0.0 when there are none)"""
        return max((self.score(candidate, ref) for ref in references if ref), default=0.0)

    def is_acceptable(self, score: float, threshold: Optional[float] = None) -> bool:
        if threshold is None:
            threshold = settings.SIMILARITY_THRESHOLD
        return score >= threshold

    def describe(self, score: float) -> str:
        """Feedback band for a similarity score"""
        if score >= 0.7:
            return "You're very close!"
        elif score >= 0.5:
            return "You're on the right track."
        elif score >= 0.3:
            return "You're getting warmer."
        return "Not quite right."

    def _token_recall(self, candidate_tokens: List[str], reference_tokens: List[str]) -> float:
        reference = set(reference_tokens)
        if not reference:
            return 0.0

        candidates = set(candidate_tokens)
        matched = 0
        for token in reference:
            if token in candidates:
                matched += 1
                continue
            if any(
                SequenceMatcher(None, token, other).ratio() >= self.TOKEN_MATCH_RATIO
                for other in candidates
            ):
                matched += 1

        return matched / len(reference)


# Global instance
similarity_service = SimilarityService()
