from __future__ import annotations

from rapidfuzz.distance import Levenshtein

from reservabot.domain.entities.business import Business
from reservabot.domain.entities.detection import DetectionResult, no_detection


def similarity(a: str, b: str) -> float:
    """1 - levenshtein(a, b) / max(len(a), len(b))."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 0.0
    return 1.0 - Levenshtein.distance(a, b) / longest


class FuzzyLayer:
    def __init__(self, threshold: float = 0.6) -> None:
        self._threshold = threshold

    def detect(self, message: str, business: Business) -> DetectionResult:
        text = message.lower().strip()
        if not text:
            return no_detection("fuzzy")

        best_intention: str | None = None
        best_score = 0.0
        for intention in business.intentions:
            for example in intention.examples:
                score = similarity(text, example.lower().strip())
                if score > best_score:
                    best_score = score
                    best_intention = intention.name

        if best_intention is None or best_score < self._threshold:
            return no_detection("fuzzy")
        return DetectionResult(intention=best_intention, confidence=best_score, source="fuzzy")
