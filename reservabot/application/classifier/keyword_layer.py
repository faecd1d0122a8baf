from __future__ import annotations

import re

from reservabot.application.utils.message_rules import normalize_text
from reservabot.domain.entities.business import Business
from reservabot.domain.entities.detection import DetectionResult, no_detection


def keyword_in(normalized_message: str, keyword: str, whole_word: bool = False) -> bool:
    """Case and accent insensitive substring match; `whole_word` restricts it to a word or its plural."""
    normalized_keyword = normalize_text(keyword)
    if not normalized_keyword:
        return False
    if not whole_word:
        return normalized_keyword in normalized_message
    pattern = rf"(?<!\w){re.escape(normalized_keyword)}(?:s|es)?(?!\w)"
    return re.search(pattern, normalized_message) is not None


class KeywordLayer:
    def detect(self, message: str, business: Business) -> DetectionResult:
        normalized = normalize_text(message)
        best: DetectionResult | None = None

        intentions = sorted(business.intentions, key=lambda i: i.priority, reverse=True)
        for intention in intentions:
            total_weight = 0.0
            matches = 0
            for pattern in intention.patterns:
                if keyword_in(normalized, pattern.value, pattern.whole_word):
                    total_weight += pattern.weight
                    matches += 1

            if matches == 0:
                continue

            average = total_weight / matches
            bonus = min(0.1 * matches, 0.2)
            confidence = min(average + bonus, 1.0)
            if best is None or confidence > best.confidence:
                best = DetectionResult(intention=intention.name, confidence=confidence, source="keyword")

        return best or no_detection("keyword")
