from __future__ import annotations

import json
import re

from reservabot.application.ports.semantic_classifier import SemanticClassifierPort
from reservabot.application.utils.message_rules import (
    has_query_keywords,
    is_explicit_goodbye,
    is_greeting,
    is_thanks,
    mentions_cancel,
    mentions_reservation,
)

_MESSAGE_LINE = re.compile(r"^Message: (.*)$", re.MULTILINE)


class MockSemanticClassifier(SemanticClassifierPort):
    """Offline stand-in: keyword guesses on the message line of the prompt, no slot extraction."""

    def __init__(self) -> None:
        self.prompts: list[str] = []

    def classify(self, prompt: str) -> str:
        self.prompts.append(prompt)
        match = _MESSAGE_LINE.search(prompt)
        message = json.loads(match.group(1)) if match else ""

        if mentions_cancel(message):
            intention, confidence = "cancel", 0.8
        elif mentions_reservation(message):
            intention, confidence = "reserve", 0.75
        elif has_query_keywords(message):
            intention, confidence = "query", 0.7
        elif is_explicit_goodbye(message) or is_thanks(message):
            intention, confidence = "farewell", 0.7
        elif is_greeting(message):
            intention, confidence = "greeting", 0.7
        else:
            intention, confidence = "other", 0.4

        return json.dumps(
            {
                "intention": intention,
                "confidence": confidence,
                "extractedData": {},
                "missingFields": [],
                "suggestedReply": None,
            }
        )
