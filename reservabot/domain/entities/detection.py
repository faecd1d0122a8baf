from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

INTENT_GREETING = "greeting"
INTENT_RESERVE = "reserve"
INTENT_CANCEL = "cancel"
INTENT_QUERY = "query"
INTENT_FAREWELL = "farewell"
INTENT_OTHER = "other"


@dataclass(frozen=True)
class DetectionResult:
    intention: str
    confidence: float
    extracted_data: dict[str, Any] = field(default_factory=dict)
    missing_fields: list[str] = field(default_factory=list)
    suggested_reply: str | None = None
    source: str = "keyword"  # keyword | fuzzy | semantic | rule


def no_detection(source: str = "keyword") -> DetectionResult:
    return DetectionResult(intention=INTENT_OTHER, confidence=0.0, source=source)
