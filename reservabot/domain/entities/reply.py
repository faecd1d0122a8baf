from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ProcessMessageResult:
    reply: str
    intention: str
    confidence: float
    missing_fields: list[str] = field(default_factory=list)
    conversation_stage: str = "idle"
    conversation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "reply": self.reply,
            "intention": self.intention,
            "confidence": self.confidence,
            "missing_fields": list(self.missing_fields),
            "conversation_stage": self.conversation_stage,
            "conversation_id": self.conversation_id,
        }
