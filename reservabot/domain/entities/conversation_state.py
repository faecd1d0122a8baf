from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

STAGE_IDLE = "idle"
STAGE_COLLECTING = "collecting"
STAGE_AWAITING_PAYMENT = "awaiting_payment"
STAGE_COMPLETED = "completed"

STAGES = (STAGE_IDLE, STAGE_COLLECTING, STAGE_AWAITING_PAYMENT, STAGE_COMPLETED)


@dataclass(frozen=True)
class HistoryTurn:
    role: str  # "user" | "assistant"
    text: str
    timestamp: float = 0.0


@dataclass(frozen=True)
class ConversationState:
    stage: str = STAGE_IDLE
    collected_data: dict[str, Any] = field(default_factory=dict)
    history: tuple[HistoryTurn, ...] = ()
    last_intention: str | None = None
    # Side channel: asked_all_missing, invalid_products, last_changes
    metadata: dict[str, Any] = field(default_factory=dict)

    def user_turns(self) -> list[HistoryTurn]:
        return [turn for turn in self.history if turn.role == "user"]

    def last_assistant_text(self) -> str | None:
        for turn in reversed(self.history):
            if turn.role == "assistant":
                return turn.text
        return None
