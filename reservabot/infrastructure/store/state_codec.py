from __future__ import annotations

import json
from typing import Any

from reservabot.domain.entities.conversation_state import STAGE_IDLE, STAGES, ConversationState, HistoryTurn


def serialize_state(state: ConversationState, include_history: bool = True) -> dict[str, Any]:
    """Serialize ConversationState to a JSON-compatible dict."""
    data: dict[str, Any] = {
        "stage": state.stage,
        "collected_data": dict(state.collected_data),
        "last_intention": state.last_intention,
        "metadata": dict(state.metadata),
    }
    if include_history:
        data["history"] = [serialize_turn(turn) for turn in state.history]
    return data


def deserialize_state(data: dict[str, Any]) -> ConversationState:
    """Deserialize a dict to ConversationState; unknown stages fall back to idle."""
    stage = data.get("stage") or STAGE_IDLE
    return ConversationState(
        stage=stage if stage in STAGES else STAGE_IDLE,
        collected_data=dict(data.get("collected_data") or {}),
        history=tuple(deserialize_turn(item) for item in data.get("history") or []),
        last_intention=data.get("last_intention"),
        metadata=dict(data.get("metadata") or {}),
    )


def serialize_turn(turn: HistoryTurn) -> dict[str, Any]:
    return {"role": turn.role, "text": turn.text, "ts": turn.timestamp}


def deserialize_turn(data: dict[str, Any]) -> HistoryTurn:
    return HistoryTurn(role=data.get("role", "user"), text=data.get("text", ""), timestamp=float(data.get("ts") or 0.0))


def encode_state(state: ConversationState) -> str:
    return json.dumps(serialize_state(state), ensure_ascii=False)


def decode_state(raw: str) -> ConversationState:
    return deserialize_state(json.loads(raw))
