from __future__ import annotations

import threading
import time
from dataclasses import replace

from reservabot.application.ports.conversation_store import ConversationStorePort
from reservabot.domain.entities.conversation_state import ConversationState, HistoryTurn


class MemoryConversationStore(ConversationStorePort):
    def __init__(self, history_limit: int = 20) -> None:
        self._states: dict[str, ConversationState] = {}
        self._history: dict[str, list[HistoryTurn]] = {}
        self._history_limit = history_limit
        self._lock = threading.Lock()

    def conversation_id(self, user_id: str, business_id: str) -> str:
        return f"{business_id}:{user_id}"

    def get_context(self, user_id: str, business_id: str) -> ConversationState:
        key = self.conversation_id(user_id, business_id)
        with self._lock:
            state = self._states.get(key, ConversationState())
            return replace(state, history=tuple(self._history.get(key, [])))

    def save_context(self, user_id: str, business_id: str, state: ConversationState) -> None:
        key = self.conversation_id(user_id, business_id)
        with self._lock:
            self._states[key] = replace(state, history=())

    def append_message(self, user_id: str, business_id: str, role: str, text: str, timestamp: float | None = None) -> None:
        key = self.conversation_id(user_id, business_id)
        turn = HistoryTurn(role=role, text=text, timestamp=time.time() if timestamp is None else timestamp)
        with self._lock:
            messages = self._history.setdefault(key, [])
            messages.append(turn)
            if len(messages) > self._history_limit:
                self._history[key] = messages[-self._history_limit :]
