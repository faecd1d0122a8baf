from __future__ import annotations

import json
import logging
import re
import threading
import time
from pathlib import Path
from typing import Any

from reservabot.application.exceptions import PersistenceError
from reservabot.application.ports.conversation_store import ConversationStorePort
from reservabot.domain.entities.conversation_state import ConversationState
from reservabot.infrastructure.store.state_codec import (
    deserialize_state,
    deserialize_turn,
    serialize_state,
    serialize_turn,
)

logger = logging.getLogger(__name__)


class JsonConversationStore(ConversationStorePort):
    """One JSON file per conversation, written atomically through a temp file."""

    def __init__(self, data_dir: str = "./data/conversations", history_limit: int = 20) -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._history_limit = history_limit
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()  # guards the locks dict

    def conversation_id(self, user_id: str, business_id: str) -> str:
        return f"{business_id}:{user_id}"

    def _get_lock(self, conversation_id: str) -> threading.Lock:
        with self._lock_lock:
            if conversation_id not in self._locks:
                self._locks[conversation_id] = threading.Lock()
            return self._locks[conversation_id]

    def _get_file_path(self, conversation_id: str) -> Path:
        safe_name = re.sub(r"[^A-Za-z0-9_.-]", "_", conversation_id)
        return self._data_dir / f"{safe_name}.json"

    def _default_data(self, conversation_id: str) -> dict[str, Any]:
        return {
            "conversation_id": conversation_id,
            "state": serialize_state(ConversationState(), include_history=False),
            "messages": [],
            "version": 1,
        }

    def _load_data(self, conversation_id: str) -> dict[str, Any]:
        """Load conversation data from its JSON file, defaults if missing or corrupted."""
        file_path = self._get_file_path(conversation_id)
        if not file_path.exists():
            return self._default_data(conversation_id)

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(
                "Conversation file unreadable, starting fresh",
                extra={"conversation_id": conversation_id, "error": str(e)},
            )
            return self._default_data(conversation_id)

        data.setdefault("version", 1)
        data.setdefault("messages", [])
        return data

    def _save_data(self, conversation_id: str, data: dict[str, Any]) -> None:
        file_path = self._get_file_path(conversation_id)
        temp_path = file_path.with_suffix(".json.tmp")

        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            temp_path.replace(file_path)
        except (OSError, TypeError, ValueError) as e:
            if temp_path.exists():
                temp_path.unlink()
            raise PersistenceError(f"Could not write conversation {conversation_id}: {e}") from e

    def get_context(self, user_id: str, business_id: str) -> ConversationState:
        conversation_id = self.conversation_id(user_id, business_id)
        with self._get_lock(conversation_id):
            data = self._load_data(conversation_id)
            state_data = dict(data.get("state") or {})
            state_data["history"] = data.get("messages", [])
            return deserialize_state(state_data)

    def save_context(self, user_id: str, business_id: str, state: ConversationState) -> None:
        conversation_id = self.conversation_id(user_id, business_id)
        with self._get_lock(conversation_id):
            data = self._load_data(conversation_id)
            data["state"] = serialize_state(state, include_history=False)
            self._save_data(conversation_id, data)

    def append_message(self, user_id: str, business_id: str, role: str, text: str, timestamp: float | None = None) -> None:
        conversation_id = self.conversation_id(user_id, business_id)
        with self._get_lock(conversation_id):
            data = self._load_data(conversation_id)
            messages = [serialize_turn(deserialize_turn(m)) for m in data.get("messages", [])]
            messages.append({"role": role, "text": text, "ts": time.time() if timestamp is None else timestamp})

            # Keep last N messages
            data["messages"] = messages[-self._history_limit :]
            self._save_data(conversation_id, data)
