from __future__ import annotations

from abc import ABC, abstractmethod

from reservabot.domain.entities.conversation_state import ConversationState


class ConversationStorePort(ABC):
    @abstractmethod
    def get_context(self, user_id: str, business_id: str) -> ConversationState:
        """
        Load the conversation for a (user, business) pair.

        Returns a fresh idle ConversationState when nothing was stored yet.
        The returned history already includes every appended message.
        """
        raise NotImplementedError

    @abstractmethod
    def save_context(self, user_id: str, business_id: str, state: ConversationState) -> None:
        """Persist stage, collected data, last intention and metadata (history is owned by append_message)."""
        raise NotImplementedError

    @abstractmethod
    def append_message(self, user_id: str, business_id: str, role: str, text: str, timestamp: float | None = None) -> None:
        raise NotImplementedError

    @abstractmethod
    def conversation_id(self, user_id: str, business_id: str) -> str:
        raise NotImplementedError
