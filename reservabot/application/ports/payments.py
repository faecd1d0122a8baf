from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from reservabot.domain.entities.reservation import PaymentRequest


class PaymentsPort(ABC):
    @abstractmethod
    def create_payment_request(
        self,
        amount: int,
        description: str,
        customer: dict[str, Any],
        conversation_id: str,
        reservation_id: str,
    ) -> PaymentRequest:
        """Create a pending payment and return it with its payment_url."""
        raise NotImplementedError

    @abstractmethod
    def get_pending_payment(self, conversation_id: str) -> PaymentRequest | None:
        raise NotImplementedError

    @abstractmethod
    def get_payment(self, payment_id: str) -> PaymentRequest | None:
        raise NotImplementedError

    @abstractmethod
    def update_status(self, payment_id: str, status: str) -> PaymentRequest:
        raise NotImplementedError
