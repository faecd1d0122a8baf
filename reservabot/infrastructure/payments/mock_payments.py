from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import Any

from reservabot.application.exceptions import PersistenceError
from reservabot.application.ports.payments import PaymentsPort
from reservabot.domain.entities.reservation import PAYMENT_PENDING, PaymentRequest


class MockPayments(PaymentsPort):
    """In-memory payment gateway; payments stay pending until settled through the API."""

    def __init__(self, base_url: str = "https://pay.example.com/checkout") -> None:
        self._base_url = base_url.rstrip("/")
        self._payments: dict[str, PaymentRequest] = {}
        self._lock = threading.Lock()

    def create_payment_request(
        self,
        amount: int,
        description: str,
        customer: dict[str, Any],
        conversation_id: str,
        reservation_id: str,
    ) -> PaymentRequest:
        payment_id = uuid.uuid4().hex
        payment = PaymentRequest(
            id=payment_id,
            conversation_id=conversation_id,
            reservation_id=reservation_id,
            amount=amount,
            description=description,
            payment_url=f"{self._base_url}/{payment_id}",
        )
        with self._lock:
            self._payments[payment_id] = payment
        return payment

    def get_pending_payment(self, conversation_id: str) -> PaymentRequest | None:
        with self._lock:
            for payment in self._payments.values():
                if payment.conversation_id == conversation_id and payment.status == PAYMENT_PENDING:
                    return payment
        return None

    def get_payment(self, payment_id: str) -> PaymentRequest | None:
        with self._lock:
            return self._payments.get(payment_id)

    def update_status(self, payment_id: str, status: str) -> PaymentRequest:
        with self._lock:
            current = self._payments.get(payment_id)
            if current is None:
                raise PersistenceError(f"Payment {payment_id} not found")
            updated = replace(current, status=status)
            self._payments[payment_id] = updated
            return updated
