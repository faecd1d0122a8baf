from __future__ import annotations

from dataclasses import dataclass
from typing import Any

RESERVATION_PENDING = "pending"
RESERVATION_CONFIRMED = "confirmed"
RESERVATION_CANCELLED = "cancelled"

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_REJECTED = "rejected"


@dataclass(frozen=True)
class Reservation:
    id: str
    business_id: str
    user_id: str
    service: str
    date: str
    time: str
    guests: int = 1
    phone: str | None = None
    name: str | None = None
    address: str | None = None
    table_id: str | None = None
    products: tuple[dict[str, Any], ...] = ()
    status: str = RESERVATION_PENDING
    stock_held: bool = False
    created_at: float = 0.0

    @property
    def is_active(self) -> bool:
        return self.status in (RESERVATION_PENDING, RESERVATION_CONFIRMED)


@dataclass(frozen=True)
class NewReservation:
    business_id: str
    user_id: str
    service: str
    date: str
    time: str
    guests: int = 1
    phone: str | None = None
    name: str | None = None
    address: str | None = None
    table_id: str | None = None
    products: tuple[dict[str, Any], ...] = ()
    status: str = RESERVATION_PENDING


@dataclass(frozen=True)
class PaymentRequest:
    id: str
    conversation_id: str
    reservation_id: str
    amount: int
    description: str
    payment_url: str
    status: str = PAYMENT_PENDING
