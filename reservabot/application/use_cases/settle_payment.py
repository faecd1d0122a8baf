from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable

from reservabot.application.exceptions import PersistenceError
from reservabot.application.ports.conversation_store import ConversationStorePort
from reservabot.application.ports.inventory import InventoryPort
from reservabot.application.ports.payments import PaymentsPort
from reservabot.application.ports.reservations import ReservationRepositoryPort
from reservabot.application.use_cases.reservation_flow import PAYMENT_ID, RESERVATION_ID
from reservabot.application.use_cases.reservation_lifecycle import release_reservation
from reservabot.application.utils.context_cache import ContextCache
from reservabot.application.utils.state_machine import complete_state
from reservabot.domain.entities.conversation_state import STAGE_AWAITING_PAYMENT, STAGE_COLLECTING
from reservabot.domain.entities.reservation import (
    PAYMENT_PAID,
    PAYMENT_PENDING,
    PAYMENT_REJECTED,
    RESERVATION_CONFIRMED,
)


@dataclass(frozen=True)
class SettlementResult:
    payment_id: str
    status: str
    reservation_status: str | None
    conversation_stage: str | None
    reply: str | None = None


class SettlePaymentUseCase:
    """
    Apply the result of a payment to its reservation and conversation.

    Approved: the reservation is confirmed and the conversation completed.
    Rejected: the reservation is cancelled, held stock is given back and the
    conversation returns to collecting with its data intact. Settling a payment
    that is no longer pending changes nothing.
    """

    def __init__(
        self,
        payments: PaymentsPort,
        reservations: ReservationRepositoryPort,
        inventory: InventoryPort,
        store: ConversationStorePort,
        cache: ContextCache | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._payments = payments
        self._reservations = reservations
        self._inventory = inventory
        self._store = store
        self._cache = cache
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def settle(self, payment_id: str, approved: bool) -> SettlementResult:
        payment = self._payments.get_payment(payment_id)
        if payment is None:
            raise PersistenceError(f"Unknown payment {payment_id}")

        reservation = self._reservations.get(payment.reservation_id)
        if payment.status != PAYMENT_PENDING:
            return SettlementResult(
                payment_id=payment.id,
                status=payment.status,
                reservation_status=reservation.status if reservation else None,
                conversation_stage=None,
            )
        if reservation is None:
            raise PersistenceError(f"Payment {payment_id} points to a missing reservation")

        if approved:
            self._payments.update_status(payment.id, PAYMENT_PAID)
            reservation = self._reservations.update_status(reservation.id, RESERVATION_CONFIRMED)
            reply = f"¡Recibimos tu pago! Tu reserva del {reservation.date} a las {reservation.time} está confirmada."
        else:
            self._payments.update_status(payment.id, PAYMENT_REJECTED)
            reservation = release_reservation(self._reservations, self._inventory, reservation)
            reply = "Tu pago no fue aprobado. ¿Quieres intentarlo de nuevo o cambiar algún dato?"

        stage = self._update_conversation(reservation.user_id, reservation.business_id, payment.id, approved, reply)
        self._logger.info(
            "Payment settled",
            extra={
                "business_id": reservation.business_id,
                "user_id": reservation.user_id,
                "reservation_id": reservation.id,
                "approved": approved,
            },
        )
        return SettlementResult(
            payment_id=payment.id,
            status=PAYMENT_PAID if approved else PAYMENT_REJECTED,
            reservation_status=reservation.status,
            conversation_stage=stage,
            reply=reply,
        )

    def _update_conversation(
        self,
        user_id: str,
        business_id: str,
        payment_id: str,
        approved: bool,
        reply: str,
    ) -> str | None:
        if self._cache is not None:
            self._cache.invalidate_context(user_id, business_id)
        state = self._store.get_context(user_id, business_id)
        if state.stage != STAGE_AWAITING_PAYMENT or state.metadata.get(PAYMENT_ID) not in (None, payment_id):
            return state.stage

        if approved:
            state = complete_state(state, completed_at=self._clock())
        else:
            metadata = {k: v for k, v in state.metadata.items() if k not in (PAYMENT_ID, RESERVATION_ID)}
            state = replace(state, stage=STAGE_COLLECTING, metadata=metadata)

        self._store.save_context(user_id, business_id, state)
        self._store.append_message(user_id, business_id, "assistant", reply, self._clock())
        if self._cache is not None:
            self._cache.invalidate_context(user_id, business_id)
        return state.stage
