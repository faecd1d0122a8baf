from __future__ import annotations

import logging
from dataclasses import replace

from reservabot.application.ports.inventory import InventoryPort
from reservabot.application.ports.payments import PaymentsPort
from reservabot.application.ports.reservations import ReservationRepositoryPort
from reservabot.application.use_cases.reservation_flow import PAYMENT_ID, RESERVATION_ID, FlowOutcome
from reservabot.application.use_cases.reservation_lifecycle import release_reservation
from reservabot.application.utils.date_parser import WEEKDAYS_EN, WEEKDAYS_ES
from reservabot.application.utils.message_rules import (
    asks_for_price,
    asks_for_products,
    contains_any,
    is_thanks,
)
from reservabot.application.utils.service_resolver import ServiceResolver, field_label
from reservabot.application.utils.state_machine import compute_missing, reset_state
from reservabot.domain.entities.business import Business
from reservabot.domain.entities.conversation_state import (
    STAGE_AWAITING_PAYMENT,
    STAGE_COLLECTING,
    ConversationState,
)
from reservabot.domain.entities.detection import (
    INTENT_CANCEL,
    INTENT_FAREWELL,
    INTENT_GREETING,
    INTENT_OTHER,
    DetectionResult,
)
from reservabot.domain.entities.reservation import PAYMENT_PENDING, PAYMENT_REJECTED

HOURS_KEYWORDS = ("horario", "abren", "cierran", "que dias", "a que hora", "atienden")
LOCATION_KEYWORDS = ("direccion", "ubicacion", "donde estan", "donde quedan")


class IntentHandlers:
    """Replies for every intention other than reserve."""

    def __init__(
        self,
        reservations: ReservationRepositoryPort,
        inventory: InventoryPort,
        payments: PaymentsPort,
        services: ServiceResolver,
    ) -> None:
        self._reservations = reservations
        self._inventory = inventory
        self._payments = payments
        self._services = services
        self._logger = logging.getLogger(__name__)

    def greeting(self, business: Business, state: ConversationState) -> FlowOutcome:
        options = ", ".join(s.name for s in business.active_services())
        reply = f"¡Hola! Bienvenido a {business.name}. ¿En qué te puedo ayudar?"
        if options:
            reply += f" Puedo ayudarte con: {options}."
        return FlowOutcome(reply=reply, state=reset_state(state, last_intention=INTENT_GREETING))

    def farewell(self, business: Business, state: ConversationState, message: str) -> FlowOutcome:
        reply = "¡Con gusto! " if is_thanks(message) else ""
        reply += f"Gracias por escribir a {business.name}. ¡Hasta pronto!"
        return FlowOutcome(reply=reply, state=reset_state(state, last_intention=INTENT_FAREWELL))

    def other(self, business: Business, state: ConversationState, detection: DetectionResult) -> FlowOutcome:
        reply = detection.suggested_reply or (
            f"No estoy seguro de haberte entendido. Puedo ayudarte a reservar o a resolver dudas sobre {business.name}."
        )
        return FlowOutcome(reply=reply, state=reset_state(state, last_intention=INTENT_OTHER))

    def cancel(self, business: Business, user_id: str, state: ConversationState, conversation_id: str) -> FlowOutcome:
        """
        Cancel whatever is in progress.

        A reservation waiting for payment is cancelled and its payment rejected;
        an idle conversation cancels the user's latest active reservation.
        Cancelling always releases held stock.
        """
        if state.stage == STAGE_AWAITING_PAYMENT:
            self._cancel_pending(state, conversation_id)
            return FlowOutcome(
                reply="Listo, cancelé tu solicitud y el pago pendiente.",
                state=reset_state(state, last_intention=INTENT_CANCEL),
            )

        if state.stage == STAGE_COLLECTING:
            return FlowOutcome(
                reply="Listo, cancelé la solicitud. Si necesitas algo más, aquí estoy.",
                state=reset_state(state, last_intention=INTENT_CANCEL),
            )

        active = sorted(
            self._reservations.find_active_by_user(business.id, user_id),
            key=lambda r: r.created_at,
        )
        if not active:
            return FlowOutcome(
                reply="No encontré reservas activas a tu nombre para cancelar.",
                state=reset_state(state, last_intention=INTENT_CANCEL),
            )

        latest = active[-1]
        release_reservation(self._reservations, self._inventory, latest)
        pending = self._payments.get_pending_payment(conversation_id)
        if pending is not None and pending.reservation_id == latest.id:
            self._payments.update_status(pending.id, PAYMENT_REJECTED)
        return FlowOutcome(
            reply=f"Cancelé tu reserva del {latest.date} a las {latest.time}.",
            state=reset_state(state, last_intention=INTENT_CANCEL),
        )

    def query(
        self,
        business: Business,
        state: ConversationState,
        message: str,
        detection: DetectionResult,
    ) -> FlowOutcome:
        if asks_for_products(message) or asks_for_price(message):
            answer = self._catalog_answer(business)
        elif contains_any(message, HOURS_KEYWORDS):
            answer = self._hours_answer(business)
        elif contains_any(message, LOCATION_KEYWORDS) and business.address:
            answer = f"Estamos en {business.address}."
        elif detection.suggested_reply:
            answer = detection.suggested_reply
        else:
            answer = self._catalog_answer(business)

        if state.stage == STAGE_COLLECTING:
            requirements = self._services.resolve(business, state.collected_data.get("service"))
            missing = compute_missing(state.collected_data, requirements.required_fields)
            if missing:
                answer += f" Sigamos con tu {requirements.reservation_noun}: ¿me indicas {field_label(missing[0])}?"
            return FlowOutcome(reply=answer, state=state, missing_fields=missing)

        return FlowOutcome(reply=answer, state=replace(state, last_intention=detection.intention))

    def _cancel_pending(self, state: ConversationState, conversation_id: str) -> None:
        payment_id = state.metadata.get(PAYMENT_ID)
        payment = self._payments.get_payment(payment_id) if payment_id else None
        if payment is None:
            payment = self._payments.get_pending_payment(conversation_id)
        if payment is not None and payment.status == PAYMENT_PENDING:
            self._payments.update_status(payment.id, PAYMENT_REJECTED)

        reservation_id = state.metadata.get(RESERVATION_ID) or (payment.reservation_id if payment else None)
        reservation = self._reservations.get(reservation_id) if reservation_id else None
        if reservation is not None and reservation.is_active:
            release_reservation(self._reservations, self._inventory, reservation)

    @staticmethod
    def _catalog_answer(business: Business) -> str:
        products = [p for p in business.products if p.available]
        if products:
            items = ", ".join(f"{p.name} (${p.price:,.0f})" for p in products[:10])
            return f"Esto es lo que tenemos: {items}."
        services = ", ".join(s.name for s in business.active_services())
        return f"Ofrecemos: {services}." if services else f"Gracias por tu interés en {business.name}."

    @staticmethod
    def _hours_answer(business: Business) -> str:
        if not business.hours:
            return "Escríbenos y te confirmamos el horario."
        lines = [
            f"{es.capitalize()}: {business.hours.get(en, 'cerrado')}"
            for en, es in zip(WEEKDAYS_EN, WEEKDAYS_ES)
        ]
        return "Nuestro horario: " + "; ".join(lines) + "."
