from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from reservabot.application.exceptions import PersistenceError
from reservabot.application.ports.inventory import InventoryPort
from reservabot.application.ports.payments import PaymentsPort
from reservabot.application.ports.reservations import ReservationRepositoryPort
from reservabot.application.use_cases.check_availability import AvailabilityChecker
from reservabot.application.use_cases.reservation_lifecycle import hold_stock, release_reservation
from reservabot.application.use_cases.validate_resources import ResourceValidator
from reservabot.application.utils.field_extractor import FieldExtractor
from reservabot.application.utils.product_mentions import merge_products, parse_product_mentions
from reservabot.application.utils.service_resolver import (
    ServiceRequirements,
    ServiceResolver,
    field_label,
    match_service,
)
from reservabot.application.utils.state_machine import (
    ASKED_ALL_FLAG,
    COMPLETED_AT,
    complete_state,
    compute_missing,
    next_stage,
    plan_questions,
    present,
    update_fields,
)
from reservabot.domain.entities.business import Business, ServiceDefinition
from reservabot.domain.entities.conversation_state import (
    STAGE_AWAITING_PAYMENT,
    STAGE_COLLECTING,
    ConversationState,
)
from reservabot.domain.entities.detection import INTENT_RESERVE, DetectionResult
from reservabot.domain.entities.reservation import (
    RESERVATION_CONFIRMED,
    RESERVATION_PENDING,
    NewReservation,
    PaymentRequest,
)

logger = logging.getLogger(__name__)

# Fields that belong to one service and are dropped when the service changes
SERVICE_SCOPED_FIELDS = ("products", "address", "tableId")

STARTED_AT = "started_at"
RESERVATION_ID = "reservation_id"
PAYMENT_ID = "payment_id"
INVALID_PRODUCTS = "invalid_products"
LAST_CHANGES = "last_changes"


@dataclass(frozen=True)
class FlowDeps:
    extractor: FieldExtractor
    services: ServiceResolver
    availability: AvailabilityChecker
    resources: ResourceValidator
    reservations: ReservationRepositoryPort
    inventory: InventoryPort
    payments: PaymentsPort
    clock: Callable[[], float] = time.time


@dataclass(frozen=True)
class FlowOutcome:
    reply: str
    state: ConversationState
    missing_fields: list[str] = field(default_factory=list)


def run_reservation_flow(
    deps: FlowDeps,
    business: Business,
    user_id: str,
    message: str,
    state: ConversationState,
    detection: DetectionResult,
    conversation_id: str,
    phone: str | None = None,
    now: float | None = None,
) -> FlowOutcome:
    """
    One reservation turn: merge slots, ask for what is missing, validate and commit.

    Holds no state of its own; everything it needs arrives as arguments and
    everything it decides leaves in the returned FlowOutcome.
    """
    now = deps.clock() if now is None else now

    if state.stage == STAGE_AWAITING_PAYMENT:
        pending = deps.payments.get_pending_payment(conversation_id)
        if pending is not None:
            noun = deps.services.resolve(business, state.collected_data.get("service")).reservation_noun
            return FlowOutcome(
                reply=_payment_reply(pending, noun),
                state=replace(state, last_intention=INTENT_RESERVE),
            )
        state = replace(state, stage=STAGE_COLLECTING)

    if state.stage == STAGE_COLLECTING:
        collected = dict(state.collected_data)
        metadata = dict(state.metadata)
    else:
        collected = {}
        metadata = {STARTED_AT: now}
        if COMPLETED_AT in state.metadata:
            metadata[COMPLETED_AT] = state.metadata[COMPLETED_AT]
    metadata.setdefault(STARTED_AT, now)

    explicit = _explicit_slots(deps, business, message, detection, collected, phone)
    update = update_fields(collected, explicit, explicit=True)
    collected = update.merged

    if "service" in update.conflicts:
        for name in SERVICE_SCOPED_FIELDS:
            if name not in explicit:
                collected.pop(name, None)
        metadata.pop(ASKED_ALL_FLAG, None)
        logger.info(
            "Service changed, service scoped fields cleared",
            extra={"business_id": business.id, "user_id": user_id},
        )

    if present(collected, "service") and business.get_service(collected["service"]) is None:
        collected.pop("service")
    single = deps.services.single_service_key(business)
    if single and not present(collected, "service"):
        collected["service"] = single

    requirements = deps.services.resolve(business, collected.get("service"))
    missing = compute_missing(collected, requirements.required_fields)
    if missing:
        since = metadata.get(COMPLETED_AT)
        turns = [t for t in state.history if since is None or t.timestamp > since]
        backfill = _normalize_service(business, deps.extractor.extract_from_history(turns, missing))
        collected = update_fields(collected, backfill, explicit=False).merged
        requirements = deps.services.resolve(business, collected.get("service"))
        missing = compute_missing(collected, requirements.required_fields)

    changes = _change_notes(update.conflicts)
    metadata[LAST_CHANGES] = sorted(update.conflicts)

    stage = next_stage(state.stage, INTENT_RESERVE, collected, requirements.required_fields, requirements.requires_payment)
    if stage == STAGE_COLLECTING:
        asked, metadata = plan_questions(missing, metadata)
        reply = _join(changes, _question(deps.services, business, requirements, asked))
        return _collecting(state, collected, metadata, reply, missing)

    # a service may leave the schedule out of its required fields; a reservation still needs one
    unscheduled = [name for name in ("date", "time") if not present(collected, name)]
    if unscheduled:
        asked, metadata = plan_questions(unscheduled, metadata)
        reply = _join(changes, _question(deps.services, business, requirements, asked))
        return _collecting(state, collected, metadata, reply, unscheduled)

    service = business.get_service(requirements.service_key)
    guests = int(collected["guests"]) if present(collected, "guests") else None
    check = deps.availability.check(business, service, collected["date"], collected["time"], guests, user_id)
    if not check.is_available:
        retry_field = check.field or "time"
        collected.pop(retry_field, None)
        options = f" Opciones: {', '.join(check.alternatives)}." if check.alternatives else ""
        reply = _join(changes, f"{check.message}{options}")
        return _collecting(state, collected, metadata, reply, [retry_field])

    validation = deps.resources.validate(business, service, collected)
    if not validation.is_valid:
        retry: list[str] = []
        parts = [validation.message or ""]
        if validation.invalid_products:
            kept = list(validation.valid_products)
            if kept:
                collected["products"] = kept
                names = ", ".join(_product_name(business, item["id"]) for item in kept)
                parts.append(f"¿Quieres cambiarlo por otro producto o seguimos solo con {names}?")
            else:
                collected.pop("products", None)
                retry.append("products")
                parts.append("¿Qué te gustaría pedir en su lugar?")
            metadata[INVALID_PRODUCTS] = [issue.product_id for issue in validation.invalid_products]
        if validation.table_id is None and validation.table_reason:
            collected.pop("time", None)
            retry.append("time")
            parts.append("¿Te sirve otra hora?")
        return _collecting(state, collected, metadata, _join(changes, " ".join(p for p in parts if p)), retry)

    metadata.pop(INVALID_PRODUCTS, None)
    if validation.table_id:
        collected["tableId"] = validation.table_id
    notes = [changes]
    if validation.table_reason and validation.message:
        notes.append(validation.message)

    amount = _amount(business, service, collected)
    try:
        if requirements.requires_payment and amount > 0:
            return _commit_with_payment(
                deps, business, user_id, state, collected, metadata, requirements, amount, conversation_id, notes
            )
        return _commit_confirmed(deps, business, user_id, state, collected, requirements, notes, now)
    except PersistenceError as e:
        logger.error(
            "Reservation commit failed",
            extra={"business_id": business.id, "user_id": user_id, "error": str(e)},
        )
        reply = (
            f"Tuvimos un problema registrando tu {requirements.reservation_noun}. "
            "Por favor intenta de nuevo en unos minutos."
        )
        return _collecting(state, collected, metadata, reply, [])


def _explicit_slots(
    deps: FlowDeps,
    business: Business,
    message: str,
    detection: DetectionResult,
    collected: dict[str, Any],
    phone: str | None,
) -> dict[str, Any]:
    """Slots stated in this message: semantic values, overridden by the deterministic extractor."""
    live = _normalize_service(business, deps.extractor.extract(message))

    slots = {k: v for k, v in detection.extracted_data.items() if k != "products"}
    slots.update(live)
    slots = deps.services.correct_slot_names(business, slots)

    mentioned = parse_product_mentions(business, message)
    products = merge_products(detection.extracted_data.get("products") or [], slots.get("products") or [])
    products = merge_products(products, mentioned)
    if products:
        slots["products"] = merge_products(collected.get("products"), products)
    else:
        slots.pop("products", None)

    service = deps.services.infer_service(
        business,
        message,
        current_service=collected.get("service"),
        explicit_service=slots.get("service"),
        mentioned_products=products,
    )
    if service:
        slots["service"] = service
    else:
        slots.pop("service", None)

    if phone and "phone" not in slots and not present(collected, "phone"):
        digits = re.sub(r"\D", "", phone)
        if 7 <= len(digits) <= 10:
            slots["phone"] = digits

    return slots


def _normalize_service(business: Business, slots: dict[str, Any]) -> dict[str, Any]:
    if "service" not in slots:
        return slots
    normalized = dict(slots)
    key = match_service(business, normalized["service"])
    if key:
        normalized["service"] = key
    else:
        normalized.pop("service")
    return normalized


def _collecting(
    state: ConversationState,
    collected: dict[str, Any],
    metadata: dict[str, Any],
    reply: str,
    missing: list[str],
) -> FlowOutcome:
    return FlowOutcome(
        reply=reply,
        state=replace(
            state,
            stage=STAGE_COLLECTING,
            collected_data=collected,
            metadata=metadata,
            last_intention=INTENT_RESERVE,
        ),
        missing_fields=list(missing),
    )


def _commit_confirmed(
    deps: FlowDeps,
    business: Business,
    user_id: str,
    state: ConversationState,
    collected: dict[str, Any],
    requirements: ServiceRequirements,
    notes: list[str],
    now: float,
) -> FlowOutcome:
    reservation = deps.reservations.create(_new_reservation(business, user_id, collected, requirements, RESERVATION_CONFIRMED))
    if reservation.products:
        reservation = hold_stock(deps.reservations, deps.inventory, reservation)

    logger.info(
        "Reservation confirmed",
        extra={"business_id": business.id, "user_id": user_id, "reservation_id": reservation.id},
    )
    reply = _join(*notes, _confirmation(requirements, collected))
    return FlowOutcome(reply=reply, state=complete_state(state, completed_at=now))


def _commit_with_payment(
    deps: FlowDeps,
    business: Business,
    user_id: str,
    state: ConversationState,
    collected: dict[str, Any],
    metadata: dict[str, Any],
    requirements: ServiceRequirements,
    amount: int,
    conversation_id: str,
    notes: list[str],
) -> FlowOutcome:
    payment = deps.payments.get_pending_payment(conversation_id)
    if payment is None:
        reservation = deps.reservations.create(
            _new_reservation(business, user_id, collected, requirements, RESERVATION_PENDING)
        )
        if reservation.products:
            reservation = hold_stock(deps.reservations, deps.inventory, reservation)
        try:
            payment = deps.payments.create_payment_request(
                amount=amount,
                description=f"{requirements.reservation_noun.capitalize()} {business.name} {collected['date']} {collected['time']}",
                customer={"name": collected.get("name"), "phone": collected.get("phone"), "user_id": user_id},
                conversation_id=conversation_id,
                reservation_id=reservation.id,
            )
        except PersistenceError:
            release_reservation(deps.reservations, deps.inventory, reservation)
            raise
        logger.info(
            "Payment requested",
            extra={"business_id": business.id, "user_id": user_id, "reservation_id": reservation.id},
        )

    metadata = {**metadata, RESERVATION_ID: payment.reservation_id, PAYMENT_ID: payment.id}
    new_state = replace(
        state,
        stage=STAGE_AWAITING_PAYMENT,
        collected_data=collected,
        metadata=metadata,
        last_intention=INTENT_RESERVE,
    )
    return FlowOutcome(reply=_join(*notes, _payment_reply(payment, requirements.reservation_noun)), state=new_state)


def _new_reservation(
    business: Business,
    user_id: str,
    collected: dict[str, Any],
    requirements: ServiceRequirements,
    status: str,
) -> NewReservation:
    return NewReservation(
        business_id=business.id,
        user_id=user_id,
        service=requirements.service_key or "",
        date=collected["date"],
        time=collected["time"],
        guests=int(collected["guests"]) if present(collected, "guests") else 1,
        phone=collected.get("phone"),
        name=collected.get("name"),
        address=collected.get("address"),
        table_id=collected.get("tableId"),
        products=tuple(dict(item) for item in collected.get("products") or []),
        status=status,
    )


def _amount(business: Business, service: ServiceDefinition | None, collected: dict[str, Any]) -> int:
    subtotal = 0.0
    for item in collected.get("products") or []:
        product = business.get_product(item["id"])
        if product is not None:
            subtotal += product.price * int(item.get("quantity") or 1)
    if service is not None:
        subtotal += service.delivery_fee
    return int(round(subtotal * business.payment_percentage / 100))


def _question(
    services: ServiceResolver,
    business: Business,
    requirements: ServiceRequirements,
    asked: list[str],
) -> str:
    noun = requirements.reservation_noun
    if len(asked) == 1:
        text = f"¿Me indicas {_article(asked[0])} {field_label(asked[0])}?"
    else:
        text = f"Para tu {noun} necesito: {_enumerate([field_label(f) for f in asked])}."

    if "service" in asked:
        text += f" Tenemos: {_enumerate(services.service_options(business))}."
    if "products" in asked and business.products:
        menu = [f"{p.name} (${p.price:,.0f})" for p in business.products if p.available][:10]
        text += f" Disponibles: {_enumerate(menu)}."
    return text


def _confirmation(requirements: ServiceRequirements, collected: dict[str, Any]) -> str:
    noun = requirements.reservation_noun
    done = "confirmado" if noun == "pedido" else "confirmada"
    text = f"¡Listo! Tu {noun} quedó {done} para el {collected['date']} a las {collected['time']}"
    if "guests" in requirements.required_fields and present(collected, "guests"):
        text += f" para {collected['guests']} personas"
    if present(collected, "tableId"):
        text += f" en la {collected['tableId']}"
    return text + "."


def _payment_reply(payment: PaymentRequest, noun: str) -> str:
    return (
        f"Tu {noun} quedó pendiente de pago. Total: ${payment.amount:,}. "
        f"Puedes pagar aquí: {payment.payment_url}"
    )


def _change_notes(conflicts: dict[str, tuple[Any, Any]]) -> str:
    notes = [
        f"Actualicé {_article(name)} {field_label(name)} a {new}."
        for name, (_, new) in conflicts.items()
        if name != "products"
    ]
    return " ".join(notes)


def _product_name(business: Business, product_id: str) -> str:
    product = business.get_product(product_id)
    return product.name if product else product_id


def _article(field_name: str) -> str:
    if field_name == "products":
        return "los"
    return "el" if field_name in ("service", "phone", "guests", "name") else "la"


def _enumerate(items: list[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    return f"{', '.join(items[:-1])} y {items[-1]}"


def _join(*parts: str) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())
