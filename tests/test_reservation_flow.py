"""
Tests for the reservation turn: merging, questions, validation and commit.
"""

from __future__ import annotations

from dataclasses import replace

from conftest import build_world, restaurant_business

from reservabot.application.exceptions import PersistenceError
from reservabot.application.use_cases.reservation_flow import (
    PAYMENT_ID,
    RESERVATION_ID,
    STARTED_AT,
    run_reservation_flow,
)
from reservabot.application.utils.state_machine import ASKED_ALL_FLAG, COMPLETED_AT
from reservabot.domain.entities.conversation_state import (
    STAGE_AWAITING_PAYMENT,
    STAGE_COLLECTING,
    STAGE_COMPLETED,
    ConversationState,
    HistoryTurn,
)
from reservabot.domain.entities.detection import DetectionResult
from reservabot.domain.entities.reservation import RESERVATION_CONFIRMED, RESERVATION_PENDING
from reservabot.infrastructure.directory.business_parser import parse_business
from reservabot.infrastructure.payments.mock_payments import MockPayments
from reservabot.infrastructure.reservations.memory_reservations import MemoryReservationRepository

RESERVE = DetectionResult(intention="reserve", confidence=0.9)
CONVERSATION = "restaurante-demo:u1"
DELIVERY_ORDER = "quiero pedir a domicilio 2 lasagna para mañana a las 8pm, dirección Calle 45 # 12-30, tel 3001234567"


class FailingReservations(MemoryReservationRepository):
    def create(self, reservation):
        raise PersistenceError("database unavailable")


class FailingPayments(MockPayments):
    def create_payment_request(self, *args, **kwargs):
        raise PersistenceError("gateway down")


def _turn(world, message: str, state: ConversationState, detection: DetectionResult = RESERVE):
    return run_reservation_flow(
        world.deps,
        restaurant_business(),
        "u1",
        message,
        state,
        detection,
        CONVERSATION,
        now=100.0,
    )


def test_first_turn_asks_for_everything_missing():
    world = build_world()
    outcome = _turn(world, "quiero reservar una mesa", ConversationState())

    assert outcome.state.stage == STAGE_COLLECTING
    assert outcome.state.collected_data == {"service": "mesa"}
    assert outcome.missing_fields == ["date", "time", "phone", "guests"]
    assert outcome.reply == "Para tu reserva necesito: fecha, hora, teléfono y número de personas."
    assert outcome.state.metadata[ASKED_ALL_FLAG] is True
    assert outcome.state.metadata[STARTED_AT] == 100.0


def test_second_turn_asks_one_field():
    world = build_world()
    first = _turn(world, "quiero reservar una mesa", ConversationState())
    second = _turn(world, "mañana a las 8pm para 4 personas", first.state)

    assert second.missing_fields == ["phone"]
    assert second.reply == "¿Me indicas el teléfono?"


def test_missing_service_lists_options():
    world = build_world()
    outcome = _turn(world, "quiero reservar", ConversationState())
    assert outcome.missing_fields[0] == "service"
    assert "Mesa en restaurante (mesa) y Domicilio (domicilio)" in outcome.reply


def test_complete_table_reservation_is_confirmed_once():
    """A completed reservation clears its data, so a repeated confirmation cannot book again."""
    world = build_world()
    outcome = _turn(world, "quiero una mesa mañana a las 8pm para 4 personas, tel 3001234567", ConversationState())

    assert outcome.state.stage == STAGE_COMPLETED
    assert outcome.state.collected_data == {}
    assert outcome.reply == "¡Listo! Tu reserva quedó confirmada para el 2026-10-15 a las 20:00 para 4 personas en la mesa-2."
    [reservation] = world.reservations.find_active_by_user("restaurante-demo", "u1")
    assert reservation.status == RESERVATION_CONFIRMED
    assert reservation.table_id == "mesa-2"

    again = _turn(world, "sí", outcome.state)
    assert again.state.stage == STAGE_COLLECTING
    assert len(world.reservations.find_active_by_user("restaurante-demo", "u1")) == 1


def test_backfill_reuses_details_given_before_the_request():
    world = build_world()
    state = ConversationState(
        history=(HistoryTurn(role="user", text="mi teléfono es 3001234567", timestamp=10.0),),
    )

    outcome = _turn(world, "quiero una mesa para 4 personas mañana a las 8pm", state)

    assert outcome.state.stage == STAGE_COMPLETED
    assert outcome.missing_fields == []
    [reservation] = world.reservations.find_active_by_user("restaurante-demo", "u1")
    assert reservation.phone == "3001234567"


def test_backfill_skips_turns_of_the_previous_reservation():
    """Values given before the last completed reservation are not reused."""
    world = build_world()
    history = (
        HistoryTurn(role="user", text="mi teléfono es 3110000000", timestamp=10.0),
        HistoryTurn(role="user", text="somos 4 personas", timestamp=60.0),
    )
    state = ConversationState(
        stage=STAGE_COMPLETED,
        history=history,
        last_intention="reserve",
        metadata={COMPLETED_AT: 50.0},
    )

    outcome = _turn(world, "quiero una mesa mañana a las 8pm", state)

    assert outcome.state.collected_data["guests"] == 4
    assert "phone" not in outcome.state.collected_data
    assert outcome.missing_fields == ["phone"]
    assert outcome.state.metadata[COMPLETED_AT] == 50.0


def test_confirmation_marks_the_completion_time():
    world = build_world()
    outcome = _turn(world, "quiero una mesa mañana a las 8pm para 4 personas, tel 3001234567", ConversationState())
    assert outcome.state.metadata == {COMPLETED_AT: 100.0}


def test_explicit_change_is_applied_and_acknowledged():
    world = build_world()
    state = ConversationState(
        stage=STAGE_COLLECTING,
        collected_data={"service": "mesa", "date": "2026-10-15", "time": "19:00"},
        last_intention="reserve",
        metadata={STARTED_AT: 50.0, ASKED_ALL_FLAG: True},
    )

    outcome = _turn(world, "mejor a las 9pm", state)

    assert outcome.state.collected_data["time"] == "21:00"
    assert outcome.reply.startswith("Actualicé la hora a 21:00.")


def test_service_change_clears_service_fields():
    world = build_world()
    state = ConversationState(
        stage=STAGE_COLLECTING,
        collected_data={
            "service": "domicilio",
            "products": [{"id": "lasagna", "quantity": 1}],
            "address": "Calle 45 # 12-30",
            "phone": "3001234567",
        },
        last_intention="reserve",
        metadata={STARTED_AT: 50.0, ASKED_ALL_FLAG: True},
    )

    outcome = _turn(world, "mejor una mesa", state)
    collected = outcome.state.collected_data

    assert collected["service"] == "mesa"
    assert "products" not in collected
    assert "address" not in collected
    assert collected["phone"] == "3001234567"
    assert outcome.reply.startswith("Actualicé el servicio a mesa.")
    # the service changed, so the remaining fields are asked together again
    assert outcome.missing_fields == ["date", "time", "guests"]


def test_unavailable_time_is_asked_again():
    world = build_world()
    outcome = _turn(world, "quiero una mesa mañana a las 11pm para 2 personas, tel 3001234567", ConversationState())

    assert outcome.state.stage == STAGE_COLLECTING
    assert "time" not in outcome.state.collected_data
    assert outcome.missing_fields == ["time"]
    assert outcome.reply == "Horario de atención: 12:00 - 23:00 Opciones: 22:30, 22:00, 21:30."


def test_short_stock_keeps_the_rest_of_the_order():
    world = build_world()
    outcome = _turn(
        world,
        "quiero pedir a domicilio 5 tiramisu y 2 pizza margarita para mañana a las 8pm, "
        "dirección Calle 45 # 12-30, tel 3001234567",
        ConversationState(),
    )

    assert outcome.state.stage == STAGE_COLLECTING
    assert outcome.state.collected_data["products"] == [{"id": "pizza-margarita", "quantity": 2}]
    assert "Solo nos quedan 3 de Tiramisu." in outcome.reply
    assert "seguimos solo con Pizza margarita" in outcome.reply
    assert outcome.state.metadata["invalid_products"] == ["tiramisu"]


def test_paid_service_waits_for_payment_and_holds_stock():
    world = build_world()
    outcome = _turn(world, DELIVERY_ORDER, ConversationState())

    assert outcome.state.stage == STAGE_AWAITING_PAYMENT
    payment = world.payments.get_pending_payment(CONVERSATION)
    assert payment.amount == 69000
    assert payment.payment_url in outcome.reply
    assert "Total: $69,000" in outcome.reply
    assert outcome.state.metadata[PAYMENT_ID] == payment.id

    reservation = world.reservations.get(outcome.state.metadata[RESERVATION_ID])
    assert reservation.status == RESERVATION_PENDING
    assert reservation.stock_held
    assert world.inventory.get_stock("restaurante-demo", "lasagna") == 3


def test_awaiting_payment_repeats_the_link():
    world = build_world()
    first = _turn(world, DELIVERY_ORDER, ConversationState())
    second = _turn(world, "sí", first.state)

    assert second.state.stage == STAGE_AWAITING_PAYMENT
    assert second.reply == first.reply
    assert len(world.reservations.find_active_by_user("restaurante-demo", "u1")) == 1


def test_commit_failure_keeps_collecting():
    world = build_world()
    deps = replace(world.deps, reservations=FailingReservations())
    outcome = run_reservation_flow(
        deps,
        restaurant_business(),
        "u1",
        "quiero una mesa mañana a las 8pm para 4 personas, tel 3001234567",
        ConversationState(),
        RESERVE,
        CONVERSATION,
        now=100.0,
    )

    assert outcome.state.stage == STAGE_COLLECTING
    assert outcome.reply.startswith("Tuvimos un problema registrando tu reserva.")
    assert outcome.state.collected_data["date"] == "2026-10-15"


def test_payment_failure_releases_reservation():
    world = build_world()
    deps = replace(world.deps, payments=FailingPayments())
    outcome = run_reservation_flow(
        deps, restaurant_business(), "u1", DELIVERY_ORDER, ConversationState(), RESERVE, CONVERSATION, now=100.0
    )

    assert outcome.state.stage == STAGE_COLLECTING
    assert outcome.reply.startswith("Tuvimos un problema registrando tu pedido.")
    assert world.reservations.find_active_by_user("restaurante-demo", "u1") == []
    assert world.inventory.get_stock("restaurante-demo", "lasagna") == 5


def test_schedule_is_asked_even_when_the_service_omits_it():
    world = build_world()
    business = parse_business(
        {
            "id": "tienda",
            "name": "La Tienda",
            "hours": {"thursday": "09:00-21:00"},
            "services": [{"key": "retiro", "name": "Retiro en tienda", "requiredFields": ["phone"]}],
        }
    )

    first = run_reservation_flow(
        world.deps, business, "u1", "quiero reservar, tel 3001234567", ConversationState(), RESERVE, "tienda:u1", now=100.0
    )

    assert first.state.stage == STAGE_COLLECTING
    assert first.missing_fields == ["date", "time"]
    assert world.reservations.find_active_by_user("tienda", "u1") == []

    second = run_reservation_flow(world.deps, business, "u1", "mañana a las 8pm", first.state, RESERVE, "tienda:u1", now=101.0)

    assert second.state.stage == STAGE_COMPLETED
    [reservation] = world.reservations.find_active_by_user("tienda", "u1")
    assert (reservation.date, reservation.time) == ("2026-10-15", "20:00")
