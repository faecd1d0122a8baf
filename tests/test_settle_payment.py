"""
Tests for settling payments of delivery orders.
"""

from __future__ import annotations

import pytest
from conftest import build_world, restaurant_business

from reservabot.application.exceptions import PersistenceError
from reservabot.application.use_cases.reservation_flow import PAYMENT_ID, RESERVATION_ID, run_reservation_flow
from reservabot.application.utils.state_machine import COMPLETED_AT
from reservabot.domain.entities.conversation_state import (
    STAGE_AWAITING_PAYMENT,
    STAGE_COLLECTING,
    STAGE_COMPLETED,
    ConversationState,
)
from reservabot.domain.entities.detection import DetectionResult
from reservabot.domain.entities.reservation import (
    PAYMENT_PAID,
    PAYMENT_REJECTED,
    RESERVATION_CANCELLED,
    RESERVATION_CONFIRMED,
)

ORDER = "quiero pedir a domicilio 2 lasagna para mañana a las 8pm, dirección Calle 45 # 12-30, tel 3001234567"


def _pending_order(world):
    """Run the order through the flow and store the resulting conversation like a real turn would."""
    outcome = run_reservation_flow(
        world.deps,
        restaurant_business(),
        "u1",
        ORDER,
        ConversationState(),
        DetectionResult(intention="reserve", confidence=0.9),
        "restaurante-demo:u1",
        now=100.0,
    )
    assert outcome.state.stage == STAGE_AWAITING_PAYMENT
    world.store.save_context("u1", "restaurante-demo", outcome.state)
    return world.payments.get_pending_payment("restaurante-demo:u1")


def test_approved_payment_confirms_reservation():
    world = build_world()
    payment = _pending_order(world)

    result = world.settle.settle(payment.id, approved=True)

    assert result.status == PAYMENT_PAID
    assert result.reservation_status == RESERVATION_CONFIRMED
    assert result.conversation_stage == STAGE_COMPLETED
    assert world.reservations.get(payment.reservation_id).status == RESERVATION_CONFIRMED
    # stock stays taken by the paid order
    assert world.inventory.get_stock("restaurante-demo", "lasagna") == 3

    state = world.store.get_context("u1", "restaurante-demo")
    assert state.stage == STAGE_COMPLETED
    assert state.collected_data == {}
    assert state.history[-1].text == result.reply
    assert state.metadata[COMPLETED_AT] < state.history[-1].timestamp


def test_rejected_payment_releases_reservation():
    world = build_world()
    payment = _pending_order(world)

    result = world.settle.settle(payment.id, approved=False)

    assert result.status == PAYMENT_REJECTED
    assert result.reservation_status == RESERVATION_CANCELLED
    assert world.inventory.get_stock("restaurante-demo", "lasagna") == 5

    state = world.store.get_context("u1", "restaurante-demo")
    assert state.stage == STAGE_COLLECTING
    assert state.collected_data["address"] == "Calle 45 # 12-30"
    assert PAYMENT_ID not in state.metadata
    assert RESERVATION_ID not in state.metadata


def test_settling_twice_changes_nothing():
    world = build_world()
    payment = _pending_order(world)
    world.settle.settle(payment.id, approved=True)

    again = world.settle.settle(payment.id, approved=False)

    assert again.status == PAYMENT_PAID
    assert again.reservation_status == RESERVATION_CONFIRMED
    assert again.conversation_stage is None
    assert world.store.get_context("u1", "restaurante-demo").stage == STAGE_COMPLETED


def test_unknown_payment():
    world = build_world()
    with pytest.raises(PersistenceError):
        world.settle.settle("missing", approved=True)
