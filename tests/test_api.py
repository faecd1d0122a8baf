"""
Tests for the HTTP surface, with the use cases swapped for in-memory ones.
"""

from __future__ import annotations

import pytest
from conftest import build_world, restaurant_business
from fastapi.testclient import TestClient

from reservabot.application.use_cases.reservation_flow import run_reservation_flow
from reservabot.domain.entities.conversation_state import ConversationState
from reservabot.domain.entities.detection import DetectionResult
from reservabot.main import app
from reservabot.wiring.dependencies import get_cascade, get_process_message_use_case, get_settle_payment_use_case


@pytest.fixture
def client_and_world():
    world = build_world()
    app.dependency_overrides[get_process_message_use_case] = lambda: world.use_case
    app.dependency_overrides[get_settle_payment_use_case] = lambda: world.settle
    yield TestClient(app), world
    app.dependency_overrides.clear()


def test_post_message(client_and_world):
    client, _ = client_and_world
    response = client.post("/messages", json={"business_id": "restaurante-demo", "user_id": "u1", "message": "hola"})

    assert response.status_code == 200
    body = response.json()
    assert body["intention"] == "greeting"
    assert body["conversation_stage"] == "idle"
    assert body["conversation_id"] == "restaurante-demo:u1"
    assert "La Terraza" in body["reply"]


def test_post_message_requires_user(client_and_world):
    client, _ = client_and_world
    response = client.post("/messages", json={"business_id": "restaurante-demo", "message": "hola"})
    assert response.status_code == 422


def test_payment_result(client_and_world):
    client, world = client_and_world
    outcome = run_reservation_flow(
        world.deps,
        restaurant_business(),
        "u1",
        "quiero pedir a domicilio 2 lasagna para mañana a las 8pm, dirección Calle 45 # 12-30, tel 3001234567",
        ConversationState(),
        DetectionResult(intention="reserve", confidence=0.9),
        "restaurante-demo:u1",
        now=100.0,
    )
    world.store.save_context("u1", "restaurante-demo", outcome.state)
    payment = world.payments.get_pending_payment("restaurante-demo:u1")

    response = client.post(f"/payments/{payment.id}/result", json={"approved": True})

    assert response.status_code == 200
    assert response.json() == {
        "payment_id": payment.id,
        "status": "paid",
        "reservation_status": "confirmed",
        "conversation_stage": "completed",
    }


def test_unknown_payment_is_404(client_and_world):
    client, _ = client_and_world
    response = client.post("/payments/missing/result", json={"approved": False})
    assert response.status_code == 404


def test_health(client_and_world):
    client, _ = client_and_world
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["semantic_breaker"]["state"] == "closed"
    assert set(body["cache"]) == {"context", "company"}


def test_shutdown_closes_the_cascade(monkeypatch):
    closed = []
    with TestClient(app):
        cascade = get_cascade()
        monkeypatch.setattr(cascade, "close", lambda: closed.append(True))

    assert closed == [True]
    assert get_cascade.cache_info().currsize == 0
