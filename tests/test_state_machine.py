"""
Tests for slot presence, field merging and stage transitions.
"""

from __future__ import annotations

from reservabot.application.utils.state_machine import (
    ASKED_ALL_FLAG,
    COMPLETED_AT,
    append_turn,
    complete_state,
    compute_missing,
    next_stage,
    plan_questions,
    present,
    reset_state,
    update_fields,
)
from reservabot.domain.entities.conversation_state import (
    STAGE_AWAITING_PAYMENT,
    STAGE_COLLECTING,
    STAGE_COMPLETED,
    STAGE_IDLE,
    ConversationState,
    HistoryTurn,
)

REQUIRED = ("date", "time", "phone")


def test_presence_predicate():
    slots = {"guests": 0, "name": "  ", "products": [], "phone": None, "date": "2026-10-15"}
    assert present(slots, "guests")
    assert present(slots, "date")
    assert not present(slots, "name")
    assert not present(slots, "products")
    assert not present(slots, "phone")
    assert not present(slots, "time")
    assert not present(None, "date")


def test_compute_missing_keeps_required_order():
    assert compute_missing({"time": "19:00"}, REQUIRED) == ["date", "phone"]


def test_update_fields_classifies_values():
    update = update_fields(
        {"date": "2026-10-15", "time": "19:00"},
        {"date": "2026-10-15", "time": "20:00", "phone": "3001234567", "name": ""},
    )
    assert update.new_fields == {"phone": "3001234567"}
    assert update.repeated == ("date",)
    assert update.conflicts == {"time": ("19:00", "20:00")}
    assert update.merged == {"date": "2026-10-15", "time": "20:00", "phone": "3001234567"}


def test_backfilled_values_never_overwrite():
    update = update_fields({"time": "19:00"}, {"time": "20:00", "date": "2026-10-15"}, explicit=False)
    assert update.merged == {"time": "19:00", "date": "2026-10-15"}
    assert "time" in update.conflicts


def test_next_stage_transitions():
    complete = {"date": "2026-10-15", "time": "19:00", "phone": "3001234567"}
    assert next_stage(STAGE_COLLECTING, "greeting", {}, REQUIRED) == STAGE_IDLE
    assert next_stage(STAGE_COLLECTING, "cancel", complete, REQUIRED) == STAGE_IDLE
    assert next_stage(STAGE_COLLECTING, "query", {}, REQUIRED) == STAGE_COLLECTING
    assert next_stage(STAGE_IDLE, "reserve", {"date": "2026-10-15"}, REQUIRED) == STAGE_COLLECTING
    assert next_stage(STAGE_COLLECTING, "reserve", complete, REQUIRED, requires_payment=True) == STAGE_AWAITING_PAYMENT
    assert next_stage(STAGE_COLLECTING, "reserve", complete, REQUIRED) == STAGE_COMPLETED


def test_hybrid_questions_ask_all_once_then_one_by_one():
    asked, metadata = plan_questions(["date", "time", "phone"], {})
    assert asked == ["date", "time", "phone"]
    assert metadata[ASKED_ALL_FLAG] is True

    asked, metadata = plan_questions(["time", "phone"], metadata)
    assert asked == ["time"]

    asked, metadata = plan_questions([], metadata)
    assert asked == []
    assert ASKED_ALL_FLAG not in metadata


def test_single_missing_field_does_not_set_flag():
    asked, metadata = plan_questions(["phone"], {})
    assert asked == ["phone"]
    assert ASKED_ALL_FLAG not in metadata


def test_reset_and_complete():
    state = ConversationState(
        stage=STAGE_COLLECTING,
        collected_data={"date": "2026-10-15"},
        history=(HistoryTurn(role="user", text="hola"),),
        metadata={ASKED_ALL_FLAG: True},
    )

    reset = reset_state(state, last_intention="cancel")
    assert reset.stage == STAGE_IDLE
    assert reset.collected_data == {}
    assert reset.metadata == {}
    assert reset.history == state.history
    assert reset.last_intention == "cancel"
    assert reset_state(state, keep_history=False).history == ()

    completed = complete_state(state)
    assert completed.stage == STAGE_COMPLETED
    assert completed.collected_data == {}
    assert completed.last_intention == "reserve"


def test_append_turn_is_bounded():
    state = ConversationState()
    for i in range(25):
        state = append_turn(state, "user", f"mensaje {i}", float(i))
    assert len(state.history) == 20
    assert state.history[0].text == "mensaje 5"
    assert state.history[-1].timestamp == 24.0


def test_completion_time_survives_reset():
    completed = complete_state(ConversationState(metadata={ASKED_ALL_FLAG: True}), completed_at=50.0)
    assert completed.metadata == {COMPLETED_AT: 50.0}

    assert reset_state(completed).metadata == {COMPLETED_AT: 50.0}
    assert reset_state(completed, keep_history=False).metadata == {}
    assert complete_state(completed).metadata == {COMPLETED_AT: 50.0}
