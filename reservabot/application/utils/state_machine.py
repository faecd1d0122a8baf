from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Iterable

from reservabot.domain.entities.conversation_state import (
    STAGE_AWAITING_PAYMENT,
    STAGE_COLLECTING,
    STAGE_COMPLETED,
    STAGE_IDLE,
    ConversationState,
    HistoryTurn,
)
from reservabot.domain.entities.detection import (
    INTENT_CANCEL,
    INTENT_FAREWELL,
    INTENT_GREETING,
    INTENT_OTHER,
    INTENT_QUERY,
    INTENT_RESERVE,
)

NON_ACTIONABLE = (INTENT_GREETING, INTENT_FAREWELL, INTENT_OTHER)

ASKED_ALL_FLAG = "asked_all_missing"
# Time of the last completed reservation; slots are never backfilled from turns before it
COMPLETED_AT = "completed_at"


def present(slots: dict[str, Any] | None, field_name: str) -> bool:
    """
    Single presence predicate for slot values.

    None, empty or blank strings and empty lists are absent. Numbers are
    present, including 0.
    """
    if not slots or field_name not in slots:
        return False
    value = slots[field_name]
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


def compute_missing(collected: dict[str, Any], required: Iterable[str]) -> list[str]:
    return [f for f in required if not present(collected, f)]


@dataclass(frozen=True)
class FieldUpdate:
    merged: dict[str, Any]
    new_fields: dict[str, Any] = field(default_factory=dict)
    repeated: tuple[str, ...] = ()
    # field -> (previous, incoming); applied only when the update is explicit
    conflicts: dict[str, tuple[Any, Any]] = field(default_factory=dict)


def update_fields(collected: dict[str, Any], extracted: dict[str, Any], explicit: bool = True) -> FieldUpdate:
    """
    Merge extracted slots into collected data without silent overwrites.

    Every incoming value is classified as new, repeated (same value) or a
    conflict (different value for a field that is already present). Conflicts
    replace the old value only for explicit updates from the live message;
    backfilled values never replace what is already collected.
    """
    merged = dict(collected)
    new_fields: dict[str, Any] = {}
    repeated: list[str] = []
    conflicts: dict[str, tuple[Any, Any]] = {}

    for name, value in extracted.items():
        if not present(extracted, name):
            continue
        if not present(collected, name):
            merged[name] = value
            new_fields[name] = value
        elif collected[name] == value:
            repeated.append(name)
        else:
            conflicts[name] = (collected[name], value)
            if explicit:
                merged[name] = value

    return FieldUpdate(merged=merged, new_fields=new_fields, repeated=tuple(repeated), conflicts=conflicts)


def next_stage(
    current: str,
    intention: str,
    collected: dict[str, Any],
    required: Iterable[str],
    requires_payment: bool = False,
) -> str:
    if intention in NON_ACTIONABLE or intention == INTENT_CANCEL:
        return STAGE_IDLE
    if intention == INTENT_QUERY or intention != INTENT_RESERVE:
        return current

    if compute_missing(collected, required):
        return STAGE_COLLECTING
    if requires_payment:
        return STAGE_AWAITING_PAYMENT
    return STAGE_COMPLETED


def plan_questions(missing: list[str], metadata: dict[str, Any]) -> tuple[list[str], dict[str, Any]]:
    """
    Hybrid ask strategy: the first time several fields are missing ask for all
    of them at once, afterwards ask for the first missing field only.
    """
    updated = dict(metadata)
    if not missing:
        updated.pop(ASKED_ALL_FLAG, None)
        return [], updated
    if len(missing) > 1 and not metadata.get(ASKED_ALL_FLAG):
        updated[ASKED_ALL_FLAG] = True
        return list(missing), updated
    return [missing[0]], updated


def reset_state(state: ConversationState, keep_history: bool = True, last_intention: str | None = None) -> ConversationState:
    """Empty idle state; history is kept unless the conversation is closed."""
    return ConversationState(
        stage=STAGE_IDLE,
        collected_data={},
        history=state.history if keep_history else (),
        last_intention=last_intention,
        metadata=_completion_marker(state) if keep_history else {},
    )


def complete_state(
    state: ConversationState,
    last_intention: str | None = INTENT_RESERVE,
    completed_at: float | None = None,
) -> ConversationState:
    """Completed stage with collected data cleared, so a repeated confirmation cannot commit twice."""
    metadata = {COMPLETED_AT: completed_at} if completed_at is not None else _completion_marker(state)
    return replace(state, stage=STAGE_COMPLETED, collected_data={}, metadata=metadata, last_intention=last_intention)


def _completion_marker(state: ConversationState) -> dict[str, Any]:
    return {COMPLETED_AT: state.metadata[COMPLETED_AT]} if COMPLETED_AT in state.metadata else {}


def append_turn(state: ConversationState, role: str, text: str, timestamp: float, limit: int = 20) -> ConversationState:
    history = (*state.history, HistoryTurn(role=role, text=text, timestamp=timestamp))
    return replace(state, history=history[-limit:])
