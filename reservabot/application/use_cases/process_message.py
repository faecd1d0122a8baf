from __future__ import annotations

import logging
import time
from typing import Callable

from reservabot.application.classifier.cascade import IntentionCascade
from reservabot.application.dto.message import ProcessMessageDTO
from reservabot.application.ports.business_directory import BusinessDirectoryPort
from reservabot.application.ports.conversation_store import ConversationStorePort
from reservabot.application.use_cases.intent_handlers import IntentHandlers
from reservabot.application.use_cases.reservation_flow import FlowDeps, FlowOutcome, run_reservation_flow
from reservabot.application.utils.context_cache import ContextCache
from reservabot.application.utils.product_mentions import product_names
from reservabot.application.utils.reference_resolver import REF_NEGATION, ReferenceResolver
from reservabot.application.utils.state_machine import compute_missing
from reservabot.domain.entities.business import Business
from reservabot.domain.entities.conversation_state import (
    STAGE_AWAITING_PAYMENT,
    STAGE_COLLECTING,
    STAGE_IDLE,
    ConversationState,
)
from reservabot.domain.entities.detection import (
    INTENT_CANCEL,
    INTENT_FAREWELL,
    INTENT_GREETING,
    INTENT_OTHER,
    INTENT_RESERVE,
    DetectionResult,
)
from reservabot.domain.entities.reply import ProcessMessageResult

BUSINESS_NOT_FOUND_REPLY = "Lo siento, no pudimos encontrar la información de este negocio. Intenta más tarde."
GENERIC_ERROR_REPLY = "Lo siento, tuvimos un problema procesando tu mensaje. ¿Puedes intentarlo de nuevo?"


class ProcessMessageUseCase:
    """
    Entry point for one inbound message.

    Loads the business and the conversation, resolves references, detects the
    intention, dispatches to the reservation flow or an intent handler and
    persists the result. `execute` never raises.
    """

    def __init__(
        self,
        directory: BusinessDirectoryPort,
        store: ConversationStorePort,
        cascade: IntentionCascade,
        resolver: ReferenceResolver,
        flow: FlowDeps,
        handlers: IntentHandlers,
        cache: ContextCache | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._directory = directory
        self._store = store
        self._cascade = cascade
        self._resolver = resolver
        self._flow = flow
        self._handlers = handlers
        self._cache = cache
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def execute(self, dto: ProcessMessageDTO) -> ProcessMessageResult:
        try:
            return self._execute(dto)
        except Exception:
            self._logger.exception(
                "Message processing failed",
                extra={"business_id": dto.business_id, "user_id": dto.user_id},
            )
            return ProcessMessageResult(
                reply=GENERIC_ERROR_REPLY,
                intention=INTENT_OTHER,
                confidence=0.0,
                conversation_stage=STAGE_IDLE,
            )

    def _execute(self, dto: ProcessMessageDTO) -> ProcessMessageResult:
        business = self._load_business(dto.business_id)
        if business is None:
            self._logger.warning("Business not found", extra={"business_id": dto.business_id, "user_id": dto.user_id})
            return ProcessMessageResult(
                reply=BUSINESS_NOT_FOUND_REPLY,
                intention=INTENT_OTHER,
                confidence=0.0,
                conversation_stage=STAGE_IDLE,
            )

        user_id = dto.user_id
        conversation_id = self._store.conversation_id(user_id, business.id)
        now = self._clock()

        self._invalidate(user_id, business.id)
        state = self._load_state(user_id, business.id)
        self._invalidate(user_id, business.id)
        self._store.append_message(user_id, business.id, "user", dto.message, now)

        context = self._resolver.context_from_history(
            state.history,
            collected_data=state.collected_data,
            stage=state.stage,
            product_names=product_names(business),
        )
        enriched = self._resolver.enrich(dto.message, context)
        text = enriched.text

        if enriched.resolution.type == REF_NEGATION and state.stage in (STAGE_COLLECTING, STAGE_AWAITING_PAYMENT):
            detection = DetectionResult(intention=INTENT_CANCEL, confidence=0.9, source="rule")
        else:
            requirements = self._flow.services.resolve(business, state.collected_data.get("service"))
            missing = compute_missing(state.collected_data, requirements.required_fields)
            detection = self._cascade.detect(text, business, user_id, state, missing or requirements.required_fields)

        outcome = self._dispatch(business, user_id, text, state, detection, conversation_id, dto.phone, now)

        self._invalidate(user_id, business.id)
        self._store.save_context(user_id, business.id, outcome.state)
        self._store.append_message(user_id, business.id, "assistant", outcome.reply, self._clock())

        self._logger.info(
            "Message processed",
            extra={
                "business_id": business.id,
                "user_id": user_id,
                "intention": detection.intention,
                "stage": outcome.state.stage,
            },
        )
        return ProcessMessageResult(
            reply=outcome.reply,
            intention=detection.intention,
            confidence=round(detection.confidence, 3),
            missing_fields=list(outcome.missing_fields),
            conversation_stage=outcome.state.stage,
            conversation_id=conversation_id,
        )

    def _dispatch(
        self,
        business: Business,
        user_id: str,
        text: str,
        state: ConversationState,
        detection: DetectionResult,
        conversation_id: str,
        phone: str | None,
        now: float,
    ) -> FlowOutcome:
        intention = detection.intention
        if intention == INTENT_RESERVE:
            return run_reservation_flow(
                self._flow,
                business,
                user_id,
                text,
                state,
                detection,
                conversation_id,
                phone=phone,
                now=now,
            )
        if intention == INTENT_CANCEL:
            return self._handlers.cancel(business, user_id, state, conversation_id)
        if intention == INTENT_GREETING:
            return self._handlers.greeting(business, state)
        if intention == INTENT_FAREWELL:
            return self._handlers.farewell(business, state, text)
        if intention == INTENT_OTHER:
            return self._handlers.other(business, state, detection)
        # query and business specific intentions are answered without changing the stage
        return self._handlers.query(business, state, text, detection)

    def _load_business(self, business_id: str) -> Business | None:
        if self._cache is None:
            return self._directory.find_business(business_id)
        return self._cache.get_business(business_id, lambda: self._directory.find_business(business_id))

    def _load_state(self, user_id: str, business_id: str) -> ConversationState:
        if self._cache is None:
            return self._store.get_context(user_id, business_id)
        return self._cache.get_context(user_id, business_id, lambda: self._store.get_context(user_id, business_id))

    def _invalidate(self, user_id: str, business_id: str) -> None:
        if self._cache is not None:
            self._cache.invalidate_context(user_id, business_id)
