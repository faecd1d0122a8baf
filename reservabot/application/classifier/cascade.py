from __future__ import annotations

import logging
from dataclasses import replace

from reservabot.application.classifier.fuzzy_layer import FuzzyLayer
from reservabot.application.classifier.keyword_layer import KeywordLayer
from reservabot.application.classifier.semantic_layer import SemanticLayer
from reservabot.domain.entities.business import Business
from reservabot.domain.entities.conversation_state import STAGE_COLLECTING, STAGE_COMPLETED, ConversationState
from reservabot.domain.entities.detection import (
    INTENT_CANCEL,
    INTENT_FAREWELL,
    INTENT_GREETING,
    INTENT_OTHER,
    INTENT_QUERY,
    INTENT_RESERVE,
    DetectionResult,
)

HIGH_CONFIDENCE = 0.85
MEDIUM_CONFIDENCE = 0.6
SHORT_MESSAGE_CHARS = 15

# Intentions allowed to interrupt a reservation that is being collected
INTERRUPTING = (INTENT_CANCEL, INTENT_GREETING, INTENT_FAREWELL, INTENT_QUERY)


class IntentionCascade:
    def __init__(
        self,
        keyword: KeywordLayer,
        fuzzy: FuzzyLayer,
        semantic: SemanticLayer,
        high_threshold: float = HIGH_CONFIDENCE,
        medium_threshold: float = MEDIUM_CONFIDENCE,
    ) -> None:
        self._keyword = keyword
        self._fuzzy = fuzzy
        self._semantic = semantic
        self._high = high_threshold
        self._medium = medium_threshold
        self._logger = logging.getLogger(__name__)

    def detect(
        self,
        message: str,
        business: Business,
        user_id: str,
        state: ConversationState,
        required_fields: list[str] | tuple[str, ...] = (),
    ) -> DetectionResult:
        if self._is_continuing_reservation(state):
            detection = self._continue_reservation(message, business, state, required_fields)
        else:
            detection = self._cascade(message, business, state, required_fields)

        self._logger.info(
            "Intention detected",
            extra={
                "business_id": business.id,
                "user_id": user_id,
                "intention": detection.intention,
                "confidence": round(detection.confidence, 3),
                "layer": detection.source,
            },
        )
        return detection

    def close(self) -> None:
        self._semantic.close()

    @staticmethod
    def _is_continuing_reservation(state: ConversationState) -> bool:
        return state.stage == STAGE_COLLECTING and state.last_intention == INTENT_RESERVE

    def _continue_reservation(
        self,
        message: str,
        business: Business,
        state: ConversationState,
        required_fields: list[str] | tuple[str, ...],
    ) -> DetectionResult:
        keyword = self._keyword.detect(message, business)
        if keyword.intention in INTERRUPTING and keyword.confidence >= self._high:
            return keyword

        semantic = self._semantic.detect(message, business, state, required_fields)
        if semantic.intention == INTENT_CANCEL and semantic.source == "semantic":
            return semantic
        return replace(
            semantic,
            intention=INTENT_RESERVE,
            confidence=max(semantic.confidence, self._medium),
        )

    def _cascade(
        self,
        message: str,
        business: Business,
        state: ConversationState,
        required_fields: list[str] | tuple[str, ...],
    ) -> DetectionResult:
        detection = self._keyword.detect(message, business)
        if detection.confidence >= self._high and detection.intention != INTENT_RESERVE:
            return detection

        if detection.confidence < self._high:
            fuzzy = self._fuzzy.detect(message, business)
            if fuzzy.confidence > detection.confidence:
                detection = fuzzy

        if detection.intention == INTENT_RESERVE:
            semantic = self._semantic.detect(message, business, state, required_fields)
            return replace(
                detection,
                confidence=max(detection.confidence, semantic.confidence if semantic.source == "semantic" else 0.0),
                extracted_data=dict(semantic.extracted_data),
                missing_fields=list(semantic.missing_fields),
                suggested_reply=semantic.suggested_reply or detection.suggested_reply,
            )

        relevant_context = (
            state.stage == STAGE_COMPLETED
            or len(state.history) > 0
            or len(message.strip()) <= SHORT_MESSAGE_CHARS
        )
        if (
            detection.confidence < self._medium
            or detection.intention in (INTENT_QUERY, INTENT_OTHER)
            or relevant_context
        ):
            semantic = self._semantic.detect(message, business, state, required_fields)
            if semantic.source != "semantic":
                # Fallback result: keep whichever of the two cheap answers is stronger
                return semantic if semantic.confidence > detection.confidence else detection
            if semantic.confidence > detection.confidence or relevant_context or detection.intention == INTENT_OTHER:
                return semantic
            if detection.intention == INTENT_QUERY:
                return replace(
                    detection,
                    confidence=max(detection.confidence, semantic.confidence),
                    extracted_data=dict(semantic.extracted_data),
                    suggested_reply=semantic.suggested_reply,
                )

        return detection
