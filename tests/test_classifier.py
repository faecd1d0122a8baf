"""
Tests for the keyword, fuzzy and semantic layers and the cascade that combines them.
"""

from __future__ import annotations

import time

import pytest
from conftest import TODAY, ScriptedClassifier, build_cascade, restaurant_business, semantic_response

from reservabot.application.classifier.fuzzy_layer import FuzzyLayer, similarity
from reservabot.application.classifier.keyword_layer import KeywordLayer
from reservabot.application.classifier.semantic_layer import (
    SemanticLayer,
    parse_semantic_response,
    validate_extracted,
)
from reservabot.application.exceptions import LLMContractError, LLMUpstreamError
from reservabot.application.ports.semantic_classifier import SemanticClassifierPort
from reservabot.application.utils.circuit_breaker import STATE_OPEN, CircuitBreaker
from reservabot.domain.entities.conversation_state import STAGE_COLLECTING, ConversationState
from reservabot.infrastructure.directory.business_parser import parse_business


class SlowClassifier(SemanticClassifierPort):
    def classify(self, prompt: str) -> str:
        time.sleep(0.5)
        return "{}"


def _semantic(classifier: SemanticClassifierPort, breaker: CircuitBreaker | None = None, timeout: float = 2.0) -> SemanticLayer:
    return SemanticLayer(
        classifier=classifier,
        breaker=breaker or CircuitBreaker("semantic"),
        fallback=FuzzyLayer(),
        timeout_seconds=timeout,
        today=lambda: TODAY,
    )


def test_keyword_confidence_is_average_plus_bonus():
    """Four reserve keywords ("reserva" inside "reservar"): mean weight 0.7375 plus the capped 0.2 bonus."""
    detection = KeywordLayer().detect("Quiero reservar una mesa", restaurant_business())
    assert detection.intention == "reserve"
    assert detection.confidence == pytest.approx(0.9375)
    assert detection.source == "keyword"


def test_keyword_matches_plurals_and_accents():
    business = restaurant_business()
    assert KeywordLayer().detect("¿tienen mesas?", business).intention == "reserve"
    assert KeywordLayer().detect("¿Qué hay en el menú?", business).intention == "query"


def test_keyword_stems_match_inside_words():
    business = parse_business(
        {
            "id": "b1",
            "name": "Café",
            "intentions": [{"name": "reserve", "keywords": [{"value": "reserv", "weight": 0.9}]}],
        }
    )
    detection = KeywordLayer().detect("Quiero RESERVAR", business)
    assert detection.intention == "reserve"
    assert detection.confidence == pytest.approx(1.0)


def test_whole_word_keywords_skip_partial_matches():
    business = parse_business(
        {
            "id": "b1",
            "name": "Café",
            "intentions": [{"name": "greeting", "keywords": [{"value": "hi", "weight": 0.9, "wholeWord": True}]}],
        }
    )
    assert KeywordLayer().detect("vivo en chile", business).intention == "other"
    assert KeywordLayer().detect("hi!", business).intention == "greeting"


def test_keyword_tie_goes_to_higher_priority():
    """Greeting and cancel both score 1.0; cancel has the higher priority."""
    detection = KeywordLayer().detect("hola, quiero cancelar", restaurant_business())
    assert detection.intention == "cancel"
    assert detection.confidence == 1.0


def test_keyword_without_matches():
    detection = KeywordLayer().detect("blablabla", restaurant_business())
    assert detection.intention == "other"
    assert detection.confidence == 0.0


def test_fuzzy_tolerates_typos():
    detection = FuzzyLayer().detect("quiero resevar una mesa", restaurant_business())
    assert detection.intention == "reserve"
    assert detection.confidence == pytest.approx(1 - 1 / 24)
    assert detection.source == "fuzzy"


def test_fuzzy_below_threshold():
    detection = FuzzyLayer().detect("xyz", restaurant_business())
    assert detection.intention == "other"
    assert detection.confidence == 0.0
    assert similarity("", "") == 0.0
    assert similarity("hola", "hola") == 1.0


def test_parse_semantic_response_strips_fences_and_clamps():
    raw = '```json\n{"intention": "reserve", "confidence": 1.7, "extractedData": {"guests": 2}}\n```'
    data = parse_semantic_response(raw)
    assert data["intention"] == "reserve"
    assert data["confidence"] == 1.0
    assert data["extractedData"] == {"guests": 2}
    assert data["missingFields"] == []
    assert data["suggestedReply"] is None


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"extractedData": "x"}', '{"confidence": "high"}'])
def test_parse_semantic_response_rejects_wrong_shapes(raw):
    with pytest.raises(LLMContractError):
        parse_semantic_response(raw)


def test_validate_extracted_keeps_only_well_formed_slots():
    clean, dropped = validate_extracted(
        restaurant_business(),
        {
            "phone": "300-123-4567",
            "date": "15/10/2026",
            "time": "7pm",
            "guests": "4",
            "service": "delivery",
            "products": [{"id": "lasagna", "quantity": 2}, {"id": "sushi"}],
            "name": None,
        },
    )
    assert clean == {
        "phone": "3001234567",
        "guests": 4,
        "service": "domicilio",
        "products": [{"id": "lasagna", "quantity": 2}],
    }
    assert dropped == ["date", "time"]


def test_semantic_layer_normalizes_intention_and_reports_dropped_fields():
    classifier = ScriptedClassifier(
        {
            "intention": "reservar",
            "confidence": 0.8,
            "extractedData": {"date": "2026-10-15", "time": "25:00"},
            "missingFields": ["phone"],
        }
    )
    detection = _semantic(classifier).detect("mañana", restaurant_business())

    assert detection.source == "semantic"
    assert detection.intention == "reserve"
    assert detection.extracted_data == {"date": "2026-10-15"}
    assert detection.missing_fields == ["phone", "time"]
    assert 'Message: "mañana"' in classifier.prompts[0]
    assert "mañana: 2026-10-15" in classifier.prompts[0]


def test_semantic_layer_unknown_intention_is_other():
    classifier = ScriptedClassifier(semantic_response("pedir_cuenta"))
    assert _semantic(classifier).detect("la cuenta", restaurant_business()).intention == "other"


def test_semantic_failure_falls_back_to_fuzzy():
    classifier = ScriptedClassifier(LLMUpstreamError("provider down"))
    detection = _semantic(classifier).detect("quiero reservar una mesa", restaurant_business())
    assert detection.source == "fuzzy"
    assert detection.intention == "reserve"


def test_contract_error_counts_as_breaker_failure():
    breaker = CircuitBreaker("semantic")
    detection = _semantic(ScriptedClassifier("not json"), breaker).detect("hola", restaurant_business())
    assert detection.source == "fuzzy"
    assert breaker.get_stats()["total_failures"] == 1


def test_open_breaker_skips_classifier():
    """After the failure threshold the classifier is no longer called."""
    breaker = CircuitBreaker("semantic", failure_threshold=2)
    classifier = ScriptedClassifier(LLMUpstreamError("down"), LLMUpstreamError("down"), semantic_response("reserve"))
    layer = _semantic(classifier, breaker)
    business = restaurant_business()

    layer.detect("quiero reservar una mesa", business)
    layer.detect("quiero reservar una mesa", business)
    detection = layer.detect("quiero reservar una mesa", business)

    assert breaker.state == STATE_OPEN
    assert len(classifier.prompts) == 2
    assert detection.source == "fuzzy"


def test_semantic_timeout_falls_back():
    breaker = CircuitBreaker("semantic")
    detection = _semantic(SlowClassifier(), breaker, timeout=0.05).detect("quiero reservar una mesa", restaurant_business())
    assert detection.source == "fuzzy"
    assert breaker.get_stats()["total_failures"] == 1


def test_cascade_high_confidence_keyword_skips_semantic():
    classifier = ScriptedClassifier()
    detection = build_cascade(classifier).detect("hola", restaurant_business(), "u1", ConversationState())
    assert detection.intention == "greeting"
    assert detection.source == "keyword"
    assert classifier.prompts == []


def test_cascade_reserve_is_enriched_by_semantic():
    """Reserve keeps the strongest confidence and takes the semantic slots."""
    classifier = ScriptedClassifier(semantic_response("reserve", 0.8, date="2026-10-15"))
    detection = build_cascade(classifier).detect(
        "quiero reservar una mesa para mañana", restaurant_business(), "u1", ConversationState()
    )
    assert detection.intention == "reserve"
    assert detection.confidence == pytest.approx(0.9375)
    assert detection.extracted_data == {"date": "2026-10-15"}


def test_cascade_unknown_message_uses_semantic():
    classifier = ScriptedClassifier(semantic_response("query", 0.7))
    detection = build_cascade(classifier).detect("blablabla", restaurant_business(), "u1", ConversationState())
    assert detection.intention == "query"
    assert detection.source == "semantic"


def test_cascade_keeps_cheap_answer_when_semantic_fails():
    classifier = ScriptedClassifier(LLMUpstreamError("down"))
    detection = build_cascade(classifier).detect("blablabla", restaurant_business(), "u1", ConversationState())
    assert detection.intention == "other"
    assert detection.confidence == 0.0


def test_continuing_reservation_stays_reserve():
    """While collecting, an unclear answer is still part of the reservation."""
    state = ConversationState(stage=STAGE_COLLECTING, last_intention="reserve", collected_data={"service": "mesa"})
    classifier = ScriptedClassifier(semantic_response("other", 0.3))
    detection = build_cascade(classifier).detect("a las 8", restaurant_business(), "u1", state, ["time"])
    assert detection.intention == "reserve"
    assert detection.confidence == pytest.approx(0.6)


def test_continuing_reservation_can_be_interrupted():
    state = ConversationState(stage=STAGE_COLLECTING, last_intention="reserve")
    classifier = ScriptedClassifier()
    detection = build_cascade(classifier).detect("quiero cancelar", restaurant_business(), "u1", state)
    assert detection.intention == "cancel"
    assert classifier.prompts == []


def test_closed_semantic_layer_takes_no_more_calls():
    classifier = ScriptedClassifier(semantic_response("greeting"), semantic_response("greeting"))
    layer = _semantic(classifier)
    assert layer.detect("hola", restaurant_business()).intention == "greeting"

    layer.close()

    with pytest.raises(RuntimeError):
        layer.detect("hola", restaurant_business())
    assert len(classifier.prompts) == 1
