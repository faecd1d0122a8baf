from __future__ import annotations

import itertools
import json
from dataclasses import dataclass
from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from reservabot.application.classifier.cascade import IntentionCascade
from reservabot.application.classifier.fuzzy_layer import FuzzyLayer
from reservabot.application.classifier.keyword_layer import KeywordLayer
from reservabot.application.classifier.semantic_layer import SemanticLayer
from reservabot.application.exceptions import LLMUpstreamError
from reservabot.application.ports.business_directory import BusinessDirectoryPort
from reservabot.application.ports.semantic_classifier import SemanticClassifierPort
from reservabot.application.use_cases.check_availability import AvailabilityChecker
from reservabot.application.use_cases.intent_handlers import IntentHandlers
from reservabot.application.use_cases.process_message import ProcessMessageUseCase
from reservabot.application.use_cases.reservation_flow import FlowDeps
from reservabot.application.use_cases.settle_payment import SettlePaymentUseCase
from reservabot.application.use_cases.validate_resources import ResourceValidator
from reservabot.application.utils.circuit_breaker import CircuitBreaker
from reservabot.application.utils.context_cache import ContextCache, TTLCache
from reservabot.application.utils.field_extractor import FieldExtractor
from reservabot.application.utils.reference_resolver import ReferenceResolver
from reservabot.application.utils.service_resolver import ServiceResolver
from reservabot.domain.entities.business import Business
from reservabot.infrastructure.directory.business_parser import parse_business
from reservabot.infrastructure.directory.memory_directory import InMemoryBusinessDirectory
from reservabot.infrastructure.directory.sample_businesses import SAMPLE_BUSINESSES
from reservabot.infrastructure.llm.mock_classifier import MockSemanticClassifier
from reservabot.infrastructure.payments.mock_payments import MockPayments
from reservabot.infrastructure.reservations.memory_inventory import MemoryInventory
from reservabot.infrastructure.reservations.memory_reservations import MemoryReservationRepository
from reservabot.infrastructure.store.memory_store import MemoryConversationStore

TZ = ZoneInfo("America/Bogota")
# Wednesday
TODAY = date(2026, 10, 14)
NOW = datetime(2026, 10, 14, 10, 0, tzinfo=TZ)


class ScriptedClassifier(SemanticClassifierPort):
    """Returns queued responses in order; an Exception instance in the queue is raised instead."""

    def __init__(self, *responses: object) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []

    def classify(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.responses:
            raise LLMUpstreamError("no scripted response left")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return str(response)


def semantic_response(intention: str, confidence: float = 0.9, **extracted: object) -> dict:
    return {
        "intention": intention,
        "confidence": confidence,
        "extractedData": extracted,
        "missingFields": [],
        "suggestedReply": None,
    }


def restaurant_business() -> Business:
    return parse_business(SAMPLE_BUSINESSES[0])


def clinic_business() -> Business:
    return parse_business(SAMPLE_BUSINESSES[1])


def build_cascade(classifier: SemanticClassifierPort, breaker: CircuitBreaker | None = None) -> IntentionCascade:
    fuzzy = FuzzyLayer()
    semantic = SemanticLayer(
        classifier=classifier,
        breaker=breaker or CircuitBreaker("semantic"),
        fallback=fuzzy,
        timeout_seconds=2.0,
        today=lambda: TODAY,
    )
    return IntentionCascade(keyword=KeywordLayer(), fuzzy=fuzzy, semantic=semantic)


@dataclass
class World:
    use_case: ProcessMessageUseCase
    settle: SettlePaymentUseCase
    store: MemoryConversationStore
    reservations: MemoryReservationRepository
    inventory: MemoryInventory
    payments: MockPayments
    deps: FlowDeps
    classifier: SemanticClassifierPort


def build_world(
    classifier: SemanticClassifierPort | None = None,
    businesses: list[Business] | None = None,
    directory: BusinessDirectoryPort | None = None,
    store: MemoryConversationStore | None = None,
    cache: ContextCache | None = None,
) -> World:
    businesses = businesses or [restaurant_business(), clinic_business()]
    classifier = classifier or MockSemanticClassifier()
    counter = itertools.count(1000.0, 1.0)

    def clock() -> float:
        return next(counter)

    store = store or MemoryConversationStore()
    reservations = MemoryReservationRepository()
    inventory = MemoryInventory.from_businesses(businesses)
    payments = MockPayments()
    extractor = FieldExtractor(today=lambda: TODAY)
    services = ServiceResolver()
    deps = FlowDeps(
        extractor=extractor,
        services=services,
        availability=AvailabilityChecker(reservations, timezone=TZ, now=lambda: NOW),
        resources=ResourceValidator(reservations, inventory),
        reservations=reservations,
        inventory=inventory,
        payments=payments,
        clock=clock,
    )
    cache = cache or ContextCache(contexts=TTLCache("context", 5.0), businesses=TTLCache("company", 300.0))
    use_case = ProcessMessageUseCase(
        directory=directory or InMemoryBusinessDirectory(businesses),
        store=store,
        cascade=build_cascade(classifier),
        resolver=ReferenceResolver(extractor),
        flow=deps,
        handlers=IntentHandlers(reservations, inventory, payments, services),
        cache=cache,
        clock=clock,
    )
    settle = SettlePaymentUseCase(payments, reservations, inventory, store, cache=cache, clock=clock)
    return World(use_case, settle, store, reservations, inventory, payments, deps, classifier)


@pytest.fixture
def restaurant() -> Business:
    return restaurant_business()


@pytest.fixture
def clinic() -> Business:
    return clinic_business()


@pytest.fixture
def world() -> World:
    return build_world()
