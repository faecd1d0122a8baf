from functools import lru_cache
import json
import logging
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from reservabot.application.classifier.cascade import IntentionCascade
from reservabot.application.classifier.fuzzy_layer import FuzzyLayer
from reservabot.application.classifier.keyword_layer import KeywordLayer
from reservabot.application.classifier.semantic_layer import SemanticLayer
from reservabot.application.dto.message import ProcessMessageDTO
from reservabot.application.ports.cache_store import CacheStorePort
from reservabot.application.ports.conversation_store import ConversationStorePort
from reservabot.application.ports.semantic_classifier import SemanticClassifierPort
from reservabot.application.use_cases.check_availability import AvailabilityChecker
from reservabot.application.use_cases.intent_handlers import IntentHandlers
from reservabot.application.use_cases.process_message import GENERIC_ERROR_REPLY, ProcessMessageUseCase
from reservabot.application.use_cases.reservation_flow import FlowDeps
from reservabot.application.use_cases.settle_payment import SettlePaymentUseCase
from reservabot.application.use_cases.validate_resources import ResourceValidator
from reservabot.application.utils.circuit_breaker import CircuitBreaker
from reservabot.application.utils.context_cache import CacheSweeper, ContextCache, TTLCache
from reservabot.application.utils.date_parser import today_in
from reservabot.application.utils.field_extractor import FieldExtractor
from reservabot.application.utils.reference_resolver import ReferenceResolver
from reservabot.application.utils.service_resolver import ServiceResolver
from reservabot.core.config import settings
from reservabot.domain.entities.detection import INTENT_OTHER
from reservabot.domain.entities.reply import ProcessMessageResult
from reservabot.infrastructure.cache.redis_cache import RedisCacheStore
from reservabot.infrastructure.directory.business_parser import business_to_dict, parse_business
from reservabot.infrastructure.directory.memory_directory import InMemoryBusinessDirectory
from reservabot.infrastructure.llm.mock_classifier import MockSemanticClassifier
from reservabot.infrastructure.llm.openai_classifier import OpenAISemanticClassifier
from reservabot.infrastructure.payments.mock_payments import MockPayments
from reservabot.infrastructure.reservations.memory_inventory import MemoryInventory
from reservabot.infrastructure.reservations.memory_reservations import MemoryReservationRepository
from reservabot.infrastructure.store.json_store import JsonConversationStore
from reservabot.infrastructure.store.memory_store import MemoryConversationStore
from reservabot.infrastructure.store.state_codec import decode_state, encode_state


def _timezone() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


def _today():
    return today_in(_timezone())


@lru_cache
def get_semantic_classifier() -> SemanticClassifierPort:
    if settings.OPENAI_API_KEY and settings.OPENAI_API_KEY.strip():
        return OpenAISemanticClassifier(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL_CLASSIFY,
            temperature=settings.OPENAI_TEMPERATURE_CLASSIFY,
            timeout_seconds=settings.SEMANTIC_TIMEOUT_SECONDS,
        )
    return MockSemanticClassifier()


@lru_cache
def get_conversation_store() -> ConversationStorePort:
    if settings.ENV.lower() in {"dev", "local"}:
        return JsonConversationStore(data_dir=settings.DATA_DIR, history_limit=settings.HISTORY_LIMIT)
    return MemoryConversationStore(history_limit=settings.HISTORY_LIMIT)


@lru_cache
def get_business_directory() -> InMemoryBusinessDirectory:
    if settings.BUSINESSES_FILE:
        return InMemoryBusinessDirectory.from_file(settings.BUSINESSES_FILE)
    return InMemoryBusinessDirectory()


@lru_cache
def get_reservations() -> MemoryReservationRepository:
    return MemoryReservationRepository()


@lru_cache
def get_inventory() -> MemoryInventory:
    return MemoryInventory.from_businesses(get_business_directory().all())


@lru_cache
def get_payments() -> MockPayments:
    return MockPayments(base_url=settings.PAYMENT_BASE_URL)


@lru_cache
def get_cache_store() -> CacheStorePort | None:
    if not settings.REDIS_URL:
        return None
    logging.getLogger(__name__).info("Using Redis cache store")
    return RedisCacheStore(url=settings.REDIS_URL)


@lru_cache
def get_context_cache() -> ContextCache:
    store = get_cache_store()
    return ContextCache(
        contexts=TTLCache(
            name="context",
            ttl_seconds=settings.CONTEXT_CACHE_TTL_SECONDS,
            store=store,
            encode=encode_state,
            decode=decode_state,
        ),
        businesses=TTLCache(
            name="company",
            ttl_seconds=settings.BUSINESS_CACHE_TTL_SECONDS,
            store=store,
            encode=lambda business: json.dumps(business_to_dict(business), ensure_ascii=False),
            decode=lambda raw: parse_business(json.loads(raw)),
        ),
    )


@lru_cache
def get_cache_sweeper() -> CacheSweeper:
    return CacheSweeper(get_context_cache(), interval_seconds=settings.CACHE_SWEEP_INTERVAL_SECONDS)


@lru_cache
def get_circuit_breaker() -> CircuitBreaker:
    return CircuitBreaker(
        name="semantic",
        failure_threshold=settings.BREAKER_FAILURE_THRESHOLD,
        success_threshold=settings.BREAKER_SUCCESS_THRESHOLD,
        cooldown_seconds=settings.BREAKER_COOLDOWN_SECONDS,
    )


@lru_cache
def get_field_extractor() -> FieldExtractor:
    return FieldExtractor(today=_today)


@lru_cache
def get_service_resolver() -> ServiceResolver:
    return ServiceResolver()


@lru_cache
def get_cascade() -> IntentionCascade:
    fuzzy = FuzzyLayer(threshold=settings.FUZZY_THRESHOLD)
    semantic = SemanticLayer(
        classifier=get_semantic_classifier(),
        breaker=get_circuit_breaker(),
        fallback=fuzzy,
        timeout_seconds=settings.SEMANTIC_TIMEOUT_SECONDS,
        today=_today,
        history_turns=settings.PROMPT_HISTORY_TURNS,
        max_products=settings.PROMPT_MAX_PRODUCTS,
    )
    return IntentionCascade(
        keyword=KeywordLayer(),
        fuzzy=fuzzy,
        semantic=semantic,
        high_threshold=settings.CONFIDENCE_HIGH,
        medium_threshold=settings.CONFIDENCE_MEDIUM,
    )


def close_cascade() -> None:
    """Release the semantic worker threads of the cascade, if one was built."""
    if get_cascade.cache_info().currsize:
        get_cascade().close()
        get_cascade.cache_clear()
        get_process_message_use_case.cache_clear()


def get_flow_deps() -> FlowDeps:
    return FlowDeps(
        extractor=get_field_extractor(),
        services=get_service_resolver(),
        availability=AvailabilityChecker(get_reservations(), timezone=_timezone()),
        resources=ResourceValidator(get_reservations(), get_inventory()),
        reservations=get_reservations(),
        inventory=get_inventory(),
        payments=get_payments(),
    )


@lru_cache
def get_process_message_use_case() -> ProcessMessageUseCase:
    return ProcessMessageUseCase(
        directory=get_business_directory(),
        store=get_conversation_store(),
        cascade=get_cascade(),
        resolver=ReferenceResolver(get_field_extractor()),
        flow=get_flow_deps(),
        handlers=IntentHandlers(
            reservations=get_reservations(),
            inventory=get_inventory(),
            payments=get_payments(),
            services=get_service_resolver(),
        ),
        cache=get_context_cache(),
    )


@lru_cache
def get_settle_payment_use_case() -> SettlePaymentUseCase:
    return SettlePaymentUseCase(
        payments=get_payments(),
        reservations=get_reservations(),
        inventory=get_inventory(),
        store=get_conversation_store(),
        cache=get_context_cache(),
    )


def process_message(business_id: str, user_id: str, message: str, phone: str | None = None) -> ProcessMessageResult:
    """Convenience entry point over the wired ProcessMessageUseCase."""
    try:
        dto = ProcessMessageDTO(business_id=business_id, user_id=user_id, message=message, phone=phone)
    except ValidationError as e:
        logging.getLogger(__name__).warning("Invalid message input", extra={"error": str(e)})
        return ProcessMessageResult(reply=GENERIC_ERROR_REPLY, intention=INTENT_OTHER, confidence=0.0)
    return get_process_message_use_case().execute(dto)
