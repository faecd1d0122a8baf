from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import date
from typing import Any, Callable

from reservabot.application.classifier.fuzzy_layer import FuzzyLayer
from reservabot.application.classifier.prompt_builder import build_detection_prompt
from reservabot.application.exceptions import CircuitOpenError, LLMContractError, LLMUpstreamError
from reservabot.application.ports.semantic_classifier import SemanticClassifierPort
from reservabot.application.utils.circuit_breaker import CircuitBreaker
from reservabot.application.utils.date_parser import is_valid_hhmm, is_valid_iso_date
from reservabot.application.utils.service_resolver import match_service
from reservabot.domain.entities.business import Business
from reservabot.domain.entities.conversation_state import ConversationState
from reservabot.domain.entities.detection import (
    INTENT_CANCEL,
    INTENT_FAREWELL,
    INTENT_GREETING,
    INTENT_OTHER,
    INTENT_QUERY,
    INTENT_RESERVE,
    DetectionResult,
)

INTENTION_ALIASES = {
    "saludar": INTENT_GREETING,
    "saludo": INTENT_GREETING,
    "reservar": INTENT_RESERVE,
    "reserva": INTENT_RESERVE,
    "cancelar": INTENT_CANCEL,
    "consultar": INTENT_QUERY,
    "consulta": INTENT_QUERY,
    "despedida": INTENT_FAREWELL,
    "despedir": INTENT_FAREWELL,
    "otro": INTENT_OTHER,
}

BASE_INTENTIONS = (INTENT_GREETING, INTENT_RESERVE, INTENT_CANCEL, INTENT_QUERY, INTENT_FAREWELL, INTENT_OTHER)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_semantic_response(text: str) -> dict[str, Any]:
    """Parse raw classifier text into the detection schema. Raises LLMContractError on any other shape."""
    cleaned = strip_fences(text or "")
    try:
        data = json.loads(cleaned)
    except Exception:
        snippet = cleaned[:200].replace("\n", " ")
        raise LLMContractError(f"Semantic: invalid JSON. Snippet: {snippet!r}")

    if not isinstance(data, dict):
        raise LLMContractError("Semantic: expected a JSON object.")

    extracted = data.get("extractedData") or {}
    if not isinstance(extracted, dict):
        raise LLMContractError("Semantic: 'extractedData' must be an object.")

    missing = data.get("missingFields") or []
    if not isinstance(missing, list):
        raise LLMContractError("Semantic: 'missingFields' must be a list.")

    intention = data.get("intention")
    if intention is not None and not isinstance(intention, str):
        raise LLMContractError("Semantic: 'intention' must be a string.")

    confidence_raw = data.get("confidence", 0.5)
    try:
        confidence = float(confidence_raw) if confidence_raw is not None else 0.5
    except (TypeError, ValueError):
        raise LLMContractError(f"Semantic: invalid confidence {confidence_raw!r}")

    reply = data.get("suggestedReply")
    return {
        "intention": intention or INTENT_OTHER,
        "confidence": max(0.0, min(confidence, 1.0)),
        "extractedData": extracted,
        "missingFields": [str(item) for item in missing if item],
        "suggestedReply": reply if isinstance(reply, str) and reply.strip() else None,
    }


def validate_extracted(business: Business, extracted: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """
    Keep only well-formed slot values.

    Returns (clean slots, fields that were dropped and must be asked again).
    """
    clean: dict[str, Any] = {}
    dropped: list[str] = []

    def drop(field: str) -> None:
        if field not in dropped:
            dropped.append(field)

    for field, value in extracted.items():
        if value is None or value == "" or value == []:
            continue

        if field == "phone":
            digits = re.sub(r"\D", "", str(value))
            if 7 <= len(digits) <= 10:
                clean["phone"] = digits
            else:
                drop("phone")
        elif field == "date":
            if isinstance(value, str) and is_valid_iso_date(value):
                clean["date"] = value
            else:
                drop("date")
        elif field == "time":
            if isinstance(value, str) and is_valid_hhmm(value):
                clean["time"] = value
            else:
                drop("time")
        elif field == "guests":
            guests = _as_int(value)
            if guests is not None and 1 <= guests <= 50:
                clean["guests"] = guests
            else:
                drop("guests")
        elif field == "service":
            key = match_service(business, value)
            if key:
                clean["service"] = key
            else:
                drop("service")
        elif field == "products":
            products = _valid_products(business, value)
            if products:
                clean["products"] = products
            else:
                drop("products")
        elif field == "address":
            if isinstance(value, str) and 10 <= len(value.strip()) <= 200:
                clean["address"] = value.strip()
            else:
                drop("address")
        elif field in ("name", "tableId"):
            if isinstance(value, str) and value.strip():
                clean[field] = value.strip()

    return clean, dropped


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not number.is_integer():
        return None
    return int(number)


def _valid_products(business: Business, value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    products: list[dict[str, Any]] = []
    for item in value:
        if isinstance(item, str):
            item = {"id": item, "quantity": 1}
        if not isinstance(item, dict) or business.get_product(item.get("id")) is None:
            continue
        quantity = _as_int(item.get("quantity", 1)) or 1
        products.append({"id": item["id"], "quantity": max(quantity, 1)})
    return products


class SemanticLayer:
    """
    Semantic strategy: prompt the external classifier, validate the answer.

    Calls run under an explicit timeout and through the circuit breaker; any
    provider failure, contract failure, timeout or open circuit falls back to
    the fuzzy strategy.
    """

    def __init__(
        self,
        classifier: SemanticClassifierPort,
        breaker: CircuitBreaker,
        fallback: FuzzyLayer,
        timeout_seconds: float = 10.0,
        today: Callable[[], date] | None = None,
        history_turns: int = 15,
        max_products: int = 20,
    ) -> None:
        self._classifier = classifier
        self._breaker = breaker
        self._fallback = fallback
        self._timeout_seconds = timeout_seconds
        self._today = today or date.today
        self._history_turns = history_turns
        self._max_products = max_products
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="semantic")
        self._logger = logging.getLogger(__name__)

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def detect(
        self,
        message: str,
        business: Business,
        state: ConversationState | None = None,
        required_fields: list[str] | tuple[str, ...] = (),
    ) -> DetectionResult:
        prompt = build_detection_prompt(
            message=message,
            business=business,
            state=state,
            required_fields=required_fields,
            today=self._today(),
            history_turns=self._history_turns,
            max_products=self._max_products,
        )

        try:
            data = self._breaker.call(lambda: parse_semantic_response(self._classify_with_timeout(prompt)))
        except CircuitOpenError:
            self._logger.warning("Semantic layer skipped, circuit open", extra={"business_id": business.id})
            return self._fallback.detect(message, business)
        except (LLMUpstreamError, LLMContractError) as e:
            self._logger.warning(
                "Semantic layer failed, using fuzzy fallback",
                extra={"business_id": business.id, "error": str(e)},
            )
            return self._fallback.detect(message, business)

        clean, dropped = validate_extracted(business, data["extractedData"])
        missing = list(data["missingFields"])
        for field in dropped:
            if field not in missing:
                missing.append(field)
        if dropped:
            self._logger.info(
                "Semantic slots dropped",
                extra={"business_id": business.id, "fields": ",".join(dropped)},
            )

        return DetectionResult(
            intention=self._normalize_intention(data["intention"], business),
            confidence=data["confidence"],
            extracted_data=clean,
            missing_fields=missing,
            suggested_reply=data["suggestedReply"],
            source="semantic",
        )

    def _classify_with_timeout(self, prompt: str) -> str:
        future = self._executor.submit(self._classifier.classify, prompt)
        try:
            return future.result(timeout=self._timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            raise LLMUpstreamError(f"Semantic classifier timed out after {self._timeout_seconds}s")

    def close(self) -> None:
        """Stop the worker threads; calls still running are not waited for."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _normalize_intention(raw: str, business: Business) -> str:
        name = raw.strip().lower()
        name = INTENTION_ALIASES.get(name, name)
        known = set(BASE_INTENTIONS) | {i.name for i in business.intentions}
        return name if name in known else INTENT_OTHER
