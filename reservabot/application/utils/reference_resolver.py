from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Iterable

from reservabot.application.utils.field_extractor import FieldExtractor
from reservabot.application.utils.message_rules import normalize_text
from reservabot.domain.entities.conversation_state import HistoryTurn

REF_CORRECTION = "correction"
REF_NEGATION = "negation"
REF_CONFIRMATION = "confirmation"
REF_REPETITION = "repetition"
REF_ORDINAL = "ordinal"
REF_PRONOUN = "pronoun"
REF_CONTINUATION = "continuation"
REF_TEMPORAL = "temporal"
REF_NONE = "none"

# (priority, type, pattern over the cleaned, accent-free message)
REFERENCE_PATTERNS: tuple[tuple[int, str, re.Pattern[str]], ...] = (
    (10, REF_CORRECTION, re.compile(r"\b(no,?\s*mejor|quise decir|me equivoque|perdon,?\s*era|corrijo)\b")),
    (9, REF_NEGATION, re.compile(r"^(no|nop|nel|nope|mejor no|no gracias|cancela|olvidalo)$")),
    (8, REF_CONFIRMATION, re.compile(r"^(si|ok|okay|vale|claro|exacto|correcto|eso|asi|dale|perfecto|listo|si senor|si por favor)$")),
    (7, REF_REPETITION, re.compile(r"\b(lo mismo|igual que|otra vez|de nuevo|como antes|como la vez pasada|repite|repetir)\b")),
    (6, REF_ORDINAL, re.compile(r"\b(el primero|la primera|el segundo|la segunda|el tercero|la tercera|el anterior|la anterior|el ultimo|la ultima)\b")),
    (5, REF_PRONOUN, re.compile(r"\b(eso|esto|aquello|ese|esta|aquel|esa)\b")),
    (4, REF_CONTINUATION, re.compile(r"\b(y tambien|ademas|aparte|y ademas|tambien quiero|otro|otra)\b")),
    (3, REF_TEMPORAL, re.compile(r"\b(manana|hoy|pasado manana|la proxima semana|este fin de semana)\b")),
)

CONTEXT_DEPENDENT = (REF_PRONOUN, REF_REPETITION, REF_ORDINAL, REF_CONFIRMATION, REF_NEGATION)

_CORRECTION_MARKER = re.compile(r"^.*?(no,?\s*mejor|quise decir|me equivoqu[eé]|perd[oó]n,?\s*era|corrijo)[\s,:]*", re.IGNORECASE)
_ORDINAL_PHRASE = re.compile(
    r"\b(el primero|la primera|el segundo|la segunda|el tercero|la tercera|el anterior|la anterior|el [uú]ltimo|la [uú]ltima)\b",
    re.IGNORECASE,
)
_PRONOUN_PHRASE = re.compile(r"\b(eso|esto|aquello)\b", re.IGNORECASE)
_OPTION_LINE = re.compile(r"^\s*(?:[•\-\*]|\d+[.)])\s*(.+?)\s*$")

SERVICE_FAMILY_WORDS = (
    ("domicilio", ("domicilio", "delivery")),
    ("mesa", ("mesa", "restaurante")),
    ("cita", ("cita", "consulta")),
)


@dataclass(frozen=True)
class ReferenceContext:
    last_bot_question: str | None = None
    last_mentioned_service: str | None = None
    last_mentioned_product: str | None = None
    last_options: tuple[str, ...] = ()
    collected_data: dict[str, Any] = field(default_factory=dict)
    stage: str | None = None


@dataclass(frozen=True)
class ResolvedReference:
    type: str
    original_phrase: str
    resolved_value: Any = None
    confidence: float = 0.0
    context_used: str | None = None


@dataclass(frozen=True)
class EnrichedMessage:
    text: str
    was_enriched: bool
    resolution: ResolvedReference


def _clean(message: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[¡!¿?.]+", " ", normalize_text(message))).strip()


class ReferenceResolver:
    def __init__(self, extractor: FieldExtractor) -> None:
        self._extractor = extractor
        self._logger = logging.getLogger(__name__)

    def detect_reference_type(self, message: str) -> tuple[str, str] | None:
        cleaned = _clean(message)
        for _, ref_type, pattern in sorted(REFERENCE_PATTERNS, key=lambda item: item[0], reverse=True):
            match = pattern.search(cleaned)
            if match:
                return ref_type, match.group(0)
        return None

    def needs_context(self, message: str) -> bool:
        detected = self.detect_reference_type(message)
        return bool(detected and detected[0] in CONTEXT_DEPENDENT)

    def resolve(self, message: str, context: ReferenceContext) -> ResolvedReference:
        detected = self.detect_reference_type(message)
        if not detected:
            return ResolvedReference(type=REF_NONE, original_phrase=message)

        ref_type, phrase = detected

        if ref_type in (REF_CONFIRMATION, REF_NEGATION):
            if not context.last_bot_question:
                return ResolvedReference(type=ref_type, original_phrase=phrase, confidence=0.5)
            proposal = None
            if ref_type == REF_CONFIRMATION and "?" in context.last_bot_question:
                proposal = self._extractor.extract(context.last_bot_question, ("date", "time")) or None
            return ResolvedReference(
                type=ref_type,
                original_phrase=phrase,
                resolved_value=proposal,
                confidence=0.9,
                context_used="last_bot_question",
            )

        if ref_type == REF_PRONOUN:
            if context.last_mentioned_product:
                return ResolvedReference(ref_type, phrase, context.last_mentioned_product, 0.8, "last_mentioned_product")
            if context.last_mentioned_service:
                return ResolvedReference(ref_type, phrase, context.last_mentioned_service, 0.7, "last_mentioned_service")
            return ResolvedReference(ref_type, phrase, confidence=0.5)

        if ref_type == REF_REPETITION:
            if context.collected_data:
                return ResolvedReference(ref_type, phrase, dict(context.collected_data), 0.85, "collected_data")
            return ResolvedReference(ref_type, phrase, confidence=0.5)

        if ref_type == REF_ORDINAL:
            option = self._pick_option(phrase, context.last_options)
            if option is not None:
                return ResolvedReference(ref_type, phrase, option, 0.9, "last_options")
            return ResolvedReference(ref_type, phrase, confidence=0.5)

        if ref_type == REF_CORRECTION:
            after = _CORRECTION_MARKER.sub("", message, count=1).strip()
            if after:
                return ResolvedReference(ref_type, phrase, after, 0.95, "correction")
            return ResolvedReference(ref_type, phrase, confidence=0.5)

        if ref_type == REF_CONTINUATION:
            return ResolvedReference(ref_type, phrase, confidence=0.7, context_used="continuation")

        return ResolvedReference(ref_type, phrase, confidence=0.5)

    def enrich(self, message: str, context: ReferenceContext) -> EnrichedMessage:
        resolution = self.resolve(message, context)
        if resolution.type == REF_NONE or not resolution.resolved_value:
            return EnrichedMessage(text=message, was_enriched=False, resolution=resolution)

        text = message
        value = resolution.resolved_value
        if resolution.type == REF_CONFIRMATION:
            details = []
            if value.get("date"):
                details.append(f"el {value['date']}")
            if value.get("time"):
                details.append(f"a las {value['time']}")
            text = f"{message.strip()}, {' '.join(details)}"
        elif resolution.type == REF_PRONOUN:
            text = _PRONOUN_PHRASE.sub(f"{value} ({resolution.original_phrase})", message, count=1)
        elif resolution.type == REF_ORDINAL:
            text = _ORDINAL_PHRASE.sub(str(value), message, count=1)
        elif resolution.type == REF_CORRECTION:
            text = value
        elif resolution.type == REF_REPETITION:
            data = ", ".join(f"{k}: {v}" for k, v in value.items() if v)
            text = f"{message} [repetir: {data}]"

        if text != message:
            self._logger.info(
                "Reference resolved",
                extra={"reference": resolution.type, "context_used": resolution.context_used},
            )
        return EnrichedMessage(text=text, was_enriched=text != message, resolution=resolution)

    def context_from_history(
        self,
        history: Iterable[HistoryTurn],
        collected_data: dict[str, Any] | None = None,
        stage: str | None = None,
        product_names: Iterable[str] = (),
    ) -> ReferenceContext:
        turns = list(history)
        bot_turns = [t for t in turns if t.role == "assistant"][-2:]
        user_turns = [t for t in turns if t.role == "user"][-3:]

        last_bot_question = bot_turns[-1].text if bot_turns else None
        names = [name for name in product_names if name]

        service = None
        product = None
        options: tuple[str, ...] = ()
        for turn in reversed(bot_turns + user_turns):
            content = normalize_text(turn.text)
            if service is None:
                service = _service_family(content)
            if product is None:
                product = next((n for n in names if normalize_text(n) in content), None)
            if turn.role == "assistant" and not options:
                options = _list_options(turn.text)

        return ReferenceContext(
            last_bot_question=last_bot_question,
            last_mentioned_service=service,
            last_mentioned_product=product,
            last_options=options,
            collected_data=dict(collected_data or {}),
            stage=stage,
        )

    @staticmethod
    def _pick_option(phrase: str, options: tuple[str, ...]) -> str | None:
        if not options:
            return None
        normalized = normalize_text(phrase)
        index_by_word = {
            "primer": 0,
            "segund": 1,
            "tercer": 2,
            "anterior": len(options) - 2,
            "ultim": len(options) - 1,
        }
        for stem, index in index_by_word.items():
            if stem in normalized:
                if 0 <= index < len(options):
                    return options[index]
                return None
        return None


def _service_family(content: str) -> str | None:
    for family, words in SERVICE_FAMILY_WORDS:
        if any(word in content for word in words):
            return family
    return None


def _list_options(text: str) -> tuple[str, ...]:
    options = []
    for line in text.splitlines():
        match = _OPTION_LINE.match(line)
        if match:
            options.append(match.group(1))
    return tuple(options) if len(options) >= 2 else ()
