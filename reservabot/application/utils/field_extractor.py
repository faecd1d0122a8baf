from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable

from reservabot.application.utils.date_parser import is_valid_hhmm, is_valid_iso_date, parse_relative_date
from reservabot.application.utils.message_rules import NUMBER_WORDS, parse_quantity
from reservabot.domain.entities.conversation_state import HistoryTurn

logger = logging.getLogger(__name__)

_NUMBER_WORD_ALT = "|".join(sorted(NUMBER_WORDS, key=len, reverse=True))
_MONTH_ALT = "enero|febrero|marzo|abril|mayo|junio|julio|agosto|septiembre|octubre|noviembre|diciembre"


@dataclass(frozen=True)
class ExtractionRule:
    """
    One slot type.

    Patterns are tried in order against a message; the first match whose
    transform and validate both succeed wins. A failed validation moves on to
    the next pattern.
    """

    field: str
    patterns: tuple[re.Pattern[str], ...]
    transform: Callable[[re.Match[str]], Any] | None = None
    validate: Callable[[Any], bool] | None = None
    priority: int = 0


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


def _digits(match: re.Match[str]) -> str:
    return re.sub(r"\D", "", match.group(1))


def _valid_phone(value: Any) -> bool:
    return isinstance(value, str) and 7 <= len(value) <= 10


def _slash_date(match: re.Match[str]) -> str:
    day, month, year = match.group(1), match.group(2), match.group(3)
    return f"{year}-{int(month):02d}-{int(day):02d}"


def _to_24h(match: re.Match[str]) -> str | None:
    groups = match.groupdict()
    colloquial = groups.get("ch") is not None
    hour = int(groups.get("h") or groups.get("ch"))
    minute = int(groups.get("m") or 0)
    period = re.sub(r"[.\s]", "", (groups.get("p") or "").lower()).replace("ñ", "n")

    if period in ("pm", "tarde", "noche"):
        if hour < 12:
            hour += 12
    elif period in ("am", "manana"):
        if hour == 12:
            hour = 0
    elif colloquial and 1 <= hour <= 7:
        hour += 12

    return f"{hour:02d}:{minute:02d}"


def _guests(match: re.Match[str]) -> int | None:
    return parse_quantity(match.group(1))


def _valid_guests(value: Any) -> bool:
    return isinstance(value, int) and 0 < value <= 50


def _service_family(match: re.Match[str]) -> str:
    service = match.group(1).lower()
    if "domicilio" in service or "delivery" in service:
        return "domicilio"
    if "mesa" in service or "restaurante" in service or "llevar" in service:
        return "mesa"
    if "cita" in service or "consulta" in service:
        return "cita"
    return service


def _strip(match: re.Match[str]) -> str:
    return match.group(1).strip(" ,")


def _valid_address(value: Any) -> bool:
    return isinstance(value, str) and 10 <= len(value.strip()) <= 200


def _table(match: re.Match[str]) -> str:
    return f"mesa-{match.group(1)}"


def _title(match: re.Match[str]) -> str:
    return " ".join(part.capitalize() for part in match.group(1).split())


class FieldExtractor:
    """Open registry of slot rules evaluated over user turns, most recent first."""

    def __init__(self, today: Callable[[], date] | None = None) -> None:
        self._today = today or date.today
        self._rules: list[ExtractionRule] = self._default_rules()

    def _default_rules(self) -> list[ExtractionRule]:
        return [
            ExtractionRule(
                field="phone",
                priority=10,
                patterns=_compile(
                    r"\b(?:tel[eé]fono|tel|n[uú]mero|celular|cel|whatsapp|phone)\b\.?\s*(?:es\s*)?:?\s*(\d{7,10})(?!\d)",
                    r"(?<!\d)(\d{9,10})(?!\d)",
                    r"(?<!\d)(\d{7,8})(?!\d)",
                ),
                transform=_digits,
                validate=_valid_phone,
            ),
            ExtractionRule(
                field="date",
                priority=10,
                patterns=_compile(
                    r"\b(\d{4}-\d{2}-\d{2})\b",
                    r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b",
                    r"\b(pasado\s+ma[ñn]ana|(?<!la )(?<!las )ma[ñn]ana|hoy|lunes|martes|mi[eé]rcoles|jueves|viernes"
                    rf"|s[aá]bado|domingo|\d{{1,2}}\s+de\s+(?:{_MONTH_ALT}))\b",
                ),
                transform=self._date,
                validate=is_valid_iso_date,
            ),
            ExtractionRule(
                field="time",
                priority=10,
                patterns=_compile(
                    r"\b(?P<h>\d{1,2}):(?P<m>\d{2})\s*(?P<p>p\.?\s?m\.?|a\.?\s?m\.?)(?!\w)",
                    r"\b(?P<h>\d{1,2})\s*(?P<p>p\.?\s?m\.?)(?!\w)",
                    r"\b(?P<h>\d{1,2})\s*(?P<p>a\.?\s?m\.?)(?!\w)",
                    r"\b(?P<h>\d{1,2})\s*de\s+la\s+(?P<p>tarde|noche)",
                    r"\b(?P<h>\d{1,2})\s*de\s+la\s+(?P<p>ma[ñn]ana)",
                    r"\ba\s+las?\s+(?P<ch>\d{1,2})(?::(?P<m>\d{2}))?\b",
                    r"\b(?P<h>\d{1,2}):(?P<m>\d{2})\b",
                ),
                transform=_to_24h,
                validate=is_valid_hhmm,
            ),
            ExtractionRule(
                field="service",
                priority=9,
                patterns=_compile(
                    r"(?:quiero|necesito|pedir|reservar)\s+(?:un|una)?\s*(a domicilio|domicilio|delivery)",
                    r"(?:quiero|necesito|pedir|reservar)\s+(?:un|una)?\s*(mesa|restaurante|para llevar)",
                    r"(?:quiero|necesito|pedir|reservar)\s+(?:un|una)?\s*(cita|consulta)",
                    r"\b(a domicilio|domicilio|delivery)\b",
                    r"\b(mesa|restaurante|para llevar)\b",
                    r"\b(cita|consulta)\b",
                ),
                transform=_service_family,
                validate=lambda value: value in ("domicilio", "mesa", "cita"),
            ),
            ExtractionRule(
                field="guests",
                priority=8,
                patterns=_compile(
                    r"\b(?:para|somos)\s*(\d+)\s*(?:personas?|comensales?|gente)",
                    rf"\b(?:para|somos)\s+({_NUMBER_WORD_ALT})\s+(?:personas?|comensales?)",
                    r"(\d+)\s*(?:personas?|comensales?|gente)",
                    rf"\b(?:para|somos)\s+(\d{{1,2}})\b(?!\s*(?:pm|am|p\.m|a\.m|:|/|de\s+la|de\s+(?:{_MONTH_ALT})))",
                ),
                transform=_guests,
                validate=_valid_guests,
            ),
            ExtractionRule(
                field="address",
                priority=7,
                patterns=_compile(
                    r"(?:direcci[oó]n|ubicaci[oó]n)\s*(?:es)?\s*:?\s*(.+?)(?=[.;\n]|,\s*(?:mi|tel|para|y)\b|$)",
                    r"\b((?:calle|carrera|cra\.?|avenida|av\.|transversal|diagonal)\s*\d+.*?)(?=[.;\n]|,\s*(?:mi|tel|para|y)\b|$)",
                    r"(?:vivo en|mi casa (?:es|est[aá]) en)\s+(.+?)(?=[.;\n]|,\s*(?:mi|tel|para|y)\b|$)",
                ),
                transform=_strip,
                validate=_valid_address,
            ),
            ExtractionRule(
                field="tableId",
                priority=6,
                patterns=_compile(
                    r"\b(?:mesa|table)\s*(?:n[uú]mero|#|n°)\s*(\d+)",
                    r"\b(?:la|el)\s+(?:mesa|table)\s+(\d+)\b(?!\s*(?:personas?|comensales?))",
                    r"\bmesa\s+(\d+)\b(?!\s*(?:personas?|comensales?))",
                ),
                transform=_table,
                validate=lambda value: isinstance(value, str) and len(value) > 0,
            ),
            ExtractionRule(
                field="name",
                priority=5,
                patterns=_compile(
                    r"(?:me llamo|mi nombre es)\s+([a-záéíóúñ]+(?:\s+(?!y\b|mi\b|tel)[a-záéíóúñ]+)?)",
                ),
                transform=_title,
                validate=lambda value: isinstance(value, str) and len(value) >= 2,
            ),
        ]

    def _date(self, match: re.Match[str]) -> str | None:
        if match.re.groups == 3:
            return _slash_date(match)
        token = match.group(1)
        if re.fullmatch(r"\d{4}-\d{2}-\d{2}", token):
            return token
        resolved = parse_relative_date(token, self._today())
        return resolved.isoformat() if resolved else None

    def add_rule(self, rule: ExtractionRule) -> None:
        """Register a rule, replacing any existing rule for the same field."""
        self._rules = [r for r in self._rules if r.field != rule.field]
        self._rules.append(rule)

    def rules(self) -> list[ExtractionRule]:
        return sorted(self._rules, key=lambda r: r.priority, reverse=True)

    def rule_for(self, field: str) -> ExtractionRule | None:
        for rule in self._rules:
            if rule.field == field:
                return rule
        return None

    def extract_from_history(self, history: Iterable[HistoryTurn], missing_fields: Iterable[str]) -> dict[str, Any]:
        user_texts = [turn.text for turn in history if turn.role == "user"]
        wanted = set(missing_fields)
        extracted: dict[str, Any] = {}
        for rule in self.rules():
            if rule.field not in wanted:
                continue
            value = self._first_value(reversed(user_texts), rule)
            if value is not None:
                extracted[rule.field] = value
        return extracted

    def extract(self, text: str, fields: Iterable[str] | None = None) -> dict[str, Any]:
        """Single-message form of extract_from_history."""
        names = list(fields) if fields is not None else [r.field for r in self._rules]
        return self.extract_from_history([HistoryTurn(role="user", text=text)], names)

    def _first_value(self, texts: Iterable[str], rule: ExtractionRule) -> Any:
        for text in texts:
            for pattern in rule.patterns:
                match = pattern.search(text)
                if not match:
                    continue
                value = rule.transform(match) if rule.transform else match.group(1)
                if value is None:
                    continue
                if rule.validate and not rule.validate(value):
                    logger.debug("Extraction rejected by validator", extra={"field": rule.field})
                    continue
                return value
        return None
