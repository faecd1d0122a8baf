from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

WEEKDAYS_EN = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

WEEKDAYS_ES = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")

DAY_NAMES = {
    "lunes": 0,
    "martes": 1,
    "miercoles": 2,
    "miércoles": 2,
    "jueves": 3,
    "viernes": 4,
    "sabado": 5,
    "sábado": 5,
    "domingo": 6,
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}

MONTH_NAMES = {
    "enero": 1,
    "febrero": 2,
    "marzo": 3,
    "abril": 4,
    "mayo": 5,
    "junio": 6,
    "julio": 7,
    "agosto": 8,
    "septiembre": 9,
    "octubre": 10,
    "noviembre": 11,
    "diciembre": 12,
}

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
HHMM_RE = re.compile(r"^\d{2}:\d{2}$")

# "mañana" as a day, not as "de la mañana" / "por la mañana"
_TOMORROW_RE = re.compile(r"(?<!la )(?<!las )\bma[ñn]ana\b")
_DAY_AFTER_RE = re.compile(r"\bpasado\s+ma[ñn]ana\b")
_TODAY_RE = re.compile(r"\bhoy\b")
_WEEKDAY_RE = re.compile(r"\b(lunes|martes|mi[eé]rcoles|jueves|viernes|s[aá]bado|domingo)\b")
_DAY_MONTH_RE = re.compile(
    r"\b(\d{1,2})\s+de\s+(enero|febrero|marzo|abril|mayo|junio|julio|agosto|septiembre|octubre|noviembre|diciembre)\b"
)
_A_LAS_RE = re.compile(r"\ba\s+las?\s+(\d{1,2})(?::(\d{2}))?(?!\s*(?:am|pm|a\.m\.|p\.m\.|de la))\b")


def today_in(timezone: ZoneInfo) -> date:
    return datetime.now(timezone).date()


def next_weekday(reference_date: date, weekday: int) -> date:
    """Next occurrence of weekday strictly after reference_date."""
    days_ahead = (weekday - reference_date.weekday()) % 7
    if days_ahead == 0:
        days_ahead = 7
    return reference_date + timedelta(days=days_ahead)


def parse_relative_date(text: str, reference_date: date) -> date | None:
    """Resolve hoy / mañana / pasado mañana / weekday names / '13 de mayo' against reference_date."""
    normalized = text.lower()

    if _DAY_AFTER_RE.search(normalized):
        return reference_date + timedelta(days=2)
    if _TOMORROW_RE.search(normalized):
        return reference_date + timedelta(days=1)
    if _TODAY_RE.search(normalized):
        return reference_date

    match = _WEEKDAY_RE.search(normalized)
    if match:
        return next_weekday(reference_date, DAY_NAMES[match.group(1)])

    match = _DAY_MONTH_RE.search(normalized)
    if match:
        day = int(match.group(1))
        month = MONTH_NAMES[match.group(2)]
        year = reference_date.year
        if month < reference_date.month or (month == reference_date.month and day < reference_date.day):
            year += 1
        try:
            return date(year, month, day)
        except ValueError:
            return None

    return None


def parse_colloquial_hour(text: str) -> str | None:
    """
    "a las 6" / "a las 8:30" without am/pm.

    Hours 1-7 are read as afternoon (business hours), 8-23 as written.
    """
    match = _A_LAS_RE.search(text.lower())
    if not match:
        return None
    hour = int(match.group(1))
    minute = int(match.group(2)) if match.group(2) else 0
    if 1 <= hour <= 7:
        hour += 12
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        return None
    return f"{hour:02d}:{minute:02d}"


def is_valid_iso_date(value: str) -> bool:
    if not isinstance(value, str) or not ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_valid_hhmm(value: str) -> bool:
    if not isinstance(value, str) or not HHMM_RE.match(value):
        return False
    hours, minutes = (int(part) for part in value.split(":"))
    return 0 <= hours <= 23 and 0 <= minutes <= 59


def to_minutes(value: str) -> int:
    if not value or ":" not in value:
        return 0
    hours, minutes = value.split(":", 1)
    return int(hours or 0) * 60 + int(minutes or 0)


def minutes_to_hhmm(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def weekday_key(value: date) -> str:
    return WEEKDAYS_EN[value.weekday()]


def spanish_weekday(value: date) -> str:
    return WEEKDAYS_ES[value.weekday()]


def date_references(reference_date: date) -> dict[str, str]:
    """ISO dates for hoy, mañana, pasado mañana and the next occurrence of every weekday."""
    refs = {
        "hoy": reference_date.isoformat(),
        "mañana": (reference_date + timedelta(days=1)).isoformat(),
        "pasado mañana": (reference_date + timedelta(days=2)).isoformat(),
    }
    for index, name in enumerate(WEEKDAYS_ES):
        refs[f"próximo {name}"] = next_weekday(reference_date, index).isoformat()
    return refs
