from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

from reservabot.application.ports.reservations import ReservationRepositoryPort
from reservabot.application.utils.date_parser import (
    is_valid_hhmm,
    is_valid_iso_date,
    minutes_to_hhmm,
    spanish_weekday,
    to_minutes,
    weekday_key,
)
from reservabot.domain.entities.business import Business, ServiceDefinition
from reservabot.domain.entities.validation import AvailabilityCheck

SLOT_STEP_MINUTES = 30
MAX_ALTERNATIVES = 3
CLOSED_MARKERS = ("cerrado", "closed", "")
OPEN_DAY_LOOKAHEAD = 14
MINUTES_PER_DAY = 24 * 60

REASON_INVALID_DATE = "invalid_date"
REASON_INVALID_TIME = "invalid_time"
REASON_PAST_DATE = "past_date"
REASON_PAST_TIME = "past_time"
REASON_INSUFFICIENT_ADVANCE = "insufficient_advance"
REASON_CLOSED_DAY = "closed_day"
REASON_OUT_OF_RANGE = "time_out_of_range"
REASON_DUPLICATE = "duplicate_reservation"
REASON_APPOINTMENT_TAKEN = "appointment_taken"
REASON_NO_CAPACITY = "no_capacity"


def parse_windows(value: str | None) -> list[tuple[int, int]]:
    """
    '08:00-12:00, 14:00-18:00' -> [(480, 720), (840, 1080)]; closed or malformed -> [].

    A window that ends past midnight ('18:00-02:00') is split at 24:00 into
    [(1080, 1440), (0, 120)] of the same day.
    """
    if value is None or value.strip().lower() in CLOSED_MARKERS:
        return []
    windows: list[tuple[int, int]] = []
    for chunk in value.split(","):
        if "-" not in chunk:
            continue
        start, end = (part.strip() for part in chunk.split("-", 1))
        if not (is_valid_hhmm(start) and is_valid_hhmm(end)):
            continue
        start_minute, end_minute = to_minutes(start), to_minutes(end)
        if end_minute > start_minute:
            windows.append((start_minute, end_minute))
            continue
        windows.append((start_minute, MINUTES_PER_DAY))
        if end_minute > 0:
            windows.append((0, end_minute))
    return windows


def in_windows(minute: int, windows: list[tuple[int, int]]) -> bool:
    return any(start <= minute < end for start, end in windows)


def window_slots(windows: list[tuple[int, int]], step: int = SLOT_STEP_MINUTES) -> list[int]:
    slots: list[int] = []
    for start, end in windows:
        slots.extend(range(start, end, step))
    return slots


def closest_slots(slots: list[int], target: int, limit: int = MAX_ALTERNATIVES) -> list[int]:
    return sorted(slots, key=lambda slot: (abs(slot - target), slot))[:limit]


class AvailabilityChecker:
    """
    Decides whether (service, date, time, guests) can be booked.

    Checks run cheapest first and the first failure is returned with a reason,
    a user-facing message and, where it makes sense, alternatives.
    """

    def __init__(
        self,
        reservations: ReservationRepositoryPort,
        timezone: ZoneInfo,
        now: Callable[[], datetime] | None = None,
    ) -> None:
        self._reservations = reservations
        self._timezone = timezone
        self._now = now or (lambda: datetime.now(self._timezone))
        self._logger = logging.getLogger(__name__)

    def check(
        self,
        business: Business,
        service: ServiceDefinition | None,
        date_value: str,
        time_value: str,
        guests: int | None = None,
        user_id: str | None = None,
    ) -> AvailabilityCheck:
        result = self._check(business, service, date_value, time_value, guests, user_id)
        if not result.is_available:
            self._logger.info(
                "Slot not available",
                extra={"business_id": business.id, "user_id": user_id, "reason": result.reason},
            )
        return result

    def _check(
        self,
        business: Business,
        service: ServiceDefinition | None,
        date_value: str,
        time_value: str,
        guests: int | None,
        user_id: str | None,
    ) -> AvailabilityCheck:
        if not is_valid_iso_date(date_value):
            return AvailabilityCheck(
                is_available=False,
                reason=REASON_INVALID_DATE,
                message="No entendí la fecha. ¿Me la indicas como día y mes?",
                field="date",
            )
        if not is_valid_hhmm(time_value):
            return AvailabilityCheck(
                is_available=False,
                reason=REASON_INVALID_TIME,
                message="No entendí la hora. ¿A qué hora te queda bien?",
                field="time",
            )

        now = self._now()
        requested_day = date.fromisoformat(date_value)
        requested_minute = to_minutes(time_value)
        today = now.date()

        if requested_day < today:
            return AvailabilityCheck(
                is_available=False,
                reason=REASON_PAST_DATE,
                message="Esa fecha ya pasó. ¿Para qué otro día te gustaría?",
                field="date",
            )
        now_minute = now.hour * 60 + now.minute
        if requested_day == today and requested_minute <= now_minute:
            return AvailabilityCheck(
                is_available=False,
                reason=REASON_PAST_TIME,
                message="Esa hora ya pasó hoy. ¿Qué otra hora te sirve?",
                field="time",
            )

        advance = service.min_advance_minutes if service else 0
        if advance:
            requested_at = datetime.combine(requested_day, datetime.min.time()) + timedelta(minutes=requested_minute)
            naive_now = now.replace(tzinfo=None)
            if requested_at - naive_now < timedelta(minutes=advance):
                return AvailabilityCheck(
                    is_available=False,
                    reason=REASON_INSUFFICIENT_ADVANCE,
                    message=f"Necesitamos al menos {advance} minutos de anticipación. ¿Te sirve un poco más tarde?",
                    field="time",
                )

        hours = (service.hours if service and service.hours else None) or business.hours
        windows: list[tuple[int, int]] = []
        if hours:
            windows = parse_windows(hours.get(weekday_key(requested_day)))
            if not windows:
                open_days = self._next_open_days(hours, requested_day)
                return AvailabilityCheck(
                    is_available=False,
                    reason=REASON_CLOSED_DAY,
                    message=f"El {spanish_weekday(requested_day)} no atendemos. ¿Te sirve otro día?",
                    alternatives=tuple(open_days),
                    field="date",
                )
            if not in_windows(requested_minute, windows):
                slots = self._future_slots(window_slots(windows), requested_day, today, now_minute)
                opening = minutes_to_hhmm(windows[0][0])
                closing = minutes_to_hhmm(windows[-1][1] % MINUTES_PER_DAY)
                return AvailabilityCheck(
                    is_available=False,
                    reason=REASON_OUT_OF_RANGE,
                    message=f"Horario de atención: {opening} - {closing}",
                    alternatives=tuple(minutes_to_hhmm(m) for m in closest_slots(slots, requested_minute)),
                    field="time",
                )

        active = self._reservations.find_active_on(business.id, date_value)
        service_key = service.key if service else None

        if user_id and any(
            r.user_id == user_id and r.time == time_value and r.service == service_key for r in active
        ):
            return AvailabilityCheck(
                is_available=False,
                reason=REASON_DUPLICATE,
                message=f"Ya tienes una reserva el {date_value} a las {time_value}.",
            )

        if service and service.capacity:
            same_service = [r for r in active if r.service == service.key]
            if sum(1 for r in same_service if r.time == time_value) >= service.capacity:
                taken: dict[str, int] = {}
                for r in same_service:
                    taken[r.time] = taken.get(r.time, 0) + 1
                free = [
                    m
                    for m in self._future_slots(window_slots(windows), requested_day, today, now_minute)
                    if taken.get(minutes_to_hhmm(m), 0) < service.capacity
                ]
                return AvailabilityCheck(
                    is_available=False,
                    reason=REASON_APPOINTMENT_TAKEN,
                    message="Ese horario ya está ocupado.",
                    alternatives=tuple(minutes_to_hhmm(m) for m in closest_slots(free, requested_minute)),
                    field="time",
                )

        if guests and (service is None or not service.requires_products or service.requires_table):
            total = sum(r.capacity for r in business.tables() if r.available) or (business.capacity or 0)
            if total:
                booked = sum(r.guests for r in active if r.time == time_value and not r.products)
                if booked + guests > total:
                    return AvailabilityCheck(
                        is_available=False,
                        reason=REASON_NO_CAPACITY,
                        message=f"No tenemos cupo para {guests} personas a esa hora.",
                        field="time",
                    )

        return AvailabilityCheck(is_available=True)

    @staticmethod
    def _next_open_days(hours: dict[str, str], start: date) -> list[str]:
        days: list[str] = []
        for offset in range(1, OPEN_DAY_LOOKAHEAD + 1):
            candidate = start + timedelta(days=offset)
            if parse_windows(hours.get(weekday_key(candidate))):
                days.append(candidate.isoformat())
            if len(days) == MAX_ALTERNATIVES:
                break
        return days

    @staticmethod
    def _future_slots(slots: list[int], day: date, today: date, now_minute: int) -> list[int]:
        if day != today:
            return slots
        return [m for m in slots if m > now_minute]
