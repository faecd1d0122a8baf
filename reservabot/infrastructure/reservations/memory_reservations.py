from __future__ import annotations

import threading
import time
import uuid
from dataclasses import asdict, replace

from reservabot.application.exceptions import PersistenceError
from reservabot.application.ports.reservations import ReservationRepositoryPort
from reservabot.domain.entities.reservation import NewReservation, Reservation


class MemoryReservationRepository(ReservationRepositoryPort):
    def __init__(self) -> None:
        self._reservations: dict[str, Reservation] = {}
        self._lock = threading.Lock()

    def create(self, reservation: NewReservation) -> Reservation:
        created = Reservation(id=uuid.uuid4().hex, created_at=time.time(), **asdict(reservation))
        with self._lock:
            self._reservations[created.id] = created
        return created

    def get(self, reservation_id: str) -> Reservation | None:
        with self._lock:
            return self._reservations.get(reservation_id)

    def update_status(self, reservation_id: str, status: str) -> Reservation:
        return self._update(reservation_id, status=status)

    def mark_stock_held(self, reservation_id: str, held: bool) -> Reservation:
        return self._update(reservation_id, stock_held=held)

    def find_active_by_user(self, business_id: str, user_id: str) -> list[Reservation]:
        with self._lock:
            return [
                r
                for r in self._reservations.values()
                if r.business_id == business_id and r.user_id == user_id and r.is_active
            ]

    def find_active_on(self, business_id: str, date: str) -> list[Reservation]:
        with self._lock:
            return [r for r in self._reservations.values() if r.business_id == business_id and r.date == date and r.is_active]

    def _update(self, reservation_id: str, **changes) -> Reservation:
        with self._lock:
            current = self._reservations.get(reservation_id)
            if current is None:
                raise PersistenceError(f"Reservation {reservation_id} not found")
            updated = replace(current, **changes)
            self._reservations[reservation_id] = updated
            return updated
