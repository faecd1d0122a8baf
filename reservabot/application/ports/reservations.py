from __future__ import annotations

from abc import ABC, abstractmethod

from reservabot.domain.entities.reservation import NewReservation, Reservation


class ReservationRepositoryPort(ABC):
    @abstractmethod
    def create(self, reservation: NewReservation) -> Reservation:
        """Create a reservation record. Raises PersistenceError on failure."""
        raise NotImplementedError

    @abstractmethod
    def get(self, reservation_id: str) -> Reservation | None:
        raise NotImplementedError

    @abstractmethod
    def update_status(self, reservation_id: str, status: str) -> Reservation:
        """Raises PersistenceError if the reservation does not exist or cannot be written."""
        raise NotImplementedError

    @abstractmethod
    def mark_stock_held(self, reservation_id: str, held: bool) -> Reservation:
        raise NotImplementedError

    @abstractmethod
    def find_active_by_user(self, business_id: str, user_id: str) -> list[Reservation]:
        """Pending or confirmed reservations of a user."""
        raise NotImplementedError

    @abstractmethod
    def find_active_on(self, business_id: str, date: str) -> list[Reservation]:
        """Pending or confirmed reservations of a business on a date (YYYY-MM-DD)."""
        raise NotImplementedError
