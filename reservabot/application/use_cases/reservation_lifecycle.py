from __future__ import annotations

import logging

from reservabot.application.exceptions import PersistenceError
from reservabot.application.ports.inventory import InventoryPort
from reservabot.application.ports.reservations import ReservationRepositoryPort
from reservabot.domain.entities.reservation import RESERVATION_CANCELLED, Reservation

logger = logging.getLogger(__name__)


def hold_stock(
    reservations: ReservationRepositoryPort,
    inventory: InventoryPort,
    reservation: Reservation,
) -> Reservation:
    """
    Decrement stock for every product of an existing reservation.

    If any decrement fails, the ones already applied are compensated and the
    reservation is cancelled before the PersistenceError propagates.
    """
    applied: list[tuple[str, int]] = []
    try:
        for item in reservation.products:
            quantity = int(item.get("quantity") or 1)
            inventory.decrement(reservation.business_id, item["id"], quantity)
            applied.append((item["id"], quantity))
        return reservations.mark_stock_held(reservation.id, True)
    except PersistenceError:
        for product_id, quantity in applied:
            inventory.increment(reservation.business_id, product_id, quantity)
        reservations.update_status(reservation.id, RESERVATION_CANCELLED)
        logger.error(
            "Stock hold failed, reservation cancelled",
            extra={"business_id": reservation.business_id, "reservation_id": reservation.id},
        )
        raise


def release_reservation(
    reservations: ReservationRepositoryPort,
    inventory: InventoryPort,
    reservation: Reservation,
) -> Reservation:
    """Cancel a reservation and give back any stock it holds."""
    if reservation.stock_held:
        for item in reservation.products:
            inventory.increment(reservation.business_id, item["id"], int(item.get("quantity") or 1))
        reservations.mark_stock_held(reservation.id, False)
    cancelled = reservations.update_status(reservation.id, RESERVATION_CANCELLED)
    logger.info(
        "Reservation cancelled",
        extra={"business_id": reservation.business_id, "user_id": reservation.user_id, "reservation_id": reservation.id},
    )
    return cancelled
