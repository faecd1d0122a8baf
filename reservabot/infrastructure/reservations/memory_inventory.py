from __future__ import annotations

import threading

from reservabot.application.exceptions import PersistenceError
from reservabot.application.ports.inventory import InventoryPort
from reservabot.domain.entities.business import Business


class MemoryInventory(InventoryPort):
    """Live stock per (business, product); products without a stock entry are not tracked."""

    def __init__(self, stock: dict[tuple[str, str], int] | None = None) -> None:
        self._stock: dict[tuple[str, str], int] = dict(stock or {})
        self._lock = threading.Lock()

    @classmethod
    def from_businesses(cls, businesses: list[Business]) -> MemoryInventory:
        return cls(
            {
                (business.id, product.id): product.stock
                for business in businesses
                for product in business.products
                if product.stock is not None
            }
        )

    def get_stock(self, business_id: str, product_id: str) -> int | None:
        with self._lock:
            return self._stock.get((business_id, product_id))

    def decrement(self, business_id: str, product_id: str, quantity: int) -> None:
        key = (business_id, product_id)
        with self._lock:
            if key not in self._stock:
                return
            if self._stock[key] < quantity:
                raise PersistenceError(f"Insufficient stock for {product_id}: {self._stock[key]} < {quantity}")
            self._stock[key] -= quantity

    def increment(self, business_id: str, product_id: str, quantity: int) -> None:
        key = (business_id, product_id)
        with self._lock:
            if key in self._stock:
                self._stock[key] += quantity
