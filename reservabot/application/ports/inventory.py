from __future__ import annotations

from abc import ABC, abstractmethod


class InventoryPort(ABC):
    @abstractmethod
    def get_stock(self, business_id: str, product_id: str) -> int | None:
        """Current stock, or None when the product is not stock-tracked."""
        raise NotImplementedError

    @abstractmethod
    def decrement(self, business_id: str, product_id: str, quantity: int) -> None:
        """Raises PersistenceError when the stock cannot be written."""
        raise NotImplementedError

    @abstractmethod
    def increment(self, business_id: str, product_id: str, quantity: int) -> None:
        """Compensating counterpart of decrement."""
        raise NotImplementedError
