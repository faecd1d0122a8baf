from __future__ import annotations

from abc import ABC, abstractmethod

from reservabot.domain.entities.business import Business


class BusinessDirectoryPort(ABC):
    @abstractmethod
    def find_business(self, business_id: str) -> Business | None:
        """Return the normalized business configuration or None if unknown."""
        raise NotImplementedError
