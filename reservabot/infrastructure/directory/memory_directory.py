from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from reservabot.application.ports.business_directory import BusinessDirectoryPort
from reservabot.domain.entities.business import Business
from reservabot.infrastructure.directory.business_parser import parse_business
from reservabot.infrastructure.directory.sample_businesses import SAMPLE_BUSINESSES

logger = logging.getLogger(__name__)


class InMemoryBusinessDirectory(BusinessDirectoryPort):
    def __init__(self, businesses: list[Business] | None = None) -> None:
        if businesses is None:
            businesses = [parse_business(raw) for raw in SAMPLE_BUSINESSES]
        self._businesses = {business.id: business for business in businesses}

    @classmethod
    def from_file(cls, path: str) -> InMemoryBusinessDirectory:
        """Load a JSON list (or {"businesses": [...]}) of business configurations."""
        with open(Path(path), "r", encoding="utf-8") as f:
            raw: Any = json.load(f)
        items = raw.get("businesses", []) if isinstance(raw, dict) else raw
        businesses = [parse_business(item) for item in items]
        logger.info("Businesses loaded", extra={"count": len(businesses), "path": path})
        return cls(businesses)

    def find_business(self, business_id: str) -> Business | None:
        return self._businesses.get(business_id)

    def all(self) -> list[Business]:
        return list(self._businesses.values())
