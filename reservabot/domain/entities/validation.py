from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class AvailabilityCheck:
    is_available: bool
    reason: str | None = None
    message: str | None = None
    alternatives: tuple[str, ...] = ()
    # Field the user has to provide again when the check fails
    field: str | None = None


@dataclass(frozen=True)
class ProductIssue:
    product_id: str
    name: str
    reason: str  # not_found | unavailable | not_available_on_date | insufficient_stock
    message: str
    requested: int = 1
    available_stock: int | None = None


@dataclass(frozen=True)
class ResourceValidation:
    is_valid: bool
    table_id: str | None = None
    table_reason: str | None = None
    message: str | None = None
    valid_products: tuple[dict[str, Any], ...] = ()
    invalid_products: tuple[ProductIssue, ...] = field(default_factory=tuple)
